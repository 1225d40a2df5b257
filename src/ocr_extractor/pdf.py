"""PDF helpers using PyMuPDF."""

import pymupdf

PDF_MIME_TYPE = "application/pdf"

# Render scale for page images (2x the 72 DPI base resolution)
RENDER_SCALE = 2.0


def is_pdf(mime_type: str) -> bool:
    return mime_type == PDF_MIME_TYPE


def get_pdf_text_content(data: bytes) -> list[str]:
    """Return the PDF text layer, one string per page."""
    with pymupdf.open(stream=data, filetype="pdf") as doc:
        return [page.get_text("text") for page in doc]


def convert_pdf_to_images(data: bytes, scale: float = RENDER_SCALE) -> list[bytes]:
    """Render every PDF page to PNG bytes."""
    matrix = pymupdf.Matrix(scale, scale)
    with pymupdf.open(stream=data, filetype="pdf") as doc:
        return [
            page.get_pixmap(matrix=matrix, colorspace=pymupdf.csRGB).tobytes("png")
            for page in doc
        ]
