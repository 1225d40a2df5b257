"""OCR adapter using a local Tesseract install."""

import asyncio
import io
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

import pytesseract
from PIL import Image, UnidentifiedImageError

from ...domain.errors import OcrError
from ...pdf import convert_pdf_to_images, is_pdf
from ...ports.ocr import OCRPort

logger = logging.getLogger(__name__)

T = TypeVar("T")


def image_to_text(data: bytes, language: str) -> str:
    """Run Tesseract on encoded image bytes."""
    with Image.open(io.BytesIO(data)) as image:
        return pytesseract.image_to_string(image, lang=language)


class TesseractAdapter(OCRPort):
    """OCR implementation using Tesseract via pytesseract.

    Recognition is CPU bound, so it runs on a dedicated worker thread that
    stays warm between files until ``release()``.
    """

    label = "Tesseract"

    def __init__(self, language: str = "eng", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.language = language
        self._executor: ThreadPoolExecutor | None = None

    async def acquire(self) -> None:
        if self._executor is None:
            logger.debug(f"Starting Tesseract worker ({self.language})")
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tesseract")

    async def release(self) -> None:
        if self._executor is not None:
            executor, self._executor = self._executor, None
            await asyncio.to_thread(executor.shutdown, wait=True, cancel_futures=True)
            logger.debug("Tesseract worker stopped")

    def is_type_supported(self, mime_type: str) -> bool:
        return is_pdf(mime_type) or mime_type.startswith("image/")

    async def extract_pages(
        self, data: bytes, mime_type: str, filename: str
    ) -> list[str] | None:
        if is_pdf(mime_type):
            images = await self._run(convert_pdf_to_images, data)
        else:
            images = [data]

        pages = []
        for image in images:
            pages.append(await self._recognize(image, filename))
        return pages

    async def _recognize(self, image: bytes, filename: str) -> str:
        try:
            return await self._run(image_to_text, image, self.language)
        except pytesseract.TesseractNotFoundError as e:
            raise OcrError.fatal("Tesseract is not installed or not in PATH") from e
        except pytesseract.TesseractError as e:
            logger.error(f"Tesseract failed on {filename}: {e.message}")
            raise OcrError.fatal(f"Tesseract failed (status {e.status})") from e
        except UnidentifiedImageError as e:
            raise OcrError.skip("image format not supported by Tesseract") from e

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        await self.acquire()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)
