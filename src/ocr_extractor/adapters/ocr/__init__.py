"""OCR adapters."""

from collections.abc import Callable

from ...config import OcrBackend, OcrConfig
from ...ports.ocr import OCRPort
from .custom_command import CustomCommandAdapter
from .mistral import MistralAdapter
from .tesseract import TesseractAdapter

__all__ = [
    "CustomCommandAdapter",
    "MistralAdapter",
    "OCR_BACKENDS",
    "TesseractAdapter",
    "create_ocr_adapter",
]


def _common_options(config: OcrConfig) -> dict:
    return {
        "use_embedded_pdf_text": config.use_embedded_pdf_text,
        "retry_count": config.retry_count,
        "retry_delay": config.retry_delay,
    }


def _tesseract(config: OcrConfig) -> OCRPort:
    return TesseractAdapter(language=config.tesseract.language, **_common_options(config))


def _mistral(config: OcrConfig) -> OCRPort:
    return MistralAdapter(
        api_key=config.mistral.api_key,
        model=config.mistral.model,
        base_url=config.mistral.base_url,
        **_common_options(config),
    )


def _custom_command(config: OcrConfig) -> OCRPort:
    return CustomCommandAdapter(
        command=config.custom_command.command,
        convert_pdfs=config.custom_command.convert_pdfs,
        timeout=config.custom_command.timeout,
        **_common_options(config),
    )


OCR_BACKENDS: dict[OcrBackend, Callable[[OcrConfig], OCRPort]] = {
    OcrBackend.TESSERACT: _tesseract,
    OcrBackend.MISTRAL: _mistral,
    OcrBackend.CUSTOM_COMMAND: _custom_command,
}


def create_ocr_adapter(config: OcrConfig) -> OCRPort:
    """Create OCR adapter based on configuration."""
    try:
        factory = OCR_BACKENDS[config.backend]
    except KeyError:
        raise ValueError(f"Unknown OCR backend: {config.backend}") from None
    return factory(config)
