"""OCR port - contract implemented by every OCR backend."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import ClassVar, Self, TypeVar

import puremagic

from ..concurrency import DEFAULT_RETRY_COUNT, DEFAULT_RETRY_DELAY, with_retries
from ..domain.errors import ErrorKind, OcrError
from ..log import warn_skipped
from ..pdf import get_pdf_text_content, is_pdf

logger = logging.getLogger(__name__)

T = TypeVar("T")

PAGE_SEPARATOR = "\n\n---\n\n"


def detect_mime_type(data: bytes) -> str | None:
    """Sniff the MIME type from file content."""
    try:
        mime_type = puremagic.from_string(data, mime=True)
    except (puremagic.PureError, ValueError):
        return None
    return mime_type or None


def join_pages(pages: list[str]) -> str | None:
    """Join non-empty trimmed pages, or None if no page has text."""
    non_empty = [page.strip() for page in pages if page.strip()]
    return PAGE_SEPARATOR.join(non_empty) if non_empty else None


def is_retryable(error: Exception) -> bool:
    return isinstance(error, OcrError) and error.retryable


class OCRPort(ABC):
    """Interface for OCR backends.

    Subclasses implement ``is_type_supported()`` and ``extract_pages()``;
    ``process()`` is the entry point used by the orchestrator and is not
    meant to be overridden.
    """

    label: ClassVar[str] = "OCR"

    def __init__(
        self,
        use_embedded_pdf_text: bool = False,
        retry_count: int = DEFAULT_RETRY_COUNT,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self.use_embedded_pdf_text = use_embedded_pdf_text
        self.retry_count = retry_count
        self.retry_delay = retry_delay

    async def process(self, data: bytes, filename: str) -> str | None:
        """Extract text from a file.

        Returns markdown with pages separated by a horizontal rule, or None
        if the file should be skipped.
        """
        mime_type = detect_mime_type(data)

        if not mime_type or not self.is_type_supported(mime_type):
            warn_skipped(filename, f"unsupported MIME type ({mime_type or 'unknown'})")
            return None

        if is_pdf(mime_type) and self.use_embedded_pdf_text:
            result = join_pages(await asyncio.to_thread(get_pdf_text_content, data))
            if result:
                return result

        try:
            pages = await self.extract_pages(data, mime_type, filename)
        except OcrError as e:
            if e.kind != ErrorKind.SKIP:
                raise
            warn_skipped(filename, e.message)
            return None

        if pages is None:
            return None

        result = join_pages(pages)
        if not result:
            warn_skipped(filename, "no text to extract")
            return None
        return result

    async def acquire(self) -> None:
        """Acquire long-lived resources (e.g. a warm engine worker)."""

    async def release(self) -> None:
        """Release resources held by this backend. Safe to call twice."""

    async def __aenter__(self) -> Self:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.release()

    async def _with_retries(
        self,
        task: Callable[[], Awaitable[T]],
        should_retry: Callable[[Exception], bool] = is_retryable,
    ) -> T:
        return await with_retries(
            task,
            should_retry,
            retry_count=self.retry_count,
            base_delay=self.retry_delay,
        )

    @abstractmethod
    def is_type_supported(self, mime_type: str) -> bool:
        """Whether this backend handles the MIME type. If not, the file is skipped."""
        pass

    @abstractmethod
    async def extract_pages(
        self, data: bytes, mime_type: str, filename: str
    ) -> list[str] | None:
        """Extract text, one string per page, or None to skip the file.

        Raise OcrError to signal a classified failure.
        """
        pass
