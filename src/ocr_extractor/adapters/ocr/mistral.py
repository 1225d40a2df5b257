"""OCR adapter using the Mistral OCR API."""

import base64
import logging
from typing import Any
from urllib.parse import urlparse

import httpx

from ...config import DEFAULT_MISTRAL_MODEL, DEFAULT_MISTRAL_URL
from ...domain.errors import OcrError
from ...ports.ocr import OCRPort

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 120.0


def to_data_url(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


class MistralAdapter(OCRPort):
    """OCR implementation using Mistral's hosted OCR model."""

    label = "Mistral OCR"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MISTRAL_MODEL,
        base_url: str = DEFAULT_MISTRAL_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"Invalid Mistral base_url scheme: {parsed.scheme}")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def acquire(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=REQUEST_TIMEOUT,
                transport=self._transport,
            )

    async def release(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    def is_type_supported(self, mime_type: str) -> bool:
        return mime_type != "application/xml"

    async def extract_pages(
        self, data: bytes, mime_type: str, filename: str
    ) -> list[str] | None:
        if not self.api_key:
            raise OcrError.fatal("No Mistral API key configured")

        url = to_data_url(data, mime_type)
        if mime_type.startswith("image/"):
            document = {"type": "image_url", "image_url": url}
        else:
            document = {"type": "document_url", "document_url": url}

        payload = {
            "model": self.model,
            "document": document,
            # Do not extract images
            "include_image_base64": False,
            "image_limit": 0,
            "image_min_size": 0,
        }

        logger.info(f"Running Mistral OCR: {filename}")
        body = await self._with_retries(lambda: self._post_ocr(payload))
        return [page.get("markdown", "") for page in body.get("pages", [])]

    async def _post_ocr(self, payload: dict) -> dict:
        await self.acquire()
        assert self._client is not None

        try:
            response = await self._client.post("/v1/ocr", json=payload)
        except httpx.TransportError as e:
            raise OcrError.retryable_error(f"Mistral OCR request failed: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise OcrError.fatal("Mistral API key is invalid", status)
        if status in (400, 422):
            raise OcrError.skip("file type not supported by Mistral OCR", status)
        if status == 429 or status >= 500:
            raise OcrError.retryable_error(f"Mistral OCR server error ({status})", status)

        response.raise_for_status()
        return response.json()
