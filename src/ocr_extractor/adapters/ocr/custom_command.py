"""OCR adapter running a user-configured shell command."""

import asyncio
import io
import logging
import re
import tempfile
import uuid
from pathlib import Path
from typing import Any

from PIL import Image

from ...config import DEFAULT_COMMAND_TIMEOUT
from ...domain.errors import OcrError
from ...pdf import convert_pdf_to_images, is_pdf
from ...ports.ocr import OCRPort

logger = logging.getLogger(__name__)


def create_test_image() -> bytes:
    """A 1x1 white PNG for trying out a command."""
    buffer = io.BytesIO()
    Image.new("RGB", (1, 1), "white").save(buffer, format="PNG")
    return buffer.getvalue()


def tmp_paths(extension: str, tmp_dir: Path | None = None) -> tuple[Path, Path]:
    """Input and output paths named by UUID.

    The original filename is never used and the extension is reduced to
    alphanumerics, so nothing user-controlled reaches the shell.
    """
    base = tmp_dir or Path(tempfile.gettempdir())
    name = uuid.uuid4().hex
    sanitized_ext = re.sub(r"[^a-zA-Z0-9]", "", extension)
    return base / f"input-{name}.{sanitized_ext}", base / f"output-{name}.md"


class CustomCommandAdapter(OCRPort):
    """OCR implementation delegating to an external command.

    The command uses ``{input}`` and ``{output}`` placeholders for the file
    to read and the markdown file to write.
    """

    label = "Custom command"

    def __init__(
        self,
        command: str,
        convert_pdfs: bool = False,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.command = command
        self.convert_pdfs = convert_pdfs
        self.timeout = timeout

    def is_type_supported(self, mime_type: str) -> bool:
        # The command can skip a file by writing an empty output file
        return True

    async def extract_pages(
        self, data: bytes, mime_type: str, filename: str
    ) -> list[str] | None:
        command = self._get_command()

        if is_pdf(mime_type) and self.convert_pdfs:
            images = await asyncio.to_thread(convert_pdf_to_images, data)
            pages = []
            for image in images:
                text = await self._process_file(image, command, "png")
                if text:
                    pages.append(text)
            return pages or None

        text = await self._process_file(data, command, Path(filename).suffix)
        return [text] if text else None

    def _get_command(self) -> str:
        command = self.command.strip()
        if not command:
            raise OcrError.fatal("No custom command configured")
        return command

    async def _process_file(self, data: bytes, command: str, extension: str) -> str:
        input_path, output_path = tmp_paths(extension)

        try:
            await asyncio.to_thread(input_path.write_bytes, data)
            await self._run_command(command, input_path, output_path)
            return await self._read_output(output_path)
        finally:
            input_path.unlink(missing_ok=True)
            output_path.unlink(missing_ok=True)

    async def _run_command(self, command: str, input_path: Path, output_path: Path) -> None:
        # Quote paths in case the temp dir contains spaces
        resolved = command.replace("{input}", f'"{input_path}"').replace(
            "{output}", f'"{output_path}"'
        )

        process = await asyncio.create_subprocess_shell(
            resolved,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.error(f"Custom command timed out after {self.timeout:g}s")
            raise OcrError.fatal("Custom command timed out") from None

        if process.returncode != 0:
            details = stderr.decode(errors="replace").strip()
            logger.error(f"Custom command failed (exit code {process.returncode}): {details}")
            raise OcrError.fatal(
                f"Custom command failed with exit code {process.returncode} (see log for details)"
            )

    async def _read_output(self, output_path: Path) -> str:
        try:
            return await asyncio.to_thread(output_path.read_text, encoding="utf-8")
        except FileNotFoundError:
            raise OcrError.fatal("Custom command did not create output file") from None
