"""Shared test fixtures."""

import io
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from PIL import Image

from ocr_extractor.adapters.vault.filesystem import parse_references
from ocr_extractor.domain.models import AttachmentReference, Snapshot
from ocr_extractor.ports.ocr import OCRPort
from ocr_extractor.ports.vault import VaultPort

PDF_BYTES = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<< /Type /Catalog >>\nendobj\n"


def make_png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), "white").save(buffer, format="PNG")
    return buffer.getvalue()


class InMemoryVault(VaultPort):
    """Vault over dicts, with a hook to simulate edits made during a run."""

    def __init__(self, notes: dict[str, str], files: dict[str, bytes] | None = None) -> None:
        self.notes = dict(notes)
        self.files = dict(files or {})
        self.before_mutate: Callable[[str], None] | None = None
        self.mutations: list[str] = []

    async def list_documents(self) -> list[str]:
        return sorted(self.notes)

    async def read_snapshot(self, path: str) -> Snapshot:
        return Snapshot(path=path, content=self.notes[path])

    async def get_references(self, snapshot: Snapshot) -> list[AttachmentReference]:
        return parse_references(snapshot.content)

    async def resolve_reference(self, link: str, path: str) -> Path | None:
        return Path(link) if link in self.files else None

    async def read_binary(self, file: Path) -> bytes:
        return self.files[str(file)]

    async def mutate(self, path: str, fn: Callable[[str], str]) -> bool:
        if self.before_mutate is not None:
            self.before_mutate(path)
        current = self.notes[path]
        updated = fn(current)
        self.mutations.append(path)
        if updated == current:
            return False
        self.notes[path] = updated
        return True


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def pdf_bytes() -> bytes:
    return PDF_BYTES


@pytest.fixture
def mock_ocr() -> MagicMock:
    """Mock OCR port returning the same text for every attachment."""
    mock = MagicMock(spec=OCRPort)
    mock.process.return_value = "Scanned text"
    return mock


@pytest.fixture
def vault() -> InMemoryVault:
    return InMemoryVault(
        notes={"note.md": "Intro\n![[scan.pdf]]\nOutro\n"},
        files={"scan.pdf": PDF_BYTES},
    )


@pytest.fixture
def make_vault() -> type[InMemoryVault]:
    return InMemoryVault
