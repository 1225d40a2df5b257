"""Vault adapter for a directory of Markdown notes."""

import asyncio
import glob
import logging
import os
import re
import tempfile
from collections.abc import Callable
from pathlib import Path
from urllib.parse import unquote

from ...domain.errors import UnreadableDocumentError
from ...domain.models import AttachmentReference, Snapshot
from ...ports.vault import VaultPort

logger = logging.getLogger(__name__)

NOTE_PATTERN = "*.md"

# ![[file.pdf]], ![[file.pdf|alias]], ![alt](path/to/file.png "title")
EMBED_PATTERN = re.compile(
    r"!\[\[(?P<wiki>[^\[\]\n]+?)\]\]"
    r"|!\[(?P<alt>[^\[\]\n]*)\]\((?P<target>[^()\n]+)\)"
)
FENCE_PATTERN = re.compile(r"^(?P<fence>```|~~~)[^\n]*\n.*?^(?P=fence)[ \t]*$", re.M | re.S)
URL_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


def _markdown_link_target(target: str) -> str | None:
    """Extract the path of a Markdown link target, or None for URLs."""
    target = target.strip()
    if target.startswith("<") and ">" in target:
        target = target[1 : target.index(">")]
    else:
        # Drop an optional "title"
        target = target.split(" ", 1)[0]

    if URL_SCHEME.match(target):
        return None
    return unquote(target.split("#", 1)[0])


def parse_references(content: str) -> list[AttachmentReference]:
    """Find attachment embeds in note content, outside fenced code blocks."""
    code_spans = [(m.start(), m.end()) for m in FENCE_PATTERN.finditer(content)]

    references = []
    for match in EMBED_PATTERN.finditer(content):
        if any(start <= match.start() < end for start, end in code_spans):
            continue

        if match.group("wiki") is not None:
            link = match.group("wiki").split("|", 1)[0].split("#", 1)[0].strip()
        else:
            link = _markdown_link_target(match.group("target"))

        if not link:
            continue

        references.append(
            AttachmentReference(
                original=match.group(0),
                link=link,
                start=match.start(),
                end=match.end(),
            )
        )

    return references


class FilesystemVault(VaultPort):
    """Vault implementation over a local directory."""

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser()

    def note_path(self, path: str) -> Path:
        return self.root / path

    async def list_documents(self) -> list[str]:
        return await asyncio.to_thread(self._list_documents)

    def _list_documents(self) -> list[str]:
        notes = []
        for path in self.root.rglob(NOTE_PATTERN):
            relative = path.relative_to(self.root)
            # Skip app config, trash and other hidden folders
            if any(part.startswith(".") for part in relative.parts):
                continue
            if path.is_file():
                notes.append(relative.as_posix())
        return sorted(notes)

    async def read_snapshot(self, path: str) -> Snapshot:
        content = await asyncio.to_thread(self._read_text, path)
        return Snapshot(path=path, content=content)

    async def get_references(self, snapshot: Snapshot) -> list[AttachmentReference]:
        return parse_references(snapshot.content)

    async def resolve_reference(self, link: str, path: str) -> Path | None:
        return await asyncio.to_thread(self._resolve, link, path)

    def _resolve(self, link: str, path: str) -> Path | None:
        """Resolve relative to the note, then the vault root, then by file name."""
        root = self.root.resolve()
        note_dir = self.note_path(path).parent

        for candidate in (note_dir / link, self.root / link):
            resolved = candidate.resolve()
            if resolved.is_file() and resolved.is_relative_to(root):
                return resolved

        name = Path(link).name
        matches = [p for p in self.root.rglob(glob.escape(name)) if p.is_file()]
        if not matches:
            return None

        # Prefer the shallowest match, like the notes app does
        return min(matches, key=lambda p: (len(p.parts), str(p))).resolve()

    async def read_binary(self, file: Path) -> bytes:
        return await asyncio.to_thread(file.read_bytes)

    async def mutate(self, path: str, fn: Callable[[str], str]) -> bool:
        note = self.note_path(path)
        current = await asyncio.to_thread(self._read_text, path)
        updated = fn(current)

        if updated == current:
            return False

        await asyncio.to_thread(self._write_text, note, updated)
        logger.info(f"Updated: {path}")
        return True

    def _read_text(self, path: str) -> str:
        # Decode bytes directly so offsets match the file (no newline translation)
        data = self.note_path(path).read_bytes()
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise UnreadableDocumentError(path) from e

    @staticmethod
    def _write_text(path: Path, content: str) -> None:
        """Write via a temp file in the same directory, then replace."""
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content.encode("utf-8"))
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
