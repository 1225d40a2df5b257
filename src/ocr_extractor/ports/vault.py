"""Vault port - interface to the notes and their attachments."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..domain.models import AttachmentReference, Snapshot


class VaultPort(ABC):
    """Interface for reading notes, resolving embeds and editing notes."""

    @abstractmethod
    async def list_documents(self) -> list[str]:
        """Return the paths of all notes in the vault."""
        pass

    @abstractmethod
    async def read_snapshot(self, path: str) -> "Snapshot":
        """Read the current content of a note.

        Raises UnreadableDocumentError if the content can't be decoded.
        """
        pass

    @abstractmethod
    async def get_references(self, snapshot: "Snapshot") -> list["AttachmentReference"]:
        """Return the embeds of a snapshot in document order."""
        pass

    @abstractmethod
    async def resolve_reference(self, link: str, path: str) -> Path | None:
        """Resolve an embed link from the note at ``path`` to a file."""
        pass

    @abstractmethod
    async def read_binary(self, file: Path) -> bytes:
        """Read an attachment."""
        pass

    @abstractmethod
    async def mutate(self, path: str, fn: Callable[[str], str]) -> bool:
        """Apply ``fn`` to the note's current content and save the result.

        Exceptions raised by ``fn`` propagate and leave the note untouched.
        Returns True if the content changed.
        """
        pass
