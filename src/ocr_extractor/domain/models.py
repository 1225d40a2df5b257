"""Domain models."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class Snapshot:
    """Full note content captured once per processing pass."""

    path: str
    content: str


@dataclass(frozen=True)
class AttachmentReference:
    """An embedded attachment inside a note snapshot."""

    original: str  # Raw markup, e.g. "![[scan.pdf]]"
    link: str  # Link target without alias/subpath
    start: int
    end: int  # Exclusive

    @property
    def is_wiki_embed(self) -> bool:
        return self.original.startswith("![[")

    @property
    def opener(self) -> str:
        return "![[" if self.is_wiki_embed else "!["

    @property
    def closer(self) -> str:
        return "]]" if self.is_wiki_embed else ")"


# Markup -> extracted markdown, or None to skip
ExtractionResult = dict[str, str | None]


class ProcessingStatus(str, Enum):
    """Run status shared with status observers."""

    IDLE = "idle"
    PROCESSING = "processing"
    CANCELING = "canceling"


@dataclass
class RunReport:
    """Summary of one extraction run."""

    total_documents: int = 0
    documents_processed: int = 0
    documents_skipped: list[str] = field(default_factory=list)
    extracted_count: int = 0
    skipped: list[AttachmentReference] = field(default_factory=list)
    canceled: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and not self.canceled
