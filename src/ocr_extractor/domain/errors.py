"""Error types raised across the extraction pipeline."""

from enum import Enum


class ErrorKind(str, Enum):
    """How the orchestrator treats a backend failure."""

    RETRYABLE = "retryable"  # Transient, retried with backoff
    SKIP = "skip"  # Attachment can't be processed, skip it
    FATAL = "fatal"  # Abort the run, message shown to the user


class OcrError(Exception):
    """Backend failure, classified once at the backend boundary."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.RETRYABLE

    @classmethod
    def retryable_error(cls, message: str, status_code: int | None = None) -> "OcrError":
        return cls(ErrorKind.RETRYABLE, message, status_code)

    @classmethod
    def skip(cls, message: str, status_code: int | None = None) -> "OcrError":
        return cls(ErrorKind.SKIP, message, status_code)

    @classmethod
    def fatal(cls, message: str, status_code: int | None = None) -> "OcrError":
        return cls(ErrorKind.FATAL, message, status_code)

    def __repr__(self) -> str:
        return f"OcrError({self.kind.value}, {self.message!r}, status_code={self.status_code})"


class DocumentChangedError(Exception):
    """Note content changed between discovery and insertion."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File changed during processing, skipping ({path})")
        self.path = path


class UnreadableDocumentError(Exception):
    """Note content can't be decoded as UTF-8."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Note is not valid UTF-8, skipping ({path})")
        self.path = path
