"""Run status shared between the orchestrator and status observers."""

import logging

from ..log import DebugLog
from .models import AttachmentReference, ProcessingStatus

logger = logging.getLogger(__name__)


class ProgressListener:
    """Receives run progress. Override the callbacks of interest."""

    def on_progress(self, current: int, total: int) -> None:
        pass

    def on_complete(self, extracted_count: int, skipped: list[AttachmentReference]) -> None:
        pass

    def on_cancelled(self) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


class StatusManager:
    """Owns the processing status field.

    Only the orchestrator changes the status; observers read it and may ask
    for cancellation.
    """

    def __init__(
        self,
        listener: ProgressListener | None = None,
        debug_log: DebugLog | None = None,
    ) -> None:
        self.listener = listener or ProgressListener()
        self.debug_log = debug_log or DebugLog(logger=logger)
        self._status = ProcessingStatus.IDLE

    @property
    def status(self) -> ProcessingStatus:
        return self._status

    def is_idle(self) -> bool:
        return self._status == ProcessingStatus.IDLE

    def is_canceling(self) -> bool:
        return self._status == ProcessingStatus.CANCELING

    def set_processing(self, total: int) -> None:
        if not self.is_idle():
            raise RuntimeError(f"Cannot start processing while {self._status.value}")
        self._status = ProcessingStatus.PROCESSING
        self.debug_log(f"Status set to processing ({total} notes)")

    def update_progress(self, current: int, total: int) -> None:
        self.listener.on_progress(current, total)

    def set_canceling(self) -> bool:
        """Request cancellation. Ignored unless a run is in progress."""
        if self._status != ProcessingStatus.PROCESSING:
            return False
        self._status = ProcessingStatus.CANCELING
        self.debug_log("Status set to canceling")
        return True

    def set_cancelled(self) -> None:
        self._status = ProcessingStatus.IDLE
        logger.info("Cancelled text extraction")
        self.debug_log("Status set to idle (cancelled)")
        self.listener.on_cancelled()

    def set_complete(self, extracted_count: int, skipped: list[AttachmentReference]) -> None:
        self._status = ProcessingStatus.IDLE
        self.debug_log("Status set to idle (complete)")
        self.listener.on_complete(extracted_count, skipped)

    def set_error(self, message: str) -> None:
        self._status = ProcessingStatus.IDLE
        self.debug_log("Status set to idle (error)")
        self.listener.on_error(message)
