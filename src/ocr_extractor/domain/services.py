"""Domain services - orchestrate business logic."""

import logging
from functools import partial

from ..concurrency import (
    CANCELED,
    DEFAULT_BATCH_SIZE,
    DEFAULT_POLL_INTERVAL,
    CancellationToken,
    run_in_batches,
    with_cancellation,
)
from ..log import DebugLog, warn_skipped
from ..ports.ocr import OCRPort
from ..ports.vault import VaultPort
from .callout import DEFAULT_CALLOUT_TITLE, apply_callouts
from .discovery import discover_attachments
from .errors import DocumentChangedError, OcrError, UnreadableDocumentError
from .models import AttachmentReference, ExtractionResult, RunReport, Snapshot
from .status import StatusManager

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Failed to extract text"


class ExtractionService:
    """Orchestrates text extraction for a set of notes.

    Notes are processed one at a time. Within a note, attachments are sent
    to the OCR backend in bounded waves, and the note is edited once after
    every attachment has settled.
    """

    def __init__(
        self,
        ocr: OCRPort,
        vault: VaultPort,
        status: StatusManager | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        callout_title: str = DEFAULT_CALLOUT_TITLE,
        debug_log: DebugLog | None = None,
    ) -> None:
        self.ocr = ocr
        self.vault = vault
        self.status = status or StatusManager()
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.callout_title = callout_title
        self.debug_log = debug_log or DebugLog(logger=logger)
        self.token = CancellationToken(self.status.is_canceling)

    def can_start_single(self) -> bool:
        return self.status.is_idle()

    async def start_single(self, path: str) -> RunReport:
        """Extract text for the attachments of one note."""
        if not self.can_start_single():
            raise RuntimeError("Extraction is already running")
        return await self.process_files([path])

    def can_start_all(self) -> bool:
        return self.status.is_idle()

    async def start_all(self, paths: list[str] | None = None) -> RunReport:
        """Extract text for every note (all notes in the vault by default)."""
        if not self.can_start_all():
            raise RuntimeError("Extraction is already running")
        if paths is None:
            paths = await self.vault.list_documents()
        return await self.process_files(paths)

    def request_cancel(self) -> bool:
        """Ask the current run to stop. Returns False if nothing is running."""
        return self.status.set_canceling()

    async def swap_backend(self, ocr: OCRPort) -> None:
        """Replace the OCR backend, releasing the previous one first."""
        if not self.status.is_idle():
            raise RuntimeError("Cannot change OCR backend while extraction is running")
        await self.ocr.release()
        self.ocr = ocr

    async def release(self) -> None:
        """Release the backend's resources. The next run acquires them again."""
        await self.ocr.release()

    async def process_files(self, paths: list[str]) -> RunReport:
        self.status.set_processing(len(paths))
        report = RunReport(total_documents=len(paths))

        try:
            await self.ocr.acquire()

            for index, path in enumerate(paths):
                if self.token.is_canceled:
                    break

                self.debug_log(f"Processing file {path}")
                self.status.update_progress(index + 1, len(paths))
                await self._process_file(path, report)

            if self.token.is_canceled:
                report.canceled = True
                self.status.set_cancelled()
            else:
                self.status.set_complete(report.extracted_count, report.skipped)

        except OcrError as e:
            logger.error(f"Extraction failed: {e.message}")
            report.error = e.message
            self.status.set_error(e.message)
        except Exception as e:
            logger.exception(f"Extraction failed: {e}")
            report.error = GENERIC_ERROR_MESSAGE
            self.status.set_error(GENERIC_ERROR_MESSAGE)
        finally:
            # Interrupted from outside (e.g. task cancellation)
            if not self.status.is_idle():
                report.canceled = True
                self.status.set_cancelled()

        return report

    async def _process_file(self, path: str, report: RunReport) -> None:
        try:
            snapshot = await self.vault.read_snapshot(path)
        except UnreadableDocumentError as e:
            logger.warning(str(e))
            report.documents_skipped.append(path)
            return

        references = await self.vault.get_references(snapshot)

        results = await self._extract_text(snapshot, references, report)

        if self.token.is_canceled:
            self.debug_log(f"Discarding results for {path} after cancellation")
            return

        def insert(current: str) -> str:
            # Cancellation may arrive while the vault re-reads the note
            if self.token.is_canceled:
                return current
            return apply_callouts(
                current,
                snapshot=snapshot,
                references=references,
                results=results,
                title=self.callout_title,
            )

        try:
            await self.vault.mutate(path, insert)
        except (DocumentChangedError, UnreadableDocumentError) as e:
            logger.warning(str(e))
            report.documents_skipped.append(path)
            return

        if self.token.is_canceled:
            self.debug_log(f"Discarding results for {path} after cancellation")
            return

        report.documents_processed += 1

    async def _extract_text(
        self,
        snapshot: Snapshot,
        references: list[AttachmentReference],
        report: RunReport,
    ) -> ExtractionResult:
        pending = discover_attachments(snapshot, references)
        tasks = [partial(self._extract_one, reference, snapshot, report) for reference in pending]

        # Batch to avoid rate limiting
        outcomes = await run_in_batches(tasks, self.batch_size, self.token)

        results: ExtractionResult = {}
        for outcome in outcomes:
            if outcome is CANCELED:
                continue
            original, markdown = outcome
            results[original] = markdown
        return results

    async def _extract_one(
        self,
        reference: AttachmentReference,
        snapshot: Snapshot,
        report: RunReport,
    ) -> tuple[str, str | None]:
        file = await self.vault.resolve_reference(reference.link, snapshot.path)
        if file is None:
            warn_skipped(reference.link, "file not found")
            report.skipped.append(reference)
            return reference.original, None

        data = await self.vault.read_binary(file)
        markdown = await with_cancellation(
            self.ocr.process(data, file.name),
            self.token,
            self.poll_interval,
        )

        if markdown is CANCELED:
            return reference.original, None

        if markdown is None:
            report.skipped.append(reference)
        else:
            report.extracted_count += 1
        return reference.original, markdown
