"""Unit tests for ExtractionService."""

import asyncio
import logging
from unittest.mock import MagicMock

import pytest

from ocr_extractor.domain.errors import OcrError
from ocr_extractor.domain.models import ProcessingStatus
from ocr_extractor.domain.services import GENERIC_ERROR_MESSAGE, ExtractionService
from ocr_extractor.domain.status import ProgressListener, StatusManager
from ocr_extractor.ports.ocr import OCRPort

CALLOUT = "> [!ocr-extractor]- Extracted text\n> Scanned text"


@pytest.fixture
def listener() -> MagicMock:
    return MagicMock(spec=ProgressListener)


@pytest.fixture
def make_service(mock_ocr: MagicMock, listener: MagicMock):
    def factory(vault, **kwargs) -> ExtractionService:
        return ExtractionService(
            ocr=mock_ocr,
            vault=vault,
            status=StatusManager(listener),
            poll_interval=0.01,
            **kwargs,
        )

    return factory


class TestProcessFiles:
    """Tests for a complete run over one or more notes."""

    @pytest.mark.asyncio
    async def test_single_note(self, vault, make_service, mock_ocr, listener, pdf_bytes) -> None:
        service = make_service(vault)

        report = await service.start_single("note.md")

        assert report.success
        assert report.documents_processed == 1
        assert report.extracted_count == 1
        assert vault.notes["note.md"] == f"Intro\n![[scan.pdf]]\n\n{CALLOUT}\n\nOutro\n"
        mock_ocr.acquire.assert_awaited_once()
        mock_ocr.process.assert_awaited_once_with(pdf_bytes, "scan.pdf")
        listener.on_progress.assert_called_once_with(1, 1)
        listener.on_complete.assert_called_once_with(1, [])
        assert service.status.is_idle()

    @pytest.mark.asyncio
    async def test_duplicate_embed_extracted_once(
        self, make_vault, make_service, mock_ocr, png_bytes
    ) -> None:
        vault = make_vault({"note.md": "![[a.png]]\n![[a.png]]\n"}, {"a.png": png_bytes})
        service = make_service(vault)

        report = await service.start_single("note.md")

        assert report.extracted_count == 1
        assert mock_ocr.process.await_count == 1
        assert vault.notes["note.md"] == f"![[a.png]]\n\n{CALLOUT}\n\n![[a.png]]\n\n{CALLOUT}\n\n"

    @pytest.mark.asyncio
    async def test_second_run_is_noop(self, vault, make_service, mock_ocr) -> None:
        service = make_service(vault)
        await service.start_single("note.md")
        content = vault.notes["note.md"]
        mock_ocr.process.reset_mock()

        report = await service.start_single("note.md")

        mock_ocr.process.assert_not_awaited()
        assert vault.notes["note.md"] == content
        assert report.extracted_count == 0

    @pytest.mark.asyncio
    async def test_start_all_lists_vault(self, make_vault, make_service, pdf_bytes) -> None:
        vault = make_vault(
            {"b.md": "![[scan.pdf]]", "a.md": "![[scan.pdf]]", "c.md": "no embeds"},
            {"scan.pdf": pdf_bytes},
        )
        service = make_service(vault)

        report = await service.start_all()

        assert report.total_documents == 3
        assert report.documents_processed == 3
        assert report.extracted_count == 2
        assert vault.mutations == ["a.md", "b.md", "c.md"]

    @pytest.mark.asyncio
    async def test_missing_file_skipped(self, make_vault, make_service, mock_ocr, listener) -> None:
        vault = make_vault({"note.md": "![[missing.png]]"})
        service = make_service(vault)

        report = await service.start_single("note.md")

        assert [r.link for r in report.skipped] == ["missing.png"]
        mock_ocr.process.assert_not_awaited()
        assert vault.notes["note.md"] == "![[missing.png]]"
        listener.on_complete.assert_called_once_with(0, report.skipped)

    @pytest.mark.asyncio
    async def test_backend_skip_recorded(self, vault, make_service, mock_ocr) -> None:
        mock_ocr.process.return_value = None
        service = make_service(vault)

        report = await service.start_single("note.md")

        assert report.extracted_count == 0
        assert [r.original for r in report.skipped] == ["![[scan.pdf]]"]
        assert vault.notes["note.md"] == "Intro\n![[scan.pdf]]\nOutro\n"

    @pytest.mark.asyncio
    async def test_batches_bounded(self, make_vault, make_service, mock_ocr, png_bytes) -> None:
        links = [f"{i}.png" for i in range(12)]
        vault = make_vault(
            {"note.md": "\n".join(f"![[{link}]]" for link in links)},
            {link: png_bytes for link in links},
        )
        in_flight = 0
        peak = 0

        async def process(data: bytes, filename: str) -> str:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return f"text of {filename}"

        mock_ocr.process.side_effect = process
        service = make_service(vault, batch_size=5)

        report = await service.start_single("note.md")

        assert report.extracted_count == 12
        assert peak == 5


class TestDocumentChanged:
    @pytest.mark.asyncio
    async def test_changed_note_skipped(
        self, make_vault, make_service, pdf_bytes, caplog: pytest.LogCaptureFixture
    ) -> None:
        vault = make_vault(
            {"a.md": "![[scan.pdf]]", "b.md": "![[scan.pdf]]"},
            {"scan.pdf": pdf_bytes},
        )

        def edit_a(path: str) -> None:
            if path == "a.md":
                vault.notes[path] = "edited by user"

        vault.before_mutate = edit_a
        service = make_service(vault)

        with caplog.at_level(logging.WARNING):
            report = await service.start_all()

        assert vault.notes["a.md"] == "edited by user"
        assert CALLOUT in vault.notes["b.md"]
        assert report.documents_skipped == ["a.md"]
        assert report.documents_processed == 1
        assert "File changed during processing, skipping (a.md)" in caplog.text


class TestCancellation:
    """Tests for cancellation requests during a run."""

    @pytest.mark.asyncio
    async def test_results_discarded_after_cancel(
        self, make_vault, make_service, mock_ocr, listener, pdf_bytes
    ) -> None:
        vault = make_vault(
            {"a.md": "![[scan.pdf]]", "b.md": "![[scan.pdf]]"},
            {"scan.pdf": pdf_bytes},
        )
        service = make_service(vault)

        async def process(data: bytes, filename: str) -> str:
            assert service.request_cancel()
            return "late text"

        mock_ocr.process.side_effect = process

        report = await service.start_all()

        assert report.canceled
        assert not report.success
        assert vault.notes == {"a.md": "![[scan.pdf]]", "b.md": "![[scan.pdf]]"}
        assert vault.mutations == []
        assert mock_ocr.process.await_count == 1
        listener.on_cancelled.assert_called_once_with()
        listener.on_complete.assert_not_called()
        assert service.status.is_idle()

    @pytest.mark.asyncio
    async def test_stops_waiting_for_slow_backend(
        self, vault, make_service, mock_ocr
    ) -> None:
        release = asyncio.Event()

        async def process(data: bytes, filename: str) -> str:
            await release.wait()
            return "too late"

        mock_ocr.process.side_effect = process
        service = make_service(vault)

        async def cancel_soon() -> None:
            await asyncio.sleep(0.05)
            service.request_cancel()

        canceller = asyncio.create_task(cancel_soon())
        report = await asyncio.wait_for(service.start_single("note.md"), timeout=2)
        await canceller
        release.set()
        await asyncio.sleep(0.01)

        assert report.canceled
        assert vault.notes["note.md"] == "Intro\n![[scan.pdf]]\nOutro\n"

    @pytest.mark.asyncio
    async def test_cancel_during_note_reread_leaves_note_untouched(
        self, vault, make_service, listener
    ) -> None:
        service = make_service(vault)
        vault.before_mutate = lambda path: service.request_cancel()

        report = await service.start_single("note.md")

        assert report.canceled
        assert report.documents_processed == 0
        assert vault.mutations == ["note.md"]
        assert vault.notes["note.md"] == "Intro\n![[scan.pdf]]\nOutro\n"
        listener.on_cancelled.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_cancel_while_idle_ignored(self, vault, make_service) -> None:
        service = make_service(vault)
        assert not service.request_cancel()
        assert service.status.status == ProcessingStatus.IDLE


class TestErrors:
    """Tests for run-level error handling."""

    @pytest.mark.asyncio
    async def test_fatal_error_aborts_run(
        self, make_vault, make_service, mock_ocr, listener, pdf_bytes
    ) -> None:
        vault = make_vault(
            {"a.md": "![[scan.pdf]]", "b.md": "![[scan.pdf]]"},
            {"scan.pdf": pdf_bytes},
        )
        mock_ocr.process.side_effect = OcrError.fatal("Mistral API key is invalid")
        service = make_service(vault)

        report = await service.start_all()

        assert report.error == "Mistral API key is invalid"
        assert mock_ocr.process.await_count == 1
        assert vault.mutations == []
        listener.on_error.assert_called_once_with("Mistral API key is invalid")
        assert service.status.is_idle()

    @pytest.mark.asyncio
    async def test_fatal_error_does_not_wait_for_slow_sibling(
        self, make_vault, make_service, mock_ocr, listener, png_bytes
    ) -> None:
        vault = make_vault(
            {"note.md": "![[a.png]]\n![[b.png]]\n"},
            {"a.png": png_bytes, "b.png": png_bytes},
        )
        release = asyncio.Event()

        async def process(data: bytes, filename: str) -> str:
            if filename == "a.png":
                raise OcrError.fatal("bad key")
            await release.wait()
            return "too late"

        mock_ocr.process.side_effect = process
        service = make_service(vault)

        report = await asyncio.wait_for(service.start_single("note.md"), timeout=1)

        assert report.error == "bad key"
        listener.on_error.assert_called_once_with("bad key")
        assert service.status.is_idle()
        assert vault.mutations == []

        release.set()
        await asyncio.sleep(0.05)
        assert vault.notes["note.md"] == "![[a.png]]\n![[b.png]]\n"

    @pytest.mark.asyncio
    async def test_exhausted_retries_show_message(self, vault, make_service, mock_ocr, listener) -> None:
        mock_ocr.process.side_effect = OcrError.retryable_error("Mistral OCR server error (503)")
        service = make_service(vault)

        report = await service.start_single("note.md")

        assert report.error == "Mistral OCR server error (503)"
        listener.on_error.assert_called_once_with("Mistral OCR server error (503)")

    @pytest.mark.asyncio
    async def test_unexpected_error_uses_generic_message(
        self, vault, make_service, mock_ocr, listener, caplog: pytest.LogCaptureFixture
    ) -> None:
        mock_ocr.process.side_effect = RuntimeError("boom")
        service = make_service(vault)

        with caplog.at_level(logging.ERROR):
            report = await service.start_single("note.md")

        assert report.error == GENERIC_ERROR_MESSAGE
        listener.on_error.assert_called_once_with(GENERIC_ERROR_MESSAGE)
        assert "boom" in caplog.text
        assert service.status.is_idle()

    @pytest.mark.asyncio
    async def test_can_start_again_after_error(self, vault, make_service, mock_ocr) -> None:
        mock_ocr.process.side_effect = OcrError.fatal("bad")
        service = make_service(vault)
        await service.start_single("note.md")

        mock_ocr.process.side_effect = None
        report = await service.start_single("note.md")

        assert report.success
        assert CALLOUT in vault.notes["note.md"]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_cannot_start_while_running(self, vault, make_service) -> None:
        service = make_service(vault)
        service.status.set_processing(1)

        assert not service.can_start_single()
        assert not service.can_start_all()
        with pytest.raises(RuntimeError):
            await service.start_single("note.md")

    @pytest.mark.asyncio
    async def test_swap_backend_releases_previous(self, vault, make_service, mock_ocr) -> None:
        service = make_service(vault)
        replacement = MagicMock(spec=OCRPort)

        await service.swap_backend(replacement)

        mock_ocr.release.assert_awaited_once()
        assert service.ocr is replacement

    @pytest.mark.asyncio
    async def test_swap_backend_refused_while_running(self, vault, make_service, mock_ocr) -> None:
        service = make_service(vault)
        service.status.set_processing(1)

        with pytest.raises(RuntimeError):
            await service.swap_backend(MagicMock(spec=OCRPort))

        mock_ocr.release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_release_after_run(self, vault, make_service, mock_ocr) -> None:
        service = make_service(vault)
        await service.start_single("note.md")

        await service.release()

        mock_ocr.release.assert_awaited_once()
