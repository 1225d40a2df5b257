"""CLI entry point for ocr-extractor."""

import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

import click

from .adapters.ocr import CustomCommandAdapter, create_ocr_adapter
from .adapters.ocr.custom_command import create_test_image
from .adapters.vault import FilesystemVault
from .config import Settings, load_settings
from .domain.errors import OcrError
from .domain.models import AttachmentReference, RunReport
from .domain.services import ExtractionService
from .domain.status import ProgressListener, StatusManager
from .log import DebugLog

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class CliProgress(ProgressListener):
    """Report run progress on the terminal."""

    def __init__(self, show_progress: bool = True) -> None:
        self.show_progress = show_progress

    def on_progress(self, current: int, total: int) -> None:
        if self.show_progress:
            click.echo(f"Extracting text for note {current}/{total}")

    def on_complete(self, extracted_count: int, skipped: list[AttachmentReference]) -> None:
        if skipped:
            click.echo(
                f"Text extraction complete. Extracted: {extracted_count}, skipped: {len(skipped)}"
            )
            for reference in skipped:
                click.echo(f"  skipped: {reference.link}")
        elif extracted_count > 0:
            click.echo(f"Text extraction complete. Extracted: {extracted_count}")
        else:
            click.echo("No attachments to extract")

    def on_cancelled(self) -> None:
        click.echo("Cancelled text extraction")

    def on_error(self, message: str) -> None:
        click.echo(f"Error: {message}", err=True)


def resolve_note(file: Path, vault: Path) -> tuple[Path, str]:
    """Return the vault root and the note path relative to it.

    A note outside the vault is treated as its own single-folder vault.
    """
    note = file.resolve()
    root = vault.expanduser().resolve()
    if not note.is_relative_to(root):
        root = note.parent
    return root, note.relative_to(root).as_posix()


def build_service(
    settings: Settings,
    vault_root: Path,
    verbose: bool = False,
    show_progress: bool = True,
) -> ExtractionService:
    """Wire up adapters for an extraction run."""
    debug_enabled = verbose or settings.extraction.debug_logging
    if debug_enabled:
        logging.getLogger("ocr_extractor").setLevel(logging.DEBUG)
    debug_log = DebugLog(enabled=debug_enabled, logger=logger)

    return ExtractionService(
        ocr=create_ocr_adapter(settings.ocr),
        vault=FilesystemVault(vault_root),
        status=StatusManager(CliProgress(show_progress), debug_log),
        batch_size=settings.extraction.batch_size,
        poll_interval=settings.extraction.poll_interval,
        callout_title=settings.extraction.callout_title,
        debug_log=debug_log,
    )


async def _run_with_backend(
    service: ExtractionService,
    run: Callable[[ExtractionService], Awaitable[RunReport]],
) -> RunReport:
    """Run with the backend held for the duration, Ctrl-C requesting cancellation."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, service.request_cancel)
        handles_sigint = True
    except (NotImplementedError, RuntimeError, ValueError):
        handles_sigint = False

    try:
        return await run(service)
    finally:
        await service.release()
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)


def run_extraction(
    service: ExtractionService,
    run: Callable[[ExtractionService], Awaitable[RunReport]],
) -> RunReport:
    return asyncio.run(_run_with_backend(service, run))


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("-c", "--config", type=click.Path(exists=True), help="Config file path")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """OCR extractor - add text from embedded scans, PDFs and images to notes."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = Path(config) if config else None


@cli.command()
@click.argument("note", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--vault", type=click.Path(file_okay=False, path_type=Path), help="Vault root")
@click.pass_context
def extract(ctx: click.Context, note: Path, vault: Path | None) -> None:
    """Extract text from attachments in a single note."""
    settings = load_settings(ctx.obj["config_path"])
    root, path = resolve_note(note, vault or settings.vault.path)

    service = build_service(settings, root, ctx.obj["verbose"], show_progress=False)
    report = run_extraction(service, lambda s: s.start_single(path))

    if report.error:
        sys.exit(1)


@cli.command(name="extract-all")
@click.option("--vault", type=click.Path(exists=True, file_okay=False, path_type=Path), help="Vault root")
@click.option("-y", "--yes", is_flag=True, help="Don't ask for confirmation")
@click.option("--dry-run", is_flag=True, help="Show which notes would be processed")
@click.pass_context
def extract_all(ctx: click.Context, vault: Path | None, yes: bool, dry_run: bool) -> None:
    """Extract text from attachments in all notes of the vault."""
    settings = load_settings(ctx.obj["config_path"])
    root = (vault or settings.vault.path).expanduser()

    if not root.is_dir():
        click.echo(f"Error: vault not found at {root}", err=True)
        sys.exit(1)

    service = build_service(settings, root, ctx.obj["verbose"])
    notes = asyncio.run(service.vault.list_documents())

    if not notes:
        click.echo("No notes found")
        return

    if dry_run:
        click.echo(f"Would process {len(notes)} notes:")
        for note in notes:
            click.echo(f"  {note}")
        return

    if not yes:
        click.confirm(
            f"Extract text from attachments in all {len(notes)} notes? "
            "Notes are modified in place.",
            abort=True,
        )

    report = run_extraction(service, lambda s: s.start_all(notes))

    if report.documents_skipped:
        click.echo(f"Notes changed during processing: {len(report.documents_skipped)}")
    if report.error:
        sys.exit(1)


@cli.command(name="test-command")
@click.pass_context
def test_command(ctx: click.Context) -> None:
    """Run the configured custom command on a sample image."""
    settings = load_settings(ctx.obj["config_path"])
    config = settings.ocr.custom_command
    adapter = CustomCommandAdapter(
        command=config.command,
        convert_pdfs=config.convert_pdfs,
        timeout=config.timeout,
    )

    click.echo("Testing custom command...")
    try:
        asyncio.run(adapter.process(create_test_image(), "test.png"))
    except OcrError as e:
        click.echo(f"Test failed: {e.message}", err=True)
        sys.exit(1)
    except Exception:
        logger.exception("Custom command test failed")
        click.echo("Test failed: Unexpected error", err=True)
        sys.exit(1)

    click.echo("Test succeeded")


if __name__ == "__main__":
    cli()
