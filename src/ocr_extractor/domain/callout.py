"""Callout formatting and insertion into note content.

Extracted text is written after its embed as a collapsed callout:

    ![[scan.pdf]]

    > [!ocr-extractor]- Extracted text
    > First line of text
    >
    > Second paragraph

The marker on the first line identifies callouts managed by this package, so
a second run can tell which embeds were already processed.
"""

import logging
import re
from collections.abc import Iterable

from .errors import DocumentChangedError
from .models import AttachmentReference, ExtractionResult, Snapshot

logger = logging.getLogger(__name__)

CALLOUT_MARKER = "[!ocr-extractor]-"
LEGACY_CALLOUT_HEADER = "[!summary]- Extracted text"
DEFAULT_CALLOUT_TITLE = "Extracted text"

_QUOTE_PREFIX = re.compile(r"^[\s>]*")


def is_managed_callout(text: str) -> bool:
    return text.startswith(CALLOUT_MARKER) or text.startswith(LEGACY_CALLOUT_HEADER)


def migrate_legacy_callouts(content: str, title: str = DEFAULT_CALLOUT_TITLE) -> str:
    """Rewrite legacy callout headers to the current marker format."""
    return content.replace(LEGACY_CALLOUT_HEADER, f"{CALLOUT_MARKER} {title}")


def already_processed(reference: AttachmentReference, content: str) -> bool:
    """Check whether a managed callout directly follows the embed."""
    remainder = content[reference.end :]
    return is_managed_callout(_QUOTE_PREFIX.sub("", remainder, count=1))


def embed_moved(reference: AttachmentReference, content: str) -> bool:
    """Check whether the embed delimiters are no longer at their offsets."""
    start, end = reference.start, reference.end
    start_matches = content[start : start + len(reference.opener)] == reference.opener
    end_matches = content[max(end - len(reference.closer), 0) : end] == reference.closer
    return not start_matches or not end_matches


def insert_with_blank_lines(
    original: str,
    to_insert: str,
    index: int,
    blank_line_prefix: str = "",
) -> str:
    """Insert text before ``index`` with one blank line on either side.

    Blank lines that already exist are reused rather than duplicated. The
    prefix (trailing whitespace trimmed) is added to any blank line created,
    which keeps the text inside an enclosing blockquote or callout.
    """
    before = original[:index]
    after = original[index:]
    prefix = blank_line_prefix.rstrip()

    if before.endswith(f"\n{prefix}\n"):
        newlines_before = ""
    elif before.endswith("\n"):
        newlines_before = f"{prefix}\n"
    elif prefix and before.endswith(f"\n{prefix}"):
        newlines_before = "\n"
    else:
        newlines_before = f"\n{prefix}\n"

    if after.startswith(f"\n{prefix}\n"):
        newlines_after = ""
    elif after.startswith("\n"):
        newlines_after = f"\n{prefix}"
    elif prefix and after.startswith(f"{prefix}\n"):
        newlines_after = "\n"
    else:
        newlines_after = f"\n{prefix}\n"

    return before + newlines_before + to_insert + newlines_after + after


def format_callout_to_insert(
    markdown: str,
    content: str,
    embed_start: int,
    title: str = DEFAULT_CALLOUT_TITLE,
) -> tuple[str, str]:
    """Format extracted markdown as a callout.

    Returns the callout text and the quote prefix of the embed's line.
    """
    line_start = content.rfind("\n", 0, embed_start) + 1
    line_before_embed = content[line_start:embed_start]
    match = _QUOTE_PREFIX.match(line_before_embed)
    line_prefix = match.group(0) if match else ""

    lines = [f"> {CALLOUT_MARKER} {title}"]
    lines.extend(f"> {line}" for line in markdown.split("\n"))

    # Repeat the embed's prefix so the callout nests inside enclosing quotes
    text = "\n".join(f"{line_prefix}{line}".rstrip() for line in lines)
    return text, line_prefix


def apply_callouts(
    current: str,
    snapshot: Snapshot,
    references: Iterable[AttachmentReference],
    results: ExtractionResult,
    title: str = DEFAULT_CALLOUT_TITLE,
) -> str:
    """Insert a callout after every reference that has extracted text.

    Raises DocumentChangedError, leaving the note untouched, if ``current``
    differs from the snapshot the offsets were taken from. Insertions run
    from the last reference to the first so pending offsets stay valid.
    """
    if current != snapshot.content:
        raise DocumentChangedError(snapshot.path)

    new_content = current
    for reference in sorted(references, key=lambda r: r.start, reverse=True):
        markdown = results.get(reference.original)
        if not markdown:
            continue

        if already_processed(reference, snapshot.content):
            continue

        if embed_moved(reference, new_content):
            logger.warning(f"Embed {reference.original} moved during processing, skipping")
            continue

        text, line_prefix = format_callout_to_insert(
            markdown, new_content, reference.start, title
        )
        new_content = insert_with_blank_lines(new_content, text, reference.end, line_prefix)

    return migrate_legacy_callouts(new_content, title)
