"""Attachment discovery - pick the embeds of a note that need OCR."""

import logging
from collections.abc import Iterable

from .callout import already_processed
from .models import AttachmentReference, Snapshot

logger = logging.getLogger(__name__)


def unique_by_markup(references: Iterable[AttachmentReference]) -> list[AttachmentReference]:
    """Keep the first occurrence of each distinct embed markup."""
    seen: set[str] = set()
    unique = []
    for reference in references:
        if reference.original in seen:
            continue
        seen.add(reference.original)
        unique.append(reference)
    return unique


def discover_attachments(
    snapshot: Snapshot,
    references: Iterable[AttachmentReference],
) -> list[AttachmentReference]:
    """Return the references to send to the OCR backend, in note order.

    Already-processed embeds are evaluated against the discovery snapshot.
    Embeds sharing the same markup collapse into one entry; insertion still
    fans out to every occurrence.
    """
    pending = []
    for reference in references:
        if already_processed(reference, snapshot.content):
            logger.debug(f"Already processed: {reference.original}")
            continue
        pending.append(reference)

    return unique_by_markup(pending)
