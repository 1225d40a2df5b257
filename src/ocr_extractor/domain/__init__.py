"""Domain layer - core business logic."""

from .models import AttachmentReference, ProcessingStatus, RunReport, Snapshot

__all__ = ["AttachmentReference", "ProcessingStatus", "RunReport", "Snapshot"]
