"""Extract text from attachments embedded in Markdown notes."""

__version__ = "0.1.0"
