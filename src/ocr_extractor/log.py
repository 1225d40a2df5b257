"""Logging helpers shared by the orchestrator and backends."""

import logging

logger = logging.getLogger(__name__)


class DebugLog:
    """Debug messages gated by an explicit flag instead of global state."""

    def __init__(self, enabled: bool = False, logger: logging.Logger = logger) -> None:
        self.enabled = enabled
        self.logger = logger

    def __call__(self, message: str) -> None:
        if self.enabled:
            self.logger.debug(message)


def warn_skipped(filename: str, reason: str, log: logging.Logger = logger) -> None:
    log.warning(f"Skipping {filename}: {reason}")
