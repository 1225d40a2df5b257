"""Async helpers: bounded batching, retries with backoff, cancellation."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 5
DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_DELAY = 1.0  # seconds, doubled on every retry
DEFAULT_POLL_INTERVAL = 1.0  # seconds


class _Canceled:
    """Sentinel returned in place of a result discarded by cancellation."""

    _instance: "_Canceled | None" = None

    def __new__(cls) -> "_Canceled":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "CANCELED"

    def __bool__(self) -> bool:
        return False


CANCELED = _Canceled()

# Strong references to abandoned operations until they finish
_abandoned: set[asyncio.Future[Any]] = set()


class CancellationToken:
    """Advisory cancellation flag passed through every async boundary.

    Canceled either explicitly via ``cancel()`` or when the optional
    predicate starts returning True.
    """

    def __init__(self, predicate: Callable[[], bool] | None = None) -> None:
        self._predicate = predicate
        self._canceled = False

    def cancel(self) -> None:
        self._canceled = True

    @property
    def is_canceled(self) -> bool:
        if self._canceled:
            return True
        return self._predicate is not None and self._predicate()


async def run_in_batches(
    tasks: Sequence[Callable[[], Awaitable[T]]],
    batch_size: int = DEFAULT_BATCH_SIZE,
    token: CancellationToken | None = None,
) -> list[T | _Canceled]:
    """Run task factories in sequential waves of at most ``batch_size``.

    Each wave settles completely before the next one starts. The first task
    to fail aborts the run at once: its error is raised and the rest of the
    wave is abandoned to finish in the background. When ``token`` is
    canceled at a wave boundary no further wave starts and the remaining
    results are ``CANCELED``.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    results: list[T | _Canceled] = []
    for i in range(0, len(tasks), batch_size):
        if token is not None and token.is_canceled:
            logger.debug(f"Cancellation requested, skipping {len(tasks) - i} tasks")
            results.extend([CANCELED] * (len(tasks) - i))
            break

        futures = [asyncio.ensure_future(task()) for task in tasks[i : i + batch_size]]
        done, pending = await asyncio.wait(futures, return_when=asyncio.FIRST_EXCEPTION)

        failed = [
            f for f in futures if f in done and not f.cancelled() and f.exception() is not None
        ]
        if failed:
            _abandon(pending)
            for future in failed[1:]:
                logger.debug(f"Additional failure in aborted wave: {future.exception()!r}")
            raise failed[0].exception()

        results.extend(future.result() for future in futures)

    return results


def _always(_error: Exception) -> bool:
    return True


async def with_retries(
    task: Callable[[], Awaitable[T]],
    should_retry: Callable[[Exception], bool] = _always,
    retry_count: int = DEFAULT_RETRY_COUNT,
    base_delay: float = DEFAULT_RETRY_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``task``, retrying with exponential backoff (1s, 2s, 4s, ...).

    Errors rejected by ``should_retry`` propagate immediately. Once retries
    are exhausted the last error propagates unchanged.
    """
    attempt = 0
    while True:
        try:
            return await task()
        except Exception as e:
            if attempt >= retry_count or not should_retry(e):
                raise
            attempt += 1
            delay = base_delay * 2 ** (attempt - 1)
            logger.debug(f"Retry {attempt}/{retry_count} in {delay:g}s: {e}")
            await sleep(delay)


def _discard_outcome(future: asyncio.Future[Any]) -> None:
    _abandoned.discard(future)
    if not future.cancelled() and future.exception() is not None:
        logger.debug(f"Abandoned operation failed: {future.exception()!r}")


def _abandon(futures: Iterable[asyncio.Future[Any]]) -> None:
    """Let ``futures`` finish in the background, discarding their outcome."""
    for future in futures:
        _abandoned.add(future)
        future.add_done_callback(_discard_outcome)


async def with_cancellation(
    operation: Awaitable[T],
    token: CancellationToken,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> T | _Canceled:
    """Await ``operation`` while polling ``token`` every ``poll_interval``.

    Returns ``CANCELED`` as soon as cancellation is observed. The operation
    itself is not cancelled: it finishes in the background and its outcome
    is discarded.
    """
    future = asyncio.ensure_future(operation)

    while True:
        done, _ = await asyncio.wait({future}, timeout=poll_interval)
        if done:
            return future.result()

        if token.is_canceled:
            _abandon({future})
            return CANCELED
