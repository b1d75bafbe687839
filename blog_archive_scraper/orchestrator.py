"""Run an async per-URL operation in small sequential batches.

Items inside a batch run concurrently, batches run one after another, and
scheduling stops once the accumulated results outgrow a byte budget.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from blog_archive_scraper.config import Config
from blog_archive_scraper.errors import ExtractionShortfall, FetchError
from blog_archive_scraper.types import ArticleRecord, BatchResult, DiscoveredUrl, FetchFailure, ImportBatch


logger = logging.getLogger(__name__)


Operation = Callable[[DiscoveredUrl], Awaitable[ArticleRecord]]
SizeOf = Callable[[list[ArticleRecord]], int]


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, FetchError):
        return exc.retryable
    if isinstance(exc, ExtractionShortfall):
        return False
    return True


def _failure_for(url: str, exc: BaseException) -> FetchFailure:
    if isinstance(exc, FetchError):
        return FetchFailure(url=url, reason=exc.reason, detail=exc.detail)
    if isinstance(exc, ExtractionShortfall):
        return FetchFailure(url=url, reason=exc.reason)
    if isinstance(exc, asyncio.TimeoutError):
        return FetchFailure(url=url, reason="timeout")
    return FetchFailure(url=url, reason="error", detail=f"{type(exc).__name__}: {exc}")


async def run_with_retries(
    item: DiscoveredUrl,
    op: Operation,
    *,
    timeout: float,
    retries: int,
    backoff_seconds: float,
) -> ArticleRecord | FetchFailure:
    """At most ``retries + 1`` attempts; the last error becomes the failure."""

    retries = max(0, retries)
    attempt = 0
    while True:
        attempt += 1
        try:
            return await asyncio.wait_for(op(item), timeout=timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not _is_retryable(exc) or attempt > retries:
                failure = _failure_for(item.url, exc)
                break
            logger.debug("attempt %d for %s failed (%s); retrying", attempt, item.url, type(exc).__name__)
            await asyncio.sleep(backoff_seconds * attempt)

    logger.warning("giving up on %s", failure.describe())
    return failure


async def run_batches(
    urls: Sequence[DiscoveredUrl],
    op: Operation,
    *,
    concurrency: int = 3,
    timeout: float = 15.0,
    retries: int = 2,
    inter_batch_delay: float = 1.0,
    byte_budget: int | None = None,
    size_of: SizeOf | None = None,
    backoff_seconds: float = 1.0,
) -> BatchResult:
    items = list(urls)
    size = max(1, int(concurrency))
    result = BatchResult()

    pos = 0
    while pos < len(items):
        batch = items[pos : pos + size]
        pos += len(batch)

        outcomes = await asyncio.gather(
            *(
                run_with_retries(
                    item,
                    op,
                    timeout=timeout,
                    retries=retries,
                    backoff_seconds=backoff_seconds,
                )
                for item in batch
            )
        )
        for outcome in outcomes:
            if isinstance(outcome, FetchFailure):
                result.failed.append(outcome)
            else:
                result.succeeded.append(outcome)

        logger.info(
            "batch done: %d/%d processed, %d ok, %d failed",
            pos,
            len(items),
            len(result.succeeded),
            len(result.failed),
        )

        if byte_budget is not None and size_of is not None:
            used = size_of(result.succeeded)
            if used > byte_budget:
                rest = items[pos:]
                logger.warning(
                    "byte budget exhausted (%d > %d); skipping %d remaining URLs",
                    used,
                    byte_budget,
                    len(rest),
                )
                result.failed.extend(FetchFailure(url=d.url, reason="budget_skipped") for d in rest)
                result.truncated = True
                result.skipped = len(rest)
                break

        if pos < len(items) and inter_batch_delay > 0:
            await asyncio.sleep(inter_batch_delay)

    return result


async def run_import_batch(
    batch: ImportBatch,
    op: Operation,
    cfg: Config,
    size_of: SizeOf | None = None,
) -> BatchResult:
    cc = cfg.section("concurrency")
    return await run_batches(
        batch.urls,
        op,
        concurrency=int(cc["batch_size"]),
        timeout=float(cc["item_timeout_seconds"]),
        retries=int(cc["retries"]),
        inter_batch_delay=float(cc["inter_batch_delay_seconds"]),
        byte_budget=batch.byte_budget,
        size_of=size_of,
        backoff_seconds=float(cc["backoff_seconds"]),
    )
