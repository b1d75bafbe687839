import asyncio
from collections import Counter

from blog_archive_scraper.errors import ExtractionShortfall, FetchError
from blog_archive_scraper.orchestrator import run_batches
from blog_archive_scraper.types import ArticleRecord, DiscoveredUrl


def _urls(n: int) -> list[DiscoveredUrl]:
    return [DiscoveredUrl(f"https://example.com/posts/p-{i}") for i in range(n)]


def _record(item: DiscoveredUrl) -> ArticleRecord:
    return ArticleRecord(source_url=item.url, title=item.url.rsplit("/", 1)[-1], body="text")


FAST = dict(inter_batch_delay=0, backoff_seconds=0)


def test_slow_items_time_out_twice_then_succeed():
    urls = _urls(12)
    slow = {urls[0].url, urls[2].url}
    attempts: Counter = Counter()

    async def op(item):
        attempts[item.url] += 1
        if item.url in slow and attempts[item.url] <= 2:
            await asyncio.sleep(5)
        return _record(item)

    result = asyncio.run(run_batches(urls, op, concurrency=3, timeout=0.05, retries=2, **FAST))

    seen = [r.source_url for r in result.succeeded] + [f.url for f in result.failed]
    assert sorted(seen) == sorted(u.url for u in urls)
    assert len(result.succeeded) == 12
    assert result.failed == []
    assert attempts[urls[0].url] == 3 and attempts[urls[2].url] == 3
    assert attempts[urls[1].url] == 1


def test_timeouts_beyond_retries_become_failures():
    urls = _urls(2)

    async def op(item):
        if item is urls[0]:
            await asyncio.sleep(5)
        return _record(item)

    result = asyncio.run(run_batches(urls, op, concurrency=2, timeout=0.02, retries=1, **FAST))
    assert [r.source_url for r in result.succeeded] == [urls[1].url]
    assert [(f.url, f.reason) for f in result.failed] == [(urls[0].url, "timeout")]


def test_permanent_failures_are_not_retried():
    urls = _urls(3)
    calls: Counter = Counter()

    async def op(item):
        calls[item.url] += 1
        if item is urls[0]:
            raise FetchError.from_status(item.url, 404)
        if item is urls[1]:
            raise ExtractionShortfall(item.url)
        raise FetchError.too_large(item.url, 20, 10)

    result = asyncio.run(run_batches(urls, op, concurrency=3, timeout=1, retries=2, **FAST))
    assert all(calls[u.url] == 1 for u in urls)
    assert [f.reason for f in result.failed] == ["http_404", "extraction_empty", "too_large"]


def test_server_errors_are_retried_up_to_the_limit():
    calls: Counter = Counter()

    async def op(item):
        calls[item.url] += 1
        raise FetchError.from_status(item.url, 503)

    result = asyncio.run(run_batches(_urls(1), op, concurrency=1, timeout=1, retries=2, **FAST))
    assert calls["https://example.com/posts/p-0"] == 3
    assert result.failed[0].reason == "http_503"


def test_unexpected_errors_are_reported_with_their_type():
    async def op(item):
        raise KeyError("missing")

    result = asyncio.run(run_batches(_urls(1), op, concurrency=1, timeout=1, retries=0, **FAST))
    assert result.failed[0].reason == "error"
    assert "KeyError" in result.failed[0].detail


def test_byte_budget_stops_scheduling_after_the_crossing_batch():
    urls = _urls(9)
    called: list[str] = []

    async def op(item):
        called.append(item.url)
        return _record(item)

    result = asyncio.run(
        run_batches(
            urls,
            op,
            concurrency=3,
            timeout=1,
            retries=0,
            byte_budget=250,
            size_of=lambda recs: 100 * len(recs),
            **FAST,
        )
    )

    assert len(called) == 3
    assert len(result.succeeded) == 3
    assert result.truncated is True
    assert result.skipped == 6
    assert [f.reason for f in result.failed] == ["budget_skipped"] * 6
    assert sorted([r.source_url for r in result.succeeded] + [f.url for f in result.failed]) == sorted(
        u.url for u in urls
    )


def test_crossing_the_budget_in_the_last_batch_still_truncates():
    async def op(item):
        return _record(item)

    result = asyncio.run(
        run_batches(
            _urls(3),
            op,
            concurrency=3,
            timeout=1,
            retries=0,
            byte_budget=100,
            size_of=lambda recs: 1000 * len(recs),
            **FAST,
        )
    )

    assert len(result.succeeded) == 3
    assert result.failed == []
    assert result.truncated is True
    assert result.skipped == 0


def test_budget_not_exceeded_runs_everything():
    async def op(item):
        return _record(item)

    result = asyncio.run(
        run_batches(_urls(5), op, concurrency=2, timeout=1, retries=0, byte_budget=10_000, size_of=len, **FAST)
    )
    assert len(result.succeeded) == 5
    assert result.truncated is False
    assert result.skipped == 0


def test_input_list_is_not_mutated():
    urls = _urls(4)
    before = list(urls)

    async def op(item):
        return _record(item)

    asyncio.run(run_batches(urls, op, concurrency=3, timeout=1, retries=0, **FAST))
    assert urls == before
