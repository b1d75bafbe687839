from __future__ import annotations

import asyncio
import codecs
import logging
import random
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Protocol
from urllib.parse import urlparse

import aiohttp

from blog_archive_scraper.config import Config
from blog_archive_scraper.errors import FetchError


logger = logging.getLogger(__name__)


_META_CHARSET_RE = re.compile(rb"""<meta[^>]*charset=["']?([A-Za-z0-9_\-]+)""", re.IGNORECASE)


class TextFetcher(Protocol):
    """What discovery needs: best-effort GET that returns None on any failure."""

    async def get_text(self, url: str) -> Optional[str]: ...


@dataclass
class RetryPolicy:
    max_attempts: int
    base_delay_seconds: float
    max_delay_seconds: float
    retry_statuses: set[int]


@dataclass(frozen=True)
class FetchResponse:
    url: str
    status: int
    text: str


class DomainRateLimiter:
    """Simple per-domain token bucket implemented with asyncio primitives."""

    def __init__(self, max_requests_per_period: int, period_seconds: float) -> None:
        self._max = max_requests_per_period
        self._period = period_seconds
        self._domain_locks: dict[str, asyncio.Lock] = {}
        self._domain_times: dict[str, list[float]] = {}

    async def acquire(self, url: str) -> None:
        domain = urlparse(url).netloc.lower()
        lock = self._domain_locks.setdefault(domain, asyncio.Lock())
        loop = asyncio.get_running_loop()

        while True:
            async with lock:
                now = loop.time()
                times = self._domain_times.setdefault(domain, [])
                cutoff = now - self._period
                while times and times[0] < cutoff:
                    times.pop(0)

                if len(times) < self._max:
                    times.append(now)
                    return

                # wait until the oldest token expires
                wait_for = (times[0] + self._period) - now

            await asyncio.sleep(max(0.0, wait_for))


def decode_body(body: bytes, header_charset: str | None) -> str:
    """Decode using the page's own <meta charset> when it disagrees with the header."""

    charset = (header_charset or "utf-8").lower()
    m = _META_CHARSET_RE.search(body[:4096])
    if m:
        meta_charset = m.group(1).decode("ascii", errors="ignore").lower()
        if meta_charset and meta_charset != charset:
            try:
                codecs.lookup(meta_charset)
                charset = meta_charset
            except LookupError:
                pass
    try:
        return body.decode(charset, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


class HttpClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        limiter: DomainRateLimiter,
        retry: RetryPolicy,
        semaphore: asyncio.Semaphore,
        user_agent: str,
        timeout_seconds: float,
        max_response_bytes: int,
    ) -> None:
        self._session = session
        self._limiter = limiter
        self._retry = retry
        self._sem = semaphore
        self._ua = user_agent
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._max_bytes = max_response_bytes

    @property
    def headers(self) -> dict[str, str]:
        return {
            "User-Agent": self._ua,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "ja,en-US;q=0.8,en;q=0.6",
        }

    async def fetch(self, url: str) -> FetchResponse:
        """One GET attempt. Raises FetchError; retrying is the caller's job."""

        await self._limiter.acquire(url)
        async with self._sem:
            try:
                async with self._session.get(
                    url, headers=self.headers, timeout=self._timeout, allow_redirects=True
                ) as r:
                    if r.status >= 400:
                        raise FetchError.from_status(url, r.status)
                    length = r.content_length
                    if length is not None and length > self._max_bytes:
                        raise FetchError.too_large(url, length, self._max_bytes)
                    buf = bytearray()
                    async for chunk in r.content.iter_chunked(64 * 1024):
                        buf.extend(chunk)
                        if len(buf) > self._max_bytes:
                            raise FetchError.too_large(url, len(buf), self._max_bytes)
                    return FetchResponse(url=str(r.url), status=r.status, text=decode_body(bytes(buf), r.charset))
            except asyncio.TimeoutError as exc:
                raise FetchError(url, "timeout", retryable=True) from exc
            except aiohttp.ClientError as exc:
                raise FetchError(url, "transport", retryable=True, detail=type(exc).__name__) from exc

    async def get_text(self, url: str) -> Optional[str]:
        for attempt in range(1, self._retry.max_attempts + 1):
            try:
                return (await self.fetch(url)).text
            except FetchError as exc:
                if exc.status is not None and exc.status not in self._retry.retry_statuses:
                    logger.debug("GET %s -> %s", url, exc.reason)
                    return None
                if not exc.retryable or attempt >= self._retry.max_attempts:
                    logger.debug("GET %s failed: %s", url, exc)
                    return None
                delay = min(
                    self._retry.max_delay_seconds,
                    self._retry.base_delay_seconds * (2 ** (attempt - 1)),
                )
                # jitter to avoid thundering herd
                delay *= random.uniform(0.7, 1.3)
                await asyncio.sleep(delay)

        return None


@asynccontextmanager
async def open_client(cfg: Config) -> AsyncIterator[HttpClient]:
    http_cfg = cfg.section("http")
    rl_cfg = cfg.section("rate_limit")
    rt_cfg = cfg.section("retry")

    limiter = DomainRateLimiter(
        max_requests_per_period=int(rl_cfg["max_requests_per_period"]),
        period_seconds=float(rl_cfg["period_seconds"]),
    )
    retry = RetryPolicy(
        max_attempts=int(rt_cfg["max_attempts"]),
        base_delay_seconds=float(rt_cfg["base_delay_seconds"]),
        max_delay_seconds=float(rt_cfg["max_delay_seconds"]),
        retry_statuses=set(int(x) for x in rt_cfg.get("retry_statuses", [])),
    )
    sem = asyncio.Semaphore(int(http_cfg["max_connections"]))
    connector = aiohttp.TCPConnector(limit=int(http_cfg["max_connections"]))

    async with aiohttp.ClientSession(connector=connector) as session:
        yield HttpClient(
            session=session,
            limiter=limiter,
            retry=retry,
            semaphore=sem,
            user_agent=cfg.user_agent,
            timeout_seconds=float(http_cfg["timeout_seconds"]),
            max_response_bytes=int(http_cfg["max_response_bytes"]),
        )
