"""Find the article URLs of a blog, starting from one seed URL.

Strategies run in a fixed order (feed, sitemap, listing pages, note profile,
entry list). The first one that finds anything wins; later ones only run when
every earlier one came back empty.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Iterable, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from blog_archive_scraper.cache import Cache, CacheEntry, is_stale
from blog_archive_scraper.config import DEFAULTS
from blog_archive_scraper.errors import ImportInputError
from blog_archive_scraper.http import TextFetcher
from blog_archive_scraper.rss import feed_entry_to_discovered, looks_like_feed, parse_datetime, parse_feed_entries
from blog_archive_scraper.sitemap import parse_sitemap, sitemaps_from_robots
from blog_archive_scraper.types import DiscoveredUrl
from blog_archive_scraper.urls import (
    canonicalize_url,
    has_article_marker,
    is_excluded,
    is_valid_seed,
    looks_like_article_url,
    origin_of,
    resolve_href,
    same_origin,
    score_candidate,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredLink:
    url: str
    title: str | None


@dataclass
class DiscoveryContext:
    seed_url: str
    max_urls: int
    fetcher: TextFetcher
    settings: dict[str, Any]

    @property
    def origin(self) -> str:
        return origin_of(self.seed_url)

    def accept(self, url: str | None) -> str | None:
        """Canonical URL if it is a same-origin article candidate, else None."""

        if not url:
            return None
        canon = canonicalize_url(url)
        if not canon or canon == canonicalize_url(self.seed_url):
            return None
        if not same_origin(self.seed_url, canon):
            return None
        if is_excluded(canon):
            return None
        if urlparse(canon).path in ("", "/"):
            return None
        return canon


Strategy = Callable[[DiscoveryContext], Awaitable[list[DiscoveredUrl]]]


# --- link extraction from listing pages -------------------------------------


LinkHeuristic = Callable[[BeautifulSoup, str], list[DiscoveredLink]]


def _links(anchors: Iterable, base_url: str, *, require_marker: bool = False) -> list[DiscoveredLink]:
    out: list[DiscoveredLink] = []
    for a in anchors:
        url = resolve_href(base_url, str(a.get("href") or ""))
        if not url:
            continue
        if require_marker and not has_article_marker(url):
            continue
        out.append(DiscoveredLink(url=url, title=a.get_text(" ", strip=True) or None))
    return out


def links_from_title_class(soup: BeautifulSoup, base_url: str) -> list[DiscoveredLink]:
    return _links(soup.select("a.entry-title-link[href]"), base_url)


def links_from_content_markers(soup: BeautifulSoup, base_url: str) -> list[DiscoveredLink]:
    anchors = soup.select("article a[href], main a[href], #main a[href], .archive-entry a[href]")
    return _links(anchors, base_url, require_marker=True)


def links_near_headings(soup: BeautifulSoup, base_url: str) -> list[DiscoveredLink]:
    anchors = []
    for el in soup.select('[class*="entry-title"], [class*="archive-entry"], [class*="post-title"]'):
        if el.name == "a" and el.get("href"):
            anchors.append(el)
            continue
        a = el.find("a", href=True) or el.find_parent("a", href=True)
        if a is not None:
            anchors.append(a)
    return _links(anchors, base_url)


def links_with_marker_anywhere(soup: BeautifulSoup, base_url: str) -> list[DiscoveredLink]:
    return _links(soup.find_all("a", href=True), base_url, require_marker=True)


def generic_anchor_scan(
    soup: BeautifulSoup,
    base_url: str,
    *,
    max_links: int = 50,
    scan_limit: int = 1500,
) -> list[DiscoveredLink]:
    """Last resort: every same-origin <a href>, filtered and ranked by score."""

    candidates: list[DiscoveredLink] = []
    seen: set[str] = set()

    scanned = 0
    for a in soup.find_all("a", href=True):
        if scan_limit > 0 and scanned >= scan_limit:
            break
        scanned += 1

        url = resolve_href(base_url, str(a.get("href") or ""))
        if not url or not same_origin(base_url, url):
            continue
        url = canonicalize_url(url)
        if is_excluded(url) or not looks_like_article_url(url):
            continue
        if url.lower() in seen:
            continue
        seen.add(url.lower())

        title = a.get_text(" ", strip=True) or None
        candidates.append(DiscoveredLink(url=url, title=title))

    scored = [(float(score_candidate(base_url, c.url, c.title)), c) for c in candidates]
    scored = [x for x in scored if x[0] > 0]
    scored.sort(key=lambda x: x[0], reverse=True)
    return [c for _s, c in scored[:max_links]]


LINK_HEURISTICS: tuple[LinkHeuristic, ...] = (
    links_from_title_class,
    links_from_content_markers,
    links_near_headings,
    links_with_marker_anywhere,
    generic_anchor_scan,
)


def extract_listing_links(ctx: DiscoveryContext, html: str, page_url: str) -> list[DiscoveredLink]:
    """First link heuristic that yields any acceptable URL wins."""

    soup = BeautifulSoup(html or "", "lxml")
    for heuristic in LINK_HEURISTICS:
        accepted: list[DiscoveredLink] = []
        for link in heuristic(soup, page_url):
            canon = ctx.accept(link.url)
            if canon:
                accepted.append(DiscoveredLink(url=canon, title=link.title))
        if accepted:
            logger.debug("%s: %d links via %s", page_url, len(accepted), heuristic.__name__)
            return accepted
    return []


# --- strategies -------------------------------------------------------------


def _join(base: str, path: str) -> str:
    return base.rstrip("/") + path


async def discover_from_feeds(ctx: DiscoveryContext) -> list[DiscoveredUrl]:
    for path in ctx.settings["feed_paths"]:
        feed_url = _join(ctx.seed_url, path)
        text = await ctx.fetcher.get_text(feed_url)
        if not text or not looks_like_feed(text):
            continue
        out: list[DiscoveredUrl] = []
        for entry in parse_feed_entries(text, max_items=ctx.max_urls * 2):
            canon = ctx.accept(entry.url)
            if canon:
                d = feed_entry_to_discovered(entry)
                out.append(DiscoveredUrl(url=canon, recency_signal=d.recency_signal, title=d.title, via="feed"))
        if out:
            logger.info("feed %s: %d article URLs", feed_url, len(out))
            return out
    return []


async def _sitemap_entries(ctx: DiscoveryContext, sitemap_url: str) -> list[DiscoveredUrl]:
    text = await ctx.fetcher.get_text(sitemap_url)
    if not text:
        return []
    parsed = parse_sitemap(text)
    documents = [parsed]
    if parsed.is_index:
        documents = []
        for child in parsed.children[: int(ctx.settings["max_child_sitemaps"])]:
            child_text = await ctx.fetcher.get_text(child)
            if child_text:
                documents.append(parse_sitemap(child_text))

    out: list[DiscoveredUrl] = []
    for doc in documents:
        for entry in doc.entries:
            canon = ctx.accept(entry.loc)
            if not canon:
                continue
            dt = parse_datetime(entry.lastmod)
            out.append(
                DiscoveredUrl(
                    url=canon,
                    recency_signal=dt.isoformat() if dt else None,
                    title=entry.title,
                    via="sitemap",
                )
            )
    return out


async def discover_from_sitemaps(ctx: DiscoveryContext) -> list[DiscoveredUrl]:
    robots = await ctx.fetcher.get_text(_join(ctx.origin, "/robots.txt"))
    candidates = sitemaps_from_robots(robots)
    candidates += [_join(ctx.origin, p) for p in ctx.settings["sitemap_paths"]]

    tried: set[str] = set()
    for sitemap_url in candidates:
        if sitemap_url in tried:
            continue
        tried.add(sitemap_url)
        out = await _sitemap_entries(ctx, sitemap_url)
        if out:
            logger.info("sitemap %s: %d article URLs", sitemap_url, len(out))
            return out
    return []


async def _crawl_listing(ctx: DiscoveryContext, root: str, seen: set[str]) -> list[DiscoveredUrl]:
    out: list[DiscoveredUrl] = []
    max_pages = int(ctx.settings["max_listing_pages"])
    delay = float(ctx.settings.get("listing_delay_seconds", 0.0))

    for page in range(1, max_pages + 1):
        page_url = root if page == 1 else _join(root, f"/page/{page}")
        html = await ctx.fetcher.get_text(page_url)
        if not html:
            break

        new = 0
        for link in extract_listing_links(ctx, html, page_url):
            if link.url in seen:
                continue
            seen.add(link.url)
            out.append(DiscoveredUrl(url=link.url, title=link.title, via="listing"))
            new += 1
        if new == 0:
            break
        if len(seen) >= ctx.max_urls:
            break
        if delay > 0:
            await asyncio.sleep(delay)
    return out


async def discover_from_listings(ctx: DiscoveryContext) -> list[DiscoveredUrl]:
    roots = [ctx.seed_url.rstrip("/")]
    for path in ctx.settings["listing_paths"]:
        root = _join(ctx.seed_url, path)
        if root not in roots:
            roots.append(root)

    seen: set[str] = set()
    out: list[DiscoveredUrl] = []
    for root in roots:
        out.extend(await _crawl_listing(ctx, root, seen))
        if len(seen) >= ctx.max_urls:
            break
    return out


async def discover_from_note_profile(ctx: DiscoveryContext) -> list[DiscoveredUrl]:
    p = urlparse(ctx.seed_url)
    if p.netloc.lower().removeprefix("www.") != "note.com":
        return []
    segs = [s for s in p.path.split("/") if s]
    if not segs:
        return []
    user = segs[0]
    profile_url = f"https://note.com/{user}"
    html = await ctx.fetcher.get_text(profile_url)
    if not html:
        return []

    out: list[DiscoveredUrl] = []
    seen: set[str] = set()
    for m in re.finditer(rf"/{re.escape(user)}/n/([A-Za-z0-9]+)", html):
        url = f"https://note.com/{user}/n/{m.group(1)}"
        if url in seen:
            continue
        seen.add(url)
        canon = ctx.accept(url)
        if canon:
            out.append(DiscoveredUrl(url=canon, via="profile"))
    return out


async def discover_from_entry_list(ctx: DiscoveryContext) -> list[DiscoveredUrl]:
    out: list[DiscoveredUrl] = []
    for path in ctx.settings["entry_list_paths"]:
        list_url = _join(ctx.seed_url, path)
        html = await ctx.fetcher.get_text(list_url)
        if not html:
            continue
        for link in extract_listing_links(ctx, html, list_url):
            out.append(DiscoveredUrl(url=link.url, title=link.title, via="entry-list"))
        if out:
            break
    return out


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    discover_from_feeds,
    discover_from_sitemaps,
    discover_from_listings,
    discover_from_note_profile,
    discover_from_entry_list,
)


# --- combining --------------------------------------------------------------


def merge_discovered(groups: Iterable[list[DiscoveredUrl]], max_urls: int) -> list[DiscoveredUrl]:
    """Union, de-duplicated by URL; newest first when any recency is known."""

    by_url: dict[str, DiscoveredUrl] = {}
    for group in groups:
        for d in group:
            prev = by_url.get(d.url)
            if prev is None:
                by_url[d.url] = d
            elif prev.recency_signal is None and d.recency_signal is not None:
                by_url[d.url] = DiscoveredUrl(
                    url=prev.url,
                    recency_signal=d.recency_signal,
                    title=prev.title or d.title,
                    via=prev.via,
                )

    dated = []
    undated = []
    for d in by_url.values():
        dt = parse_datetime(d.recency_signal)
        if dt is None:
            undated.append(d)
        else:
            dated.append((dt, d))
    # sort(reverse=True) keeps equal keys in input order
    dated.sort(key=lambda pair: pair[0], reverse=True)
    items = [d for _dt, d in dated] + undated
    return items[: max(0, max_urls)]


class UrlDiscoverer:
    def __init__(
        self,
        fetcher: TextFetcher,
        *,
        settings: dict[str, Any] | None = None,
        cache: Optional[Cache] = None,
        strategies: Iterable[Strategy] = DEFAULT_STRATEGIES,
        stale_after: timedelta | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._settings = {**DEFAULTS["discovery"], **(settings or {})}
        self._cache = cache
        self._strategies = tuple(strategies)
        self._stale_after = stale_after

    def _from_cache(self, key: str, seed_url: str, max_urls: int) -> list[DiscoveredUrl] | None:
        """Cached URLs, or None when the entry cannot answer a request this large."""

        entry: CacheEntry | None = self._cache.get(key) if self._cache is not None else None
        if entry is None or not isinstance(entry.value, dict):
            return None
        urls = entry.value.get("urls") or []
        asked = int(entry.value.get("max_urls") or 0)
        if not urls or (len(urls) < max_urls and asked < max_urls):
            return None

        logger.info("using cached discovery for %s (generated %s)", seed_url, entry.generated_at.isoformat())
        if self._stale_after is not None and is_stale(entry, self._stale_after):
            logger.warning(
                "cached discovery for %s is %d days old; use --force-refresh to rediscover",
                seed_url,
                entry.age().days,
            )
        return [DiscoveredUrl(**d) for d in urls][:max_urls]

    async def discover(self, seed_url: str, max_urls: int, *, force_refresh: bool = False) -> list[DiscoveredUrl]:
        if not is_valid_seed(seed_url):
            raise ImportInputError(f"invalid seed URL: {seed_url!r}")
        seed_url = seed_url.strip().rstrip("/")
        cache_key = f"discover:{canonicalize_url(seed_url)}"

        if not force_refresh:
            cached = self._from_cache(cache_key, seed_url, max_urls)
            if cached is not None:
                return cached

        ctx = DiscoveryContext(seed_url=seed_url, max_urls=max_urls, fetcher=self._fetcher, settings=self._settings)
        found: list[DiscoveredUrl] = []
        for strategy in self._strategies:
            try:
                found = await strategy(ctx)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("discovery strategy %s failed for %s", strategy.__name__, seed_url, exc_info=True)
                continue
            if found:
                logger.info("%s: %d URLs for %s", strategy.__name__, len(found), seed_url)
                break

        # cache the whole list so a later, larger request can reuse it
        everything = merge_discovered([found], len(found))
        if self._cache is not None and everything:
            self._cache.put(cache_key, {"max_urls": max_urls, "urls": [asdict(d) for d in everything]})
        return everything[:max_urls]
