"""Field extraction from a single article page.

Every field is resolved by an ordered list of small heuristics over one parsed
page. Title, body, date and category take the first non-empty answer; tags
take the union of all of them.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag
from dateutil import parser as dateparser

from blog_archive_scraper.normalize import collapse_whitespace, normalize
from blog_archive_scraper.urls import url_date


logger = logging.getLogger(__name__)


SOURCE_HINTS = ("auto", "hatena", "wordpress", "note")


ARTICLE_TYPES = frozenset(
    {
        "article",
        "blogposting",
        "newsarticle",
        "reportagenewsarticle",
        "techarticle",
        "socialmediaposting",
    }
)


_TITLE_SEPARATORS = (" | ", " - ", " – ", " — ", "｜", "－", "|")

_NOTE_TITLE_SELECTORS = (
    "h1.o-noteContentHeader__title",
    ".o-noteContentHeader h1",
    ".note-common-styles__textnote-body h1",
    "article h1",
)

_NOTE_BODY_SELECTORS = (
    "div.note-common-styles__textnote-body",
    'div[data-name="body"]',
    ".p-article__content",
)

_HATENA_BODY_SELECTORS = (
    "div.entry-content.hatenablog-entry",
    "div.hatenablog-entry",
)

# order matters: the first container with real text wins
_CONTENT_CLASS_SELECTORS = (
    "div.entry-content",
    "section.entry-content",
    "div.post_content",
    "div.post-content",
    "div.the-content",
    "div.single-content",
    "div.wp-block-post-content",
    "div.entry-body",
    "div.article-body",
    "div.hentry",
)

_SEMANTIC_SELECTORS = (
    "article",
    "main",
    "div.main-content",
    "div.site-content",
    "div.content",
)

_CHROME_SELECTORS = "header, footer, nav, aside, div.sidebar, div#sidebar, form"

_BARE_DATE_PATTERNS = (
    re.compile(r"(\d{4})-(\d{2})-(\d{2})"),
    re.compile(r"(\d{4})\.(\d{1,2})\.(\d{1,2})"),
    re.compile(r"(\d{4})/(\d{1,2})/(\d{1,2})"),
    re.compile(r"(\d{4})年(\d{1,2})月(\d{1,2})日"),
)


@dataclass(frozen=True)
class ExtractedFields:
    title: str = ""
    body: str = ""
    published_at: Optional[str] = None
    category: str = ""
    tags: tuple[str, ...] = ()
    source_hint: str = "auto"

    @property
    def is_empty(self) -> bool:
        return not (self.title.strip() or self.body.strip())


@dataclass
class Page:
    html: str
    soup: BeautifulSoup
    url: Optional[str] = None
    hint: str = "auto"
    jsonld: list[dict[str, Any]] = field(default_factory=list)


Heuristic = Callable[[Page], Optional[str]]
MultiHeuristic = Callable[[Page], Iterable[str]]


def first_non_empty(heuristics: Iterable[Heuristic], page: Page) -> str:
    for h in heuristics:
        try:
            value = h(page)
        except Exception:
            logger.debug("heuristic %s failed on %s", getattr(h, "__name__", h), page.url, exc_info=True)
            continue
        if value and value.strip():
            return value.strip()
    return ""


def union_of(heuristics: Iterable[MultiHeuristic], page: Page) -> tuple[str, ...]:
    out: list[str] = []
    seen: set[str] = set()
    for h in heuristics:
        try:
            values = list(h(page) or [])
        except Exception:
            logger.debug("heuristic %s failed on %s", getattr(h, "__name__", h), page.url, exc_info=True)
            continue
        for v in values:
            tag = clean_tag(v)
            key = tag.casefold()
            if not tag or key in seen:
                continue
            seen.add(key)
            out.append(tag)
    return tuple(out)


def clean_tag(value: str) -> str:
    # tags are stored comma-joined
    tag = normalize(value or "").replace(",", " ")
    return collapse_whitespace(tag).lstrip("#").strip()


# --- parsing helpers -------------------------------------------------------


def _iter_jsonld_objects(node: Any) -> Iterable[dict[str, Any]]:
    if isinstance(node, list):
        for item in node:
            yield from _iter_jsonld_objects(item)
    elif isinstance(node, dict):
        yield node
        graph = node.get("@graph")
        if graph is not None:
            yield from _iter_jsonld_objects(graph)


def _is_article_type(obj: dict[str, Any]) -> bool:
    types = obj.get("@type")
    if isinstance(types, str):
        types = [types]
    if not isinstance(types, list):
        return False
    return any(str(t).lower() in ARTICLE_TYPES for t in types)


def parse_jsonld(soup: BeautifulSoup) -> list[dict[str, Any]]:
    objects: list[dict[str, Any]] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text() or ""
        if not raw.strip():
            continue
        try:
            data = json.loads(raw.strip())
        except ValueError:
            continue
        objects.extend(o for o in _iter_jsonld_objects(data) if _is_article_type(o))
    return objects


def parse_date(value: str | None) -> Optional[str]:
    """Return ``YYYY-MM-DD`` (UTC calendar date) or None if unparseable."""

    if not value or not str(value).strip():
        return None
    try:
        dt = dateparser.parse(str(value).strip())
    except (ValueError, OverflowError, TypeError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    if not (1970 <= dt.year <= 2100):
        return None
    return dt.date().isoformat()


def _meta_content(soup: BeautifulSoup, **attrs: str) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        return str(tag.get("content") or "").strip()
    return None


def _text_of(el: Tag | None) -> str:
    if el is None:
        return ""
    return collapse_whitespace(el.get_text(" ", strip=True))


def _block_text(el: Tag | None) -> str:
    if el is None:
        return ""
    return normalize(str(el), preserve_line_breaks=True)


def detect_source_hint(url: str | None, html: str) -> str:
    host = ""
    if url:
        try:
            host = urlparse(url).netloc.lower()
        except ValueError:
            host = ""
    if host == "note.com" or host.endswith(".note.com") or host == "note.mu":
        return "note"
    if any(h in host for h in ("hatenablog.com", "hatenablog.jp", "hateblo.jp", "hatenadiary.")):
        return "hatena"
    if url and re.search(r"/entry/\d{4}/\d{2}/\d{2}", url):
        return "hatena"

    sample = html or ""
    if 'class="entry-title-link' in sample or "hatena-module" in sample or "hatenablog" in sample:
        return "hatena"
    if "/wp-content/" in sample or "/wp-json/" in sample or "wp-block-" in sample or 'class="post_content' in sample:
        return "wordpress"
    return "auto"


# --- title -----------------------------------------------------------------


def title_from_note_heading(page: Page) -> Optional[str]:
    if page.hint != "note":
        return None
    for sel in _NOTE_TITLE_SELECTORS:
        text = _text_of(page.soup.select_one(sel))
        if text:
            return text
    return None


def split_title(title: str) -> str:
    for sep in _TITLE_SEPARATORS:
        if sep in title:
            head = title.split(sep)[0].strip()
            if head:
                return head
    return title.strip()


def title_from_title_tag(page: Page) -> Optional[str]:
    if page.soup.title is None:
        return None
    text = collapse_whitespace(normalize(page.soup.title.get_text(" ")))
    return split_title(text) if text else None


def title_from_first_heading(page: Page) -> Optional[str]:
    for sel in ("h1.entry-title", "a.entry-title-link", "h1.post-title", "h1"):
        text = _text_of(page.soup.select_one(sel))
        if text:
            return text
    return None


def title_from_og(page: Page) -> Optional[str]:
    return _meta_content(page.soup, property="og:title")


def title_from_description(page: Page) -> Optional[str]:
    return _meta_content(page.soup, name="description") or _meta_content(page.soup, property="og:description")


TITLE_HEURISTICS: tuple[Heuristic, ...] = (
    title_from_note_heading,
    title_from_title_tag,
    title_from_first_heading,
    title_from_og,
    title_from_description,
)


# --- body ------------------------------------------------------------------


def _first_selector_text(page: Page, selectors: Iterable[str]) -> Optional[str]:
    for sel in selectors:
        for el in page.soup.select(sel):
            text = _block_text(el)
            if text:
                return text
    return None


def body_from_note(page: Page) -> Optional[str]:
    if page.hint != "note":
        return None
    return _first_selector_text(page, _NOTE_BODY_SELECTORS)


def body_from_hatena(page: Page) -> Optional[str]:
    if page.hint != "hatena":
        return None
    return _first_selector_text(page, _HATENA_BODY_SELECTORS)


def body_from_article_body(page: Page) -> Optional[str]:
    return _first_selector_text(page, ('[itemprop="articleBody"]',))


def body_from_content_classes(page: Page) -> Optional[str]:
    return _first_selector_text(page, _CONTENT_CLASS_SELECTORS)


def body_from_semantic_region(page: Page) -> Optional[str]:
    return _first_selector_text(page, _SEMANTIC_SELECTORS)


def body_from_document(page: Page) -> Optional[str]:
    body = page.soup.body
    if body is None:
        return None
    # work on a copy; the shared soup is still needed by other fields
    clone = BeautifulSoup(str(body), "lxml")
    for el in clone.select(_CHROME_SELECTORS):
        el.decompose()
    text = _block_text(clone.body or clone)
    if len(text) <= 100:
        return None
    return text


BODY_HEURISTICS: tuple[Heuristic, ...] = (
    body_from_note,
    body_from_hatena,
    body_from_article_body,
    body_from_content_classes,
    body_from_semantic_region,
    body_from_document,
)


# --- date ------------------------------------------------------------------


def date_from_url(page: Page) -> Optional[str]:
    if page.hint != "hatena":
        return None
    return url_date(page.url or "")


def date_from_jsonld(page: Page) -> Optional[str]:
    for obj in page.jsonld:
        d = parse_date(obj.get("datePublished"))
        if d:
            return d
    return None


def date_from_published_meta(page: Page) -> Optional[str]:
    return parse_date(_meta_content(page.soup, property="article:published_time"))


def date_from_alternate_meta(page: Page) -> Optional[str]:
    for attrs in (
        {"property": "og:published_time"},
        {"itemprop": "datePublished"},
        {"name": "pubdate"},
        {"name": "date"},
    ):
        d = parse_date(_meta_content(page.soup, **attrs))
        if d:
            return d
    return None


def date_from_published_time(page: Page) -> Optional[str]:
    for el in page.soup.find_all("time"):
        classes = " ".join(el.get("class") or []).lower()
        if "published" in classes or "entry-date" in classes:
            d = parse_date(el.get("datetime") or el.get_text(" ", strip=True))
            if d:
                return d
    return None


def date_from_any_time(page: Page) -> Optional[str]:
    for el in page.soup.find_all("time", attrs={"datetime": True}):
        d = parse_date(el.get("datetime"))
        if d:
            return d
    return None


def date_from_bare_text(page: Page) -> Optional[str]:
    text = page.soup.get_text(" ")
    for pattern in _BARE_DATE_PATTERNS:
        for m in pattern.finditer(text):
            try:
                d = datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)))
            except ValueError:
                continue
            if 1970 <= d.year <= 2100:
                return d.date().isoformat()
    return None


DATE_HEURISTICS: tuple[Heuristic, ...] = (
    date_from_url,
    date_from_jsonld,
    date_from_published_meta,
    date_from_alternate_meta,
    date_from_published_time,
    date_from_any_time,
    date_from_bare_text,
)


# --- category --------------------------------------------------------------


def category_from_rel(page: Page) -> Optional[str]:
    for a in page.soup.select('a[rel~="category"]'):
        text = _text_of(a)
        if text:
            return text
    return None


def category_from_hatena_link(page: Page) -> Optional[str]:
    return _text_of(page.soup.select_one("a.entry-category-link")) or None


def category_from_span(page: Page) -> Optional[str]:
    for el in page.soup.select("span.category, span.cat-links, span.post-category"):
        link = el.find("a")
        text = _text_of(link) or _text_of(el)
        if text:
            return text
    return None


def category_from_container(page: Page) -> Optional[str]:
    for el in page.soup.select(".post-category, .post-categories, .c-categoryButton"):
        link = el.find("a")
        text = _text_of(link) or _text_of(el)
        if text:
            return text
    return None


def category_from_jsonld(page: Page) -> Optional[str]:
    for obj in page.jsonld:
        section = obj.get("articleSection")
        if isinstance(section, list):
            section = next((s for s in section if s), None)
        if section:
            return collapse_whitespace(str(section))
    return None


def category_from_meta(page: Page) -> Optional[str]:
    return _meta_content(page.soup, property="article:section")


CATEGORY_HEURISTICS: tuple[Heuristic, ...] = (
    category_from_rel,
    category_from_hatena_link,
    category_from_span,
    category_from_container,
    category_from_jsonld,
    category_from_meta,
)


# --- tags ------------------------------------------------------------------


def tags_from_rel(page: Page) -> list[str]:
    out: list[str] = []
    for a in page.soup.select('a[rel~="tag"]'):
        rel = [r.lower() for r in (a.get("rel") or [])]
        # WordPress marks category links as rel="category tag"
        if "category" in rel:
            continue
        out.append(_text_of(a))
    return out


def tags_from_spans(page: Page) -> list[str]:
    return [_text_of(el) for el in page.soup.select("span.tag, span.tags-item")]


def tags_from_container(page: Page) -> list[str]:
    sel = ".tags a, .post-tags a, .entry-tags a, .tag-links a, .p-articleTags a"
    return [_text_of(a) for a in page.soup.select(sel)]


def tags_from_jsonld(page: Page) -> list[str]:
    out: list[str] = []
    for obj in page.jsonld:
        keywords = obj.get("keywords")
        if isinstance(keywords, str):
            out.extend(k for k in keywords.split(","))
        elif isinstance(keywords, list):
            out.extend(str(k) for k in keywords if k)
    return out


def tags_from_meta(page: Page) -> list[str]:
    out: list[str] = []
    for prop in ("article:tag", "article:section"):
        for tag in page.soup.find_all("meta", attrs={"property": prop}):
            if tag.get("content"):
                out.append(str(tag.get("content")))
    return out


TAG_HEURISTICS: tuple[MultiHeuristic, ...] = (
    tags_from_rel,
    tags_from_spans,
    tags_from_container,
    tags_from_jsonld,
    tags_from_meta,
)


# --- entry point -----------------------------------------------------------


def build_page(html: str, source_hint: str = "auto", url: str | None = None) -> Page:
    soup = BeautifulSoup(html or "", "lxml")
    hint = source_hint if source_hint in SOURCE_HINTS else "auto"
    if hint == "auto":
        hint = detect_source_hint(url, html or "")
    return Page(html=html or "", soup=soup, url=url, hint=hint, jsonld=parse_jsonld(soup))


def extract(html: str, source_hint: str = "auto", url: str | None = None) -> ExtractedFields:
    """Extract title, body, date, category and tags from one article page."""

    try:
        page = build_page(html, source_hint, url)
    except Exception:
        logger.warning("could not parse page %s", url, exc_info=True)
        return ExtractedFields(source_hint=source_hint)

    fields = ExtractedFields(
        title=first_non_empty(TITLE_HEURISTICS, page),
        body=first_non_empty(BODY_HEURISTICS, page),
        published_at=first_non_empty(DATE_HEURISTICS, page) or None,
        category=first_non_empty(CATEGORY_HEURISTICS, page),
        tags=union_of(TAG_HEURISTICS, page),
        source_hint=page.hint,
    )
    if not fields.body:
        logger.debug("no body found on %s (hint=%s)", url, page.hint)
    return fields
