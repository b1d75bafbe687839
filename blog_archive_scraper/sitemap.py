from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup


SITEMAP_DIRECTIVE_RE = re.compile(r"(?im)^\s*sitemap:\s*(?P<url>\S+)\s*$")


@dataclass(frozen=True)
class SitemapEntry:
    loc: str
    lastmod: Optional[str] = None
    title: Optional[str] = None


@dataclass(frozen=True)
class ParsedSitemap:
    is_index: bool
    children: list[str]
    entries: list[SitemapEntry]


def sitemaps_from_robots(robots_text: str | None) -> list[str]:
    if not robots_text:
        return []
    return [m.group("url") for m in SITEMAP_DIRECTIVE_RE.finditer(robots_text)]


def _child_text(node, name: str) -> Optional[str]:
    child = node.find(name)
    if child is None:
        return None
    text = child.get_text(strip=True)
    return text or None


def parse_sitemap(xml_text: str) -> ParsedSitemap:
    soup = BeautifulSoup(xml_text or "", "xml")

    if soup.find("sitemapindex") is not None:
        children = []
        for sm in soup.find_all("sitemap"):
            loc = _child_text(sm, "loc")
            if loc:
                children.append(loc)
        return ParsedSitemap(is_index=True, children=children, entries=[])

    entries: list[SitemapEntry] = []
    for node in soup.find_all("url"):
        loc = _child_text(node, "loc")
        if not loc:
            continue
        # image:title parses as a "title" tag once the prefix is dropped
        entries.append(
            SitemapEntry(
                loc=loc,
                lastmod=_child_text(node, "lastmod"),
                title=_child_text(node, "title"),
            )
        )
    return ParsedSitemap(is_index=False, children=[], entries=entries)
