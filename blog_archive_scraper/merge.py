from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from blog_archive_scraper.normalize import collapse_whitespace
from blog_archive_scraper.types import ArticleRecord
from blog_archive_scraper.urls import canonicalize_url


logger = logging.getLogger(__name__)


CONTENT_KEY_CHARS = 120


def identity_key(record: ArticleRecord) -> str:
    """``platform:<id>``, else ``url:<canonical url>``, else a content prefix."""

    if record.platform_id:
        return f"platform:{record.platform_id.strip()}"
    url = canonicalize_url(record.source_url) if record.source_url else ""
    if url:
        return f"url:{url}"
    text = collapse_whitespace(f"{record.title} {record.body}").casefold()
    return f"content:{text[:CONTENT_KEY_CHARS]}"


@dataclass
class DeletionSet:
    keys: set[str] = field(default_factory=set)

    def add(self, key: str) -> bool:
        if key in self.keys:
            return False
        self.keys.add(key)
        return True

    def __contains__(self, key: object) -> bool:
        return key in self.keys

    def __len__(self) -> int:
        return len(self.keys)

    def to_list(self) -> list[str]:
        return sorted(self.keys)

    @classmethod
    def from_iterable(cls, keys: Iterable[str] | None) -> "DeletionSet":
        return cls(keys=set(keys or ()))


@dataclass(frozen=True)
class MergeResult:
    records: list[ArticleRecord]
    trimmed_keys: list[str]
    metadata: dict[str, Any]


def _has_real_date(r: ArticleRecord) -> bool:
    return bool(r.published_at) and not r.date_is_inferred


def sort_by_recency(records: list[ArticleRecord]) -> list[ArticleRecord]:
    dated = [r for r in records if _has_real_date(r)]
    rest = [r for r in records if not _has_real_date(r)]
    # ISO dates compare correctly as strings; sorted() is stable
    dated = sorted(dated, key=lambda r: r.published_at or "", reverse=True)
    return dated + rest


def merge(
    existing: Iterable[ArticleRecord],
    incoming: Iterable[ArticleRecord],
    *,
    deleted: Iterable[str] | DeletionSet = (),
    cap: Optional[int] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> MergeResult:
    deleted_keys = set(deleted.keys if isinstance(deleted, DeletionSet) else deleted)

    by_key: dict[str, ArticleRecord] = {}
    for r in existing:
        key = identity_key(r)
        if key in deleted_keys:
            continue
        by_key[key] = r

    replaced = 0
    for r in incoming:
        if not r.is_includable:
            continue
        key = identity_key(r)
        if key in deleted_keys:
            continue
        if key in by_key:
            replaced += 1
        # dict assignment keeps an existing key's position
        by_key[key] = r

    ordered = sort_by_recency(list(by_key.values()))

    trimmed: list[ArticleRecord] = []
    if cap is not None and cap >= 0 and len(ordered) > cap:
        trimmed = ordered[cap:]
        ordered = ordered[:cap]
    trimmed_keys = [identity_key(r) for r in trimmed]

    meta = dict(metadata or {})
    for key in list(meta):
        if key in deleted_keys or key in trimmed_keys:
            meta.pop(key, None)

    logger.debug(
        "merge: %d records (%d replaced, %d trimmed, %d deleted keys)",
        len(ordered),
        replaced,
        len(trimmed_keys),
        len(deleted_keys),
    )
    return MergeResult(records=ordered, trimmed_keys=trimmed_keys, metadata=meta)
