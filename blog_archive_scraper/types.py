from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ArticleRecord:
    source_url: str
    title: str
    body: str
    published_at: Optional[str] = None
    category: str = ""
    tags: tuple[str, ...] = ()

    # social posts carry a native id; it wins over the url for identity
    platform_id: Optional[str] = None

    # set when published_at came from the "now" fallback, not the page
    date_is_inferred: bool = False

    # columns seen while parsing that have no field of their own
    raw_fields: dict[str, str] = field(default_factory=dict)

    @property
    def is_includable(self) -> bool:
        return bool(self.title.strip() or self.body.strip())

    @property
    def tags_csv(self) -> str:
        return ",".join(self.tags)


@dataclass(frozen=True)
class DiscoveredUrl:
    url: str
    recency_signal: Optional[str] = None
    title: Optional[str] = None
    via: str = ""


@dataclass(frozen=True)
class ImportBatch:
    urls: list[DiscoveredUrl]
    byte_budget: int


@dataclass(frozen=True)
class FetchFailure:
    url: str
    reason: str
    detail: str = ""

    def describe(self) -> str:
        if self.detail:
            return f"{self.url}: {self.reason} ({self.detail})"
        return f"{self.url}: {self.reason}"


@dataclass
class BatchResult:
    succeeded: list[ArticleRecord] = field(default_factory=list)
    failed: list[FetchFailure] = field(default_factory=list)
    truncated: bool = False
    skipped: int = 0


@dataclass
class ImportSummary:
    records_imported: int
    records_failed: int
    truncated: bool
    skipped: int
    errors: list[str]
    records: list[ArticleRecord] = field(default_factory=list)
    persisted: bool = True
    persistence_error: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "recordsImported": self.records_imported,
            "recordsFailed": self.records_failed,
            "truncated": self.truncated,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "persisted": self.persisted,
            "persistenceError": self.persistence_error,
        }
