from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml


DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


DEFAULTS: dict[str, Any] = {
    "http": {
        "user_agent": DEFAULT_USER_AGENT,
        "timeout_seconds": 10,
        "max_connections": 10,
        "max_response_bytes": 10 * 1024 * 1024,
    },
    "rate_limit": {
        "max_requests_per_period": 5,
        "period_seconds": 1.0,
    },
    "retry": {
        "max_attempts": 2,
        "base_delay_seconds": 0.5,
        "max_delay_seconds": 4.0,
        "retry_statuses": [429, 500, 502, 503, 504],
    },
    "concurrency": {
        "batch_size": 3,
        "inter_batch_delay_seconds": 1.0,
        "item_timeout_seconds": 15.0,
        "retries": 2,
        "backoff_seconds": 1.0,
    },
    "discovery": {
        "max_listing_pages": 10,
        "max_child_sitemaps": 5,
        "listing_delay_seconds": 0.3,
        "feed_paths": ["/feed", "/feed/rss", "/?feed=rss2", "/rss", "/atom.xml", "/feed.xml"],
        "sitemap_paths": ["/sitemap.xml", "/sitemap_index.xml", "/wp-sitemap.xml"],
        "listing_paths": ["/entry", "/blog", "/posts", "/articles", "/archives"],
        "entry_list_paths": ["/archive", "/entry"],
    },
    "import": {
        "max_items": 50,
        "max_items_per_run": 50,
        "content_class": "article",
        "fallback_date_to_now": False,
    },
    "merge": {
        "caps": {"article": 300, "social": 50},
    },
    "storage": {
        "output_dir": "data",
        "dataset": "articles",
        "chunk_bytes": 900_000,
        "document_limit_bytes": 10 * 1024 * 1024,
        "max_dataset_bytes": 5 * 1024 * 1024,
    },
    "cache": {
        "enabled": True,
        "path": "data/discovery_cache.json",
        "display_max_age_days": 365,
    },
    "logging": {
        "level": "INFO",
    },
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


@dataclass(frozen=True)
class Config:
    raw: dict[str, Any]

    def section(self, name: str) -> dict[str, Any]:
        return dict(self.raw.get(name) or {})

    @property
    def user_agent(self) -> str:
        return str(self.raw["http"]["user_agent"])

    @property
    def output_dir(self) -> Path:
        return Path(self.raw["storage"]["output_dir"])

    @property
    def dataset(self) -> str:
        return str(self.raw["storage"]["dataset"])

    @property
    def chunk_bytes(self) -> int:
        return int(self.raw["storage"]["chunk_bytes"])

    @property
    def document_limit_bytes(self) -> int:
        return int(self.raw["storage"]["document_limit_bytes"])

    @property
    def max_dataset_bytes(self) -> int:
        return int(self.raw["storage"]["max_dataset_bytes"])

    @property
    def cache_path(self) -> Path:
        return Path(self.raw["cache"]["path"])

    @property
    def cache_display_max_age(self) -> timedelta | None:
        days = self.raw["cache"].get("display_max_age_days")
        return None if days is None else timedelta(days=float(days))

    def cap_for(self, content_class: str) -> int | None:
        caps = (self.raw.get("merge", {}) or {}).get("caps", {}) or {}
        cap = caps.get(content_class)
        return None if cap is None else int(cap)


def load_yaml(path: str | Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config(path: str | Path | None = None) -> Config:
    if path is None:
        return Config(raw=copy.deepcopy(DEFAULTS))
    return Config(raw=_deep_merge(DEFAULTS, load_yaml(path)))
