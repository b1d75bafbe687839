from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest
import yaml

from blog_archive_scraper.config import Config, load_config
from blog_archive_scraper.errors import FetchError
from blog_archive_scraper.http import FetchResponse


class FakeClient:
    """In-memory stand-in for HttpClient: known URLs answer 200, the rest 404."""

    def __init__(self, pages: dict[str, str] | None = None) -> None:
        self.pages = dict(pages or {})
        self.requested: list[str] = []

    async def fetch(self, url: str) -> FetchResponse:
        self.requested.append(url)
        if url not in self.pages:
            raise FetchError.from_status(url, 404)
        return FetchResponse(url=url, status=200, text=self.pages[url])

    async def get_text(self, url: str) -> Optional[str]:
        self.requested.append(url)
        return self.pages.get(url)


@pytest.fixture
def fast_config(tmp_path: Path):
    """Config with every delay zeroed and storage under ``tmp_path``."""

    def _make(**sections) -> Config:
        raw = {
            "concurrency": {"inter_batch_delay_seconds": 0, "backoff_seconds": 0, "item_timeout_seconds": 5},
            "discovery": {"listing_delay_seconds": 0},
            "storage": {"output_dir": str(tmp_path / "data")},
            "cache": {"path": str(tmp_path / "data" / "cache.json")},
        }
        for name, values in sections.items():
            raw.setdefault(name, {}).update(values)
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(raw), encoding="utf-8")
        return load_config(path)

    return _make
