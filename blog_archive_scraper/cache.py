"""Discovery-result cache.

Entries remember when they were generated. Age is only ever reported; an old
entry keeps being served until the caller asks for a forced refresh.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional, Protocol


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    generated_at: datetime

    def age(self, now: datetime | None = None) -> timedelta:
        now = now or datetime.now(timezone.utc)
        return now - self.generated_at


def is_stale(entry: CacheEntry, max_age: timedelta, now: datetime | None = None) -> bool:
    return entry.age(now) > max_age


class Cache(Protocol):
    def get(self, key: str) -> Optional[CacheEntry]: ...

    def put(self, key: str, value: Any) -> None: ...


class MemoryCache:
    def __init__(self) -> None:
        self._items: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._items.get(key)

    def put(self, key: str, value: Any) -> None:
        self._items[key] = CacheEntry(value=value, generated_at=datetime.now(timezone.utc))


class JsonFileCache:
    """Single JSON file holding ``{key: {"value": ..., "generated_at": iso}}``."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.warning("ignoring unreadable cache file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[CacheEntry]:
        item = self._load().get(key)
        if not isinstance(item, dict) or "generated_at" not in item:
            return None
        try:
            generated_at = datetime.fromisoformat(str(item["generated_at"]))
        except ValueError:
            return None
        return CacheEntry(value=item.get("value"), generated_at=generated_at)

    def put(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = {"value": value, "generated_at": datetime.now(timezone.utc).isoformat()}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp, self.path)
