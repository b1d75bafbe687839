from __future__ import annotations

import csv
import io
import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol

import pandas as pd

from blog_archive_scraper.types import ArticleRecord


logger = logging.getLogger(__name__)


EXPORT_COLUMNS = ["Date", "Title", "Content", "Category", "Tags", "URL"]
PERSISTED_COLUMNS = EXPORT_COLUMNS + ["PlatformId", "DateInferred"]

# largest single string field the document backend accepts
FIELD_LIMIT_BYTES = 1024 * 1024


def _raw_columns(records: Iterable[ArticleRecord], fixed: list[str]) -> list[str]:
    seen: list[str] = []
    for r in records:
        for k in r.raw_fields:
            if k not in fixed and k not in seen:
                seen.append(k)
    return seen


def records_to_frame(records: list[ArticleRecord], columns: list[str] = PERSISTED_COLUMNS) -> pd.DataFrame:
    columns = list(columns) + _raw_columns(records, list(columns))
    rows = []
    for r in records:
        d = {
            "Date": r.published_at or "",
            "Title": r.title,
            "Content": r.body,
            "Category": r.category,
            "Tags": r.tags_csv,
            "URL": r.source_url,
            "PlatformId": r.platform_id or "",
            "DateInferred": "true" if r.date_is_inferred else "false",
        }
        for k, v in r.raw_fields.items():
            d.setdefault(k, v)
        rows.append({c: d.get(c, "") for c in columns})
    return pd.DataFrame(rows, columns=columns, dtype=object)


def frame_to_records(df: pd.DataFrame) -> list[ArticleRecord]:
    known = set(PERSISTED_COLUMNS)
    out: list[ArticleRecord] = []
    for row in df.fillna("").to_dict(orient="records"):
        row = {str(k): str(v) for k, v in row.items()}
        tags = tuple(t for t in (x.strip() for x in row.get("Tags", "").split(",")) if t)
        out.append(
            ArticleRecord(
                source_url=row.get("URL", ""),
                title=row.get("Title", ""),
                body=row.get("Content", ""),
                published_at=row.get("Date") or None,
                category=row.get("Category", ""),
                tags=tags,
                platform_id=row.get("PlatformId") or None,
                date_is_inferred=row.get("DateInferred", "").strip().lower() == "true",
                raw_fields={k: v for k, v in row.items() if k not in known and v != ""},
            )
        )
    return out


def frame_to_csv(df: pd.DataFrame, *, header: bool = True) -> str:
    return df.to_csv(index=False, header=header, quoting=csv.QUOTE_ALL, lineterminator="\n")


def read_csv_text(text: str) -> pd.DataFrame:
    if not (text or "").strip():
        return pd.DataFrame(columns=PERSISTED_COLUMNS)
    return pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)


def to_export_csv(records: list[ArticleRecord]) -> str:
    """Date,Title,Content,Category,Tags,URL (plus raw columns), every field quoted."""

    return frame_to_csv(records_to_frame(records, EXPORT_COLUMNS))


def read_export_csv(text: str) -> list[ArticleRecord]:
    return frame_to_records(read_csv_text(text))


# --- document backends --------------------------------------------------------


class PutResult(Enum):
    OK = "ok"
    SIZE_EXCEEDED = "size_exceeded"


class DocumentStore(Protocol):
    def get(self, key: str) -> Optional[dict[str, Any]]: ...

    def put(self, key: str, document: dict[str, Any], size_limit: int) -> PutResult: ...


def _check_size(key: str, document: dict[str, Any], size_limit: int) -> PutResult:
    for name, value in document.items():
        if isinstance(value, str) and len(value.encode("utf-8")) > FIELD_LIMIT_BYTES:
            logger.warning("%s: field %s exceeds %d bytes", key, name, FIELD_LIMIT_BYTES)
            return PutResult.SIZE_EXCEEDED
    size = len(json.dumps(document, ensure_ascii=False).encode("utf-8"))
    if size > size_limit:
        logger.warning("%s: document is %d bytes (limit %d)", key, size, size_limit)
        return PutResult.SIZE_EXCEEDED
    return PutResult.OK


class MemoryDocumentStore:
    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> Optional[dict[str, Any]]:
        doc = self.documents.get(key)
        return None if doc is None else dict(doc)

    def put(self, key: str, document: dict[str, Any], size_limit: int) -> PutResult:
        result = _check_size(key, document, size_limit)
        if result is PutResult.OK:
            self.documents[key] = dict(document)
        return result


def safe_key(s: str) -> str:
    s2 = "".join(ch if (ch.isalnum() or ch in {"_", "-", "."}) else "_" for ch in (s or "unknown"))
    return (s2 or "unknown").lower()


class FileDocumentStore:
    """One JSON file per key under ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        return self.root / f"{safe_key(key)}.json"

    def get(self, key: str) -> Optional[dict[str, Any]]:
        path = self.path_for(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else None

    def put(self, key: str, document: dict[str, Any], size_limit: int) -> PutResult:
        result = _check_size(key, document, size_limit)
        if result is not PutResult.OK:
            return result
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(document, f, ensure_ascii=False)
        os.replace(tmp, path)
        return PutResult.OK
