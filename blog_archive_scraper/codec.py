"""Split a record set's CSV across several document fields.

The document backend caps the size of a single string field, so large record
sets are stored as ``data``, ``data_1``, ``data_2``, ... with the header row
repeated at the top of every chunk::

    {"data": "...", "data_1": "...", "isChunked": True, "chunkCount": 2}
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from blog_archive_scraper.errors import CodecError
from blog_archive_scraper.storage import frame_to_csv, frame_to_records, read_csv_text, records_to_frame
from blog_archive_scraper.types import ArticleRecord


logger = logging.getLogger(__name__)


DEFAULT_CHUNK_BYTES = 900_000


def _utf8_len(s: str) -> int:
    return len(s.encode("utf-8"))


def chunk_field(index: int) -> str:
    return "data" if index == 0 else f"data_{index}"


def serialize(records: list[ArticleRecord]) -> tuple[str, list[str]]:
    """Header line and one CSV text per row (rows may contain newlines)."""

    df = records_to_frame(records)
    header = frame_to_csv(df.head(0))
    rows = [frame_to_csv(df.iloc[i : i + 1], header=False) for i in range(len(df))]
    return header, rows


def serialized_size(records: list[ArticleRecord]) -> int:
    header, rows = serialize(records)
    return _utf8_len(header) + sum(_utf8_len(r) for r in rows)


class RecordSetCodec:
    def __init__(self, chunk_bytes: int = DEFAULT_CHUNK_BYTES) -> None:
        if chunk_bytes <= 0:
            raise ValueError("chunk_bytes must be positive")
        self.chunk_bytes = chunk_bytes

    def encode(self, records: list[ArticleRecord]) -> dict[str, Any]:
        header, rows = serialize(records)
        text = header + "".join(rows)
        if _utf8_len(text) <= self.chunk_bytes:
            return {"data": text, "isChunked": False, "chunkCount": 1}

        chunks: list[str] = []
        current = header
        current_size = _utf8_len(header)
        has_rows = False
        for row in rows:
            row_size = _utf8_len(row)
            if has_rows and current_size + row_size > self.chunk_bytes:
                chunks.append(current)
                current, current_size, has_rows = header, _utf8_len(header), False
            current += row
            current_size += row_size
            has_rows = True
        chunks.append(current)

        doc: dict[str, Any] = {chunk_field(i): c for i, c in enumerate(chunks)}
        doc["isChunked"] = True
        doc["chunkCount"] = len(chunks)
        logger.debug("encoded %d records into %d chunks", len(records), len(chunks))
        return doc

    def decode(self, document: Optional[dict[str, Any]]) -> list[ArticleRecord]:
        if not document:
            return []
        if not document.get("isChunked"):
            if "data" not in document:
                raise CodecError("document has no data field")
            return frame_to_records(read_csv_text(str(document["data"])))

        try:
            count = int(document.get("chunkCount", 0))
        except (TypeError, ValueError) as exc:
            raise CodecError(f"bad chunkCount: {document.get('chunkCount')!r}") from exc
        if count < 1:
            raise CodecError(f"bad chunkCount: {count}")

        parts: list[str] = []
        header: str | None = None
        for i in range(count):
            name = chunk_field(i)
            if name not in document:
                raise CodecError(f"missing chunk {name} of {count}")
            text = str(document[name])
            first, sep, rest = text.partition("\n")
            if header is None:
                header = first
                parts.append(text)
                continue
            if first != header:
                raise CodecError(f"chunk {name} does not start with the header row")
            parts.append(rest if sep else "")
        return frame_to_records(read_csv_text("".join(parts)))
