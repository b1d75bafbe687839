import pytest

from blog_archive_scraper.codec import RecordSetCodec, serialized_size
from blog_archive_scraper.errors import CodecError
from blog_archive_scraper.types import ArticleRecord


def _records(n: int) -> list[ArticleRecord]:
    out = []
    for i in range(n):
        out.append(
            ArticleRecord(
                source_url=f"https://example.com/posts/{i}",
                title=f'Post "{i}", part one',
                body=f"First line {i}\n\nSecond line, with commas and 日本語",
                published_at=f"2024-02-{i % 28 + 1:02d}" if i % 3 else None,
                category="Notes" if i % 2 else "",
                tags=("AI", "Python") if i % 2 else (),
                platform_id=f"pid-{i}" if i % 5 == 0 else None,
                date_is_inferred=i % 7 == 1,
                raw_fields={"Source": "import"} if i % 4 == 0 else {},
            )
        )
    return out


def test_small_sets_are_a_single_field():
    records = _records(3)
    doc = RecordSetCodec(900_000).encode(records)
    assert doc["isChunked"] is False
    assert doc["chunkCount"] == 1
    assert doc["data"].startswith('"Date","Title","Content","Category","Tags","URL","PlatformId","DateInferred","Source"\n')
    assert RecordSetCodec().decode(doc) == records


def test_large_sets_split_into_chunks_that_repeat_the_header():
    records = _records(40)
    codec = RecordSetCodec(chunk_bytes=1_000)
    doc = codec.encode(records)

    assert doc["isChunked"] is True
    count = doc["chunkCount"]
    assert count > 1
    header = doc["data"].split("\n", 1)[0]
    for i in range(count):
        name = "data" if i == 0 else f"data_{i}"
        assert doc[name].startswith(header + "\n")
        assert len(doc[name].encode("utf-8")) <= 1_000
    assert f"data_{count}" not in doc

    assert codec.decode(doc) == records


def test_chunked_and_unchunked_decode_to_the_same_records():
    records = _records(25)
    assert RecordSetCodec(500).decode(RecordSetCodec(500).encode(records)) == RecordSetCodec().decode(
        RecordSetCodec().encode(records)
    )


def test_oversized_row_gets_its_own_chunk():
    big = ArticleRecord(source_url="https://example.com/big", title="big", body="x" * 5_000)
    records = _records(2) + [big] + _records(1)
    doc = RecordSetCodec(2_000).encode(records)
    assert RecordSetCodec(2_000).decode(doc) == records


def test_empty_set_round_trips():
    codec = RecordSetCodec()
    assert codec.decode(codec.encode([])) == []
    assert codec.decode(None) == []


def test_missing_chunk_is_an_error():
    codec = RecordSetCodec(chunk_bytes=800)
    doc = codec.encode(_records(20))
    del doc["data_1"]
    with pytest.raises(CodecError):
        codec.decode(doc)


def test_chunk_with_wrong_header_is_an_error():
    codec = RecordSetCodec(chunk_bytes=800)
    doc = codec.encode(_records(20))
    doc["data_1"] = '"Other"\n"row"\n'
    with pytest.raises(CodecError):
        codec.decode(doc)


def test_serialized_size_matches_encoded_text():
    records = _records(5)
    doc = RecordSetCodec().encode(records)
    assert serialized_size(records) == len(doc["data"].encode("utf-8"))
