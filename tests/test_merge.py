from blog_archive_scraper.merge import DeletionSet, identity_key, merge
from blog_archive_scraper.types import ArticleRecord


def rec(url="", title="t", body="b", date=None, **kw) -> ArticleRecord:
    return ArticleRecord(source_url=url, title=title, body=body, published_at=date, **kw)


def test_identity_key_priority():
    assert identity_key(rec("https://x.com/a", platform_id="123")) == "platform:123"
    assert identity_key(rec("HTTPS://X.com/a/?utm_source=feed#top")) == "url:https://x.com/a"
    key = identity_key(rec("", title="  Hello\n World ", body="Body"))
    assert key == "content:hello world body"


def test_content_key_uses_first_120_chars():
    long = rec("", title="A" * 200, body="ignored")
    assert identity_key(long) == "content:" + "a" * 120


def test_refetch_replaces_existing_record():
    first = [rec("https://x.com/post", body="v1", date="2024-01-01")]
    second = [rec("https://x.com/post/", body="v2", date="2024-01-01")]

    out = merge(merge([], first).records, second).records

    assert len(out) == 1
    assert out[0].body == "v2"


def test_replaced_record_keeps_its_position_among_undated():
    existing = [rec("https://x.com/a", body="a1"), rec("https://x.com/b"), rec("https://x.com/c")]
    incoming = [rec("https://x.com/b", body="b2"), rec("https://x.com/d")]

    out = merge(existing, incoming).records

    assert [r.source_url for r in out] == ["https://x.com/a", "https://x.com/b", "https://x.com/c", "https://x.com/d"]
    assert out[1].body == "b2"


def test_keys_are_unique_after_merge():
    existing = [rec("https://x.com/a"), rec("", title="same", body="text")]
    incoming = [rec("https://x.com/a"), rec("", title="Same", body="TEXT"), rec("https://x.com/a")]
    out = merge(existing, incoming).records
    keys = [identity_key(r) for r in out]
    assert len(keys) == len(set(keys)) == 2


def test_merge_never_loses_existing_records():
    existing = [rec(f"https://x.com/{i}", date=f"2024-01-{i + 1:02d}") for i in range(5)]
    incoming = [rec("https://x.com/2", body="new", date="2024-01-03")]
    out = merge(existing, incoming).records
    assert {r.source_url for r in existing} <= {r.source_url for r in out}


def test_sorted_newest_first_with_undated_and_inferred_last():
    records = [
        rec("https://x.com/undated"),
        rec("https://x.com/old", date="2023-01-01"),
        rec("https://x.com/inferred", date="2025-01-01", date_is_inferred=True),
        rec("https://x.com/new", date="2024-06-01"),
    ]
    out = merge([], records).records
    assert [r.source_url.rsplit("/", 1)[-1] for r in out] == ["new", "old", "undated", "inferred"]


def test_deleted_keys_are_removed_from_both_sides():
    existing = [rec("https://x.com/a"), rec("https://x.com/b")]
    incoming = [rec("https://x.com/a", body="again"), rec("https://x.com/c")]
    deleted = DeletionSet.from_iterable(["url:https://x.com/a"])

    out = merge(existing, incoming, deleted=deleted).records

    assert [r.source_url for r in out] == ["https://x.com/b", "https://x.com/c"]


def test_cap_trims_oldest_and_their_metadata():
    existing = [rec(f"https://x.com/{i}", date=f"2024-01-{i + 1:02d}") for i in range(4)]
    metadata = {identity_key(r): {"fetchedAt": "x"} for r in existing}

    result = merge(existing, [], cap=2, metadata=metadata)

    assert [r.source_url for r in result.records] == ["https://x.com/3", "https://x.com/2"]
    assert result.trimmed_keys == ["url:https://x.com/1", "url:https://x.com/0"]
    assert set(result.metadata) == {"url:https://x.com/3", "url:https://x.com/2"}
    assert len(metadata) == 4


def test_records_without_title_or_body_are_not_merged_in():
    out = merge([], [rec("https://x.com/empty", title=" ", body="")]).records
    assert out == []


def test_deletion_set():
    d = DeletionSet()
    assert d.add("url:a") is True
    assert d.add("url:a") is False
    assert "url:a" in d and len(d) == 1
    assert d.to_list() == ["url:a"]
