import json

from blog_archive_scraper.extract import (
    BODY_HEURISTICS,
    build_page,
    clean_tag,
    detect_source_hint,
    extract,
    first_non_empty,
    parse_date,
    split_title,
    union_of,
)


def _jsonld(obj) -> str:
    return f'<script type="application/ld+json">{json.dumps(obj)}</script>'


def test_published_meta_beats_bare_date_text():
    html = """
    <html><head>
      <title>Release notes | Example</title>
      <meta property="article:published_time" content="2023-05-01T00:00:00Z">
    </head><body>
      <div class="entry-content"><p>Updated on 2021-12-24 with fixes.</p></div>
    </body></html>
    """
    fields = extract(html, url="https://example.com/posts/release-notes")
    assert fields.published_at == "2023-05-01"
    assert fields.title == "Release notes"


def test_rel_tag_and_jsonld_keyword_are_merged_once():
    html = f"""
    <html><head>{_jsonld({"@type": "BlogPosting", "keywords": "AI, Python"})}</head>
    <body><article>
      <p>Some article text.</p>
      <a rel="tag" href="/tag/ai">AI</a>
    </article></body></html>
    """
    fields = extract(html)
    assert fields.tags.count("AI") == 1
    assert fields.tags == ("AI", "Python")


def test_tags_are_cleaned_and_deduplicated_case_insensitively():
    html = """
    <html><head>
      <meta property="article:tag" content="#python">
      <meta property="article:tag" content="Data, Science">
    </head><body>
      <span class="tag">Python</span>
    </body></html>
    """
    assert extract(html).tags == ("Python", "Data Science")


def test_rel_category_tag_link_is_not_a_tag():
    html = """
    <html><body><article><p>text</p>
      <a rel="category tag" href="/category/news">News</a>
      <a rel="tag" href="/tag/misc">misc</a>
    </article></body></html>
    """
    fields = extract(html)
    assert fields.category == "News"
    assert fields.tags == ("misc",)


def test_jsonld_graph_date_and_section():
    graph = {
        "@context": "https://schema.org",
        "@graph": [
            {"@type": "WebSite", "datePublished": "2001-01-01"},
            {"@type": "Article", "datePublished": "2022-07-10T23:30:00-02:00", "articleSection": "Essays"},
        ],
    }
    html = f"<html><head>{_jsonld(graph)}</head><body><main><p>x</p></main></body></html>"
    fields = extract(html)
    # 23:30 at -02:00 is the next day in UTC
    assert fields.published_at == "2022-07-11"
    assert fields.category == "Essays"


def test_hatena_url_date_comes_first():
    html = """
    <html><head><meta property="article:published_time" content="2020-02-02"></head>
    <body><div class="entry-content hatenablog-entry"><p>hello</p></div></body></html>
    """
    fields = extract(html, url="https://someone.hatenablog.com/entry/2019/03/04/120000")
    assert fields.source_hint == "hatena"
    assert fields.published_at == "2019-03-04"
    assert fields.body == "hello"


def test_japanese_bare_date():
    html = "<html><body><p>投稿日 2021年4月9日</p><article><p>本文</p></article></body></html>"
    assert extract(html).published_at == "2021-04-09"


def test_note_title_and_body():
    html = """
    <html><head><title>ignored｜note</title></head><body>
      <h1 class="o-noteContentHeader__title">My note</h1>
      <div class="note-common-styles__textnote-body"><p>para one</p><p>para two</p></div>
    </body></html>
    """
    fields = extract(html, url="https://note.com/alice/n/n123abc")
    assert fields.source_hint == "note"
    assert fields.title == "My note"
    assert fields.body == "para one\npara two"


def test_body_keeps_paragraph_breaks_and_drops_images():
    html = (
        '<html><body><div class="post-content">'
        '<p>First <a href="/x">linked</a> paragraph.</p><img src="/a.png" alt="pic">'
        "<p>Second paragraph.</p></div></body></html>"
    )
    assert extract(html).body == "First linked paragraph.\nSecond paragraph."


def test_document_fallback_needs_more_than_100_chars():
    short = "<html><body><nav>menu</nav><p>tiny</p></body></html>"
    assert extract(short).body == ""

    long_text = "word " * 40
    html = f"<html><body><nav>menu</nav><p>{long_text}</p><footer>foot</footer></body></html>"
    body = extract(html).body
    assert body.startswith("word word")
    assert "menu" not in body and "foot" not in body


def test_title_falls_back_to_description():
    html = '<html><head><meta name="description" content="About things"></head><body></body></html>'
    assert extract(html).title == "About things"


def test_empty_page_is_empty_not_an_error():
    fields = extract("")
    assert fields.is_empty
    assert fields.published_at is None
    assert fields.tags == ()


def test_split_title_keeps_hyphenated_words():
    assert split_title("Self-hosting notes - My Blog") == "Self-hosting notes"
    assert split_title("Post｜Site") == "Post"
    assert split_title("Single") == "Single"


def test_parse_date_rejects_out_of_range_and_garbage():
    assert parse_date("1899-01-01") is None
    assert parse_date("not a date") is None
    assert parse_date("2024-02-29") == "2024-02-29"


def test_clean_tag():
    assert clean_tag("  #Machine   Learning ") == "Machine Learning"
    assert clean_tag("a,b") == "a b"


def test_detect_source_hint():
    assert detect_source_hint("https://note.com/bob/n/nabc", "") == "note"
    assert detect_source_hint("https://x.hatenablog.jp/", "") == "hatena"
    assert detect_source_hint("https://example.com/", '<link href="/wp-content/style.css">') == "wordpress"
    assert detect_source_hint("https://example.com/", "<p>plain</p>") == "auto"


def test_combinators_skip_failing_heuristics():
    page = build_page("<html><body><article><p>kept</p></article></body></html>")

    def broken(_page):
        raise RuntimeError("boom")

    assert first_non_empty((broken, lambda p: "", lambda p: "value"), page) == "value"
    assert union_of((broken, lambda p: ["a", "A", "b"]), page) == ("a", "b")
    assert first_non_empty(BODY_HEURISTICS, page) == "kept"
