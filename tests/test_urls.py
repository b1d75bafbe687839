from blog_archive_scraper.urls import (
    canonicalize_url,
    has_article_marker,
    is_excluded,
    is_valid_seed,
    looks_like_article_url,
    resolve_href,
    same_origin,
    url_date,
)


def test_canonicalize_url():
    assert canonicalize_url("HTTPS://Example.COM/Post/?utm_medium=x&id=3#frag") == "https://example.com/Post?id=3"
    assert canonicalize_url("https://example.com/a/") == "https://example.com/a"
    assert canonicalize_url("") == ""


def test_same_origin_ignores_www_and_case():
    assert same_origin("https://www.Example.com", "https://example.com/a")
    assert not same_origin("https://example.com", "https://blog.example.com/a")


def test_exclusions_are_whole_segments():
    assert is_excluded("https://example.com/category/news")
    assert is_excluded("https://example.com/wp-content/uploads/a.png")
    assert is_excluded("https://example.com/sitemap.xml")
    assert is_excluded("https://example.com/archive")
    assert not is_excluded("https://example.com/archives/123")
    assert not is_excluded("https://example.com/pagemaker-tips")


def test_article_shapes():
    assert has_article_marker("https://example.com/entry/2024/01/01/120000")
    assert looks_like_article_url("https://example.com/2024/01/01/hello")
    assert looks_like_article_url("https://example.com/my-first-post")
    assert not looks_like_article_url("https://example.com/about")


def test_resolve_href():
    assert resolve_href("https://example.com/blog/", "post-1") == "https://example.com/blog/post-1"
    assert resolve_href("https://example.com", "mailto:me@example.com") is None
    assert resolve_href("https://example.com", "#") is None


def test_seed_validation_and_url_date():
    assert is_valid_seed("https://example.com")
    assert not is_valid_seed("example.com")
    assert not is_valid_seed("javascript:alert(1)")
    assert url_date("https://x.hatenablog.com/entry/2023/11/05/090000") == "2023-11-05"
    assert url_date("https://example.com/post") is None
