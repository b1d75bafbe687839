from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse


_DEFAULT_TRACKING_PARAMS_PREFIXES = (
    "utm_",
)


_DEFAULT_TRACKING_PARAMS = {
    "fbclid",
    "gclid",
    "msclkid",
    "mc_cid",
    "mc_eid",
    "ref_src",
    "ref_url",
}


# listing, taxonomy, feed and admin pages are never articles
EXCLUDED_PATH_SEGMENTS = frozenset(
    {
        "category",
        "categories",
        "tag",
        "tags",
        "author",
        "authors",
        "page",
        "pages",
        "feed",
        "feeds",
        "rss",
        "atom",
        "archive",
        "wp-admin",
        "wp-content",
        "wp-includes",
        "wp-json",
        "search",
        "login",
        "logout",
        "register",
        "signup",
        "signin",
        "admin",
    }
)


EXCLUDED_EXTENSIONS = (
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".webp",
    ".svg",
    ".ico",
    ".pdf",
    ".zip",
    ".css",
    ".js",
    ".woff",
    ".woff2",
    ".ttf",
    ".eot",
    ".xml",
)


ARTICLE_PATH_MARKERS = (
    "/entry/",
    "/post/",
    "/posts/",
    "/article/",
    "/articles/",
    "/archives/",
    "/blog/",
    "/n/",
)


_DATE_IN_PATH_RE = re.compile(r"\/\d{4}\/\d{2}\/\d{2}\/|\/\d{4}-\d{2}-\d{2}\/", re.IGNORECASE)


def is_valid_seed(url: str) -> bool:
    try:
        p = urlparse((url or "").strip())
    except ValueError:
        return False
    return p.scheme in ("http", "https") and bool(p.netloc)


def _host(url: str) -> str:
    try:
        host = urlparse(url).netloc.lower()
    except ValueError:
        return ""
    return host.removeprefix("www.")


def same_origin(seed_url: str, url: str) -> bool:
    host = _host(url)
    return bool(host) and host == _host(seed_url)


def resolve_href(base_url: str, href: str) -> str | None:
    if not href:
        return None
    href = href.strip()
    if not href or href == "#":
        return None
    if any(href.lower().startswith(x) for x in ("mailto:", "tel:", "javascript:", "data:")):
        return None
    try:
        return urljoin(base_url, href)
    except ValueError:
        return None


def canonicalize_url(url: str) -> str:
    """Canonical form used for identity and de-duplication.

    Lower-cases scheme and host, drops the fragment and tracking params,
    and strips the trailing slash.
    """

    if not url:
        return ""
    url = url.strip()
    try:
        p = urlparse(url)
    except ValueError:
        return url.rstrip("/")
    if not p.scheme or not p.netloc:
        return url.rstrip("/")

    keep_params: list[tuple[str, str]] = []
    for k, v in parse_qsl(p.query, keep_blank_values=False):
        kl = k.lower()
        if any(kl.startswith(prefix) for prefix in _DEFAULT_TRACKING_PARAMS_PREFIXES):
            continue
        if kl in _DEFAULT_TRACKING_PARAMS:
            continue
        keep_params.append((k, v))

    path = p.path or ""
    if path.endswith("/"):
        path = path.rstrip("/")
    p2 = p._replace(
        scheme=p.scheme.lower(),
        netloc=p.netloc.lower(),
        path=path,
        params="",
        query=urlencode(keep_params, doseq=True),
        fragment="",
    )
    return urlunparse(p2)


def is_excluded(url: str) -> bool:
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return True
    segs = [s for s in path.split("/") if s]
    if any(s in EXCLUDED_PATH_SEGMENTS for s in segs):
        return True
    return path.rstrip("/").endswith(EXCLUDED_EXTENSIONS)


def has_article_marker(url: str) -> bool:
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return False
    return any(m in path for m in ARTICLE_PATH_MARKERS)


def looks_like_article_url(url: str) -> bool:
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return False

    if _DATE_IN_PATH_RE.search(path + "/"):
        return True
    if path.endswith(".html") or path.endswith(".htm"):
        return True
    if has_article_marker(url):
        return True
    segs = [s for s in path.split("/") if s]
    # slugs like /my-first-post or numeric ids like /archives/123
    if segs and ("-" in segs[-1] or segs[-1].isdigit()):
        return True
    return False


def score_candidate(seed_url: str, url: str, title: str | None) -> float:
    try:
        p = urlparse(url)
        path = p.path.lower()
    except ValueError:
        return -1e9

    score = 0.0

    segs = [s for s in path.split("/") if s]
    score += min(len(segs), 8) * 0.4

    if looks_like_article_url(url):
        score += 8.0
    if _DATE_IN_PATH_RE.search(path + "/"):
        score += 4.0
    if path.endswith(".html") or path.endswith(".htm"):
        score += 2.0

    last = segs[-1] if segs else ""
    if "-" in last:
        score += 1.5

    if is_excluded(url):
        score -= 8.0

    if path in {"/", ""}:
        score -= 10.0

    if canonicalize_url(url) == canonicalize_url(seed_url):
        score -= 10.0

    if title:
        t = title.strip()
        if len(t) >= 16:
            score += 0.6
        elif len(t) <= 5:
            score -= 0.6

    if p.query:
        score -= 0.5

    return score


def origin_of(url: str) -> str:
    p = urlparse(url)
    return f"{p.scheme}://{p.netloc}"


def url_date(url: str) -> str | None:
    """Hatena-style ``/entry/YYYY/MM/DD/...`` permalinks carry the date."""

    m = re.search(r"/entry/(\d{4})/(\d{2})/(\d{2})", url or "")
    if not m:
        return None
    return f"{m.group(1)}-{m.group(2)}-{m.group(3)}"
