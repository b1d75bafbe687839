"""HTML to plain text, shared by every extraction routine.

Regex based on purpose: it has to cope with fragments, half-closed tags and
builder comments that a real parser would try to repair.
"""

from __future__ import annotations

import re


_BLOCK_COMMENT_RE = re.compile(r"<!--\s*/?(?:wp|block):[\s\S]*?-->", re.IGNORECASE)
_COMMENT_RE = re.compile(r"<!--[\s\S]*?-->")
_SCRIPT_STYLE_RE = re.compile(r"<(script|style|noscript)\b[^>]*>[\s\S]*?</\1\s*>", re.IGNORECASE)
_HEADING_OPEN_RE = re.compile(r"(<h[1-6]\b[^>]*>)", re.IGNORECASE)
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_BLOCK_CLOSE_RE = re.compile(
    r"</(?:p|div|h[1-6]|li|blockquote|tr|ul|ol|dl|figure|figcaption|section|article|pre)\s*>",
    re.IGNORECASE,
)
_CELL_CLOSE_RE = re.compile(r"</t[dh]\s*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")

_DEC_ENTITY_RE = re.compile(r"&#(\d{1,7});")
_HEX_ENTITY_RE = re.compile(r"&#[xX]([0-9A-Fa-f]{1,6});")

_ENTITIES = {
    "&nbsp;": " ",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&apos;": "'",
    "&hellip;": "…",
    "&mdash;": "—",
    "&ndash;": "–",
    "&lsquo;": "‘",
    "&rsquo;": "’",
    "&ldquo;": "“",
    "&rdquo;": "”",
    "&sbquo;": "‚",
    "&bdquo;": "„",
    "&copy;": "©",
    "&reg;": "®",
    "&trade;": "™",
    "&yen;": "¥",
    "&euro;": "€",
    "&pound;": "£",
    "&cent;": "¢",
    "&deg;": "°",
    "&times;": "×",
    "&divide;": "÷",
    "&plusmn;": "±",
    "&frac12;": "½",
    "&frac14;": "¼",
    "&frac34;": "¾",
}

_HSPACE_RE = re.compile(r"[ \t\u00a0\u3000]+")
_MANY_NEWLINES_RE = re.compile(r"\n{3,}")
_WS_RE = re.compile(r"\s+")


def _numeric_entity(value: int, original: str) -> str:
    if value == 160:
        return " "
    try:
        return chr(value)
    except (ValueError, OverflowError):
        return original


def decode_entities(text: str) -> str:
    text = _DEC_ENTITY_RE.sub(lambda m: _numeric_entity(int(m.group(1)), m.group(0)), text)
    text = _HEX_ENTITY_RE.sub(lambda m: _numeric_entity(int(m.group(1), 16), m.group(0)), text)
    for entity, char in _ENTITIES.items():
        text = text.replace(entity, char)
    # last, so "&amp;lt;" stays "&lt;" rather than becoming "<"
    return text.replace("&amp;", "&")


def normalize(html: str | None, preserve_line_breaks: bool = False) -> str:
    """Strip markup from ``html`` and return readable plain text.

    With ``preserve_line_breaks`` block boundaries become newlines and headings
    get a blank line in front; otherwise everything collapses to one line.

    Entities are decoded once, so running plain output through again is a
    no-op, but escaped markup such as ``&amp;lt;b&amp;gt;`` comes out as
    ``&lt;b&gt;`` and a second pass turns that into ``<b>``.
    """

    if not html:
        return ""
    try:
        text = str(html)
        text = _BLOCK_COMMENT_RE.sub("", text)
        text = _COMMENT_RE.sub("", text)
        text = _SCRIPT_STYLE_RE.sub("", text)

        if not preserve_line_breaks:
            text = _TAG_RE.sub(" ", text)
            text = decode_entities(text)
            return _WS_RE.sub(" ", text).strip()

        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = _HEADING_OPEN_RE.sub(r"\n\n\1", text)
        text = _BR_RE.sub("\n", text)
        text = _BLOCK_CLOSE_RE.sub("\n", text)
        text = _CELL_CLOSE_RE.sub(" ", text)
        text = _TAG_RE.sub("", text)
        text = decode_entities(text)

        lines = [_HSPACE_RE.sub(" ", line).strip() for line in text.split("\n")]
        text = "\n".join(lines)
        text = _MANY_NEWLINES_RE.sub("\n\n", text)
        return text.strip()
    except Exception:
        # never block extraction on odd input
        return _WS_RE.sub(" ", _TAG_RE.sub(" ", str(html))).strip()


def collapse_whitespace(text: str | None) -> str:
    return _WS_RE.sub(" ", text or "").strip()
