"""
Regex passes that turn spreadsheet-exported HTML into the markup subset the
rich-text compiler understands.

Procedure cells come from several legacy editors (Word, old WYSIWYG widgets)
and carry their quirks: ``_x000D_`` carriage-return tokens, ``<font>`` tags,
doubled list wrappers and nested lists that the editor only understands as
indent classes. Each pass below handles one of those quirks. The passes are
order dependent, so callers should normally go through :func:`canonicalize`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

CARRIAGE_RETURN_TOKEN = "_x000D_"
INDENT_CLASS_PREFIX = "ql-indent-"
DIV_MODES = ("strip", "paragraph")
NBSP_MODES = ("break", "strip")
DEFAULT_FONT_COLORS = frozenset({"#000000", "#000", "black", "windowtext", "auto"})
MAX_ROUNDS = 8

BLOCK_TAGS = (
    "address|article|blockquote|dd|div|dl|dt|fieldset|figcaption|figure|footer|form|"
    "h[1-6]|header|hr|li|main|nav|ol|p|pre|section|table|tbody|td|tfoot|th|thead|tr|ul"
)
_TAG_BOUNDARY_RE = re.compile(r"(<[^<>]+>)\s+(?=<[^<>]+>)")
_BLOCK_TAG_RE = re.compile(rf"^</?(?:{BLOCK_TAGS})\b", re.IGNORECASE)
_LINE_BREAK_RE = re.compile(r"[ \t]*(?:\r\n|\r|\n)+[ \t]*")

_DIV_OPEN_RE = re.compile(r"<div\b[^>]*>", re.IGNORECASE)
_DIV_CLOSE_RE = re.compile(r"</div\s*>", re.IGNORECASE)
_BLOCKQUOTE_RE = re.compile(r"</?blockquote\b[^>]*>", re.IGNORECASE)

_EMPTY_STYLE_TAG_RE = re.compile(
    r"<(font|span|b|strong|i|em|u)\b[^>]*>\s*</\1\s*>", re.IGNORECASE
)
_FONT_OPEN_RE = re.compile(r"<font\b([^>]*)>", re.IGNORECASE)
_FONT_CLOSE_RE = re.compile(r"</font\s*>", re.IGNORECASE)
_ATTR_RE = re.compile(
    r"""([a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))"""
)
_BACKGROUND_RE = re.compile(r"background(?:-color)?\s*:\s*([^;]+)", re.IGNORECASE)
_STYLE_COLOR_RE = re.compile(r"(?<![-\w])color\s*:\s*([^;]+)", re.IGNORECASE)

_NESTED_LIST_RE = re.compile(
    r"</li>\s*<(ol|ul)\b[^>]*>\s*"
    r"((?:(?!</?(?:ol|ul)\b).)*?)"
    r"\s*</\1\s*>\s*"
    r"(?=<li\b|</\1\s*>)",
    re.IGNORECASE | re.DOTALL,
)
_LIST_TAG_RE = re.compile(r"<(/?)(ol|ul)\b[^>]*>", re.IGNORECASE)
_LI_OPEN_RE = re.compile(r"<li\b([^>]*)>", re.IGNORECASE)
_INDENT_CLASS_RE = re.compile(r"ql-indent-(\d+)")
_CLASS_ATTR_RE = re.compile(r"""\s*(?<![-\w])class\s*=\s*(?:"[^"]*"|'[^']*'|[^\s"'>]+)""", re.IGNORECASE)
_DUPLICATE_OPEN_RE = re.compile(r"<(ol|ul)\b([^>]*)>\s*<\1\b[^>]*>", re.IGNORECASE)
_DUPLICATE_CLOSE_RE = re.compile(r"</(ol|ul)\s*>\s*</\1\s*>", re.IGNORECASE)

_NBSP_RUN_RE = re.compile(r"(?:&(?:nbsp|#160);\s*)+", re.IGNORECASE)
_NBSP_RE = re.compile(r"&(?:nbsp|#160);", re.IGNORECASE)


@dataclass(frozen=True)
class CanonicalizeOptions:
    """Per-source switches for the passes that differ between spreadsheets."""

    div_mode: str = "strip"
    nbsp_mode: str = "break"

    def __post_init__(self) -> None:
        if self.div_mode not in DIV_MODES:
            raise ValueError(f"div_mode must be one of {DIV_MODES}, got {self.div_mode!r}")
        if self.nbsp_mode not in NBSP_MODES:
            raise ValueError(f"nbsp_mode must be one of {NBSP_MODES}, got {self.nbsp_mode!r}")


DEFAULT_OPTIONS = CanonicalizeOptions()


def strip_carriage_returns(html: str) -> str:
    while CARRIAGE_RETURN_TOKEN in html:
        html = html.replace(CARRIAGE_RETURN_TOKEN, "")
    return html


def _collapse_tag_gap(match: "re.Match[str]") -> str:
    tag = match.group(1)
    following = match.string[match.end():]
    next_tag = following[: following.find(">") + 1]
    if _BLOCK_TAG_RE.match(tag) or _BLOCK_TAG_RE.match(next_tag):
        return tag
    return tag + " "


def collapse_whitespace(html: str) -> str:
    """
    Drop line breaks and whitespace that only separates tags.

    Whitespace next to a block tag never renders, so it is removed. Between two
    inline tags it is a word boundary and collapses to a single space.
    """

    html = _LINE_BREAK_RE.sub(" ", html)
    return _TAG_BOUNDARY_RE.sub(_collapse_tag_gap, html)


def normalize_blocks(html: str, div_mode: str = "strip") -> str:
    """Strip blockquote wrappers; divs become paragraphs or are removed, leaving a <br> per line."""

    html = _BLOCKQUOTE_RE.sub("", html)
    if div_mode == "paragraph":
        html = _DIV_OPEN_RE.sub("<p>", html)
        return _DIV_CLOSE_RE.sub("</p>", html)
    html = _DIV_OPEN_RE.sub("", html)
    return _DIV_CLOSE_RE.sub("<br>", html)


def _parse_attributes(raw: str) -> dict:
    attrs = {}
    for name, double, single, bare in _ATTR_RE.findall(raw):
        attrs[name.lower()] = (double or single or bare).strip()
    return attrs


def _font_styles(raw_attrs: str) -> List[str]:
    attrs = _parse_attributes(raw_attrs)
    styles: List[str] = []
    style = attrs.get("style", "")

    color = attrs.get("color") or ""
    style_color = _STYLE_COLOR_RE.search(style)
    if not color and style_color:
        color = style_color.group(1)
    color = color.strip().strip("'\"")
    if color and color.lower() not in DEFAULT_FONT_COLORS:
        styles.append(f"color: {color}")

    background = _BACKGROUND_RE.search(style)
    if background:
        value = background.group(1).strip().strip("'\"")
        if value and value.lower() not in {"transparent", "none"}:
            styles.append(f"background-color: {value}")
    return styles


def _strip_default_font(match: "re.Match[str]") -> str:
    if _font_styles(match.group(1)):
        return match.group(0)
    return "<span>"


def strip_legacy_styling(html: str) -> str:
    """Collapse empty styling tags to a space and neutralise default-only fonts."""

    previous = None
    while previous != html:
        previous = html
        html = _EMPTY_STYLE_TAG_RE.sub(" ", html)
    return _FONT_OPEN_RE.sub(_strip_default_font, html)


def _enclosing_list(html: str, position: int) -> Optional[str]:
    stack: List[str] = []
    for tag in _LIST_TAG_RE.finditer(html, 0, position):
        closing, name = tag.group(1), tag.group(2).lower()
        if not closing:
            stack.append(name)
        elif stack and stack[-1] == name:
            stack.pop()
    return stack[-1] if stack else None


def _indent_item(match: "re.Match[str]") -> str:
    raw = match.group(1)
    classes = _parse_attributes(raw).get("class", "").split()
    levels = [int(m.group(1)) for m in map(_INDENT_CLASS_RE.fullmatch, classes) if m]
    level = levels[0] + 1 if levels else 1
    classes = [cls for cls in classes if not _INDENT_CLASS_RE.fullmatch(cls)]
    classes.append(f"{INDENT_CLASS_PREFIX}{level}")
    others = _CLASS_ATTR_RE.sub("", raw).rstrip()
    return f'<li class="{" ".join(classes)}"{others}>'


def flatten_nested_lists(html: str) -> str:
    """
    Turn ``<li>A</li><ol><li>B</li></ol><li>C</li>`` into sibling items where B
    carries an indent class. Only nested lists of the same kind as the list
    they sit in are flattened; the innermost lists go first so depth adds up.
    """

    while True:
        changed = False
        pieces: List[str] = []
        cursor = 0
        for match in _NESTED_LIST_RE.finditer(html):
            kind = match.group(1).lower()
            if _enclosing_list(html, match.start()) != kind:
                continue
            items = _LI_OPEN_RE.sub(_indent_item, match.group(2))
            pieces.append(html[cursor:match.start()])
            pieces.append("</li>" + items)
            cursor = match.end()
            changed = True
        if not changed:
            return html
        pieces.append(html[cursor:])
        html = "".join(pieces)


def collapse_duplicate_lists(html: str) -> str:
    previous = None
    while previous != html:
        previous = html
        html = _DUPLICATE_OPEN_RE.sub(lambda m: f"<{m.group(1)}{m.group(2)}>", html)
        html = _DUPLICATE_CLOSE_RE.sub(lambda m: f"</{m.group(1)}>", html)
    return html


def _font_to_span(match: "re.Match[str]") -> str:
    styles = _font_styles(match.group(1))
    if not styles:
        return "<span>"
    return f'<span style="{"; ".join(styles)}">'


def convert_font_tags(html: str) -> str:
    html = _FONT_OPEN_RE.sub(_font_to_span, html)
    return _FONT_CLOSE_RE.sub("</span>", html)


def normalize_nbsp(html: str, nbsp_mode: str = "break") -> str:
    if nbsp_mode == "strip":
        return _NBSP_RE.sub("", html)
    return _NBSP_RUN_RE.sub("<br>", html)


def build_passes(options: CanonicalizeOptions) -> List[Tuple[str, Callable[[str], str]]]:
    """Return the ordered (name, pass) pairs for one canonicalisation round."""

    return [
        ("strip_carriage_returns", strip_carriage_returns),
        ("collapse_whitespace", collapse_whitespace),
        ("normalize_blocks", lambda html: normalize_blocks(html, options.div_mode)),
        ("strip_legacy_styling", strip_legacy_styling),
        ("flatten_nested_lists", flatten_nested_lists),
        ("collapse_duplicate_lists", collapse_duplicate_lists),
        ("convert_font_tags", convert_font_tags),
        ("normalize_nbsp", lambda html: normalize_nbsp(html, options.nbsp_mode)),
    ]


def canonicalize(raw_html: Optional[str], options: Optional[CanonicalizeOptions] = None) -> str:
    """
    Run every pass in order, repeating the sequence until the markup is stable.

    Never raises on odd markup; anything the passes do not recognise is left
    alone. Because the result is a fixed point of the pass sequence, running
    it again returns the same string.
    """

    if not raw_html:
        return ""
    passes = build_passes(options or DEFAULT_OPTIONS)
    html = raw_html
    for _ in range(MAX_ROUNDS):
        previous = html
        for _name, step in passes:
            html = step(html)
        if html == previous:
            break
    return html
