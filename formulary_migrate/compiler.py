"""
HTML -> delta compiler.

This is a port of the Quill 1.3.7 clipboard conversion (the code path Quill runs
when an editor is created over existing HTML) on top of a BeautifulSoup tree.
The traversal and matcher order follow the editor, so list, indent and
whitespace behaviour match what the web app produces when it loads the same
HTML.

Each :meth:`RichTextCompiler.compile` call runs in a freshly spawned process by
default and is killed if it exceeds the configured timeout.
"""

from __future__ import annotations

import logging
import multiprocessing
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction

from .delta import Delta

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
TRAILING_PARAGRAPH = "<p><br></p>"

LINE_TAGS = frozenset(
    {
        "address", "article", "blockquote", "canvas", "dd", "div", "dl", "dt",
        "fieldset", "figcaption", "figure", "footer", "form", "h1", "h2", "h3",
        "h4", "h5", "h6", "header", "iframe", "li", "main", "nav", "ol", "output",
        "p", "pre", "section", "table", "td", "tr", "ul", "video",
    }
)
BLOCK_FORMATS = frozenset({"list", "indent", "header", "blockquote", "code-block", "align", "direction"})
IGNORED_TAGS = frozenset({"style", "script", "head", "title", "template"})
SKIPPED_STRINGS = (Comment, CData, ProcessingInstruction, Declaration, Doctype)

INLINE_TAG_FORMATS: Dict[str, Dict[str, Any]] = {
    "b": {"bold": True},
    "strong": {"bold": True},
    "i": {"italic": True},
    "em": {"italic": True},
    "u": {"underline": True},
    "s": {"strike": True},
    "strike": {"strike": True},
    "code": {"code": True},
    "sub": {"script": "sub"},
    "sup": {"script": "super"},
    "blockquote": {"blockquote": True},
    "pre": {"code-block": True},
    "ol": {"list": "ordered"},
    "ul": {"list": "bullet"},
}
HEADER_TAGS = {f"h{level}": level for level in range(1, 7)}
ALIGN_VALUES = frozenset({"center", "right", "justify"})
LINK_PROTOCOLS = ("http", "https", "mailto", "tel")
IMAGE_PROTOCOLS = ("http", "https", "data")

_WHITESPACE_RUN_RE = re.compile(r"\s\s+")
_LEADING_WS_RE = re.compile(r"^\s+")
_TRAILING_WS_RE = re.compile(r"\s+$")
_NON_NBSP_RE = re.compile(r"[^ ]")
_INDENT_CLASS_RE = re.compile(r"^ql-indent-(\d+)$")
_ALIGN_CLASS_RE = re.compile(r"^ql-align-(\w+)$")
_HEX_SHORT_RE = re.compile(r"^#([0-9a-f])([0-9a-f])([0-9a-f])$", re.IGNORECASE)
_RGB_RE = re.compile(r"^rgba?\(([^)]*)\)$", re.IGNORECASE)
_PROTOCOL_RE = re.compile(r"^([a-z][a-z0-9+.-]*):", re.IGNORECASE)
_INDENT_LENGTH_RE = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)")


class CompilationError(RuntimeError):
    """Raised when HTML cannot be turned into a delta."""


# ----------------------------------------------------------------------------
# Delta building helpers (Quill's Delta.push / concat semantics)
# ----------------------------------------------------------------------------


def _push(ops: List[Dict[str, Any]], insert: Any, attributes: Optional[Dict[str, Any]] = None) -> None:
    if isinstance(insert, str) and not insert:
        return
    attributes = {k: v for k, v in (attributes or {}).items() if v is not None and v is not False}
    if ops and isinstance(insert, str):
        last = ops[-1]
        if isinstance(last["insert"], str) and last.get("attributes", {}) == attributes:
            last["insert"] += insert
            return
    op: Dict[str, Any] = {"insert": insert}
    if attributes:
        op["attributes"] = attributes
    ops.append(op)


def _concat(ops: List[Dict[str, Any]], other: List[Dict[str, Any]]) -> None:
    for op in other:
        _push(ops, op["insert"], op.get("attributes"))


def _ends_with(ops: List[Dict[str, Any]], text: str) -> bool:
    tail = ""
    for op in reversed(ops):
        if len(tail) >= len(text):
            break
        if not isinstance(op["insert"], str):
            break
        tail = op["insert"] + tail
    return tail[-len(text):] == text


def _apply_formats(ops: List[Dict[str, Any]], formats: Dict[str, Any]) -> List[Dict[str, Any]]:
    formats = {k: v for k, v in formats.items() if v is not None}
    if not formats:
        return ops
    result: List[Dict[str, Any]] = []
    for op in ops:
        attributes = dict(op.get("attributes") or {})
        for name, value in formats.items():
            attributes.setdefault(name, value)
        _push(result, op["insert"], attributes)
    return result


# ----------------------------------------------------------------------------
# Matchers
# ----------------------------------------------------------------------------


def _is_line(node: Any) -> bool:
    return isinstance(node, Tag) and node.name in LINE_TAGS


def _is_preformatted(node: Any) -> bool:
    while isinstance(node, Tag):
        if node.name == "pre" or "white-space: pre" in (node.get("style") or "").lower():
            return True
        node = node.parent
    return False


def _collapse(match: "re.Match[str]", collapse: bool) -> str:
    kept = _NON_NBSP_RE.sub("", match.group(0))
    return " " if collapse and not kept else kept


def _match_text(node: NavigableString) -> List[Dict[str, Any]]:
    text = str(node)
    parent = node.parent
    if isinstance(parent, Tag) and parent.name == "o:p":
        return [{"insert": text.strip()}] if text.strip() else []
    if not _is_preformatted(parent):
        text = text.replace("\r\n", " ").replace("\n", " ")
        text = _WHITESPACE_RUN_RE.sub(lambda m: _collapse(m, True), text)
        previous, following = node.previous_sibling, node.next_sibling
        if (previous is None and _is_line(parent)) or (previous is not None and _is_line(previous)):
            text = _LEADING_WS_RE.sub(lambda m: _collapse(m, False), text)
        if (following is None and _is_line(parent)) or (following is not None and _is_line(following)):
            text = _TRAILING_WS_RE.sub(lambda m: _collapse(m, False), text)
    return [{"insert": text}] if text else []


def _match_newline(node: Any, ops: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not _ends_with(ops, "\n"):
        following = node.next_sibling
        if _is_line(node) or (ops and following is not None and _is_line(following)):
            _push(ops, "\n")
    return ops


def _sanitize_url(url: str, protocols: tuple, fallback: str) -> str:
    url = url.strip()
    protocol = _PROTOCOL_RE.match(url)
    if protocol and protocol.group(1).lower() not in protocols:
        return fallback
    return url


def _match_blot(node: Tag, ops: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    name = node.name
    if name == "img":
        src = node.get("src")
        if not src:
            return ops
        attributes = {key: node.get(key) for key in ("alt", "height", "width") if node.get(key)}
        embed: List[Dict[str, Any]] = []
        _push(embed, {"image": _sanitize_url(src, IMAGE_PROTOCOLS, "//:0")}, attributes)
        return embed
    if name in HEADER_TAGS:
        return _apply_formats(ops, {"header": HEADER_TAGS[name]})
    if name == "a" and node.get("href"):
        return _apply_formats(ops, {"link": _sanitize_url(node["href"], LINK_PROTOCOLS, "about:blank")})
    if name in INLINE_TAG_FORMATS:
        return _apply_formats(ops, INLINE_TAG_FORMATS[name])
    return ops


def normalize_color(value: str) -> Optional[str]:
    """Browsers report colours as rgb(); the editor turns those into lowercase hex."""

    value = value.strip().strip("'\"").lower()
    if not value or value in {"inherit", "initial", "transparent"}:
        return None
    short = _HEX_SHORT_RE.match(value)
    if short:
        return "#" + "".join(c * 2 for c in short.groups())
    rgb = _RGB_RE.match(value)
    if rgb:
        parts = [p.strip() for p in rgb.group(1).split(",")][:3]
        try:
            return "#" + "".join(f"{max(0, min(255, int(float(p)))):02x}" for p in parts)
        except ValueError:
            return None
    return value


def _parse_style(node: Tag) -> Dict[str, str]:
    declarations: Dict[str, str] = {}
    for chunk in (node.get("style") or "").split(";"):
        if ":" not in chunk:
            continue
        key, value = chunk.split(":", 1)
        declarations[key.strip().lower()] = value.strip()
    return declarations


def _match_attributor(node: Tag, ops: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    formats: Dict[str, Any] = {}
    for cls in node.get("class") or []:
        indent = _INDENT_CLASS_RE.match(cls)
        if indent and 1 <= int(indent.group(1)) <= 8:
            formats["indent"] = int(indent.group(1))
        align = _ALIGN_CLASS_RE.match(cls)
        if align and align.group(1) in ALIGN_VALUES:
            formats["align"] = align.group(1)
    style = _parse_style(node)
    if style.get("color"):
        formats["color"] = normalize_color(style["color"])
    background = style.get("background-color") or style.get("background")
    if background:
        formats["background"] = normalize_color(background)
    if style.get("text-align", "").lower() in ALIGN_VALUES:
        formats["align"] = style["text-align"].lower()
    if (node.get("dir") or style.get("direction", "")).lower() == "rtl":
        formats["direction"] = "rtl"
    return _apply_formats(ops, formats)


def _match_styles(node: Tag, ops: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    style = _parse_style(node)
    formats: Dict[str, Any] = {}
    if style.get("font-style", "").lower() == "italic":
        formats["italic"] = True
    weight = style.get("font-weight", "").lower()
    if weight.startswith("bold") or (weight.isdigit() and int(weight) >= 700):
        formats["bold"] = True
    ops = _apply_formats(ops, formats)
    indent = style.get("text-indent", "")
    match = _INDENT_LENGTH_RE.match(indent)
    if match and float(match.group(1)) > 0:
        prefixed: List[Dict[str, Any]] = [{"insert": "\t"}]
        _concat(prefixed, ops)
        return prefixed
    return ops


def _match_break(ops: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not _ends_with(ops, "\n"):
        _push(ops, "\n")
    return ops


def _match_indent(node: Tag, ops: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not _ends_with(ops, "\n"):
        return ops
    indent = -1
    parent = node.parent
    while isinstance(parent, Tag) and not isinstance(parent, BeautifulSoup):
        if parent.name in ("ol", "ul"):
            indent += 1
        parent = parent.parent
    if indent <= 0:
        return ops
    last = ops[-1]
    if last["insert"] == "\n":
        last.setdefault("attributes", {})["indent"] = indent
        return ops
    head = dict(last, insert=last["insert"][:-1])
    tail = {"insert": "\n", "attributes": dict(last.get("attributes") or {}, indent=indent)}
    return ops[:-1] + [head, tail]


def _convert_element(node: Tag) -> List[Dict[str, Any]]:
    if node.name in IGNORED_TAGS:
        return []
    ops = _traverse(node)
    ops = _match_newline(node, ops)
    ops = _match_blot(node, ops)
    ops = _match_attributor(node, ops)
    ops = _match_styles(node, ops)
    if node.name == "br":
        ops = _match_break(ops)
    elif node.name == "li":
        ops = _match_indent(node, ops)
    return ops


def _traverse(node: Tag) -> List[Dict[str, Any]]:
    ops: List[Dict[str, Any]] = []
    for child in node.children:
        if isinstance(child, SKIPPED_STRINGS):
            continue
        if isinstance(child, NavigableString):
            child_ops = _match_newline(child, _match_text(child))
        elif isinstance(child, Tag):
            child_ops = _convert_element(child)
        else:
            continue
        _concat(ops, child_ops)
    return ops


# ----------------------------------------------------------------------------
# Document normalisation
# ----------------------------------------------------------------------------


def _split_formats(attributes: Dict[str, Any]):
    block = {k: v for k, v in attributes.items() if k in BLOCK_FORMATS}
    inline = {k: v for k, v in attributes.items() if k not in BLOCK_FORMATS}
    return block, inline


def _append_line_op(ops: List[Dict[str, Any]], insert: Any, attributes: Dict[str, Any]) -> None:
    """Like _push, but a newline always closes its operation."""

    if isinstance(insert, str) and not insert:
        return
    if ops and isinstance(insert, str):
        last = ops[-1]
        if (
            isinstance(last["insert"], str)
            and not last["insert"].endswith("\n")
            and last.get("attributes", {}) == attributes
        ):
            last["insert"] += insert
            return
    op: Dict[str, Any] = {"insert": insert}
    if attributes:
        op["attributes"] = attributes
    ops.append(op)


def to_document(clipboard_ops: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Apply the editor's document model to clipboard output: block formats only
    on newlines, inline formats never on newlines, one op per line segment and a
    closing newline at the end.
    """

    pending: List[tuple] = []
    document: List[Dict[str, Any]] = []

    def flush(newline_block: Dict[str, Any]) -> None:
        for insert, inline in pending:
            _append_line_op(document, insert, inline)
        _append_line_op(document, "\n", newline_block)
        pending.clear()

    for op in clipboard_ops:
        block, inline = _split_formats(op.get("attributes") or {})
        insert = op["insert"]
        if not isinstance(insert, str):
            pending.append((insert, inline))
            continue
        segments = insert.split("\n")
        for position, segment in enumerate(segments):
            if segment:
                pending.append((segment, inline))
            if position < len(segments) - 1:
                flush(block)
    if pending or not document:
        flush({})
    return document


def html_to_document(html: str) -> Dict[str, Any]:
    """Compile HTML the way the editor does when it is created over that HTML."""

    soup = BeautifulSoup((html or "") + TRAILING_PARAGRAPH, "html.parser")
    return {"ops": to_document(_traverse(soup))}


def _compile_worker(html: str, connection) -> None:
    try:
        connection.send(("ok", html_to_document(html)))
    except Exception as exc:  # reported back to the parent as a CompilationError
        connection.send(("error", f"{type(exc).__name__}: {exc}"))
    finally:
        connection.close()


def extract_document(payload: Any) -> Delta:
    if not isinstance(payload, dict) or not isinstance(payload.get("ops"), list):
        raise CompilationError("Compiler result has no 'ops' field")
    if not payload["ops"]:
        raise CompilationError("Compiler result has no operations")
    return Delta.from_dict(payload)


class RichTextCompiler:
    """
    Compile canonical HTML into a :class:`Delta`.

    With ``isolated=True`` each call gets its own spawned process, which is
    always terminated before the call returns, on success, failure or timeout.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, isolated: bool = True) -> None:
        self.timeout = timeout
        self.isolated = isolated
        self._context = multiprocessing.get_context("spawn")

    def compile(self, canonical_html: str) -> Delta:
        if self.isolated:
            payload = self._compile_isolated(canonical_html)
        else:
            try:
                payload = html_to_document(canonical_html)
            except Exception as exc:
                raise CompilationError(f"{type(exc).__name__}: {exc}") from exc
        return extract_document(payload)

    def _compile_isolated(self, html: str) -> Dict[str, Any]:
        receiver, sender = self._context.Pipe(duplex=False)
        process = self._context.Process(target=_compile_worker, args=(html, sender), daemon=True)
        started = False
        try:
            try:
                process.start()
                started = True
            except OSError as exc:
                raise CompilationError(f"Could not start compiler process: {exc}") from exc
            finally:
                sender.close()
            if not receiver.poll(self.timeout):
                raise CompilationError(f"Compilation timed out after {self.timeout:g}s")
            try:
                status, payload = receiver.recv()
            except EOFError as exc:
                raise CompilationError("Compiler process exited without a result") from exc
        finally:
            receiver.close()
            if started:
                if process.is_alive():
                    LOGGER.debug("Terminating compiler process %s", process.pid)
                    process.terminate()
                process.join(timeout=5)
        if status != "ok":
            raise CompilationError(str(payload))
        return payload
