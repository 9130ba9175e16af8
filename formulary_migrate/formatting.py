"""Helpers that turn spreadsheet cell text into column values."""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, List, Optional

PACKAGE_INSERT_MARKER = "Package Insert"
_WHITESPACE_RE = re.compile(r"\s{2,}")
_LINE_BREAK_RE = re.compile(r"[\r\n]+")


def safe_get_value(value: Any) -> Any:
    """Treat blank spreadsheet markers (None, NaN, "N/A") as missing."""

    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str) and value == "N/A":
        return None
    return value


def cell_text(value: Any) -> str:
    value = safe_get_value(value)
    return "" if value is None else str(value).strip()


def _escape_element(item: str) -> str:
    return item.replace("\\", "\\\\").replace('"', '\\"')


def format_text_array(items: Iterable[Optional[str]]) -> str:
    """PostgreSQL array literal, e.g. ``{"a","b"}``; blank elements are dropped."""

    cleaned = [str(item).strip() for item in items if item is not None]
    return "{" + ",".join(f'"{_escape_element(item)}"' for item in cleaned if item) + "}"


def _keep_reference(item: str, is_references: bool) -> bool:
    return not (is_references and PACKAGE_INSERT_MARKER in item)


def format_comma_string_to_array(value: Optional[str], is_references: bool = False) -> str:
    if not isinstance(value, str) or not value.strip():
        return "{}"
    return format_text_array(item for item in value.split(",") if _keep_reference(item, is_references))


def format_newlines_to_array(value: Optional[str], is_references: bool = False) -> str:
    if not isinstance(value, str) or not value.strip():
        return "{}"
    lines = value.replace("\r\n", "\n").split("\n")
    return format_text_array(line for line in lines if _keep_reference(line, is_references))


def remove_newlines(value: Optional[str]) -> str:
    if not isinstance(value, str) or not value:
        return ""
    return _WHITESPACE_RE.sub(" ", _LINE_BREAK_RE.sub(" ", value).strip())


def split_lines(value: Optional[str]) -> List[str]:
    if not isinstance(value, str):
        return []
    return [line.strip() for line in re.split(r"\r?\n", value) if line.strip()]
