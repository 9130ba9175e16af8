"""Delta documents and the post-processing applied before they are stored."""

from __future__ import annotations

import json
import re
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

QC_HEADING = "QUALITY CONTROL PROCEDURES"
QC_HEADING_COLOR = "#c0504d"
IMAGE_WIDTH = "750"
IMAGE_HEIGHT = "auto"
IMAGE_STYLE = "margin: 5px;"

_NEWLINES_ONLY_RE = re.compile(r"^\n+$")
_TRAILING_NEWLINES_RE = re.compile(r"\n+$")


@dataclass
class Operation:
    insert: Union[str, Dict[str, Any]]
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_text(self) -> bool:
        return isinstance(self.insert, str)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"insert": self.insert}
        if self.attributes:
            data["attributes"] = dict(self.attributes)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Operation":
        if not isinstance(data, dict) or "insert" not in data:
            raise ValueError(f"Not an insert operation: {data!r}")
        insert = data["insert"]
        if not isinstance(insert, (str, dict)):
            raise ValueError(f"Unsupported insert payload: {insert!r}")
        return cls(insert=insert, attributes=dict(data.get("attributes") or {}))


@dataclass
class Delta:
    ops: List[Operation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"ops": [op.to_dict() for op in self.ops]}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Delta":
        ops = data.get("ops") if isinstance(data, dict) else None
        if not isinstance(ops, list):
            raise ValueError("Delta document needs an 'ops' list")
        return cls(ops=[Operation.from_dict(op) for op in ops])

    @classmethod
    def from_json(cls, text: str) -> "Delta":
        return cls.from_dict(json.loads(text))

    @classmethod
    def from_text(cls, text: str) -> "Delta":
        return cls(ops=[Operation(insert=text)])

    def copy(self) -> "Delta":
        return Delta(ops=[Operation(insert=op.insert, attributes=dict(op.attributes)) for op in self.ops])

    def plain_text(self) -> str:
        return "".join(op.insert for op in self.ops if op.is_text)

    def ends_with_newline(self) -> bool:
        for op in reversed(self.ops):
            if not op.is_text:
                return False
            if op.insert:
                return op.insert.endswith("\n")
        return True


def placeholder_document(message: str) -> str:
    return Delta.from_text(message + "\n").to_json()


def missing_document(label: str) -> str:
    return placeholder_document(f"No {label} provided")


def error_document(label: str) -> str:
    return placeholder_document(f"Error processing {label}")


def build_image_ops(image_hash: str, after_newline: bool = True) -> List[Operation]:
    """The quality-control heading and image embed appended to procedures."""

    heading = QC_HEADING + "\n"
    if not after_newline:
        heading = "\n" + heading
    image = {
        "image": {
            "hash": image_hash,
            "src": "",
            "width": IMAGE_WIDTH,
            "height": IMAGE_HEIGHT,
            "style": IMAGE_STYLE,
        }
    }
    return [
        Operation(insert=heading, attributes={"color": QC_HEADING_COLOR}),
        Operation(insert=image),
    ]


def _strip_leading_newline(ops: List[Operation]) -> None:
    if ops and ops[0].is_text and ops[0].insert.startswith("\n"):
        ops[0].insert = ops[0].insert[1:]


def _trim_trailing(ops: List[Operation]) -> None:
    if not ops or not ops[-1].is_text:
        return
    last = ops[-1]
    if _NEWLINES_ONLY_RE.match(last.insert):
        # A newline with attributes ends a list or header line.
        if not last.attributes:
            ops.pop()
        return
    last.insert = _TRAILING_NEWLINES_RE.sub("", last.insert)


def _trim_trailing_legacy(ops: List[Operation]) -> None:
    if ops and ops[-1].is_text and _NEWLINES_ONLY_RE.match(ops[-1].insert):
        ops.pop()


def _prune_empty(ops: List[Operation]) -> List[Operation]:
    return [op for op in ops if not (op.is_text and not op.insert and not op.attributes)]


def postprocess(doc: Delta, image_hash: Optional[str] = None, legacy_trim: bool = False) -> Delta:
    """
    Remove the compiler's boundary artifacts and optionally append the
    quality-control image.

    The first op loses one leading newline. The last op is dropped when it is a
    bare run of newlines, otherwise its trailing newlines are stripped. A bare
    newline op that carries attributes (a list or header line end) is kept
    whole as ``"\\n"`` rather than emptied, so its block format survives. With
    ``legacy_trim`` the older rule is used instead, which only ever drops a
    final all-newline op. The input delta is not modified.
    """

    result = doc.copy()
    _strip_leading_newline(result.ops)
    if legacy_trim:
        warnings.warn(
            "legacy_trim is deprecated; the default trailing trim also strips newlines from text",
            DeprecationWarning,
            stacklevel=2,
        )
        _trim_trailing_legacy(result.ops)
    else:
        _trim_trailing(result.ops)
    result.ops = _prune_empty(result.ops)
    if image_hash:
        result.ops.extend(build_image_ops(image_hash, after_newline=result.ends_with_newline()))
    return result
