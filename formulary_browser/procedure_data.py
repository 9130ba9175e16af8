"""
Helpers behind the procedure preview page.

Kept free of Streamlit so the stage-by-stage conversion can be exercised
without a running app.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from formulary_migrate.builder_chemo import remove_final_appearance
from formulary_migrate.canonicalize import CanonicalizeOptions, canonicalize
from formulary_migrate.compiler import CompilationError, RichTextCompiler
from formulary_migrate.delta import Delta, postprocess
from formulary_migrate.image_hashes import resolve_image_hash
from formulary_migrate.sheets import read_rows

PROCEDURE_COLUMNS: Dict[str, str] = {
    "adult": "Procedure HTML",
    "neonatal": "Procedure HTML",
    "chemo": "Procedures",
}
NAME_COLUMNS: Dict[str, str] = {
    "adult": "Product Name",
    "neonatal": "Product Name",
    "chemo": "GenericName",
}
PICTURE_COLUMN = "Pic"


@dataclass
class ProcedureCell:
    index: int
    name: str
    html: str
    image_hash: Optional[str] = None

    @property
    def label(self) -> str:
        return f"Row {self.index + 1}: {self.name}"


@dataclass
class PreviewStages:
    raw_html: str
    canonical_html: str
    delta: Optional[Delta] = None
    error: Optional[str] = None

    @property
    def delta_json(self) -> str:
        if self.delta is None:
            return ""
        return json.dumps(self.delta.to_dict(), indent=2, ensure_ascii=False)

    @property
    def plain_text(self) -> str:
        return self.delta.plain_text() if self.delta is not None else ""


def procedure_cells(rows: List[Dict[str, Any]], source: str) -> List[ProcedureCell]:
    """Rows of a sheet that carry procedure HTML, ready for a select box."""

    html_column = PROCEDURE_COLUMNS[source]
    name_column = NAME_COLUMNS[source]
    cells: List[ProcedureCell] = []
    for index, row in enumerate(rows):
        html = row.get(html_column)
        if not isinstance(html, str) or not html.strip():
            continue
        image_hash = None
        if source == "chemo":
            html = remove_final_appearance(html)
            image_hash = resolve_image_hash(row.get(PICTURE_COLUMN))
        name = str(row.get(name_column) or "(unnamed)")
        cells.append(ProcedureCell(index=index, name=name, html=html, image_hash=image_hash))
    return cells


def load_procedure_cells(source_file: Any, source: str, sheet_name: Any = 0) -> List[ProcedureCell]:
    return procedure_cells(read_rows(source_file, sheet_name), source)


def preview_html(
    raw_html: str,
    options: Optional[CanonicalizeOptions] = None,
    image_hash: Optional[str] = None,
    compiler: Optional[RichTextCompiler] = None,
) -> PreviewStages:
    """Run each conversion stage and keep the intermediate results."""

    compiler = compiler or RichTextCompiler(isolated=False)
    canonical = canonicalize(raw_html, options)
    stages = PreviewStages(raw_html=raw_html, canonical_html=canonical)
    try:
        stages.delta = postprocess(compiler.compile(canonical), image_hash=image_hash)
    except CompilationError as exc:
        stages.error = str(exc)
    return stages
