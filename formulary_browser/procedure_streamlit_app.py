from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import streamlit as st

from formulary_browser.procedure_data import (
    PROCEDURE_COLUMNS,
    ProcedureCell,
    load_procedure_cells,
    preview_html,
)
from formulary_migrate.builders import BUILDER_REGISTRY
from formulary_migrate.canonicalize import DIV_MODES, NBSP_MODES, CanonicalizeOptions
from formulary_migrate.compiler import RichTextCompiler


@st.cache_data(show_spinner=False)
def cached_cells(source_file: bytes, source: str) -> List[ProcedureCell]:
    return load_procedure_cells(source_file, source)


def sidebar_options(source: str) -> CanonicalizeOptions:
    default = BUILDER_REGISTRY[source].default_canonicalize
    st.sidebar.subheader("Canonicalisation")
    div_mode = st.sidebar.radio("div tags", DIV_MODES, index=DIV_MODES.index(default.div_mode))
    nbsp_mode = st.sidebar.radio("&nbsp; runs", NBSP_MODES, index=NBSP_MODES.index(default.nbsp_mode))
    return CanonicalizeOptions(div_mode=div_mode, nbsp_mode=nbsp_mode)


def pick_cell(source: str) -> Optional[ProcedureCell]:
    st.sidebar.header("Spreadsheet")
    default_path = st.sidebar.text_input("Workbook path", value="")
    uploaded = st.sidebar.file_uploader("Or upload a workbook", type=["xlsx", "xlsm", "xls"])

    data: Optional[bytes] = None
    if uploaded is not None:
        data = uploaded.getvalue()
    elif default_path and Path(default_path).exists():
        data = Path(default_path).read_bytes()
    if data is None:
        return None

    try:
        cells = cached_cells(data, source)
    except Exception as exc:
        st.sidebar.error(f"Could not read workbook: {exc}")
        return None
    if not cells:
        st.sidebar.warning(f"No rows with a '{PROCEDURE_COLUMNS[source]}' column value.")
        return None
    return st.sidebar.selectbox("Row", cells, format_func=lambda cell: cell.label)


def main() -> None:
    st.set_page_config(page_title="Procedure Preview", layout="wide")
    st.title("Procedure HTML preview")
    st.caption("Canonical HTML, stored delta and plain text for one spreadsheet cell.")

    source = st.sidebar.selectbox("Source", sorted(BUILDER_REGISTRY))
    options = sidebar_options(source)
    isolated = st.sidebar.checkbox("Compile in a separate process", value=False)

    cell = pick_cell(source)
    pasted = st.text_area("Or paste HTML", value="", height=160)
    raw_html = pasted or (cell.html if cell else "")
    if not raw_html:
        st.info("Choose a workbook row or paste HTML to preview it.")
        return

    image_hash = cell.image_hash if cell and not pasted else None
    stages = preview_html(raw_html, options, image_hash=image_hash, compiler=RichTextCompiler(isolated=isolated))

    tabs = st.tabs(["Canonical HTML", "Delta", "Plain text", "Raw HTML"])
    with tabs[0]:
        st.code(stages.canonical_html, language="html")
    with tabs[1]:
        if stages.error:
            st.error(f"Compilation failed: {stages.error}")
        else:
            st.code(stages.delta_json, language="json")
    with tabs[2]:
        st.text(stages.plain_text)
    with tabs[3]:
        st.code(stages.raw_html, language="html")


if __name__ == "__main__":
    main()
