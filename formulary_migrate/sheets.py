from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Union

import pandas as pd

LOGGER = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


def clean_cell(value: Any) -> Any:
    if value is None or value == "" or (isinstance(value, float) and pd.isna(value)):
        return None
    return value


def _excel_source(source: Any) -> Any:
    """Uploaded files and raw bytes are read from a rewound BytesIO."""

    if hasattr(source, "getvalue"):
        source = source.getvalue()
    if isinstance(source, (bytes, bytearray)):
        return BytesIO(source)
    return source


def _frame_to_rows(df: pd.DataFrame) -> List[Dict[str, Any]]:
    df.columns = [str(column) for column in df.columns]
    return [{key: clean_cell(value) for key, value in record.items()} for record in df.to_dict(orient="records")]


def read_rows(source: Union[Path, str, bytes, Any], sheet_name: Union[str, int, None] = 0) -> List[Dict[str, Any]]:
    """
    Read one sheet as a list of row dicts keyed by the header row.

    Every cell is read as text so identifiers such as "999" or "0.9%" are not
    reinterpreted; empty cells become None. ``source`` is a path to an Excel or
    CSV file, or the bytes of an uploaded workbook.
    """

    sheet_name = 0 if sheet_name is None else sheet_name
    if not isinstance(source, (str, Path)):
        df = pd.read_excel(_excel_source(source), sheet_name=sheet_name, dtype=str, keep_default_na=False)
        return _frame_to_rows(df)

    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Input spreadsheet not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    elif suffix in EXCEL_SUFFIXES:
        df = pd.read_excel(path, sheet_name=sheet_name, dtype=str, keep_default_na=False)
    else:
        raise ValueError(f"Unsupported spreadsheet type '{suffix}' for {path}")

    rows = _frame_to_rows(df)
    LOGGER.info("Read %d row(s) from %s", len(rows), path)
    return rows
