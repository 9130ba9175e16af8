import pandas as pd
import pytest

from formulary_migrate.sheets import read_rows


def write_workbook(path, sheets):
    with pd.ExcelWriter(path, engine="xlsxwriter") as writer:
        for name, frame in sheets.items():
            frame.to_excel(writer, sheet_name=name, index=False)


def chemo_frame():
    return pd.DataFrame(
        [
            {"GenericName": "Rituximab", "PageNumber": "999", "Ing1supply": "0.9%", "Pic": ""},
            {"GenericName": "Bortezomib", "PageNumber": "12", "Ing1supply": "3.5 mg", "Pic": None},
        ]
    )


def test_read_rows_keeps_cells_as_text(tmp_path):
    path = tmp_path / "ChemoQuery.xlsx"
    write_workbook(path, {"Query1": chemo_frame()})

    rows = read_rows(path)
    assert rows[0]["PageNumber"] == "999"
    assert rows[0]["Ing1supply"] == "0.9%"
    assert rows[0]["Pic"] is None
    assert rows[1]["Pic"] is None
    assert rows[1]["GenericName"] == "Bortezomib"


def test_read_rows_by_sheet_name(tmp_path):
    path = tmp_path / "adult.xlsx"
    other = pd.DataFrame([{"Product Name": "Acyclovir"}])
    write_workbook(path, {"Notes": pd.DataFrame([{"x": "y"}]), "Formulary": other})
    assert read_rows(path, "Formulary") == [{"Product Name": "Acyclovir"}]


def test_read_rows_from_bytes(tmp_path):
    path = tmp_path / "upload.xlsx"
    write_workbook(path, {"Sheet1": chemo_frame()})
    rows = read_rows(path.read_bytes())
    assert [row["GenericName"] for row in rows] == ["Rituximab", "Bortezomib"]


def test_read_rows_from_csv(tmp_path):
    path = tmp_path / "neonatal.csv"
    path.write_text("Product Name,Modifier\nCaffeine,007\nHeparin,\n", encoding="utf-8")
    assert read_rows(path) == [
        {"Product Name": "Caffeine", "Modifier": "007"},
        {"Product Name": "Heparin", "Modifier": None},
    ]


def test_read_rows_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_rows(tmp_path / "missing.xlsx")
    notes = tmp_path / "notes.txt"
    notes.write_text("hello", encoding="utf-8")
    with pytest.raises(ValueError):
        read_rows(notes)
