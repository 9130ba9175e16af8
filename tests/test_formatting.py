import math

from formulary_migrate.formatting import (
    cell_text,
    format_comma_string_to_array,
    format_newlines_to_array,
    format_text_array,
    remove_newlines,
    safe_get_value,
    split_lines,
)
from formulary_migrate.image_hashes import NON_HAZ_CLEANING, resolve_image_hash


def test_safe_get_value_treats_blank_markers_as_missing():
    assert safe_get_value(None) is None
    assert safe_get_value(math.nan) is None
    assert safe_get_value("N/A") is None
    assert safe_get_value("n/a") == "n/a"
    assert safe_get_value(0) == 0


def test_cell_text_strips():
    assert cell_text("  Vial  ") == "Vial"
    assert cell_text(None) == ""


def test_format_text_array_escapes_and_drops_blanks():
    assert format_text_array(["  Gloves ", "", None, 'Say "hi"', "C:\\temp"]) == (
        '{"Gloves","Say \\"hi\\"","C:\\\\temp"}'
    )
    assert format_text_array([]) == "{}"


def test_format_newlines_to_array():
    value = "Syringe\r\nNeedle\n\n  Alcohol swab  "
    assert format_newlines_to_array(value) == '{"Syringe","Needle","Alcohol swab"}'
    assert format_newlines_to_array(None) == "{}"


def test_reference_arrays_drop_package_inserts():
    value = "Lexicomp, Manufacturer Package Insert, Trissel's"
    assert format_comma_string_to_array(value, is_references=True) == '{"Lexicomp","Trissel\'s"}'
    assert format_comma_string_to_array(value) == '{"Lexicomp","Manufacturer Package Insert","Trissel\'s"}'
    assert format_comma_string_to_array("   ") == "{}"


def test_remove_newlines_and_split_lines():
    assert remove_newlines("Heparin\n 1000  units\r\n") == "Heparin 1000 units"
    assert remove_newlines(None) == ""
    assert split_lines("1. One\r\n\n 2. Two ") == ["1. One", "2. Two"]
    assert split_lines(None) == []


def test_resolve_image_hash():
    path = r"N:\INFPH\MOORESRX\MF Pictures\_final-non-haz-Cleaning.jpg"
    assert resolve_image_hash(path) == NON_HAZ_CLEANING
    assert resolve_image_hash("  " + path.lower() + " ") == NON_HAZ_CLEANING
    assert resolve_image_hash(r"N:\INFPH\other.jpg") is None
    assert resolve_image_hash("") is None
    assert resolve_image_hash(None) is None
