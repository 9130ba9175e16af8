import pytest

from formulary_migrate.canonicalize import (
    CanonicalizeOptions,
    canonicalize,
    collapse_duplicate_lists,
    collapse_whitespace,
    convert_font_tags,
    flatten_nested_lists,
    normalize_blocks,
    normalize_nbsp,
    strip_carriage_returns,
    strip_legacy_styling,
)

PARAGRAPHS = CanonicalizeOptions(div_mode="paragraph")

SAMPLES = [
    "",
    "plain text",
    "<div>Step 1.</div>\n<div>Step 2.</div>",
    "<ol><li>A</li><ol><li>B</li></ol><li>C</li></ol>",
    "<ul><ul><li>x</li></ul></ul>",
    "<ul>\n  <li>A</li>\n  <ul><li>B</li><ul><li>C</li></ul></ul>\n  <li>D</li>\n</ul>",
    'a<font color="#ff0000"></font>b <font face="Arial">c</font>',
    '<div><font color="#1f497d" style="BACKGROUND-COLOR: yellow">Warning</font>&nbsp;&nbsp;text</div>',
    "<blockquote><div>Quoted _x000D_\nline</div></blockquote>",
    "<p><b>bold</b> <i>italic</i>&nbsp;<u></u></p>",
    "<ol><li>unclosed<ol><li>broken</ol>",
    "<<>>&nbsp;<font",
]


def test_strip_carriage_returns_removes_every_token():
    assert strip_carriage_returns("a_x000D_b_x000D_") == "ab"


def test_collapse_whitespace_keeps_inline_word_boundaries():
    assert collapse_whitespace("<p>a</p>\n  <p>b</p>") == "<p>a</p><p>b</p>"
    assert collapse_whitespace("<b>x</b>  <i>y</i>") == "<b>x</b> <i>y</i>"
    assert collapse_whitespace("line one\nline two") == "line one line two"


def test_normalize_blocks_div_modes():
    html = "<blockquote><div>a</div><div class='x'>b</div></blockquote>"
    assert normalize_blocks(html, "strip") == "a<br>b<br>"
    assert normalize_blocks(html, "paragraph") == "<p>a</p><p>b</p>"


def test_strip_legacy_styling_collapses_empty_tags_to_space():
    assert strip_legacy_styling('a<font color="red"></font>b') == "a b"
    assert strip_legacy_styling("a<b><i> </i></b>b") == "a b"


def test_strip_legacy_styling_neutralises_default_fonts():
    html = '<font face="Calibri" color="#000000">x</font><font color="#ff0000">y</font>'
    assert strip_legacy_styling(html) == '<span>x</font><font color="#ff0000">y</font>'


def test_flatten_nested_ordered_list():
    result = flatten_nested_lists("<ol><li>A</li><ol><li>B</li></ol><li>C</li></ol>")
    assert result == '<ol><li>A</li><li class="ql-indent-1">B</li><li>C</li></ol>'
    assert result.count("<ol") == 1


def test_flatten_nested_unordered_list_at_end_of_outer_list():
    result = flatten_nested_lists("<ul><li>A</li><ul><li>B</li><li>C</li></ul></ul>")
    assert result == '<ul><li>A</li><li class="ql-indent-1">B</li><li class="ql-indent-1">C</li></ul>'


def test_flatten_keeps_depth_of_deeper_nesting():
    html = "<ul><li>A</li><ul><li>B</li><ul><li>C</li></ul></ul><li>D</li></ul>"
    assert flatten_nested_lists(html) == (
        '<ul><li>A</li><li class="ql-indent-1">B</li><li class="ql-indent-2">C</li><li>D</li></ul>'
    )


def test_flatten_keeps_other_item_attributes():
    html = '<ol><li>A</li><ol><li style="color: red" class="ql-align-center">B</li></ol></ol>'
    assert flatten_nested_lists(html) == (
        '<ol><li>A</li><li class="ql-align-center ql-indent-1" style="color: red">B</li></ol>'
    )


def test_canonicalize_strip_mode_keeps_line_boundaries():
    assert canonicalize("<div>Step 1.</div><div>Step 2.</div>") == "Step 1.<br>Step 2.<br>"


def test_flatten_leaves_mixed_list_kinds_alone():
    html = "<ol><li>A</li><ul><li>B</li></ul><li>C</li></ol>"
    assert flatten_nested_lists(html) == html


def test_collapse_duplicate_lists():
    assert collapse_duplicate_lists("<ul><ul><li>x</li></ul></ul>") == "<ul><li>x</li></ul>"
    assert collapse_duplicate_lists("<ol> <ol><ol><li>x</li></ol></ol></ol>") == "<ol><li>x</li></ol>"


def test_convert_font_tags_to_spans():
    assert convert_font_tags('<font color="#ff0000">red</font>') == '<span style="color: #ff0000">red</span>'
    assert convert_font_tags('<font style="BACKGROUND-COLOR: yellow">hi</font>') == (
        '<span style="background-color: yellow">hi</span>'
    )
    assert convert_font_tags('<font face="Arial">x</font>') == "<span>x</span>"


def test_normalize_nbsp_modes():
    assert normalize_nbsp("a&nbsp;&nbsp; &#160;b", "break") == "a<br>b"
    assert normalize_nbsp("a&nbsp;b", "strip") == "ab"


def test_canonicalize_end_to_end_markup():
    html = '<div><font face="Arial">Dose:</font>&nbsp;<font color="#c00000">10 mg</font></div>\n<div>Next</div>'
    assert canonicalize(html) == '<span>Dose:</span><br><span style="color: #c00000">10 mg</span><br>Next<br>'
    assert canonicalize(html, PARAGRAPHS) == (
        '<p><span>Dose:</span><br><span style="color: #c00000">10 mg</span></p><p>Next</p>'
    )


def test_canonicalize_nested_list_example():
    assert canonicalize("<ol><li>A</li><ol><li>B</li></ol><li>C</li></ol>") == (
        '<ol><li>A</li><li class="ql-indent-1">B</li><li>C</li></ol>'
    )


def test_canonicalize_duplicate_wrapper_example():
    assert canonicalize("<ul><ul><li>x</li></ul></ul>") == "<ul><li>x</li></ul>"


@pytest.mark.parametrize("options", [CanonicalizeOptions(), PARAGRAPHS, CanonicalizeOptions(nbsp_mode="strip")])
@pytest.mark.parametrize("html", SAMPLES)
def test_canonicalize_is_idempotent(html, options):
    once = canonicalize(html, options)
    assert canonicalize(once, options) == once


def test_canonicalize_handles_empty_input():
    assert canonicalize("") == ""
    assert canonicalize(None) == ""


def test_invalid_options_are_rejected():
    with pytest.raises(ValueError):
        CanonicalizeOptions(div_mode="keep")
    with pytest.raises(ValueError):
        CanonicalizeOptions(nbsp_mode="space")
