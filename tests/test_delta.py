import json

import pytest

from formulary_migrate.delta import (
    QC_HEADING,
    Delta,
    Operation,
    error_document,
    missing_document,
    postprocess,
)

HASH = "9089504298f77ee549a5208b987def0cd0ea46d5afcc90d34e485506bd77756a"


def delta(*ops):
    return Delta(ops=[op if isinstance(op, Operation) else Operation(insert=op) for op in ops])


def inserts(doc):
    return [op.insert for op in doc.ops]


def test_strips_one_leading_and_all_trailing_boundary_newlines():
    assert inserts(postprocess(delta("\nHello\n", "\n"))) == ["Hello\n"]
    assert inserts(postprocess(delta("Hello\n\n"))) == ["Hello"]


def test_document_of_only_newlines_becomes_empty():
    assert postprocess(delta("\n")).ops == []


def test_attributed_final_newline_is_kept():
    doc = delta("A", Operation(insert="\n", attributes={"list": "bullet"}))
    assert postprocess(doc) == doc


def test_compiled_paragraphs_lose_the_closing_newline():
    result = postprocess(delta("Step 1.\n", "Step 2.\n", "\n"))
    assert inserts(result) == ["Step 1.\n", "Step 2.\n"]


def test_legacy_trim_only_drops_newline_ops_and_warns():
    with pytest.warns(DeprecationWarning):
        result = postprocess(delta("Hello\n\n"), legacy_trim=True)
    assert inserts(result) == ["Hello\n\n"]
    with pytest.warns(DeprecationWarning):
        result = postprocess(delta("Hello\n", "\n"), legacy_trim=True)
    assert inserts(result) == ["Hello\n"]


def test_empty_unattributed_ops_are_pruned():
    doc = delta("", "x\n", Operation(insert="", attributes={"bold": True}))
    result = postprocess(doc)
    assert result.ops == [Operation(insert="x\n"), Operation(insert="", attributes={"bold": True})]


def test_image_splice_appends_heading_and_embed():
    result = postprocess(delta("Step 1.\n", "Step 2.\n", "\n"), image_hash=HASH)
    assert len(result.ops) == 4
    heading, image = result.ops[-2:]
    assert heading == Operation(insert=QC_HEADING + "\n", attributes={"color": "#c0504d"})
    assert image.insert == {
        "image": {"hash": HASH, "src": "", "width": "750", "height": "auto", "style": "margin: 5px;"}
    }
    assert image.attributes == {}


def test_image_heading_starts_a_new_line_after_text():
    result = postprocess(delta("Hello\n\n"), image_hash=HASH)
    assert result.ops[1].insert == "\n" + QC_HEADING + "\n"


def test_postprocess_does_not_modify_input():
    doc = delta("\nHello\n", "\n")
    postprocess(doc, image_hash=HASH)
    assert inserts(doc) == ["\nHello\n", "\n"]


def test_json_is_compact_and_keeps_unicode():
    doc = Delta(ops=[Operation(insert="5 µg\n", attributes={"bold": True})])
    text = doc.to_json()
    assert text == '{"ops":[{"insert":"5 µg\\n","attributes":{"bold":true}}]}'
    assert Delta.from_json(text) == doc


def test_from_dict_rejects_documents_without_ops():
    with pytest.raises(ValueError):
        Delta.from_dict({"insert": "x"})
    with pytest.raises(ValueError):
        Delta.from_dict({"ops": [{"retain": 3}]})


def test_placeholder_documents():
    assert json.loads(missing_document("procedure")) == {"ops": [{"insert": "No procedure provided\n"}]}
    assert json.loads(error_document("quality review")) == {
        "ops": [{"insert": "Error processing quality review\n"}]
    }
