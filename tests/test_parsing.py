"""Tests for model-output coercion helpers."""

import json

import pytest

from legacy_bridge.stages.parsing import (
    extract_code_blocks,
    extract_data_structures,
    extract_dependencies,
    fix_json_escapes,
    parse_llm_json,
    strip_markdown_code_block,
    try_parse_object,
)


class TestParseLlmJson:
    def test_plain_json(self):
        assert parse_llm_json('{"a": 1}') == {"a": 1}

    def test_fenced_json(self):
        assert parse_llm_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_json_with_commentary(self):
        text = 'Here is the analysis:\n{"program_info": {"name": "PAYROLL"}}\nHope it helps.'
        assert parse_llm_json(text)["program_info"]["name"] == "PAYROLL"

    def test_fenced_block_after_prose(self):
        text = 'Sure.\n```json\n{"b": [1, 2]}\n```\nDone.'
        assert parse_llm_json(text) == {"b": [1, 2]}

    def test_invalid_escapes_repaired(self):
        assert parse_llm_json(r'{"path": "C:\dir"}') == {"path": "C:\\dir"}

    def test_empty_raises(self):
        with pytest.raises(json.JSONDecodeError):
            parse_llm_json("   ")

    def test_garbage_raises(self):
        with pytest.raises(json.JSONDecodeError):
            parse_llm_json("no json here")


def test_try_parse_object_only_returns_dicts():
    assert try_parse_object('{"a": 1}') == {"a": 1}
    assert try_parse_object("[1, 2]") is None
    assert try_parse_object("nothing") is None


def test_strip_markdown_code_block():
    assert strip_markdown_code_block("```\nabc\n```") == "abc"
    assert strip_markdown_code_block("  ```cobol\n  01 X.\n```  ") == "  01 X."
    assert strip_markdown_code_block('```json {"a": 1}```') == '{"a": 1}'
    assert strip_markdown_code_block("plain") == "plain"
    assert strip_markdown_code_block("```\na\n```\nafter") == "```\na\n```\nafter"


def test_fix_json_escapes_keeps_valid_ones():
    assert fix_json_escapes(r"a\nb\"c") == r"a\nb\"c"
    assert fix_json_escapes(r"it\'s") == "it's"
    assert fix_json_escapes(r"C:\dir") == r"C:\\dir"
    assert fix_json_escapes("trailing\\") == "trailing\\"


def test_extract_code_blocks():
    text = "```java\nclass A {}\n```\ntext\n```\nplain\n```"
    assert extract_code_blocks(text) == [("java", "class A {}"), ("", "plain")]


def test_extract_dependencies():
    source = """
           CALL 'TAXCALC' USING WS-PAY.
           CALL "DEDUCT".
           COPY EMPREC.
           CALL 'TAXCALC' USING WS-TAX.
    """
    deps = extract_dependencies(source)
    assert [(d["name"], d["type"]) for d in deps] == [
        ("TAXCALC", "CALL"),
        ("DEDUCT", "CALL"),
        ("EMPREC", "COPY"),
    ]
    assert all(d["location"] == "extracted" for d in deps)


def test_extract_data_structures():
    source = """
       01  EMP-RECORD.
           05 EMP-ID   PIC 9(5).
       01  WS-TOTALS.
    """
    assert [s["name"] for s in extract_data_structures(source)] == ["EMP-RECORD", "WS-TOTALS"]
