import json

import pytest

from tonaudit.app.errors import ExtractionError, MalformedPayloadError
from tonaudit.app.synthesis.extraction import (
    EXTRACTION_EXCERPT_CHARS,
    MALFORMED_EXCERPT_CHARS,
    escape_string_controls,
    extract_payload,
    locate_candidate,
)


# ---------------------------------------------------------------------------
# Locate
# ---------------------------------------------------------------------------

def test_payload_is_recovered_from_surrounding_prose_and_fences():
    buffer = (
        "Sure! Here is the audit:\n"
        "```json\n"
        '{"summary": "ok", "findings": []}\n'
        "```\n"
        "Let me know if you need anything else."
    )

    assert extract_payload(buffer) == {"summary": "ok", "findings": []}


def test_candidate_spans_first_open_to_last_close_brace():
    buffer = 'noise {"a": {"b": 1}} trailing } text'

    assert locate_candidate(buffer) == '{"a": {"b": 1}} trailing }'


def test_buffer_without_braces_raises_extraction_error():
    buffer = "I could not audit this contract. " * 20

    with pytest.raises(ExtractionError) as exc_info:
        extract_payload(buffer)

    assert exc_info.value.raw_excerpt == buffer[:EXTRACTION_EXCERPT_CHARS]
    assert len(exc_info.value.raw_excerpt) == EXTRACTION_EXCERPT_CHARS


def test_closing_brace_before_opening_brace_raises_extraction_error():
    with pytest.raises(ExtractionError):
        extract_payload("} nothing useful {")


# ---------------------------------------------------------------------------
# Escape inside string literals
# ---------------------------------------------------------------------------

def test_literal_newlines_inside_strings_are_preserved_as_newlines():
    buffer = '{"summary": "line one\nline two\ttabbed"}'

    parsed = extract_payload(buffer)

    assert parsed["summary"] == "line one\nline two\ttabbed"


def test_whitespace_between_tokens_is_left_alone():
    buffer = '{\n  "score": 72,\n\t"summary": "fine"\n}'

    assert extract_payload(buffer) == {"score": 72, "summary": "fine"}


def test_escaped_quotes_do_not_end_the_string_literal():
    buffer = '{"title": "uses \\"bounce\\" flag\nwrongly"}'

    parsed = extract_payload(buffer)

    assert parsed["title"] == 'uses "bounce" flag\nwrongly'


def test_escaping_string_controls_is_idempotent():
    candidate = '{"a": "x\ny\r\nz\t", "b": ["p\nq"]}'

    once = escape_string_controls(candidate)

    assert escape_string_controls(once) == once
    assert "\n" not in once


# ---------------------------------------------------------------------------
# Cleanup fallback and failure
# ---------------------------------------------------------------------------

def test_other_control_characters_are_stripped_on_retry():
    buffer = '{"summary": "bad\x01char", "score": 10}'

    parsed = extract_payload(buffer)

    assert parsed == {"summary": "badchar", "score": 10}


def test_unparseable_candidate_raises_malformed_payload_with_excerpt():
    buffer = "Result: {\"findings\": [1, 2} " + "x" * 800

    with pytest.raises(MalformedPayloadError) as exc_info:
        extract_payload(buffer)

    assert exc_info.value.raw_excerpt == buffer[:MALFORMED_EXCERPT_CHARS]
    assert "JSON parse failed" in str(exc_info.value)


def test_nesting_too_deep_for_the_parser_is_malformed():
    buffer = '{"findings": ' + "[" * 100_000 + "]" * 100_000 + "}"

    with pytest.raises(MalformedPayloadError) as exc_info:
        extract_payload(buffer)

    assert exc_info.value.raw_excerpt == buffer[:MALFORMED_EXCERPT_CHARS]


# ---------------------------------------------------------------------------
# Strict JSON passes through unchanged
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "text",
    [
        "{}",
        '{"score": 42}',
        json.dumps({"findings": [{"title": "a", "description": "b"}]}, indent=2),
        json.dumps({"summary": "line one\nline two\ttabbed"}),
        json.dumps({"summary": "Überweisung an 💎 wallet"}, ensure_ascii=False),
        json.dumps({"summary": "braces } and { inside", "nested": {"deep": {"x": [1, 2.5, None, True]}}}),
        json.dumps({"codeSnippet": 'throw_unless(401, equal_slices(sender, "owner"));'}),
    ],
)
def test_strict_json_is_parsed_exactly_as_the_json_module_would(text):
    assert extract_payload(text) == json.loads(text)
