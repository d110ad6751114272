import pytest

from backend.core.errors import ErrorKind, ParseFailureError
from backend.core.parsing import parse_structured_text


def test_parses_fenced_reply_with_surrounding_prose():
    text = (
        "Sure! Here is the scenario you asked for:\n"
        "```json\n"
        '{"theorySummary": "Pulp necrosis", "hotspots": [{"x": 10, "y": 20}]}\n'
        "```\n"
        "Let me know if you need anything else {unbalanced"
    )

    data = parse_structured_text(text)

    assert data["theorySummary"] == "Pulp necrosis"
    assert data["hotspots"] == [{"x": 10, "y": 20}]


def test_keeps_nested_braces_between_first_and_last():
    data = parse_structured_text('prefix {"a": {"b": {"c": 1}}} suffix')
    assert data == {"a": {"b": {"c": 1}}}


@pytest.mark.parametrize("text", [None, "", "   \n"])
def test_empty_body_is_a_fatal_parse_failure(text):
    with pytest.raises(ParseFailureError) as excinfo:
        parse_structured_text(text)
    assert excinfo.value.kind is ErrorKind.FATAL


def test_malformed_json_raises_parse_failure():
    with pytest.raises(ParseFailureError):
        parse_structured_text("```json\n{\"broken\": }\n```")


def test_reply_without_object_raises_parse_failure():
    with pytest.raises(ParseFailureError):
        parse_structured_text("I could not produce the requested data.")
