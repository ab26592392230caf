import pytest

from opportunity_scraper.utils.json_text import extract_first_json, coerce_records


def test_list_inside_markdown_fence():
    text = 'Here you go:\n```json\n[{"name": "Liz Hefren-Webb", "title": "Commissioner"}]\n```'
    assert extract_first_json(text) == [{"name": "Liz Hefren-Webb", "title": "Commissioner"}]


def test_object_after_prose():
    text = 'The fields I found are {"buyer": "Department of Finance", "closing_date": null} and nothing else.'
    assert extract_first_json(text, expect=dict) == {"buyer": "Department of Finance", "closing_date": None}


def test_skips_malformed_candidates():
    text = "[not json] then the real one [1, 2, 3]"
    assert extract_first_json(text) == [1, 2, 3]


def test_object_found_inside_list_when_dict_expected():
    assert extract_first_json('[{"a": 1}]', expect=dict) == {"a": 1}


@pytest.mark.parametrize("text", ["", "no json here", None, "{unterminated"])
def test_failure_returns_empty_collection(text):
    assert extract_first_json(text) == []
    assert extract_first_json(text, expect=dict) == {}


def test_rejects_unsupported_type():
    with pytest.raises(TypeError):
        extract_first_json("[]", expect=str)


def test_coerce_records_variants():
    assert coerce_records({"people": [{"name": "A B"}]}) == [{"name": "A B"}]
    assert coerce_records({"name": "A B"}) == [{"name": "A B"}]
    assert coerce_records([1, {"a": 1}, "x"]) == [{"a": 1}]
    assert coerce_records("text") == []
