from app.utils.json_parser import extract_json_from_llm_response, extract_json_object


def test_plain_json():
    assert extract_json_object('{"events": []}') == {"events": []}


def test_fenced_json():
    text = 'Here you go:\n```json\n{"events": [{"type": "incident"}]}\n```\nThanks'

    assert extract_json_object(text) == {"events": [{"type": "incident"}]}


def test_json_surrounded_by_prose():
    text = 'Sure! {"summary": "A text exchange"} Let me know if you need more.'

    assert extract_json_object(text) == {"summary": "A text exchange"}


def test_truncated_json_is_not_repaired():
    assert extract_json_from_llm_response('{"events": [{"type": "incident", "title": "La') is None


def test_empty_and_none():
    assert extract_json_from_llm_response("") is None
    assert extract_json_from_llm_response(None) is None


def test_top_level_array_is_not_an_object():
    assert extract_json_from_llm_response("[1, 2]") == [1, 2]
    assert extract_json_object("[1, 2]") is None
