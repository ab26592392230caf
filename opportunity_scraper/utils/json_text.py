"""
Pull the first well-formed JSON value out of free-form model output

Models wrap JSON in prose or markdown fences; this scans for the first '[' or
'{' that decodes cleanly. It never raises: on failure the caller gets an empty
collection of the requested type.
"""
import json
from typing import Any, Union

_DECODER = json.JSONDecoder()


def extract_first_json(text: str, expect: type = list) -> Union[list, dict]:
    """
    Args:
        text: Raw response text
        expect: list or dict - the JSON type the caller wants

    Returns:
        The first decoded value of that type, or an empty list/dict
    """
    if expect not in (list, dict):
        raise TypeError("expect must be list or dict")

    if not text or not isinstance(text, str):
        return expect()

    opener = "[" if expect is list else "{"
    index = text.find(opener)

    while index != -1:
        try:
            value, _end = _DECODER.raw_decode(text, index)
        except ValueError:
            value = None
        if isinstance(value, expect):
            return value
        index = text.find(opener, index + 1)

    return expect()


def coerce_records(value: Any) -> list:
    """Normalise a decoded response into a list of dicts"""
    if isinstance(value, dict):
        # {"people": [...]} style wrappers
        for inner in value.values():
            if isinstance(inner, list):
                value = inner
                break
        else:
            return [value]
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]
