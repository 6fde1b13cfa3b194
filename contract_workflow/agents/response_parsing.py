"""Helpers for decoding JSON embedded in LLM responses."""

from typing import Type, TypeVar

import msgspec


T = TypeVar("T")


def extract_json(text: str) -> str:
    """Cut the outermost ``{...}`` block out of a response.

    Handles answers wrapped in Markdown code fences or surrounded by prose.
    Text without braces is returned unchanged.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        return text[start:end + 1]
    return text


def decode_json_response(text: str, type: Type[T]) -> T:
    """Decode a response into ``type``.

    Args:
        text: Raw response text
        type: msgspec-compatible target type

    Returns:
        Decoded value

    Raises:
        msgspec.DecodeError: If no valid JSON of the expected shape is found
    """
    return msgspec.json.decode(extract_json(text or ""), type=type)
