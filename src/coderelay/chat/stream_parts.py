"""Line-oriented data-stream protocol spoken to the browser client.

Every part is one line of the form ``<code>:<json>\\n``; text tokens use code
``0`` and errors code ``3``.  The chat endpoint emits parts as-is and the
enhancer reduces them back to plain text.
"""

import json
from dataclasses import dataclass
from typing import Any

PART_CODES: dict[str, str] = {
    "text": "0",
    "data": "2",
    "error": "3",
    "message_annotations": "8",
    "finish_message": "d",
    "finish_step": "e",
    "start_step": "f",
}

_PART_TYPES: dict[str, str] = {code: name for name, code in PART_CODES.items()}


@dataclass(frozen=True)
class StreamPart:
    type: str
    value: Any


def format_stream_part(part_type: str, value: Any) -> bytes:
    """Encode one part as a newline-terminated UTF-8 line."""
    try:
        code = PART_CODES[part_type]
    except KeyError:
        raise ValueError(f"unknown stream part type {part_type!r}") from None
    return f"{code}:{json.dumps(value, separators=(',', ':'))}\n".encode()


def parse_stream_part(line: str) -> StreamPart:
    """Decode one line produced by :func:`format_stream_part`.

    Raises:
        ValueError: The line has no code prefix, an unknown code, or a body
            that is not valid JSON.
    """
    code, sep, body = line.partition(":")
    if not sep:
        raise ValueError(f"stream part has no code prefix: {line!r}")

    part_type = _PART_TYPES.get(code)
    if part_type is None:
        raise ValueError(f"unknown stream part code {code!r}")

    value = json.loads(body)
    if part_type == "text" and not isinstance(value, str):
        raise ValueError("text stream part must carry a string")
    return StreamPart(type=part_type, value=value)
