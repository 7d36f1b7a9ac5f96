"""llm-caller extractor - pull the result text out of a JSON response."""

from __future__ import annotations

import contextlib
import json
import logging
import re
from collections.abc import Callable
from typing import Any

from llm_caller.errors import (
    FieldNotFound,
    IndexOutOfBounds,
    InvalidPathSegment,
    NotAnArray,
    ResponseParseError,
)
from llm_caller.template import ResponseConfig

logger = logging.getLogger(__name__)

STRUCTURE_LIMIT = 1000
TRUNCATION_MARKER = "\n... (truncated)"

# "name[3]" or "[3]"; anything else with a bracket in it is rejected
_INDEXED_RE = re.compile(r"^([^\[\]]*)\[([^\]]*)\]$")
_INDEX_RE = re.compile(r"^\d+$")

_MISSING = object()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_response(raw: str | bytes) -> dict[str, Any]:
    """Parse a response body that must be a JSON object."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ResponseParseError(f"failed to parse response JSON: {e}") from e
    if not isinstance(data, dict):
        raise ResponseParseError(
            f"failed to parse response JSON: expected an object, got {json_type(data)}",
        )
    return data


def json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def format_structure(data: Any, limit: int = STRUCTURE_LIMIT) -> str:
    """Pretty-print data for an error message, capped at limit characters."""
    text = json.dumps(data, indent=2, ensure_ascii=False)
    if len(text) > limit:
        return text[:limit] + TRUNCATION_MARKER
    return text


def render_value(value: Any) -> str:
    """Strings as-is, everything else as JSON text (3, true, null, {...})."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _join(walked: list[str], name: str = "") -> str:
    parts = walked + [name] if name else walked
    return ".".join(parts)


# ---------------------------------------------------------------------------
# Path navigation
# ---------------------------------------------------------------------------


def parse_path(path: str) -> list[tuple[str, int | None]]:
    """Split a dot/bracket path into (name, index) segments.

    ``choices[0].message`` gives ``[("choices", 0), ("message", None)]``;
    a bare ``[1]`` has an empty name and indexes the current node.
    Raises InvalidPathSegment for stray brackets or a non-integer index.
    """
    segments: list[tuple[str, int | None]] = []
    walked: list[str] = []

    for part in path.split("."):
        indexed = _INDEXED_RE.match(part)
        if indexed is None:
            if "[" in part or "]" in part:
                raise InvalidPathSegment(part, _join(walked))
            segments.append((part, None))
        else:
            index_text = indexed.group(2).strip()
            if not _INDEX_RE.match(index_text):
                raise InvalidPathSegment(part, _join(walked))
            segments.append((indexed.group(1), int(index_text)))
        walked.append(part)

    return segments


def extract_by_path(data: dict[str, Any] | str | bytes, path: str) -> str:
    """Walk a dot/bracket path like ``choices[0].message.content``.

    Each dot-separated segment is either a field name or ``name[index]``.
    Failures raise FieldNotFound / NotAnArray / IndexOutOfBounds carrying
    the path walked so far and a capped dump of the whole response.
    """
    if isinstance(data, str | bytes):
        data = parse_response(data)

    try:
        segments = parse_path(path)
    except InvalidPathSegment as e:
        raise InvalidPathSegment(e.segment, e.path_so_far, format_structure(data)) from None

    current: Any = data
    walked: list[str] = []

    for name, index in segments:
        if index is None:
            current = _field(current, name, walked, data)
            walked.append(name)
            continue

        if name:
            current = _field(current, name, walked, data)

        if not isinstance(current, list):
            raise NotAnArray(name, json_type(current), _join(walked, name), format_structure(data))
        if index >= len(current):
            raise IndexOutOfBounds(index, len(current), _join(walked, name), format_structure(data))

        current = current[index]
        walked.append(f"{name}[{index}]")

    return render_value(current)


def _field(current: Any, name: str, walked: list[str], root: dict[str, Any]) -> Any:
    if not isinstance(current, dict) or name not in current:
        raise FieldNotFound(name, _join(walked), format_structure(root))
    return current[name]


# ---------------------------------------------------------------------------
# Auto-detection
# ---------------------------------------------------------------------------


def _lookup(data: Any, keys: tuple[str | int, ...]) -> Any:
    """Follow keys (field names / list indices) without raising."""
    current = data
    for key in keys:
        if isinstance(key, int):
            if not isinstance(current, list) or key >= len(current):
                return _MISSING
        elif not isinstance(current, dict) or key not in current:
            return _MISSING
        current = current[key]
    return current


Matcher = tuple[str, Callable[[dict], bool], Callable[[dict], str]]


def _string_at(label: str, *keys: str | int) -> Matcher:
    """Matcher that fires when the value at keys is a string."""
    return (
        label,
        lambda data: isinstance(_lookup(data, keys), str),
        lambda data: _lookup(data, keys),
    )


# Checked in order; the first predicate that holds wins.
AUTO_DETECT_MATCHERS: list[Matcher] = [
    _string_at("response", "response"),
    _string_at("choices[0].message.content", "choices", 0, "message", "content"),
    _string_at("choices[0].text", "choices", 0, "text"),
    _string_at("content", "content"),
    _string_at("completion", "completion"),
    _string_at("generations[0].text", "generations", 0, "text"),
    _string_at("content[0].text", "content", 0, "text"),
]


def auto_detect(data: Any, field_name: str | None = None) -> str | None:
    """Try the known response shapes. Returns None when nothing matches.

    A field_name hint naming a top-level string field short-circuits
    every other check.
    """
    if not isinstance(data, dict):
        return None

    if field_name and isinstance(data.get(field_name), str):
        logger.debug("auto-detect: using hinted field %r", field_name)
        return data[field_name]

    for label, predicate, extractor in AUTO_DETECT_MATCHERS:
        if predicate(data):
            logger.debug("auto-detect: matched %s", label)
            return extractor(data)

    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def extract_content(raw: str | bytes, response_config: ResponseConfig) -> str:
    """Turn a raw response body into the final result string.

    With auto_detect on, known shapes are tried first; if none match (or
    the body doesn't parse) the configured path is used and its error,
    if any, is what the caller sees.
    """
    if response_config.auto_detect:
        data = None
        with contextlib.suppress(ResponseParseError):
            data = parse_response(raw)
        if data is not None:
            result = auto_detect(data, response_config.response_field_name)
            if result is not None:
                return result
        logger.debug("auto-detect: no known shape, falling back to path %r", response_config.path)

    return extract_by_path(parse_response(raw), response_config.path)
