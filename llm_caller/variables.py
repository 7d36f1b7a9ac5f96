"""llm-caller variables - turn --var specs into substitution bindings.

Spec forms:
    name:value          text variable, value used verbatim
    name:text:value     same, explicit
    name:file:path      raw content of the file at path
    name:text:-         read all of stdin
    name:file:-         read all of stdin
"""

import logging
import sys
from typing import BinaryIO

from llm_caller.errors import (
    MalformedVariableSpec,
    UnsupportedVariableKind,
    VariableSourceError,
)

logger = logging.getLogger(__name__)

STDIN_SENTINEL = "-"
KIND_TEXT = "text"
KIND_FILE = "file"
SUPPORTED_KINDS = (KIND_TEXT, KIND_FILE)


def parse_variable_spec(spec: str) -> tuple[str, str, str]:
    """Split a spec into (name, kind, value).

    At most three parts on ':', so values may contain colons
    (URLs, timestamps) as long as the kind is spelled out.
    """
    parts = spec.split(":", 2)
    if len(parts) < 2:
        raise MalformedVariableSpec(spec, "invalid var format, expected name:value or name:type:value")

    name = parts[0]
    if not name:
        raise MalformedVariableSpec(spec, "variable name cannot be empty in")

    if len(parts) == 2:
        return name, KIND_TEXT, parts[1]
    return name, parts[1], parts[2]


def resolve_variables(
    specs: tuple[str, ...] | list[str],
    stdin: BinaryIO | None = None,
) -> dict[str, str]:
    """Resolve every spec to a string. Later specs win on duplicate names.

    stdin is read to EOF the first time '-' is seen; any later '-'
    gets whatever is left, which is normally nothing.
    """
    variables: dict[str, str] = {}
    for spec in specs:
        name, kind, value = parse_variable_spec(spec)

        if kind == KIND_TEXT:
            if value == STDIN_SENTINEL:
                variables[name] = _decode(_read_stdin(name, stdin))
            else:
                variables[name] = value
        elif kind == KIND_FILE:
            if value == STDIN_SENTINEL:
                content = _read_stdin(name, stdin)
            else:
                content = _read_file(name, value)
            variables[name] = _decode(content)
        else:
            raise UnsupportedVariableKind(kind, name)

        logger.debug("variable %s resolved from %s (%d chars)", name, kind, len(variables[name]))

    return variables


def _read_stdin(name: str, stdin: BinaryIO | None) -> bytes:
    stream = stdin if stdin is not None else sys.stdin.buffer
    try:
        return stream.read()
    except OSError as e:
        raise VariableSourceError(name, f"failed to read from stdin for variable {name}: {e}") from e


def _read_file(name: str, path: str) -> bytes:
    if not path:
        raise VariableSourceError(name, f"file path cannot be empty for variable {name}")
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise VariableSourceError(name, f"failed to read file {path} for variable {name}: {e}") from e


def _decode(content: bytes | str) -> str:
    # No transcoding. Invalid UTF-8 sequences become U+FFFD.
    if isinstance(content, str):
        return content
    return content.decode("utf-8", errors="replace")
