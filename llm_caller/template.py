"""llm-caller template - template model, validation, placeholder substitution."""

import copy
import json
import re
from typing import Any

from llm_caller.errors import InvalidTemplate, MalformedTemplate

DEFAULT_METHOD = "POST"
DEFAULT_RESPONSE_PATH = "choices[0].message.content"

# Documentation-only keys, carried along but never used for the call
METADATA_FIELDS = ("title", "description", "api_document", "instructions")

_TYPE_NAMES = {dict: "an object", str: "a string", bool: "a boolean", list: "an array"}


class RequestConfig:
    """HTTP side of a template."""

    def __init__(
        self,
        url: str = "",
        method: str = DEFAULT_METHOD,
        headers: dict[str, str] | None = None,
        body: Any = None,
    ):
        self.url = url
        self.method = method
        self.headers: dict[str, str] = headers or {}
        self.body = body


class ResponseConfig:
    """How to pull the result text out of the response body."""

    def __init__(
        self,
        path: str = DEFAULT_RESPONSE_PATH,
        auto_detect: bool = False,
        response_field_name: str | None = None,
    ):
        self.path = path
        self.auto_detect = auto_detect
        self.response_field_name = response_field_name


class Template:
    """A validated request/response template for one API call.

    Treat instances as read-only: substitute() hands back a new Template
    and leaves this one untouched.
    """

    def __init__(
        self,
        provider: str,
        request: RequestConfig,
        response: ResponseConfig | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        self.provider = provider
        self.request = request
        self.response = response or ResponseConfig()
        self.metadata: dict[str, Any] = metadata or {}

    @property
    def title(self) -> str:
        return self.metadata.get("title") or ""

    @property
    def description(self) -> str:
        return self.metadata.get("description") or ""

    def validate(self) -> None:
        """Raise InvalidTemplate for the first missing required field."""
        if not self.provider:
            raise InvalidTemplate("provider")
        if not self.request.url:
            raise InvalidTemplate("request.url")
        if self.request.body is None:
            raise InvalidTemplate("request.body")

    def substitute(self, bindings: dict[str, str]) -> "Template":
        """Return a copy with every bound {{name}} replaced.

        Covers the URL, header values and every string leaf of the body.
        Unbound placeholders stay in place.
        """
        if not bindings:
            return copy.deepcopy(self)

        pattern = placeholder_pattern(bindings)
        request = RequestConfig(
            url=substitute_placeholders(self.request.url, bindings, pattern),
            method=self.request.method,
            headers={
                k: substitute_placeholders(v, bindings, pattern)
                for k, v in self.request.headers.items()
            },
            body=substitute_in_obj(self.request.body, bindings, pattern),
        )
        return Template(
            self.provider,
            request,
            copy.deepcopy(self.response),
            copy.deepcopy(self.metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"provider": self.provider}
        data.update(self.metadata)
        data["request"] = {
            "url": self.request.url,
            "method": self.request.method,
            "headers": dict(self.request.headers),
            "body": self.request.body,
        }
        response: dict[str, Any] = {"path": self.response.path}
        if self.response.auto_detect:
            response["auto_detect"] = True
        if self.response.response_field_name:
            response["response_field_name"] = self.response.response_field_name
        data["response"] = response
        return data


def parse_template(raw: str | bytes) -> Template:
    """Parse raw template JSON, apply defaults and validate.

    Raises MalformedTemplate when the input is not JSON or a field has the
    wrong JSON type, InvalidTemplate when a required field is missing.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedTemplate(f"failed to parse template JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedTemplate("failed to parse template JSON: top level must be an object")

    request_data = _field(data, "request", dict, {}, "request")
    response_data = _field(data, "response", dict, {}, "response")

    headers = _field(request_data, "headers", dict, {}, "request.headers")
    for name, value in headers.items():
        if not isinstance(value, str):
            raise MalformedTemplate(
                f"failed to parse template JSON: request.headers.{name} must be a string",
            )

    request = RequestConfig(
        url=_field(request_data, "url", str, "", "request.url"),
        method=_field(request_data, "method", str, "", "request.method") or DEFAULT_METHOD,
        headers=dict(headers),
        body=request_data.get("body"),
    )
    response = ResponseConfig(
        path=_field(response_data, "path", str, "", "response.path") or DEFAULT_RESPONSE_PATH,
        auto_detect=_field(response_data, "auto_detect", bool, False, "response.auto_detect"),
        response_field_name=_field(
            response_data,
            "response_field_name",
            str,
            "",
            "response.response_field_name",
        )
        or None,
    )
    template = Template(
        provider=_field(data, "provider", str, "", "provider"),
        request=request,
        response=response,
        metadata={k: data[k] for k in METADATA_FIELDS if k in data},
    )
    template.validate()
    return template


def _field(obj: dict, key: str, expected: type, default: Any, label: str) -> Any:
    """Typed lookup; JSON null counts as absent."""
    value = obj.get(key)
    if value is None:
        return default
    if not isinstance(value, expected):
        raise MalformedTemplate(
            f"failed to parse template JSON: {label} must be {_TYPE_NAMES[expected]}",
        )
    return value


# ── Substitution ─────────────────────────────────────────────────────────


def placeholder_pattern(bindings: dict[str, str]) -> re.Pattern:
    """Compile one regex matching {{name}} for every bound name."""
    names = sorted(bindings, key=lambda n: (-len(n), n))
    alternatives = "|".join(re.escape(n) for n in names)
    return re.compile(r"\{\{(" + alternatives + r")\}\}")


def substitute_placeholders(
    text: str,
    bindings: dict[str, str],
    pattern: re.Pattern | None = None,
) -> str:
    """Replace bound {{name}} tokens in a single string.

    One pass over the input: text inserted for a binding is never
    rescanned, so a value that itself contains {{other}} stays literal.
    """
    if not isinstance(text, str) or not bindings:
        return text
    if pattern is None:
        pattern = placeholder_pattern(bindings)
    return pattern.sub(lambda m: bindings[m.group(1)], text)


def substitute_in_obj(
    obj: Any,
    bindings: dict[str, str],
    pattern: re.Pattern | None = None,
) -> Any:
    """Recursively substitute in dicts, lists, and strings."""
    if pattern is None and bindings:
        pattern = placeholder_pattern(bindings)
    if isinstance(obj, str):
        return substitute_placeholders(obj, bindings, pattern)
    if isinstance(obj, dict):
        return {k: substitute_in_obj(v, bindings, pattern) for k, v in obj.items()}
    if isinstance(obj, list):
        return [substitute_in_obj(item, bindings, pattern) for item in obj]
    return obj
