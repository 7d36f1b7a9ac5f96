"""Tests for template parsing, validation and placeholder substitution."""

import json

import pytest

from llm_caller.errors import InvalidTemplate, MalformedTemplate
from llm_caller.template import (
    DEFAULT_RESPONSE_PATH,
    parse_template,
    substitute_in_obj,
    substitute_placeholders,
)
from tests.conftest import chat_template


def _parse(data):
    return parse_template(json.dumps(data))


# ── Parsing and defaults ─────────────────────────────────────────────────


class TestParseDefaults:
    def test_method_defaults_to_post(self):
        tpl = _parse(chat_template())
        assert tpl.request.method == "POST"

    def test_empty_method_defaults_to_post(self):
        data = chat_template()
        data["request"]["method"] = ""
        assert _parse(data).request.method == "POST"

    def test_explicit_method_kept(self):
        data = chat_template()
        data["request"]["method"] = "PUT"
        assert _parse(data).request.method == "PUT"

    def test_response_path_default(self):
        tpl = _parse(chat_template())
        assert tpl.response.path == DEFAULT_RESPONSE_PATH == "choices[0].message.content"
        assert tpl.response.auto_detect is False
        assert tpl.response.response_field_name is None

    def test_response_section_read(self):
        tpl = _parse(
            chat_template(
                response={"path": "response", "auto_detect": True, "response_field_name": "out"},
            ),
        )
        assert tpl.response.path == "response"
        assert tpl.response.auto_detect is True
        assert tpl.response.response_field_name == "out"

    def test_metadata_kept(self):
        tpl = _parse(chat_template(title="DeepSeek", description="chat"))
        assert tpl.title == "DeepSeek"
        assert tpl.description == "chat"
        assert tpl.to_dict()["title"] == "DeepSeek"

    def test_bytes_input(self):
        tpl = parse_template(json.dumps(chat_template()).encode("utf-8"))
        assert tpl.provider == "deepseek"

    def test_empty_body_object_is_valid(self):
        data = chat_template()
        data["request"]["body"] = {}
        assert _parse(data).request.body == {}

    def test_array_body_is_valid(self):
        data = chat_template()
        data["request"]["body"] = [{"text": "{{prompt}}"}]
        assert _parse(data).request.body == [{"text": "{{prompt}}"}]


# ── Malformed input ──────────────────────────────────────────────────────


class TestMalformed:
    def test_not_json(self):
        with pytest.raises(MalformedTemplate, match="failed to parse template JSON"):
            parse_template("{not json")

    def test_top_level_array(self):
        with pytest.raises(MalformedTemplate):
            parse_template("[1, 2]")

    def test_request_wrong_type(self):
        with pytest.raises(MalformedTemplate, match="request must be an object"):
            _parse({"provider": "p", "request": "nope"})

    def test_header_value_not_string(self):
        data = chat_template()
        data["request"]["headers"] = {"X-Count": 3}
        with pytest.raises(MalformedTemplate, match="request.headers.X-Count"):
            _parse(data)

    def test_auto_detect_not_bool(self):
        with pytest.raises(MalformedTemplate, match="response.auto_detect"):
            _parse(chat_template(response={"auto_detect": "yes"}))


# ── Validation ───────────────────────────────────────────────────────────


class TestValidation:
    def test_missing_provider(self):
        data = chat_template()
        del data["provider"]
        with pytest.raises(InvalidTemplate) as exc:
            _parse(data)
        assert exc.value.field == "provider"

    def test_empty_provider(self):
        with pytest.raises(InvalidTemplate) as exc:
            _parse(chat_template(provider=""))
        assert exc.value.field == "provider"

    def test_missing_url(self):
        data = chat_template()
        del data["request"]["url"]
        with pytest.raises(InvalidTemplate) as exc:
            _parse(data)
        assert exc.value.field == "request.url"

    def test_missing_body(self):
        data = chat_template(title="t", response={"path": "x"})
        del data["request"]["body"]
        with pytest.raises(InvalidTemplate) as exc:
            _parse(data)
        assert exc.value.field == "request.body"
        assert "request.body" in str(exc.value)

    def test_null_body(self):
        data = chat_template()
        data["request"]["body"] = None
        with pytest.raises(InvalidTemplate) as exc:
            _parse(data)
        assert exc.value.field == "request.body"

    def test_missing_request_reports_url_first(self):
        with pytest.raises(InvalidTemplate) as exc:
            _parse({"provider": "p"})
        assert exc.value.field == "request.url"

    def test_provider_checked_before_url(self):
        with pytest.raises(InvalidTemplate) as exc:
            _parse({"request": {}})
        assert exc.value.field == "provider"


# ── Substitution ─────────────────────────────────────────────────────────


class TestSubstitution:
    def test_end_to_end_body(self):
        tpl = parse_template('{"provider":"p","request":{"url":"https://x/y","body":{"m":"{{v}}"}}}')
        out = tpl.substitute({"v": "hello"})
        assert out.request.body == {"m": "hello"}

    def test_url_and_headers(self):
        data = chat_template()
        data["request"]["url"] = "https://{{host}}/v1/{{model}}"
        tpl = _parse(data).substitute({"host": "api.example.com", "model": "m1", "api_key": "sk-1"})
        assert tpl.request.url == "https://api.example.com/v1/m1"
        assert tpl.request.headers["Authorization"] == "Bearer sk-1"

    def test_all_occurrences_replaced(self):
        data = chat_template()
        data["request"]["body"] = {
            "a": "{{x}} and {{x}}",
            "b": ["{{x}}", {"c": "{{x}}!"}],
        }
        out = _parse(data).substitute({"x": "Q"})
        assert out.request.body == {"a": "Q and Q", "b": ["Q", {"c": "Q!"}]}

    def test_unbound_left_literal(self):
        out = _parse(chat_template()).substitute({"api_key": "k"})
        assert out.request.body["messages"][0]["content"] == "{{prompt}}"

    def test_empty_bindings_structurally_identical(self):
        tpl = _parse(chat_template())
        out = tpl.substitute({})
        assert out is not tpl
        assert out.to_dict() == tpl.to_dict()

    def test_original_not_mutated(self):
        tpl = _parse(chat_template())
        tpl.substitute({"prompt": "hi", "api_key": "k"})
        assert tpl.request.body["messages"][0]["content"] == "{{prompt}}"
        assert tpl.request.headers["Authorization"] == "Bearer {{api_key}}"

    def test_non_string_leaves_untouched(self):
        body = {"n": 1, "f": 0.5, "t": True, "z": None, "s": "{{a}}"}
        assert substitute_in_obj(body, {"a": "A"}) == {"n": 1, "f": 0.5, "t": True, "z": None, "s": "A"}

    def test_keys_not_substituted(self):
        assert substitute_in_obj({"{{a}}": "{{a}}"}, {"a": "A"}) == {"{{a}}": "A"}

    def test_inserted_text_not_rescanned(self):
        result = substitute_placeholders("{{a}}-{{b}}", {"a": "{{b}}", "b": "B"})
        assert result == "{{b}}-B"

    def test_value_with_backslashes_inserted_verbatim(self):
        assert substitute_placeholders("{{p}}", {"p": r"C:\new\1"}) == r"C:\new\1"

    def test_spaced_placeholder_not_matched(self):
        assert substitute_placeholders("{{ a }}", {"a": "A"}) == "{{ a }}"

    def test_name_with_regex_chars(self):
        assert substitute_placeholders("{{a.b+}}", {"a.b+": "ok"}) == "ok"

    def test_prefix_names_resolved_exactly(self):
        assert substitute_placeholders("{{a}}{{ab}}", {"a": "1", "ab": "2"}) == "12"

    def test_deterministic(self):
        data = chat_template()
        data["request"]["body"] = {"x": "{{a}}{{b}}{{c}}"}
        tpl = _parse(data)
        bindings = {"c": "3", "a": "1", "b": "2"}
        assert tpl.substitute(bindings).request.body == tpl.substitute(dict(reversed(bindings.items()))).request.body
