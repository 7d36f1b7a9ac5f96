"""Shared fixtures for llm-caller tests."""

import json
import os

import pytest
from click.testing import CliRunner

from llm_caller import core
from llm_caller.executor import RequestResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def tmp_project(tmp_path):
    """Create a temporary project directory and cd into it."""
    original = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(original)


@pytest.fixture
def global_dir(tmp_path, monkeypatch):
    """Override the global ~/.llm-caller directory to a temp location."""
    fake_global = tmp_path / "fake_home" / ".llm-caller"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(core, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(core, "GLOBAL_CONFIG", fake_global / "config.yaml")
    monkeypatch.setattr(core, "GLOBAL_TEMPLATES_DIR", fake_global / "templates")
    monkeypatch.setattr(core, "GLOBAL_SECRET_FILE", fake_global / "keys.json")
    return fake_global


@pytest.fixture(autouse=True)
def clean_api_key_env(monkeypatch):
    """Keep real API keys in the developer's env out of the tests."""
    for key in list(os.environ):
        if key.upper().endswith("API_KEY"):
            monkeypatch.delenv(key, raising=False)


def make_request_result(status_code=200, body=None, raw_text=None, headers=None, elapsed_ms=42.0):
    """Factory for RequestResult objects."""
    r = RequestResult()
    r.status_code = status_code
    r.headers = headers or {}
    r.elapsed_ms = elapsed_ms
    if raw_text is None:
        raw_text = json.dumps(body) if body is not None else ""
    r.raw_text = raw_text
    return r


def chat_template(**overrides):
    """A minimal valid chat-completion template as a dict."""
    tpl = {
        "provider": "deepseek",
        "request": {
            "url": "https://api.deepseek.com/chat/completions",
            "headers": {"Authorization": "Bearer {{api_key}}"},
            "body": {
                "model": "deepseek-chat",
                "messages": [{"role": "user", "content": "{{prompt}}"}],
            },
        },
    }
    tpl.update(overrides)
    return tpl


def write_template(path, data=None):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data if data is not None else chat_template()))
    return path
