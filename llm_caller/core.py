"""llm-caller core - config loading, template sources, API keys, orchestration."""

import base64
import binascii
import json
import logging
import os
from pathlib import Path
from typing import BinaryIO, NamedTuple

import yaml
from dotenv import dotenv_values

from llm_caller import executor
from llm_caller.errors import LLMCallerError, MalformedTemplate, TemplateNotFound
from llm_caller.extractor import extract_content
from llm_caller.template import Template, parse_template
from llm_caller.variables import resolve_variables

logger = logging.getLogger(__name__)

GLOBAL_DIR = Path.home() / ".llm-caller"
GLOBAL_CONFIG = GLOBAL_DIR / "config.yaml"
GLOBAL_TEMPLATES_DIR = GLOBAL_DIR / "templates"
GLOBAL_SECRET_FILE = GLOBAL_DIR / "keys.json"

CWD_CONFIG_CANDIDATES = [
    ".llm-caller.yaml",
    ".llm-caller.yml",
    "llm-caller.yaml",
    "llm-caller.yml",
]

TEMPLATE_EXT = ".json"
API_KEY_VAR = "api_key"


class Settings(NamedTuple):
    """Immutable configuration handed to everything that needs it."""

    template_dir: Path
    secret_file: Path
    env_file: Path | None = None
    config_path: Path | None = None


def resolve_path(
    candidates: list[Path],
    default: Path | None = None,
) -> Path | None:
    """Return the first existing path from candidates, else default."""
    for p in candidates:
        if p.exists():
            return p.resolve()
    return default


def resolve_config_path(config_file: str | None) -> Path | None:
    """Find the config file to use.

    Resolution order:
      1. Explicit -c flag (hard, no fallthrough if missing)
      2. .llm-caller.yaml (variants) in CWD
      3. ~/.llm-caller/config.yaml
    """
    if config_file:
        return resolve_path([Path(config_file)])
    return resolve_path([Path(c) for c in CWD_CONFIG_CANDIDATES] + [GLOBAL_CONFIG])


def load_config(config_path: str | Path | None) -> Settings:
    """Load the YAML config file into Settings.

    Relative paths in the file are taken relative to the file's directory.
    A missing file just yields the defaults.
    """
    defaults = Settings(template_dir=GLOBAL_TEMPLATES_DIR, secret_file=GLOBAL_SECRET_FILE)
    if config_path is None:
        return defaults
    path = Path(config_path)
    if not path.exists():
        return defaults

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise LLMCallerError(f"failed to read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise LLMCallerError(f"failed to read config file {path}: expected a mapping")

    base = path.resolve().parent

    def _path(key: str) -> Path | None:
        value = data.get(key)
        if not value:
            return None
        p = Path(str(value)).expanduser()
        return p if p.is_absolute() else base / p

    logger.debug("loaded config from %s", path)
    return Settings(
        template_dir=_path("template_dir") or defaults.template_dir,
        secret_file=_path("secret_file") or defaults.secret_file,
        env_file=_path("env_file"),
        config_path=path.resolve(),
    )


def load_env(env_file: str | Path | None) -> dict[str, str]:
    """Merge a .env file over os.environ."""
    env = dict(os.environ)
    if env_file:
        dotenv_path = Path(env_file)
        if dotenv_path.exists():
            dotenv_vars = dotenv_values(str(dotenv_path))
            env.update({k: v for k, v in dotenv_vars.items() if v is not None})
    return env


# ── Template sources ─────────────────────────────────────────────────────


def template_dirs(settings: Settings, templates_dir_override: str | None = None) -> list[Path]:
    """Directories searched for named templates, in priority order."""
    if templates_dir_override:
        p = Path(templates_dir_override)
        if not p.is_absolute():
            p = Path.cwd() / p
        return [p]  # hard override, no fallthrough

    dirs: list[Path] = []
    for d in (settings.template_dir, Path("templates"), GLOBAL_TEMPLATES_DIR):
        if d not in dirs:
            dirs.append(d)
    return dirs


def load_template_source(
    name_or_path: str,
    settings: Settings,
    templates_dir_override: str | None = None,
) -> Template:
    """Load and parse a template file.

    Resolution order:
      1. Exact file path, or the path with .json appended
      2. name.json in each template directory (see template_dirs)
    """
    filename = name_or_path if name_or_path.endswith(TEMPLATE_EXT) else name_or_path + TEMPLATE_EXT

    candidates = [Path(name_or_path), Path(filename)]
    is_direct = Path(name_or_path).is_absolute() or any(sep in name_or_path for sep in "/\\")
    if not is_direct:
        candidates.extend(d / filename for d in template_dirs(settings, templates_dir_override))

    searched: list[str] = []
    for candidate in candidates:
        if str(candidate) in searched:
            continue
        searched.append(str(candidate))
        if candidate.is_file():
            logger.debug("template source: %s", candidate)
            return parse_template(candidate.read_bytes())

    raise TemplateNotFound(name_or_path, searched)


def decode_template_base64(encoded: str) -> str:
    """Decode a --template-base64 value to JSON text."""
    try:
        return base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise MalformedTemplate(f"failed to decode Base64 template: {e}") from e


def list_templates(
    settings: Settings,
    templates_dir_override: str | None = None,
) -> list[tuple[Path, list[tuple[str, Template | None]]]]:
    """List *.json templates per existing directory.

    Returns [(dir, [(filename, template_or_None_if_invalid)])].
    """
    listing = []
    seen: set[Path] = set()
    for d in template_dirs(settings, templates_dir_override):
        if not d.is_dir() or d.resolve() in seen:
            continue
        seen.add(d.resolve())
        entries: list[tuple[str, Template | None]] = []
        for f in sorted(d.iterdir()):
            if f.suffix != TEMPLATE_EXT or not f.is_file():
                continue
            try:
                entries.append((f.name, parse_template(f.read_bytes())))
            except LLMCallerError:
                entries.append((f.name, None))
        listing.append((d.resolve(), entries))
    return listing


# ── API key ──────────────────────────────────────────────────────────────


def load_api_keys(secret_file: str | Path) -> dict[str, str]:
    """Read the JSON secrets file. Missing or unreadable files give {}."""
    path = Path(secret_file)
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.debug("secrets file %s not usable: %s", path, e)
        return {}
    if not isinstance(data, dict):
        return {}
    return {k: v for k, v in data.items() if isinstance(v, str)}


def get_env_case_insensitive(env: dict[str, str], key: str) -> str:
    """Exact match first, then any case."""
    value = env.get(key)
    if value:
        return value
    upper = key.upper()
    for k, v in env.items():
        if k.upper() == upper and v:
            return v
    return ""


def resolve_api_key(
    provider: str,
    override: str | None,
    secret_file: str | Path | None,
    env: dict[str, str],
) -> str:
    """Find the API key for provider.

    Priority:
      1. --api-key
      2. secrets file: "<provider>_api_key", "api_key", "default_api_key"
      3. env: "<PROVIDER>_API_KEY", "API_KEY"

    Empty string means no key, which is fine for local servers.
    """
    if override:
        logger.debug("api key: from --api-key")
        return override

    if secret_file:
        keys = load_api_keys(secret_file)
        names = [f"{provider}_api_key"] if provider else []
        names += ["api_key", "default_api_key"]
        for name in names:
            if keys.get(name):
                logger.debug("api key: %s from secrets file", name)
                return keys[name]

    env_names = ["API_KEY"]
    if provider:
        env_names.insert(0, f"{provider.upper()}_API_KEY")
    for name in env_names:
        value = get_env_case_insensitive(env, name)
        if value:
            logger.debug("api key: from environment %s", name)
            return value

    logger.debug("api key: none found")
    return ""


# ── Invocation ───────────────────────────────────────────────────────────


def build_bindings(
    var_specs: tuple[str, ...] | list[str],
    api_key: str = "",
    stdin: BinaryIO | None = None,
) -> dict[str, str]:
    """Resolve --var specs and inject api_key when one was found."""
    bindings = resolve_variables(var_specs, stdin=stdin)
    if api_key:
        bindings[API_KEY_VAR] = api_key
    return bindings


def call_template(template: Template, bindings: dict[str, str]) -> str:
    """Substitute, send, and extract. One request, no retries."""
    resolved = template.substitute(bindings)
    result = executor.invoke(resolved)
    return extract_content(result.raw_text, resolved.response)


def write_output(result: str, output_path: str | Path) -> Path:
    """Write the result verbatim to a file."""
    path = Path(output_path)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(result)
    return path
