"""llm-caller CLI - call LLM HTTP APIs from JSON templates."""

import json
import logging
import sys
from pathlib import Path

import click

from llm_caller import __version__

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

TOOL_HELP = """\
llm-caller — Call any LLM HTTP API from a JSON template.

A template describes one HTTP call (url, method, headers, JSON body) with
{{name}} placeholders, plus where to find the answer in the response.

\b
TEMPLATE SOURCES (exactly one)
──────────────────────────────
  llm-caller deepseek-chat -v "prompt:Hello"
  llm-caller --template-json '{"provider":"p","request":{...}}'
  llm-caller --template-base64 eyJwcm92aWRlciI6...

  Named templates are looked up as NAME.json in:
    1. The exact path given (with or without .json)
    2. --templates-dir (if given, nothing else is searched)
    3. template_dir from config
    4. ./templates/
    5. ~/.llm-caller/templates/

\b
VARIABLES (-v/--var, repeatable)
────────────────────────────────
  name:value          text, used as-is
  name:text:value     text, explicit
  name:text:-         read stdin
  name:file:PATH      raw file content
  name:file:-         read stdin

  cat README.md | llm-caller summarize -v "doc:text:-"
  llm-caller review -v "code:file:main.py" -v "lang:python"

  The last --var for a name wins. Stdin can only be read once.

\b
API KEY
───────
  Substituted as {{api_key}}. Looked up in order:
    1. --api-key
    2. secrets file (secret_file in config, default ~/.llm-caller/keys.json):
       "<provider>_api_key", "api_key", "default_api_key"
    3. env: <PROVIDER>_API_KEY, API_KEY
  No key is fine for local servers (e.g. Ollama).

\b
TEMPLATE FORMAT
───────────────
  {
    "provider": "deepseek",
    "request": {
      "url": "https://api.deepseek.com/chat/completions",
      "method": "POST",
      "headers": {"Authorization": "Bearer {{api_key}}"},
      "body": {"model": "deepseek-chat",
               "messages": [{"role": "user", "content": "{{prompt}}"}]}
    },
    "response": {
      "path": "choices[0].message.content",
      "auto_detect": false
    }
  }

  method defaults to POST, response.path to choices[0].message.content.
  With auto_detect, common response shapes (Ollama, OpenAI, Anthropic,
  Cohere...) are recognised before falling back to path.

\b
CONFIG FILE (.llm-caller.yaml)
──────────────────────────────
  Resolution: -c flag, then .llm-caller.yaml in CWD, then
  ~/.llm-caller/config.yaml.

  \b
  template_dir: templates
  secret_file: keys.json
  env_file: .env
"""


@click.command(
    help=TOOL_HELP,
    context_settings={"help_option_names": ["-h", "--help"], "max_content_width": 100},
)
@click.argument("template_name", required=False)
@click.option(
    "--template-json",
    "template_json",
    default=None,
    help="Template as a JSON string.",
)
@click.option(
    "--template-base64",
    "template_base64",
    default=None,
    help="Template as Base64-encoded JSON.",
)
@click.option(
    "-v",
    "--var",
    multiple=True,
    help="Variable as 'name:value' or 'name:type:value' (type: text|file, '-' = stdin). "
    "Repeatable.",
)
@click.option("--api-key", "api_key", default=None, help="API key, overrides config and env.")
@click.option(
    "-o",
    "--output",
    "output_path",
    default=None,
    help="Write the result to this file instead of stdout.",
)
@click.option("-c", "--config", "config_file", default=None, help="Config file path.")
@click.option(
    "--templates-dir",
    "templates_dir_override",
    default=None,
    help="Override templates directory.",
)
@click.option(
    "--list-templates",
    "show_list_templates",
    is_flag=True,
    default=False,
    help="List available templates.",
)
@click.option(
    "--validate",
    "do_validate",
    is_flag=True,
    default=False,
    help="Validate the template and exit without calling the API.",
)
@click.option(
    "--show",
    "do_show",
    is_flag=True,
    default=False,
    help="Print the template with defaults applied and exit.",
)
@click.option(
    "--init",
    "do_init",
    is_flag=True,
    default=False,
    help="Scaffold .llm-caller.yaml + templates/ in CWD.",
)
@click.option("--debug", is_flag=True, default=False, help="Debug logging to stderr.")
@click.version_option(__version__, prog_name="llm-caller")
def main(
    template_name,
    template_json,
    template_base64,
    var,
    api_key,
    output_path,
    config_file,
    templates_dir_override,
    show_list_templates,
    do_validate,
    do_show,
    do_init,
    debug,
):
    """Call an LLM API from a template and print the extracted text."""
    from llm_caller.core import (
        build_bindings,
        call_template,
        decode_template_base64,
        list_templates,
        load_config,
        load_env,
        load_template_source,
        resolve_api_key,
        resolve_config_path,
        write_output,
    )
    from llm_caller.errors import LLMCallerError
    from llm_caller.template import parse_template

    _setup_logging(debug)

    if do_init:
        _cmd_init()
        return

    try:
        settings = load_config(resolve_config_path(config_file))

        if show_list_templates:
            _cmd_list_templates(list_templates(settings, templates_dir_override))
            return

        # --- Template source (mutually exclusive) ---
        sources = [s for s in (template_name, template_json, template_base64) if s is not None]
        if not sources:
            click.echo(
                "ERROR: must specify a template source: template file, "
                "--template-json, or --template-base64",
                err=True,
            )
            sys.exit(1)
        if len(sources) > 1:
            click.echo(
                "ERROR: template sources are mutually exclusive: specify only one of "
                "template file, --template-json, or --template-base64",
                err=True,
            )
            sys.exit(1)

        if template_name is not None:
            template = load_template_source(template_name, settings, templates_dir_override)
        elif template_json is not None:
            template = parse_template(template_json)
        else:
            template = parse_template(decode_template_base64(template_base64))

        if do_validate:
            click.echo(f"OK: {template.provider}")
            return
        if do_show:
            click.echo(json.dumps(template.to_dict(), indent=2, ensure_ascii=False))
            return

        env = load_env(settings.env_file)
        key = resolve_api_key(template.provider, api_key, settings.secret_file, env)
        bindings = build_bindings(var, api_key=key)

        result = call_template(template, bindings)

        if output_path:
            saved = write_output(result, output_path)
            click.echo(f"Result saved to {saved}")
        else:
            # color=True keeps click from stripping escape sequences out of the result
            click.echo(result, nl=False, color=True)

    except LLMCallerError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)


# ── Helpers ─────────────────────────────────────────────────────────────


def _setup_logging(debug: bool) -> None:
    if not debug:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    package_logger = logging.getLogger("llm_caller")
    package_logger.handlers = [handler]
    package_logger.setLevel(logging.DEBUG)


def _cmd_list_templates(listing):
    if not listing:
        click.echo("No templates directory found.")
        click.echo("Searched: template_dir from config, ./templates/, ~/.llm-caller/templates/")
        click.echo("Templates are user-created .json files, not built-in.")
        return

    total = 0
    for tdir, entries in listing:
        click.echo(f"Templates from: {tdir}")
        if not entries:
            click.echo("  (no templates found)\n")
            continue
        for filename, template in entries:
            name = Path(filename).stem
            if template is None:
                click.echo(f"  {name} — (invalid template)")
                continue
            label = template.title or template.description
            click.echo(f"  {name} — {label}" if label else f"  {name}")
            click.echo(f"    {template.provider} | {template.request.method} {template.request.url}")
        click.echo()
        total += len(entries)

    click.echo(f"Total: {total} template(s)")


def _cmd_init():
    """Scaffold .llm-caller.yaml + templates/ in CWD."""
    config_file = Path(".llm-caller.yaml")
    templates_dir = Path("templates")
    example = templates_dir / "ollama-generate.json"

    if config_file.exists():
        click.echo(f"  {config_file} (skipped, already exists)")
    else:
        config_file.write_text(_generate_config())
        click.echo(f"  {config_file} (created)")

    if templates_dir.exists():
        click.echo(f"  {templates_dir}/ (skipped, already exists)")
    else:
        templates_dir.mkdir(parents=True)
        example.write_text(json.dumps(_example_template(), indent=2) + "\n")
        click.echo(f"  {templates_dir}/ (created)")
        click.echo(f"  {example} (created)")

    click.echo("\nProject initialized. Run 'llm-caller --help' to get started.")


def _generate_config() -> str:
    """Return .llm-caller.yaml content string."""
    return """\
# llm-caller configuration
# See: llm-caller --help

template_dir: templates
# secret_file: keys.json        # {"<provider>_api_key": "...", "api_key": "..."}
# env_file: .env
"""


def _example_template() -> dict:
    return {
        "provider": "ollama",
        "title": "Ollama generate",
        "description": "Local Ollama server, no API key needed",
        "request": {
            "url": "http://localhost:11434/api/generate",
            "method": "POST",
            "headers": {"Content-Type": "application/json"},
            "body": {"model": "{{model}}", "prompt": "{{prompt}}", "stream": False},
        },
        "response": {"path": "response", "auto_detect": True},
    }
