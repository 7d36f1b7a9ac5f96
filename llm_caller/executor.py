"""llm-caller executor - HTTP request execution."""

import json
import logging
import time
from typing import Any

import requests

from llm_caller import __version__
from llm_caller.errors import APIError, MalformedTemplate, NetworkError
from llm_caller.template import Template

logger = logging.getLogger(__name__)

USER_AGENT = f"llm-caller/{__version__}"


class RequestResult:
    """Result of an HTTP request."""

    def __init__(self):
        self.status_code: int = 0
        self.headers: dict[str, str] = {}
        self.raw_text: str = ""
        self.elapsed_ms: float = 0


def execute_request(
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    body: Any = None,
) -> RequestResult:
    """Send one JSON request and return the buffered response.

    - Serializes body to JSON
    - Always overwrites User-Agent
    - Raises MalformedTemplate for header values HTTP cannot carry
    - Raises NetworkError on transport failure
    - Raises APIError on any status other than 200, keeping the raw body

    No retries and no timeout beyond the transport default.
    """
    req_headers = {k: v for k, v in (headers or {}).items() if k.lower() != "user-agent"}
    req_headers["User-Agent"] = USER_AGENT
    _check_headers(req_headers)

    data = json.dumps(body, ensure_ascii=False).encode("utf-8")

    logger.debug("%s %s (%d byte body)", method.upper(), url, len(data))
    start = time.monotonic()
    try:
        resp = requests.request(
            method=method.upper(),
            url=url,
            headers=req_headers,
            data=data,
        )
    except requests.exceptions.ConnectionError as e:
        raise NetworkError(f"failed to send request: connection error: {e}") from e
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"failed to send request: {e}") from e

    result = RequestResult()
    result.elapsed_ms = (time.monotonic() - start) * 1000
    result.status_code = resp.status_code
    result.headers = dict(resp.headers)
    # JSON is UTF-8; don't let requests guess from the bytes.
    result.raw_text = resp.content.decode("utf-8", errors="replace")
    logger.debug("status %d in %dms", result.status_code, int(result.elapsed_ms))

    if result.status_code != 200:
        raise APIError(result.status_code, result.raw_text)

    return result


def invoke(template: Template) -> RequestResult:
    """Execute the request described by an already-substituted template."""
    return execute_request(
        method=template.request.method,
        url=template.request.url,
        headers=template.request.headers,
        body=template.request.body,
    )


def _check_headers(headers: dict[str, str]) -> None:
    # http.client encodes names as ASCII and values as Latin-1
    for name, value in headers.items():
        if not name.isascii():
            raise MalformedTemplate(f"header name {name!r} must be ASCII")
        try:
            value.encode("latin-1")
        except UnicodeEncodeError as e:
            raise MalformedTemplate(
                f"header {name} has a value that cannot be sent over HTTP "
                f"(non Latin-1 character {value[e.start]!r})",
            ) from e
