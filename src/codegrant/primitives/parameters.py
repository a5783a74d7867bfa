"""Token endpoint response body parsing.

The token endpoint is supposed to answer with a JSON object (RFC 6749
Section 5.1), but some providers use non-standard formats. Any callable
matching ``GetParameters`` can be plugged into a grant to support them.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any
from urllib.parse import urlparse

GetParameters = Callable[[str | None, str], dict[str, Any]]

# Some providers (e.g. Dropbox) serve JSON as text/javascript
JSON_MIME_TYPES = ("application/json", "text/javascript")


def mime_type(content_type: str | None) -> str | None:
    """Extract the lowercase ``type/subtype`` from a Content-Type header."""
    if not content_type:
        return None
    return content_type.split(";", 1)[0].strip().lower()


def parse_json_parameters(content_type: str | None, body: str) -> dict[str, Any]:
    """Parse a standard JSON token endpoint response.

    Args:
        content_type: Raw Content-Type header of the response, if any
        body: Response body decoded as text

    Returns:
        The decoded JSON object

    Raises:
        ValueError: If the content type isn't JSON or the body isn't a JSON object
    """
    if mime_type(content_type) not in JSON_MIME_TYPES:
        raise ValueError(
            f'Content-Type was "{content_type}", expected "application/json"'
        )

    parameters = json.loads(body)
    if not isinstance(parameters, dict):
        raise ValueError(f'Parameters must be a map, was "{parameters}"')

    return parameters


def check_error_uri(value: str) -> str:
    """Ensure an ``error_uri`` parameter parses as a URI reference.

    Raises:
        ValueError: If the value can't be parsed
    """
    try:
        urlparse(value)
    except ValueError:
        raise ValueError(
            f'parameter "error_uri" was not a valid URI, was "{value}"'
        ) from None
    return value
