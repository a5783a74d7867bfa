"""Static client configuration for an authorization code grant.

Bundles what stays the same across authorization attempts, so a grant can be
rebuilt from stored configuration (for example when resuming a ``GrantStep``
after a restart).
"""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


class GrantConfig(BaseModel):
    """Client registration and endpoint configuration for a grant."""

    client_id: str = Field(min_length=1)
    client_secret: str | None = None
    authorization_endpoint: str
    token_endpoint: str

    basic_auth: bool = True
    delimiter: str = Field(default=" ", min_length=1)
    allowed_token_types: list[str] = Field(default=["Bearer"], min_length=1)
    timeout: float = Field(default=30.0, gt=0)

    @field_validator("authorization_endpoint", "token_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Endpoints must be absolute HTTP(S) URLs."""
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Endpoint must be an absolute http(s) URL: {v}")
        return v
