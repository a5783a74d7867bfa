"""Security utilities for OAuth2 flows.

Provides cryptographically secure state generation and constant-time
state validation for CSRF protection.
"""

from __future__ import annotations

import secrets
import string

from codegrant.models.errors import StateValidationError


def generate_state() -> str:
    """Generate cryptographically secure state parameter.

    The state parameter provides CSRF protection by ensuring the callback
    matches the initial authorization request.

    Returns:
        Cryptographically secure random state string (32 characters)
    """
    alphabet = string.ascii_letters + string.digits + "-._~"
    return "".join(secrets.choice(alphabet) for _ in range(32))


def validate_state(expected: str, actual: str | None, endpoint: str = "") -> None:
    """Validate state parameter matches expected value.

    Args:
        expected: State parameter from initial authorization request
        actual: State parameter from callback, or None if it was missing
        endpoint: Authorization endpoint, used in error messages

    Raises:
        StateValidationError: If the state is missing or doesn't match
    """
    prefix = f'Invalid OAuth response for "{endpoint}": ' if endpoint else ""

    if actual is None:
        raise StateValidationError(
            f'{prefix}parameter "state" expected to be "{expected}", was missing.'
        )

    if not secrets.compare_digest(expected.encode("utf-8"), actual.encode("utf-8")):
        raise StateValidationError(
            f'{prefix}parameter "state" expected to be "{expected}", '
            f'was "{actual}".'
        )
