"""PKCE (Proof Key for Code Exchange) primitives.

Implements RFC 7636 code verifier generation and S256 code challenge
derivation, which protect the authorization code against interception.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import string

CODE_VERIFIER_LENGTH = 128
CODE_CHALLENGE_METHOD = "S256"

# RFC 7636 Section 4.1 unreserved characters
UNRESERVED_CHARACTERS = string.ascii_letters + string.digits + "-._~"


def generate_code_verifier() -> str:
    """Generate a cryptographically secure code verifier.

    RFC 7636 Section 4.1: code verifier must be 43-128 characters long
    and use only unreserved characters:
        [A-Z] / [a-z] / [0-9] / "-" / "." / "_" / "~"

    Returns:
        A 128-character code verifier (maximum length for best security)
    """
    return "".join(
        secrets.choice(UNRESERVED_CHARACTERS) for _ in range(CODE_VERIFIER_LENGTH)
    )


def derive_code_challenge(code_verifier: str) -> str:
    """Derive the code challenge from a code verifier using the S256 method.

    RFC 7636 Section 4.2: For S256, the code challenge is:
    BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))

    Args:
        code_verifier: The code verifier to hash

    Returns:
        Base64url-encoded SHA256 hash of the code verifier, without padding
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()

    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
