"""PKCE (Proof Key for Code Exchange) and CSRF ``state`` helpers.

RFC 7636 defines PKCE to protect public OAuth clients.  The mechanism relies on
a *code verifier* (random high-entropy string) generated at the beginning of
the flow and a *code challenge* derived from that verifier that is sent to the
authorization endpoint.

The provider app is registered as a *Native App* and the flow uses the
``plain`` transformation, so the challenge sent to the authorize endpoint and
the verifier sent to the token endpoint are the same string.

This module intentionally performs **no logging** of verifiers or states.
"""

from __future__ import annotations

import secrets
from typing import Final

CHALLENGE_METHOD: Final[str] = "plain"

# RFC-7636 §4.1 mandates the verifier length between 43 and 128 characters.
_VERIFIER_LEN: Final[int] = 64
_STATE_BYTES: Final[int] = 24
_ALLOWED_CHARS: Final[str] = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
    "0123456789"
    "-._~"
)


def _random_urlsafe_string(length: int) -> str:
    """Return a cryptographically secure, URL-safe random string."""
    return "".join(secrets.choice(_ALLOWED_CHARS) for _ in range(length))


def generate_code_verifier(length: int = _VERIFIER_LEN) -> str:
    """Generate a high-entropy code verifier.

    Parameters
    ----------
    length:
        Desired length between 43 and 128 characters (default 64).

    Returns
    -------
    str
        The generated code verifier.
    """
    if not 43 <= length <= 128:
        raise ValueError("code verifier length must be 43-128 characters")
    return _random_urlsafe_string(length)


def generate_state() -> str:
    """Return an opaque, URL-safe CSRF token."""
    return secrets.token_urlsafe(_STATE_BYTES)

