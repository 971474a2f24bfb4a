"""
auth/errors.py -- Token verification failure taxonomy.

Every TokenError renders the same user-facing message. The code attribute
carries the internal reason for logging only -- callers must not echo it back
to clients, or the distinction becomes an oracle.

RandomSourceFailure is not a TokenError: it signals that the
process cannot produce secure tokens at all and must propagate as a system
error, never be folded into "authentication failed".
"""

from __future__ import annotations

PUBLIC_MESSAGE = "Invalid or expired token."


class TokenError(Exception):
    """Base class for non-fatal token verification failures."""

    code = "invalid_token"

    def __init__(self, detail: str = "") -> None:
        super().__init__(PUBLIC_MESSAGE)
        self.detail = detail


class MalformedToken(TokenError):
    """The presented token could not be decoded from its transport encoding."""

    code = "malformed_token"


class TokenNotFound(TokenError):
    """No record matches the derived lookup key and context."""

    code = "not_found"


class TokenExpired(TokenError):
    """A matching record exists but is outside its context's validity window."""

    code = "expired"


class RandomSourceFailure(RuntimeError):
    """The secure random source could not supply bytes. Fatal."""
