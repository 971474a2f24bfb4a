"""
auth/tokens.py -- Token generation, hashing, and transport encoding.

Security design decisions:
  Randomness: every token is 32 bytes (256 bits) from secrets.token_bytes,
       which draws from the OS CSPRNG and is safe to call from many threads
       without locking. A failing random source raises RandomSourceFailure;
       there is no fallback to a weaker generator.

  Session tokens: stored raw. The caller keeps them in a signed place (a
       signed cookie or server-side session), so hashing adds nothing and would
       block the equality lookup the verifier relies on.

  Email tokens (confirm, reset_password, change:<email>): the raw bytes are
       URL-safe base64 encoded (no padding) for embedding in a link, and only
       SHA-256(raw) is persisted. SHA-256 rather than bcrypt because the input
       already has 256 bits of entropy -- a slow KDF buys nothing here and a
       deterministic digest keeps the lookup O(1).

  Tracking ids: 16 random bytes, encoded, cut to 16 characters. Safe to show
       in a "your sessions" list; never sufficient to authenticate.

Layer rule: no imports from core/. The factory is pure -- it builds
(raw_token, UserToken) pairs and never touches the store.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import re
import secrets
from typing import Callable

from auth.contexts import SESSION, ContextKind, TokenContext, is_hashed
from auth.errors import MalformedToken, RandomSourceFailure
from auth.models import User, UserToken

logger = logging.getLogger("nimble.auth")

RAND_SIZE = 32
TRACKING_ID_SIZE = 16

# URL-safe alphabet, optional trailing padding (accepted, never emitted).
_URLSAFE_RE = re.compile(r"[A-Za-z0-9_-]*={0,2}")

# ---------------------------------------------------------------------------
# Transport encoding
# ---------------------------------------------------------------------------


def encode_token(raw: bytes) -> str:
    """URL-safe base64 without '=' padding."""
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_token(encoded: str | bytes) -> bytes:
    """Decode a URL-safe base64 token, padded or not.

    Lenient on padding, strict on structure: characters outside the URL-safe
    alphabet (including '+' and '/') or a length no base64 string can have
    raise MalformedToken.
    """
    if isinstance(encoded, bytes):
        try:
            encoded = encoded.decode("ascii")
        except UnicodeDecodeError as exc:
            raise MalformedToken("non-ascii input") from exc
    if not isinstance(encoded, str) or not _URLSAFE_RE.fullmatch(encoded):
        raise MalformedToken("invalid alphabet")
    stripped = encoded.rstrip("=")
    if len(stripped) % 4 == 1:
        raise MalformedToken("invalid length")
    padded = stripped + "=" * (-len(stripped) % 4)
    try:
        return base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as exc:
        raise MalformedToken(str(exc)) from exc


def hash_token(raw: bytes) -> bytes:
    """Return the SHA-256 digest stored for hashed-context tokens."""
    return hashlib.sha256(raw).digest()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TokenFactory:
    """Builds (raw_token, UserToken) pairs.

    Usage:
        factory = TokenFactory()
        raw, record = factory.build_session_token(user)
        store.insert_token(record)
        # raw goes into the signed session cookie

        encoded, record = factory.build_email_token(user, RESET_PASSWORD)
        store.insert_token(record)
        # encoded goes into the emailed link

    random_bytes is injectable for tests; it must be a CSPRNG in production.
    """

    def __init__(self, random_bytes: Callable[[int], bytes] = secrets.token_bytes) -> None:
        self._random_bytes = random_bytes

    def _rand(self, size: int) -> bytes:
        try:
            data = self._random_bytes(size)
        except (OSError, NotImplementedError) as exc:
            logger.critical("Secure random source failed: %s", exc)
            raise RandomSourceFailure("secure random source unavailable") from exc
        if len(data) != size:
            raise RandomSourceFailure(f"random source returned {len(data)} bytes, expected {size}")
        return data

    def build_tracking_id(self) -> str:
        return encode_token(self._rand(TRACKING_ID_SIZE))[:TRACKING_ID_SIZE]

    def build_session_token(self, user: User) -> tuple[bytes, UserToken]:
        """Generate a session token. The record stores the raw bytes unhashed."""
        token = self._rand(RAND_SIZE)
        record = UserToken(
            token=token,
            context=SESSION.tag,
            user_id=user.id,
            tracking_id=self.build_tracking_id(),
        )
        return token, record

    def build_email_token(self, user: User, context: TokenContext) -> tuple[str, UserToken]:
        """Generate an emailed token with a hashed counterpart.

        The encoded token goes to the user's email; only its hash is stored,
        bound to the address it was sent to.
        """
        if not is_hashed(context):
            raise ValueError("Session tokens are not emailed; use build_session_token().")
        token = self._rand(RAND_SIZE)
        record = UserToken(
            token=hash_token(token),
            context=context.tag,
            user_id=user.id,
            tracking_id=self.build_tracking_id(),
            sent_to=user.email,
        )
        return encode_token(token), record

    def issue(self, user: User, context: TokenContext) -> tuple[bytes | str, UserToken]:
        """Build the pair for any context: raw bytes for sessions, encoded str otherwise."""
        if context.kind is ContextKind.SESSION:
            return self.build_session_token(user)
        return self.build_email_token(user, context)
