"""
auth/verifier.py -- Token verification for all contexts.

Two modes, chosen by the context variant:

  Session mode (Session):
      The presented bytes are the lookup key as-is. No decoding, no hashing.
      Valid for ValidityWindows.session (60 days by default).

  Hashed mode (Confirm, ResetPassword, ChangeEmail):
      The presented string is URL-safe base64 decoded (MalformedToken on
      failure), hashed with SHA-256, and looked up under the exact context tag.
      Confirm and ResetPassword also require record.sent_to to equal the
      owning user's *current* email, so a token dies when the email changes.
      ChangeEmail skips that join -- the target address is part of the context
      -- and returns the record so the caller can perform the swap.

Validity rule for every context: inserted_at > now - window. A record exactly
one window old is expired.

Failures raise TokenError subclasses (MalformedToken, TokenNotFound,
TokenExpired). They all share one public message; the code attribute is for
logs and metrics only. Verification never writes to the store, so concurrent
verifications of the same token all see the same outcome until the caller
deletes it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from auth.contexts import (
    ChangeEmail,
    Confirm,
    ContextKind,
    ResetPassword,
    Session,
    TokenContext,
    ValidityWindows,
    utc_now,
)
from auth.errors import MalformedToken, TokenError, TokenExpired, TokenNotFound
from auth.models import User, UserToken
from auth.store import TokenStore
from auth.tokens import decode_token, hash_token

logger = logging.getLogger("nimble.auth")


class TokenVerifier:
    """Checks presented tokens against the store.

    Usage:
        verifier = TokenVerifier(store)
        user = verifier.verify_session_token(raw_cookie_bytes)
        user = verifier.verify_email_token(link_token, RESET_PASSWORD)
        record = verifier.verify_change_email_token(link_token, ChangeEmail("new@example.com"))

    windows and clock are injected so tests can pin "now" and shrink windows.
    """

    def __init__(
        self,
        store: TokenStore,
        windows: ValidityWindows | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.windows = windows or ValidityWindows()
        self._clock = clock

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def verify(self, presented: bytes | str, context: TokenContext) -> User | UserToken:
        """Verify under any context.

        Returns the User for Session, Confirm and ResetPassword; returns the
        UserToken record for ChangeEmail.
        """
        if isinstance(context, Session):
            return self.verify_session_token(presented)
        if isinstance(context, (Confirm, ResetPassword)):
            return self.verify_email_token(presented, context)
        if isinstance(context, ChangeEmail):
            return self.verify_change_email_token(presented, context)
        raise TypeError(f"Unsupported token context: {context!r}")

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def verify_session_token(self, token: bytes) -> User:
        context = Session()
        try:
            if not isinstance(token, (bytes, bytearray)):
                raise MalformedToken("session token must be bytes")
            found = self.store.get_token_with_user(bytes(token), context)
            if found is None:
                raise TokenNotFound()
            record, user = found
            self._check_window(record, context)
        except TokenError as exc:
            self._log_failure(exc, context)
            raise
        return user

    def verify_email_token(self, token: str, context: Confirm | ResetPassword) -> User:
        """Verify a confirm or reset_password token and return its user."""
        if context.kind not in (ContextKind.CONFIRM, ContextKind.RESET_PASSWORD):
            raise ValueError(f"verify_email_token does not handle {context.tag!r}")
        try:
            digest = hash_token(decode_token(token))
            found = self.store.get_token_with_user(digest, context)
            if found is None:
                raise TokenNotFound()
            record, user = found
            # Bound to the email at verification time, not issuance time.
            if record.sent_to != user.email:
                raise TokenNotFound("sent_to no longer matches user email")
            self._check_window(record, context)
        except TokenError as exc:
            self._log_failure(exc, context)
            raise
        return user

    def verify_change_email_token(self, token: str, context: ChangeEmail) -> UserToken:
        """Verify a change-email token and return the record itself."""
        try:
            digest = hash_token(decode_token(token))
            record = self.store.get_token(digest, context)
            if record is None:
                raise TokenNotFound()
            self._check_window(record, context)
        except TokenError as exc:
            self._log_failure(exc, context)
            raise
        return record

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    def is_within_window(self, record: UserToken, context: TokenContext) -> bool:
        return record.inserted_at > self.now() - self.windows.window_for(context)

    def _check_window(self, record: UserToken, context: TokenContext) -> None:
        if not self.is_within_window(record, context):
            raise TokenExpired(f"token {record.id} older than {self.windows.window_for(context)}")

    @staticmethod
    def _log_failure(exc: TokenError, context: TokenContext) -> None:
        # Never log token material -- only the reason and context kind.
        logger.debug(
            "Token verification failed: code=%s context=%s detail=%s",
            exc.code,
            context.kind.value,
            exc.detail,
        )
