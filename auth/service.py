"""
auth/service.py -- Token lifecycle flows built on factory, store, and verifier.

Each flow is one of the places the primitives get wired together:

  Login:          generate_session_token() -> raw bytes for the signed cookie
  Per request:    get_user_by_session_token() -> User or None
  Logout:         delete_session_token()
  Session list:   list_sessions(), revoke_session(), revoke_other_sessions()
  Confirm email:  issue_email_token(user, CONFIRM) then confirm_user()
  Reset password: issue_email_token(user, RESET_PASSWORD) then
                  consume_reset_password_token()
  Change email:   issue_change_email_token() then apply_email_change()
  Maintenance:    purge_expired()

One-time use: the consume/confirm/apply flows delete the tokens right after
a successful verification. Two requests presenting the same token in the
window between verify and delete can both succeed; callers that need strict
single use must run the flow inside their own transaction around the state
change.

Outbound delivery (email) and the cookie itself belong to the caller.
"""

from __future__ import annotations

import logging

from auth.contexts import (
    ALL_CONTEXTS,
    CONFIRM,
    RESET_PASSWORD,
    ChangeEmail,
    ContextKind,
    TokenContext,
    ValidityWindows,
)
from auth.errors import TokenError, TokenNotFound
from auth.models import User, UserToken
from auth.store import TokenStore
from auth.tokens import TokenFactory
from auth.verifier import TokenVerifier
from core.config import get_settings

logger = logging.getLogger("nimble.auth")


class TokenService:
    """Token flows for one store.

    Usage:
        service = TokenService(TokenStore())
        raw = service.generate_session_token(user)
        user = service.get_user_by_session_token(raw)
    """

    def __init__(
        self,
        store: TokenStore,
        verifier: TokenVerifier | None = None,
        factory: TokenFactory | None = None,
    ) -> None:
        self.store = store
        self.verifier = verifier or TokenVerifier(store, ValidityWindows.from_settings(get_settings()))
        self.factory = factory or TokenFactory()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def generate_session_token(self, user: User) -> bytes:
        token, record = self.factory.build_session_token(user)
        record = self.store.insert_token(record)
        logger.info("Session issued for user %s (tracking_id=%s)", user.id, record.tracking_id)
        return token

    def get_user_by_session_token(self, token: bytes) -> User | None:
        """Soft variant: any verification failure yields None."""
        try:
            return self.verifier.verify_session_token(token)
        except TokenError:
            return None

    def delete_session_token(self, token: bytes) -> None:
        self.store.delete_session_token(token)

    def list_sessions(self, user: User) -> list[UserToken]:
        return self.store.session_tokens(user.id)

    def revoke_session(self, user: User, tracking_id: str) -> bool:
        """Revoke one of the user's sessions by its displayed tracking id."""
        record = self.store.session_token_by_tracking_id(user.id, tracking_id)
        if record is None:
            return False
        self.store.delete_token(record)
        logger.info("Session %s revoked for user %s", tracking_id, user.id)
        return True

    def revoke_other_sessions(self, user: User, current_token: bytes) -> int:
        """Log out every session of the user except the current one."""
        count = self.store.delete_tokens(self.store.other_session_tokens(user.id, current_token))
        logger.info("Revoked %d other session(s) for user %s", count, user.id)
        return count

    # ------------------------------------------------------------------
    # Emailed tokens
    # ------------------------------------------------------------------

    def issue_email_token(self, user: User, context: TokenContext) -> str:
        """Persist a hashed token for an emailed link and return the encoded token."""
        if context.kind is ContextKind.SESSION:
            raise ValueError("Use generate_session_token() for sessions.")
        encoded, record = self.factory.build_email_token(user, context)
        self.store.insert_token(record)
        logger.info("Issued %s token for user %s", context.kind.value, user.id)
        return encoded

    def issue_change_email_token(self, user: User, new_email: str) -> str:
        return self.issue_email_token(user, ChangeEmail(new_email))

    def confirm_user(self, token: str) -> User:
        """Confirm the user's email and burn their confirm tokens."""
        user = self.verifier.verify_email_token(token, CONFIRM)
        self.store.mark_user_confirmed(user.id)
        self.store.delete_tokens_for_user_and_contexts(user.id, [CONFIRM])
        return self.store.get_user(user.id)

    def consume_reset_password_token(self, token: str) -> User:
        """Verify a reset token and delete every token the user holds.

        Resetting the password logs the user out everywhere, so sessions go
        too. The caller sets the new password.
        """
        user = self.verifier.verify_email_token(token, RESET_PASSWORD)
        count = self.store.delete_tokens_for_user_and_contexts(user.id, ALL_CONTEXTS)
        logger.info("Password reset for user %s; %d token(s) deleted", user.id, count)
        return user

    def apply_email_change(self, user: User, token: str, new_email: str) -> User:
        """Swap the user's email to new_email if the token authorizes it.

        Raises TokenNotFound when the token belongs to another user, and
        sqlalchemy.exc.IntegrityError when new_email is already taken.
        """
        context = ChangeEmail(new_email)
        record = self.verifier.verify_change_email_token(token, context)
        if record.user_id != user.id:
            logger.debug("Change-email token presented by non-owner user %s", user.id)
            raise TokenNotFound("token owned by another user")
        self.store.update_user_email(user.id, new_email)
        self.store.delete_tokens_for_user_and_contexts(user.id, [context])
        logger.info("Email changed for user %s", user.id)
        return self.store.get_user(user.id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        count = self.store.delete_expired_tokens(self.verifier.windows, self.verifier.now())
        logger.info("Purged %d expired token(s)", count)
        return count

