"""
auth/models.py -- Domain dataclasses for token authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store and verifier do the work.

Layer rule: no imports from core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """The identity a token stands in for.

    Only the fields the token flows need: id for ownership, email for binding
    hashed-context tokens to the address they were sent to, confirmed_at for
    the confirm flow.
    """

    email: str
    id: int | None = None
    confirmed_at: datetime | None = None
    inserted_at: datetime | None = None


@dataclass(frozen=True)
class UserToken:
    """A persisted token record. Never updated once created -- read or delete.

    Security design:
    - For the "session" context, token holds the raw 32 random bytes. The raw
      value lives only in a signed place the caller controls (e.g. a signed
      cookie), and equality lookup needs the raw bytes.
    - For every other context, token holds SHA-256(raw). The raw value was
      emailed to the user; a leaked table cannot be turned back into working
      links.
    - tracking_id is a short public handle for listing and revoking a session
      without ever displaying the token itself.
    - sent_to is the address a hashed token was delivered to. Verification of
      confirm/reset_password tokens requires it to match the user's current
      email.
    """

    token: bytes
    context: str
    user_id: int
    tracking_id: str
    sent_to: str | None = None
    id: int | None = None
    inserted_at: datetime | None = None  # stamped by the store on insert
