"""
auth/contexts.py -- Token contexts and their validity windows.

A context scopes a token's lookup namespace and its validity rules. Contexts
are a closed tagged variant:

    Session | Confirm | ResetPassword | ChangeEmail(target)

Each variant renders to the string tag that is persisted in users_tokens.context
("session", "confirm", "reset_password", "change:<target>"). Variants are frozen
dataclasses, so equality is structural: ChangeEmail("a@x.io") == ChangeEmail("a@x.io")
and never equals Confirm().

ValidityWindows holds one timedelta per ContextKind. Every variant maps to a
window by construction -- there is no fall-through for an unmapped context.

Layer rule: imports only stdlib at runtime. core.config.Settings is imported
for type checking only, so ValidityWindows.from_settings() stays free of
pydantic at import time.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from core.config import Settings

CHANGE_EMAIL_PREFIX = "change:"


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class ContextKind(enum.Enum):
    SESSION = "session"
    CONFIRM = "confirm"
    RESET_PASSWORD = "reset_password"
    CHANGE_EMAIL = "change"


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Session:
    kind: ContextKind = field(default=ContextKind.SESSION, init=False, repr=False)

    @property
    def tag(self) -> str:
        return "session"


@dataclass(frozen=True)
class Confirm:
    kind: ContextKind = field(default=ContextKind.CONFIRM, init=False, repr=False)

    @property
    def tag(self) -> str:
        return "confirm"


@dataclass(frozen=True)
class ResetPassword:
    kind: ContextKind = field(default=ContextKind.RESET_PASSWORD, init=False, repr=False)

    @property
    def tag(self) -> str:
        return "reset_password"


@dataclass(frozen=True)
class ChangeEmail:
    """Email-change context bound to one target address.

    The target is part of the lookup key, so a token issued for one address
    never verifies for another.
    """

    target: str
    kind: ContextKind = field(default=ContextKind.CHANGE_EMAIL, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.target:
            raise ValueError("ChangeEmail target must be a non-empty email address.")

    @property
    def tag(self) -> str:
        return f"{CHANGE_EMAIL_PREFIX}{self.target}"


TokenContext = Union[Session, Confirm, ResetPassword, ChangeEmail]

SESSION = Session()
CONFIRM = Confirm()
RESET_PASSWORD = ResetPassword()

_FIXED: dict[str, TokenContext] = {ctx.tag: ctx for ctx in (SESSION, CONFIRM, RESET_PASSWORD)}


def parse_context(tag: str) -> TokenContext:
    """Turn a persisted context tag back into its variant.

    Raises ValueError for unknown tags and for "change:" with no target.
    """
    if tag in _FIXED:
        return _FIXED[tag]
    if tag.startswith(CHANGE_EMAIL_PREFIX):
        return ChangeEmail(tag[len(CHANGE_EMAIL_PREFIX) :])
    raise ValueError(f"Unknown token context: {tag!r}")


def is_hashed(context: TokenContext) -> bool:
    """Return True for contexts whose tokens are stored as a digest."""
    return context.kind is not ContextKind.SESSION


# ---------------------------------------------------------------------------
# Validity windows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidityWindows:
    """Maximum token age per context kind.

    Defaults: session 60 days, confirm 7 days, reset_password 1 day,
    change-email 7 days.
    """

    session: timedelta = timedelta(days=60)
    confirm: timedelta = timedelta(days=7)
    reset_password: timedelta = timedelta(days=1)
    change_email: timedelta = timedelta(days=7)

    def __post_init__(self) -> None:
        for kind in ContextKind:
            if self.for_kind(kind) <= timedelta(0):
                raise ValueError(f"Validity window for {kind.value!r} must be positive.")

    def for_kind(self, kind: ContextKind) -> timedelta:
        return {
            ContextKind.SESSION: self.session,
            ContextKind.CONFIRM: self.confirm,
            ContextKind.RESET_PASSWORD: self.reset_password,
            ContextKind.CHANGE_EMAIL: self.change_email,
        }[kind]

    def window_for(self, context: TokenContext) -> timedelta:
        return self.for_kind(context.kind)

    @classmethod
    def from_settings(cls, settings: Settings) -> ValidityWindows:
        """Build windows from a core.config.Settings instance."""
        return cls(
            session=timedelta(days=settings.session_validity_days),
            confirm=timedelta(days=settings.confirm_validity_days),
            reset_password=timedelta(days=settings.reset_password_validity_days),
            change_email=timedelta(days=settings.change_email_validity_days),
        )


class _AllContexts(enum.Enum):
    ALL = "all"


# Sentinel for "every context" in enumeration and deletion helpers.
ALL_CONTEXTS = _AllContexts.ALL
