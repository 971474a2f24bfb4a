"""Unit tests for auth/contexts.py -- context variants and validity windows.

Covers:
- Tag rendering for every variant, including the change:<email> suffix
- Structural equality (ChangeEmail compares by target, never equals Confirm)
- parse_context() round trip and rejection of unknown tags
- ValidityWindows defaults, totality over every kind, positivity check
"""

from datetime import timedelta

import pytest

from auth.contexts import (
    CONFIRM,
    RESET_PASSWORD,
    SESSION,
    ChangeEmail,
    Confirm,
    ContextKind,
    ResetPassword,
    Session,
    ValidityWindows,
    is_hashed,
    parse_context,
)
from core.config import Settings


class TestVariants:
    def test_fixed_tags(self) -> None:
        assert SESSION.tag == "session"
        assert CONFIRM.tag == "confirm"
        assert RESET_PASSWORD.tag == "reset_password"

    def test_change_email_tag_embeds_target(self) -> None:
        assert ChangeEmail("new@example.com").tag == "change:new@example.com"

    def test_structural_equality(self) -> None:
        assert Session() == SESSION
        assert ChangeEmail("a@example.com") == ChangeEmail("a@example.com")
        assert ChangeEmail("a@example.com") != ChangeEmail("b@example.com")
        assert ChangeEmail("a@example.com") != Confirm()
        assert Confirm() != ResetPassword()

    def test_variants_are_hashable(self) -> None:
        assert len({ChangeEmail("a@example.com"), ChangeEmail("a@example.com"), CONFIRM}) == 2

    def test_empty_change_email_target_rejected(self) -> None:
        with pytest.raises(ValueError):
            ChangeEmail("")

    def test_only_session_is_unhashed(self) -> None:
        assert not is_hashed(SESSION)
        assert is_hashed(CONFIRM)
        assert is_hashed(RESET_PASSWORD)
        assert is_hashed(ChangeEmail("x@example.com"))


class TestParseContext:
    @pytest.mark.parametrize("ctx", [SESSION, CONFIRM, RESET_PASSWORD, ChangeEmail("n@example.com")])
    def test_round_trip(self, ctx) -> None:
        assert parse_context(ctx.tag) == ctx

    @pytest.mark.parametrize("tag", ["", "Session", "reset-password", "change:", "change"])
    def test_unknown_tags_rejected(self, tag: str) -> None:
        with pytest.raises(ValueError):
            parse_context(tag)


class TestValidityWindows:
    def test_defaults(self) -> None:
        w = ValidityWindows()
        assert w.window_for(SESSION) == timedelta(days=60)
        assert w.window_for(CONFIRM) == timedelta(days=7)
        assert w.window_for(RESET_PASSWORD) == timedelta(days=1)
        assert w.window_for(ChangeEmail("n@example.com")) == timedelta(days=7)

    def test_every_kind_is_mapped(self) -> None:
        w = ValidityWindows()
        for kind in ContextKind:
            assert w.for_kind(kind) > timedelta(0)

    def test_non_positive_window_rejected(self) -> None:
        with pytest.raises(ValueError):
            ValidityWindows(reset_password=timedelta(0))

    def test_from_settings(self) -> None:
        settings = Settings(session_validity_days=30, reset_password_validity_days=2)
        w = ValidityWindows.from_settings(settings)
        assert w.session == timedelta(days=30)
        assert w.reset_password == timedelta(days=2)
        assert w.confirm == timedelta(days=7)
