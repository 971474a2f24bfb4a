"""Tests for main.py -- the maintenance CLI.

The CLI opens its own TokenStore from --db, so these tests use a SQLite file
under tmp_path rather than an in-memory database.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from auth.contexts import RESET_PASSWORD
from auth.models import User
from auth.store import TokenStore
from auth.tokens import TokenFactory
from main import main


@pytest.fixture
def db(tmp_path) -> tuple[str, int, str]:
    """Yield (db_url, user_id, tracking_id) for a user with one live session and one stale reset token."""
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    store = TokenStore(url)
    uid = store.create_user(User(email="ada@example.com"))
    user = store.get_user(uid)
    factory = TokenFactory()
    _, session = factory.build_session_token(user)
    session = store.insert_token(session)
    _, reset = factory.build_email_token(user, RESET_PASSWORD)
    store.insert_token(replace(reset, inserted_at=datetime.now(timezone.utc) - timedelta(days=3)))
    store.close()
    return url, uid, session.tracking_id


def test_no_command_prints_help(capsys) -> None:
    assert main([]) == 0
    assert "usage: nimble-tokens" in capsys.readouterr().out


def test_purge(db, capsys) -> None:
    url, _, _ = db
    assert main(["--db", url, "purge"]) == 0
    assert "Purged 1 expired token(s)." in capsys.readouterr().out


def test_sessions(db, capsys) -> None:
    url, uid, tracking_id = db
    assert main(["--db", url, "sessions", str(uid)]) == 0
    out = capsys.readouterr().out
    assert "ada@example.com" in out
    assert tracking_id in out
    assert "valid" in out


def test_sessions_unknown_user(db, capsys) -> None:
    url, _, _ = db
    assert main(["--db", url, "sessions", "999"]) == 1
    assert "No user with id 999" in capsys.readouterr().out


def test_revoke(db, capsys) -> None:
    url, uid, tracking_id = db
    assert main(["--db", url, "revoke", str(uid), tracking_id]) == 0
    assert main(["--db", url, "revoke", str(uid), tracking_id]) == 1
    out = capsys.readouterr().out
    assert f"Revoked session {tracking_id}." in out
    assert f"No session {tracking_id}" in out


def test_purge_logged(db, caplog) -> None:
    url, _, _ = db
    with caplog.at_level(logging.INFO, logger="nimble.cli"):
        assert main(["--db", url, "purge"]) == 0
    messages = [r.getMessage() for r in caplog.records if r.name == "nimble.cli"]
    assert "Purge removed 1 expired token(s)" in messages


def test_revoke_miss_logged_as_warning(db, caplog) -> None:
    url, uid, _ = db
    with caplog.at_level(logging.INFO, logger="nimble.cli"):
        assert main(["--db", url, "revoke", str(uid), "nosuchtracking00"]) == 1
    [record] = [r for r in caplog.records if r.name == "nimble.cli"]
    assert record.levelno == logging.WARNING
    assert "nosuchtracking00" in record.getMessage()
