"""
auth/store.py -- SQLAlchemy Core persistence layer for users and their tokens.

Pattern: Repository + Data Mapper.
TokenStore is the repository; _row_to_user / _row_to_token are the mappers.
The verifier and service never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(token, context) backs the "one record per issued token" invariant.
  With 256-bit random tokens a collision is not expected; if one ever
  happens the insert fails with IntegrityError instead of shadowing a row.

  UNIQUE(email) on users is the identity provider's invariant. Email-context
  token verification compares sent_to against it.

Timestamps are stored as fixed-width ISO 8601 UTC strings (microsecond
precision), so lexical order equals chronological order and inserted_at
comparisons can run in SQL.

Tokens are never updated. A row is inserted, read, and eventually deleted
(logout, revocation, one-time use, or the expiry sweep).

DB path: nimble_tokens.db at the project root unless DATABASE_URL says otherwise.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    and_,
    create_engine,
    event,
    or_,
    select,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

from auth.contexts import (
    ALL_CONTEXTS,
    CHANGE_EMAIL_PREFIX,
    CONFIRM,
    RESET_PASSWORD,
    SESSION,
    ContextKind,
    TokenContext,
    ValidityWindows,
    utc_now,
)
from auth.models import User, UserToken
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("confirmed_at", String(32)),
    Column("inserted_at", String(32), nullable=False),
)

_tokens = Table(
    "users_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("token", LargeBinary(32), nullable=False),  # raw for session, SHA-256 otherwise
    Column("context", String(255), nullable=False),  # "session", "confirm", "reset_password", "change:<email>"
    Column("sent_to", String(255)),  # NULL for session tokens
    Column("tracking_id", String(16), nullable=False),
    Column("inserted_at", String(32), nullable=False),
    UniqueConstraint("token", "context", name="uq_token_context"),
)


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys on each new SQLite connection.

    PRAGMAs are per-connection, so they are set on connect rather than once.
    foreign_keys=ON makes deleting a user cascade to their tokens.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        raise ValueError("Timestamps must be timezone-aware.")
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _tag(context: TokenContext | str) -> str:
    return context if isinstance(context, str) else context.tag


def _context_clause(contexts):
    """WHERE fragment for an enumeration filter, or None for ALL_CONTEXTS."""
    if contexts is ALL_CONTEXTS:
        return None
    if isinstance(contexts, str) or hasattr(contexts, "tag"):
        contexts = [contexts]
    tags = [_tag(c) for c in contexts]
    if not tags:
        raise ValueError("contexts must be ALL_CONTEXTS or a non-empty iterable.")
    return _tokens.c.context.in_(tags)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TokenStore:
    """Repository for User and UserToken entities.

    Usage:
        store = TokenStore("sqlite:///:memory:")
        uid = store.create_user(User(email="ada@example.com"))
        record = store.insert_token(record)
        found = store.get_token(record.token, "session")
        store.delete_token(found)
        store.close()

    clock stamps inserted_at on new rows; tests inject a fake one.
    """

    def __init__(self, db_url: str | None = None, clock: Callable[[], datetime] = utc_now) -> None:
        db_url = db_url or get_settings().database_url
        url = make_url(db_url)
        kwargs: dict = {}
        if url.get_backend_name() == "sqlite":
            kwargs["connect_args"] = {"check_same_thread": False}
            # One shared connection, or every thread would see its own empty database.
            if url.database in (None, "", ":memory:"):
                kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(url, **kwargs)
        if url.get_backend_name() == "sqlite":
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        self._clock = clock
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a user and return its assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the email is already taken.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    confirmed_at=_to_iso(user.confirmed_at) if user.confirmed_at else None,
                    inserted_at=_to_iso(self._clock()),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_user(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_email(self, email: str) -> User | None:
        """Exact (case-sensitive) email match."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user_email(self, user_id: int, email: str) -> bool:
        """Change a user's email. Returns False if user_id was not found.

        Raises sqlalchemy.exc.IntegrityError if the email belongs to another user.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(email=email))
            conn.commit()
        return result.rowcount > 0

    def mark_user_confirmed(self, user_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(confirmed_at=_to_iso(self._clock()))
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Token insert / lookup
    # ------------------------------------------------------------------

    def insert_token(self, record: UserToken) -> UserToken:
        """Persist a freshly built record and return it with id and inserted_at set.

        inserted_at is taken from the record when present (imports, tests),
        otherwise from the store clock.
        """
        inserted_at = record.inserted_at or self._clock()
        with self.engine.connect() as conn:
            result = conn.execute(
                _tokens.insert().values(
                    user_id=record.user_id,
                    token=record.token,
                    context=record.context,
                    sent_to=record.sent_to,
                    tracking_id=record.tracking_id,
                    inserted_at=_to_iso(inserted_at),
                )
            )
            conn.commit()
            token_id = result.inserted_primary_key[0]
        return UserToken(
            id=token_id,
            token=record.token,
            context=record.context,
            user_id=record.user_id,
            tracking_id=record.tracking_id,
            sent_to=record.sent_to,
            inserted_at=_from_iso(_to_iso(inserted_at)),
        )

    def get_token(self, token: bytes, context: TokenContext | str) -> UserToken | None:
        """Return the record matching (token, context) exactly, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _tokens.select().where((_tokens.c.token == token) & (_tokens.c.context == _tag(context)))
            ).fetchone()
        return _row_to_token(row) if row is not None else None

    def get_token_with_user(self, token: bytes, context: TokenContext | str) -> tuple[UserToken, User] | None:
        """Return (record, owning user) for (token, context), or None.

        Uses an inner join, so a record whose user no longer exists is
        indistinguishable from a missing record.
        """
        query = (
            select(
                _tokens,
                _users.c.email.label("user_email"),
                _users.c.confirmed_at.label("user_confirmed_at"),
                _users.c.inserted_at.label("user_inserted_at"),
            )
            .join(_users, _users.c.id == _tokens.c.user_id)
            .where((_tokens.c.token == token) & (_tokens.c.context == _tag(context)))
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        if row is None:
            return None
        user = User(
            id=row.user_id,
            email=row.user_email,
            confirmed_at=_from_iso(row.user_confirmed_at),
            inserted_at=_from_iso(row.user_inserted_at),
        )
        return _row_to_token(row), user

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def tokens_for_user_and_contexts(self, user_id: int, contexts) -> list[UserToken]:
        """Return the user's tokens for the given contexts.

        contexts is ALL_CONTEXTS (every record, newest first), a single context
        variant or tag, or a non-empty iterable of them (no ordering guarantee).
        """
        clause = _context_clause(contexts)
        query = _tokens.select().where(_tokens.c.user_id == user_id)
        if clause is None:
            query = query.order_by(_tokens.c.inserted_at.desc(), _tokens.c.id.desc())
        else:
            query = query.where(clause)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_token(r) for r in rows]

    def session_tokens(self, user_id: int) -> list[UserToken]:
        """Return all of the user's session records, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _tokens.select()
                .where((_tokens.c.user_id == user_id) & (_tokens.c.context == SESSION.tag))
                .order_by(_tokens.c.inserted_at.desc(), _tokens.c.id.desc())
            ).fetchall()
        return [_row_to_token(r) for r in rows]

    def other_session_tokens(self, user_id: int, current_token: bytes) -> list[UserToken]:
        """Return the user's session records except the one for current_token."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _tokens.select().where(
                    (_tokens.c.user_id == user_id)
                    & (_tokens.c.context == SESSION.tag)
                    & (_tokens.c.token != current_token)
                )
            ).fetchall()
        return [_row_to_token(r) for r in rows]

    def session_token_by_tracking_id(self, user_id: int, tracking_id: str) -> UserToken | None:
        """Resolve a displayed session entry back to its record.

        Scoped to user_id so one user cannot resolve another user's session
        even when the tracking id is known.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _tokens.select().where(
                    (_tokens.c.user_id == user_id)
                    & (_tokens.c.context == SESSION.tag)
                    & (_tokens.c.tracking_id == tracking_id)
                )
            ).fetchone()
        return _row_to_token(row) if row is not None else None

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def delete_token(self, record: UserToken) -> int:
        return self.delete_tokens([record])

    def delete_tokens(self, records: Iterable[UserToken]) -> int:
        """Delete the given records by id. Returns the number of rows removed."""
        ids = [r.id for r in records if r.id is not None]
        if not ids:
            return 0
        with self.engine.connect() as conn:
            result = conn.execute(_tokens.delete().where(_tokens.c.id.in_(ids)))
            conn.commit()
        return result.rowcount

    def delete_session_token(self, token: bytes) -> int:
        """Delete the session record for a raw session token (logout)."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _tokens.delete().where((_tokens.c.token == token) & (_tokens.c.context == SESSION.tag))
            )
            conn.commit()
        return result.rowcount

    def delete_tokens_for_user_and_contexts(self, user_id: int, contexts) -> int:
        """Delete the user's tokens for the given contexts (or ALL_CONTEXTS)."""
        clause = _context_clause(contexts)
        query = _tokens.delete().where(_tokens.c.user_id == user_id)
        if clause is not None:
            query = query.where(clause)
        with self.engine.connect() as conn:
            result = conn.execute(query)
            conn.commit()
        return result.rowcount

    def delete_expired_tokens(self, windows: ValidityWindows, now: datetime | None = None) -> int:
        """Sweep rows that verification would reject as expired.

        A row is expired when inserted_at <= now - window for its context kind,
        matching the verifier's strict "inserted_at > now - window" rule.
        """
        now = now or self._clock()

        def _older_than(kind: ContextKind):
            return _tokens.c.inserted_at <= _to_iso(now - windows.for_kind(kind))

        clause = or_(
            and_(_tokens.c.context == SESSION.tag, _older_than(ContextKind.SESSION)),
            and_(_tokens.c.context == CONFIRM.tag, _older_than(ContextKind.CONFIRM)),
            and_(_tokens.c.context == RESET_PASSWORD.tag, _older_than(ContextKind.RESET_PASSWORD)),
            and_(_tokens.c.context.startswith(CHANGE_EMAIL_PREFIX), _older_than(ContextKind.CHANGE_EMAIL)),
        )
        with self.engine.connect() as conn:
            result = conn.execute(_tokens.delete().where(clause))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        confirmed_at=_from_iso(row.confirmed_at),
        inserted_at=_from_iso(row.inserted_at),
    )


def _row_to_token(row) -> UserToken:
    return UserToken(
        id=row.id,
        token=bytes(row.token),
        context=row.context,
        user_id=row.user_id,
        tracking_id=row.tracking_id,
        sent_to=row.sent_to,
        inserted_at=_from_iso(row.inserted_at),
    )
