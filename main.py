#!/usr/bin/env python3
"""
nimble-tokens -- maintenance CLI for the user token store.

Usage:
  python main.py purge
  python main.py sessions 42
  python main.py revoke 42 Xk3v9QpLm0aZr7Tb
  python main.py --db sqlite:///other.db purge

Environment variables:
  DATABASE_URL                  SQLAlchemy URL of the token store.
  SESSION_VALIDITY_DAYS         Session window (default 60).
  CONFIRM_VALIDITY_DAYS         Confirm window (default 7).
  RESET_PASSWORD_VALIDITY_DAYS  Reset-password window (default 1).
  CHANGE_EMAIL_VALIDITY_DAYS    Change-email window (default 7).
  DEBUG                         Verbose logging when true.
"""

import argparse
import logging
import sys
from typing import Optional

from auth.contexts import SESSION
from auth.models import User
from auth.service import TokenService
from auth.store import TokenStore
from core.config import get_settings

logger = logging.getLogger("nimble.cli")


def _load_user(store: TokenStore, user_id: int) -> Optional[User]:
    user = store.get_user(user_id)
    if user is None:
        print(f"  [!] No user with id {user_id}.")
    return user


def _cmd_purge(service: TokenService, args: argparse.Namespace) -> int:
    count = service.purge_expired()
    logger.info("Purge removed %d expired token(s)", count)
    print(f"  Purged {count} expired token(s).")
    return 0


def _cmd_sessions(service: TokenService, args: argparse.Namespace) -> int:
    user = _load_user(service.store, args.user_id)
    if user is None:
        return 1
    sessions = service.list_sessions(user)
    if not sessions:
        print(f"  No active sessions for {user.email}.")
        return 0
    print(f"  Sessions for {user.email}:")
    for record in sessions:
        state = "valid" if service.verifier.is_within_window(record, SESSION) else "expired"
        print(f"    {record.tracking_id}  {record.inserted_at.isoformat()}  {state}")
    return 0


def _cmd_revoke(service: TokenService, args: argparse.Namespace) -> int:
    user = _load_user(service.store, args.user_id)
    if user is None:
        return 1
    if not service.revoke_session(user, args.tracking_id):
        logger.warning("Revoke: no session %s for user %d", args.tracking_id, user.id)
        print(f"  [!] No session {args.tracking_id} for {user.email}.")
        return 1
    logger.info("Revoked session %s for user %d", args.tracking_id, user.id)
    print(f"  Revoked session {args.tracking_id}.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="nimble-tokens",
        description="Maintenance commands for the user token store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py purge
  python main.py sessions 42
  python main.py revoke 42 Xk3v9QpLm0aZr7Tb
        """,
    )
    parser.add_argument(
        "--db",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL setting)",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("purge", help="Delete tokens older than their validity window")

    p_sessions = sub.add_parser("sessions", help="List a user's sessions by tracking id")
    p_sessions.add_argument("user_id", type=int, metavar="USER_ID")

    p_revoke = sub.add_parser("revoke", help="Revoke one session by tracking id")
    p_revoke.add_argument("user_id", type=int, metavar="USER_ID")
    p_revoke.add_argument("tracking_id", metavar="TRACKING_ID")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.debug("Running %s command", args.command)
    store = TokenStore(args.db or settings.database_url)
    try:
        service = TokenService(store)
        handler = {"purge": _cmd_purge, "sessions": _cmd_sessions, "revoke": _cmd_revoke}[args.command]
        return handler(service, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
