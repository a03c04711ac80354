"""
cli.py — Administration commands
================================
    python -m community_site.cli create-admin
    python -m community_site.cli promote someone@example.com
    python -m community_site.cli seed-businesses
    python -m community_site.cli purge-sessions
"""
from __future__ import annotations

import argparse
import sys

from .auth.seed import promote_to_admin, seed_admin, seed_businesses
from .config import settings
from .database import init_db
from .sessions import SessionStore


def _print(lines) -> None:
    for line in lines:
        print(line)


def cmd_create_admin(args: argparse.Namespace) -> int:
    _print(seed_admin())
    return 0


def cmd_promote(args: argparse.Namespace) -> int:
    if not promote_to_admin(args.email):
        print(f"User not found: {args.email}", file=sys.stderr)
        return 1
    print(f"{args.email} is now an admin")
    return 0


def cmd_seed_businesses(args: argparse.Namespace) -> int:
    _print(seed_businesses())
    return 0


def cmd_purge_sessions(args: argparse.Namespace) -> int:
    count = SessionStore(settings.session_max_age_seconds).purge_expired()
    print(f"Removed {count} expired session(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="community_site.cli",
        description="Community site administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("create-admin", help="Create the default admin if none exists") \
        .set_defaults(func=cmd_create_admin)

    promote = sub.add_parser("promote", help="Make an existing user an active admin")
    promote.add_argument("email")
    promote.set_defaults(func=cmd_promote)

    sub.add_parser("seed-businesses", help="Add the sample directory listings") \
        .set_defaults(func=cmd_seed_businesses)
    sub.add_parser("purge-sessions", help="Delete expired sessions") \
        .set_defaults(func=cmd_purge_sessions)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    init_db()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
