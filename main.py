#!/usr/bin/env python3
"""
Auth Demo -- administrative command line.

Usage:
  python main.py seed
  python main.py create-user --email jane@example.com --name "Jane Doe" --password s3cret
  python main.py create-user --email oauth-only@example.com
  python main.py purge
  python main.py serve --host 127.0.0.1 --port 8000 --reload

Environment variables are read through core.config (SECRET_KEY, DATABASE_URL,
DEBUG, GITHUB_CLIENT_ID, ...). See core/config.py for the full list.
"""

import argparse
import logging
import sys

from auth.access_tokens import AccessTokenManager
from auth.seed import create_user, seed_users
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("authdemo.cli")


def _open_store() -> UserStore:
    return UserStore(get_settings().database_url)


def cmd_seed(args: argparse.Namespace) -> int:
    store = _open_store()
    try:
        created = seed_users(store)
        total = store.count_users()
    finally:
        store.close()
    print(f"  Seeded {created} user(s). {total} user(s) in the database.")
    return 0


def cmd_create_user(args: argparse.Namespace) -> int:
    store = _open_store()
    try:
        user = create_user(store, args.email, args.name, args.password)
    finally:
        store.close()
    if user is None:
        print(f"  [!] A user with email '{args.email}' already exists.")
        return 1
    kind = "local" if user.hashed_password else "OAuth-only"
    print(f"  Created {kind} user {user.id} <{user.email}>.")
    return 0


def cmd_purge(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = _open_store()
    try:
        sessions = SessionManager(store, settings.session_expire_seconds).purge_expired()
        tokens = AccessTokenManager(store, settings.access_token_expire_seconds).purge_expired()
    finally:
        store.close()
    print(f"  Purged {sessions} session(s) and {tokens} access token(s).")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Auth Demo -- session, GitHub OAuth and access token login.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="Create the demo account (john.doe@example.com).")
    seed.set_defaults(func=cmd_seed)

    create = sub.add_parser("create-user", help="Create a local or OAuth-only account.")
    create.add_argument("--email", required=True)
    create.add_argument("--name", default=None, help="Display name.")
    create.add_argument("--password", default=None, help="Omit to create an OAuth-only account.")
    create.set_defaults(func=cmd_create_user)

    purge = sub.add_parser("purge", help="Delete expired sessions and access tokens.")
    purge.set_defaults(func=cmd_purge)

    serve = sub.add_parser("serve", help="Run the web app with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
