#!/usr/bin/env python3
"""
SupaGate -- role-aware HTTP middleware in front of a hosted Supabase backend.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py login alice@example.com 's3cret'

Commands:
  serve   Run the API with uvicorn on PORT (default 3000).
  login   Sign in with email and password against the identity provider and
          print the access token to use as "Authorization: Bearer <token>".

Environment variables (or .env):
  SUPABASE_URL, SUPABASE_ANON_KEY, SUPABASE_SERVICE_ROLE_KEY
  SUPER_ADMIN_EMAIL   Fail-safe admin account (optional).
  SECRET_KEY          Session cookie signing key (>= 32 chars).
  DEBUG=true          Development mode; relaxes the checks above.
"""

import argparse
import sys
from typing import Optional

from auth.verifier import IdentityProviderError, SupabaseIdentityVerifier
from core.clients import create_anon_client, create_service_client
from core.config import Settings, get_settings


def _make_verifier(settings: Settings) -> SupabaseIdentityVerifier:
    return SupabaseIdentityVerifier(settings, create_anon_client(settings), create_service_client(settings))


def _cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port or settings.port, reload=args.reload)
    return 0


def _cmd_login(args: argparse.Namespace, settings: Settings) -> int:
    verifier = _make_verifier(settings)
    try:
        session = verifier.sign_in_with_password(args.email, args.password)
    except IdentityProviderError as exc:
        print(f"  [!] Login error: {exc}", file=sys.stderr)
        return 1

    print("\nLogin successful!")
    print(f"\nUser ID: {session.identity.subject_id}")
    print(f"Email:   {session.identity.email}")
    print("\nAccess Token:")
    print(session.access_token)
    print("\nUse it in API calls as:")
    print("Authorization: Bearer <token>")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="supagate",
        description="Role-aware middleware in front of a hosted Supabase backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve
  python main.py serve --port 8080 --reload
  python main.py login alice@example.com 's3cret'
        """,
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = subparsers.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: PORT setting, 3000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")

    login = subparsers.add_parser("login", help="Print an access token for manual API calls")
    login.add_argument("email", help="Account email")
    login.add_argument("password", help="Account password")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    settings = get_settings()
    if args.command == "serve":
        return _cmd_serve(args, settings)
    return _cmd_login(args, settings)


if __name__ == "__main__":
    sys.exit(main())
