#!/usr/bin/env python3
"""
sessionauth -- operator command line.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py create-admin admin@example.com --name "Site Admin"
  python main.py purge-codes

Environment variables:
  SECRET_KEY    Required unless DEBUG=true. Signs session cookies and keys
                the verification code digests.
  DATABASE_URL  SQLAlchemy URL. Defaults to auth/sessionauth.db.
  SMTP_HOST / SMTP_PORT / SMTP_USERNAME / SMTP_PASSWORD / MAIL_FROM
                Outbound mail relay for verification and reset emails.
"""

import argparse
import getpass
from typing import Optional

from auth.errors import AuthServiceError
from auth.models import Registration
from auth.service import create_auth_service


def _read_password() -> Optional[str]:
    """Prompt twice without echo. Returns None if the entries differ."""
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Confirm password: ")
    if first != second:
        return None
    return first


def _create_admin(email: str, name: Optional[str]) -> int:
    password = _read_password()
    if password is None:
        print("  [!] Passwords do not match.")
        return 1
    service = create_auth_service()
    try:
        user = service.create_admin(Registration(email=email, password=password, name=name))
    except AuthServiceError as e:
        print(f"  [!] {e.message}")
        return 1
    finally:
        service.close()
    print(f"  [+] Admin account created: {user.email} (id {user.id})")
    return 0


def _purge_codes() -> int:
    service = create_auth_service()
    try:
        removed = service.purge_expired_codes()
    finally:
        service.close()
    print(f"  [+] Removed {removed} expired verification code(s).")
    return 0


def _serve(host: str, port: int, reload: bool) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=host, port=port, reload=reload)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="sessionauth",
        description="Session-based authentication service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py create-admin admin@example.com
  DATABASE_URL=sqlite:////var/lib/sessionauth.db python main.py purge-codes
        """,
    )
    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    serve = commands.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")

    admin = commands.add_parser("create-admin", help="Create a verified admin account")
    admin.add_argument("email", metavar="EMAIL", help="Login email of the new admin")
    admin.add_argument("--name", default=None, help="Display name")

    commands.add_parser("purge-codes", help="Delete expired verification codes")

    args = parser.parse_args(argv)

    if args.command == "serve":
        return _serve(args.host, args.port, args.reload)
    if args.command == "create-admin":
        return _create_admin(args.email, args.name)
    return _purge_codes()


if __name__ == "__main__":
    raise SystemExit(main())
