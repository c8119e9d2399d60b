#!/usr/bin/env python3
"""
Skillink -- administration commands for the local backend.

Usage:
  python main.py migrate
  python main.py migrate --target 3
  python main.py status
  python main.py create-user ada@example.com --password secret123 --role vendor

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the local database (default: sqlite:///skillink.db)
  BACKEND       Must be "local" for these commands; the hosted backend owns its schema.

The web application itself is served with:  uvicorn asgi:app
"""

import argparse
import logging
import sys
from typing import Optional

from backend import migrations
from backend.client import BackendError
from backend.local import LocalBackend
from core.config import get_settings
from core.models import ONBOARDING_ROLES, ROLES
from marketplace.roles import save_user_role

logger = logging.getLogger("skillink.cli")


def _local_backend() -> Optional[LocalBackend]:
    settings = get_settings()
    if settings.backend != "local":
        print("  [!] BACKEND is not 'local'. Schema and users are managed by the hosted project.")
        return None
    return LocalBackend(settings.database_url)


def cmd_migrate(args: argparse.Namespace) -> int:
    backend = _local_backend()
    if backend is None:
        return 2
    try:
        applied = migrations.upgrade(backend.engine, target=args.target)
        version = migrations.current_version(backend.engine)
    except BackendError as e:
        print(f"  [!] {e}")
        return 1
    finally:
        backend.close()
    if applied:
        print(f"  Applied {len(applied)} migration(s): {', '.join(str(v) for v in applied)}.")
    else:
        print("  Nothing to apply.")
    print(f"  Schema is at version {version} (latest {migrations.LATEST_VERSION}).")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    backend = _local_backend()
    if backend is None:
        return 2
    try:
        version = migrations.current_version(backend.engine)
        todo = migrations.pending(backend.engine)
    except BackendError as e:
        print(f"  [!] {e}")
        return 1
    finally:
        backend.close()
    print(f"  Current version: {version}")
    print(f"  Latest version:  {migrations.LATEST_VERSION}")
    for m in todo:
        print(f"  pending {m.version}: {m.description}")
    return 0 if not todo else 3


def cmd_create_user(args: argparse.Namespace) -> int:
    """Register an account and grant roles directly.

    Professional and vendor roles granted here still require onboarding in
    the web UI before their dashboards open.
    """
    backend = _local_backend()
    if backend is None:
        return 2
    try:
        session = backend.sign_up(args.email, args.password)
        if session is None:
            print("  [!] Account created but no session returned; roles not assigned.")
            return 1
        roles: list[str] = []
        for role in args.role or []:
            roles = save_user_role(backend, session.user_id, role)
        backend.sign_out(session.access_token)
    except BackendError as e:
        print(f"  [!] {e}")
        return 1
    finally:
        backend.close()
    print(f"  Created {session.email} ({session.user_id}).")
    if roles:
        print(f"  Roles: {', '.join(roles)}")
        pending_onboarding = [r for r in roles if r in ONBOARDING_ROLES]
        if pending_onboarding:
            print(f"  Onboarding still required for: {', '.join(pending_onboarding)}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="skillink",
        description="Skillink local backend administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py migrate
  python main.py status
  python main.py create-user ada@example.com --password secret123 --role homeowner --role vendor
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_migrate = sub.add_parser("migrate", help="Apply pending schema migrations")
    p_migrate.add_argument(
        "--target",
        type=int,
        default=None,
        metavar="VERSION",
        help=f"Stop after this version (default: latest, {migrations.LATEST_VERSION})",
    )
    p_migrate.set_defaults(func=cmd_migrate)

    p_status = sub.add_parser("status", help="Show the current and latest schema version")
    p_status.set_defaults(func=cmd_status)

    p_user = sub.add_parser("create-user", help="Create an account on the local backend")
    p_user.add_argument("email")
    p_user.add_argument("--password", required=True)
    p_user.add_argument(
        "--role",
        action="append",
        choices=ROLES,
        help="Grant a role (repeatable)",
    )
    p_user.set_defaults(func=cmd_create_user)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    )

    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
