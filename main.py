#!/usr/bin/env python3
"""
Foundry Admin -- operator command line.

Usage:
  python main.py bootstrap --email ada@example.org --name "Ada Lovelace"
  python main.py create-user --email bob@example.org --role editor
  python main.py audit
  python main.py audit --limit 20 --json

Commands talk to DATABASE_URL directly (same Settings as the web app), so they
work before the server is running. Passwords are prompted for when not given
with --password.

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the application database (default sqlite:///foundry.db)
  SECRET_KEY    Required unless DEBUG=true; see core/config.py
"""

import argparse
import getpass
import json
import sys
from typing import Optional

from audit.models import AuditEntry
from audit.store import RECENT_LIMIT, AuditStore
from auth.models import User
from auth.store import UserStore
from auth.tokens import bootstrap_super_admin, hash_password
from core.config import get_settings
from core.errors import AppError
from core.roles import ASSIGNABLE_ROLES, ROLE_LABELS, parse_role
from core.sanitize import is_valid_email, sanitize

_CLI_ACTOR = ("cli", "Command line")


def _read_password(given: Optional[str]) -> str:
    """Return the --password value or prompt twice for one. Exits on mismatch or short input."""
    if given:
        password = given
    else:
        password = getpass.getpass("  Password: ")
        if getpass.getpass("  Confirm password: ") != password:
            print("  [!] Passwords do not match.")
            sys.exit(1)
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        sys.exit(1)
    return password


def _read_email(value: str) -> str:
    email = sanitize(value, 254).lower()
    if not is_valid_email(email):
        print(f"  [!] '{value}' is not a valid email address.")
        sys.exit(1)
    return email


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_bootstrap(args: argparse.Namespace, users: UserStore, audit: AuditStore) -> int:
    if users.has_super_admin():
        print("  [!] A super admin already exists. Use the admin panel to manage roles.")
        return 1
    email = _read_email(args.email)
    password = _read_password(args.password)
    user = bootstrap_super_admin(users, email, sanitize(args.name, 200), password)
    audit.add(AuditEntry(*_CLI_ACTOR, action="bootstrap", target=f"super_admin {user.email}"))
    print(f"  Super admin created: {user.email} (uid {user.uid})")
    return 0


def cmd_create_user(args: argparse.Namespace, users: UserStore, audit: AuditStore) -> int:
    try:
        role = parse_role(args.role)
    except AppError as exc:
        print(f"  [!] {exc.message}")
        return 1
    email = _read_email(args.email)
    if users.get_by_email(email) is not None:
        print(f"  [!] A user with email {email} already exists.")
        return 1

    hashed = hash_password(_read_password(args.password)) if not args.no_password else None
    uid = users.create_user(
        User(email=email, name=sanitize(args.name, 200) or email.split("@")[0], role=role, hashed_password=hashed)
    )
    audit.add(AuditEntry(*_CLI_ACTOR, action="create", target=f"user {email}", details=f"role: {role.value}"))
    print(f"  Created {ROLE_LABELS[role]} {email} (uid {uid})")
    return 0


def cmd_audit(args: argparse.Namespace, users: UserStore, audit: AuditStore) -> int:
    entries = audit.recent(args.limit)
    if args.json:
        print(
            json.dumps(
                [
                    {
                        "id": e.id,
                        "userId": e.user_id,
                        "userName": e.user_name,
                        "action": e.action,
                        "target": e.target,
                        "details": e.details,
                        "timestamp": e.timestamp,
                    }
                    for e in entries
                ],
                indent=2,
            )
        )
        return 0

    if not entries:
        print("  No audit entries yet.")
        return 0
    for e in entries:
        line = f"  {e.timestamp or '-':<32} {e.user_name:<20} {e.action:<12} {e.target}"
        if e.details:
            line += f"  ({e.details})"
        print(line)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="foundry-admin",
        description="Operator commands for the Foundry admin panel.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py bootstrap --email ada@example.org --name "Ada Lovelace"
  python main.py create-user --email bob@example.org --role editor
  python main.py create-user --email eve@example.org --no-password
  python main.py audit --limit 20
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_boot = sub.add_parser("bootstrap", help="Create the first super admin (only while none exists)")
    p_boot.add_argument("--email", required=True, help="Email address of the new super admin")
    p_boot.add_argument("--name", default="", help="Display name (default: the email's local part)")
    p_boot.add_argument("--password", default=None, help="Password (prompted for when omitted)")
    p_boot.set_defaults(func=cmd_bootstrap)

    p_user = sub.add_parser("create-user", help="Create a user with any role")
    p_user.add_argument("--email", required=True, help="Email address of the new user")
    p_user.add_argument("--name", default="", help="Display name (default: the email's local part)")
    p_user.add_argument(
        "--role",
        choices=[r.value for r in ASSIGNABLE_ROLES],
        default="member",
        help="Role to grant (default: member)",
    )
    p_user.add_argument("--password", default=None, help="Password (prompted for when omitted)")
    p_user.add_argument(
        "--no-password",
        action="store_true",
        help="Create the account without a password; it cannot sign in until one is set",
    )
    p_user.set_defaults(func=cmd_create_user)

    p_audit = sub.add_parser("audit", help="Print the most recent audit entries, newest first")
    p_audit.add_argument("--limit", type=int, default=RECENT_LIMIT, help=f"Entries to show (default: {RECENT_LIMIT})")
    p_audit.add_argument("--json", action="store_true", help="Output structured JSON")
    p_audit.set_defaults(func=cmd_audit)

    args = parser.parse_args()

    database_url = get_settings().database_url
    users = UserStore(database_url)
    audit = AuditStore(database_url)
    try:
        code = args.func(args, users, audit)
    finally:
        audit.close()
        users.close()
    sys.exit(code)


if __name__ == "__main__":
    main()
