#!/usr/bin/env python3
"""
Wendessen admin -- operator commands for the admin back-office.

Usage:
  python main.py ensure-admin       Create the first admin account on an empty database
  python main.py list-roles         Print the seeded roles and their default permissions
  python main.py check-catalog      Verify that every role default is a known permission

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the admin database (default: wendessen_admin.db)
  SECRET_KEY    Required unless DEBUG=true; see core/config.py
"""

import argparse
import sys
from typing import Optional

from auth.catalog import PERMISSIONS, validate_catalog
from auth.credentials import hash_password
from auth.errors import UnknownPermission
from auth.store import UserStore


def _ensure_admin(store: UserStore) -> int:
    password = store.ensure_admin(hash_password)
    if password is None:
        print("  Admin users already exist. Nothing to do.")
        return 0
    print("  Default admin account created.")
    print("  Username: admin")
    print(f"  Password: {password}")
    print("  The password must be changed on first login. It is shown only once.")
    return 0


def _list_roles(store: UserStore) -> int:
    for role in store.list_roles():
        defaults = ", ".join(sorted(role.default_permissions)) or "(none)"
        print(f"  {role.name:<18} {role.display_name:<22} {defaults}")
    return 0


def _check_catalog() -> int:
    try:
        validate_catalog()
    except UnknownPermission as e:
        print(f"  [!] {e.message}")
        return 1
    print(f"  Catalog OK: {len(PERMISSIONS)} permissions.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="wendessen-admin",
        description="Operator commands for the Wendessen admin back-office.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("ensure-admin", help="Create the default admin account if no users exist")
    sub.add_parser("list-roles", help="Print the seeded roles")
    sub.add_parser("check-catalog", help="Validate role defaults against the permission catalog")
    parser.add_argument(
        "--database-url",
        metavar="URL",
        help="Override DATABASE_URL for this command",
    )
    args = parser.parse_args(argv)

    if args.command == "check-catalog":
        return _check_catalog()

    store = UserStore(db_url=args.database_url)
    try:
        if args.command == "ensure-admin":
            return _ensure_admin(store)
        return _list_roles(store)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
