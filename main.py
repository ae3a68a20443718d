#!/usr/bin/env python3
"""
VulnTrack -- operator command line for the asset and vulnerability inventory.

The HTTP API (uvicorn api.main:app) is the primary interface. This CLI covers
what an operator needs without a running server: creating the first admin
account, a quick look at the numbers, and triggering a simulated scan.

Usage:
  python main.py create-user alice alice@example.com --admin
  python main.py stats
  python main.py scan 12
  python main.py --database-url sqlite:///other.db stats

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the inventory database (default: ./vulntrack.db)
  SECRET_KEY    Required unless DEBUG=true (see core/config.py)
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import ROLES, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings
from inventory.dashboard import DashboardAggregator
from inventory.errors import InventoryError
from inventory.links import LinkManager
from inventory.models import SEVERITIES
from inventory.scan import ScanMerger
from inventory.store import InventoryStore

_MIN_PASSWORD_LENGTH = 8
_MAX_ID = 2**63 - 1


def _create_user(args: argparse.Namespace) -> int:
    password = getpass.getpass("Password: ")
    if len(password) < _MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {_MIN_PASSWORD_LENGTH} characters.")
        return 1
    if getpass.getpass("Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        return 1

    role = ROLES[0] if args.admin else ROLES[1]
    store = UserStore(args.database_url)
    try:
        user_id = store.create_user(
            User(username=args.username, email=args.email, role=role, hashed_password=hash_password(password))
        )
    except IntegrityError:
        print(f"  [!] A user with username '{args.username}' or email '{args.email}' already exists.")
        return 1
    finally:
        store.close()
    print(f"Created {role} '{args.username}' (id {user_id}).")
    return 0


def _stats(args: argparse.Namespace) -> int:
    store = InventoryStore(args.database_url)
    try:
        stats = DashboardAggregator(store).statistics()
    finally:
        store.close()
    print("\nVulnTrack -- Inventory Statistics")
    print("-" * 40)
    print(f"  Assets:                 {stats.total_assets}")
    print(f"  Vulnerabilities:        {stats.total_vulnerabilities}")
    print(f"  Open instances:         {stats.total_open_instances}")
    for severity in SEVERITIES:
        print(f"    {severity:<22}{stats.open_by_severity[severity]}")
    return 0


def _scan(args: argparse.Namespace) -> int:
    store = InventoryStore(args.database_url)
    scanner = ScanMerger(store, LinkManager(store), batch_size=get_settings().scan_batch_size)
    try:
        result = scanner.scan_asset(args.asset_id, actor="cli")
    except InventoryError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()
    if not result.vulnerabilities_available:
        print("No vulnerabilities available to link. Nothing was changed.")
        return 0
    print(f"Simulated scan of asset {result.asset_id} complete.")
    print(f"  Processed:      {result.vulnerabilities_processed}")
    print(f"  Newly linked:   {result.newly_linked}")
    print(f"  Updated links:  {result.updated_links}")
    if result.failed:
        print(f"  Failed:         {result.failed}")
    return 0


def _record_id(value: str) -> int:
    """argparse type for database ids: a positive integer that fits a 64-bit column."""
    try:
        record_id = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer id") from None
    if not 1 <= record_id <= _MAX_ID:
        raise argparse.ArgumentTypeError(f"id must be between 1 and {_MAX_ID}")
    return record_id


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vulntrack",
        description="Operator tools for the VulnTrack inventory.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user admin admin@example.com --admin
  python main.py stats
  python main.py scan 3
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL from the environment or .env)",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-user", help="Create a user account (password is prompted)")
    create.add_argument("username")
    create.add_argument("email")
    create.add_argument(
        "--admin",
        action="store_true",
        help=(
            "Store the account with the admin role. The role is recorded and shown by /auth/me, "
            "but no route restricts access by role."
        ),
    )
    create.set_defaults(func=_create_user)

    stats = sub.add_parser("stats", help="Print inventory totals and open instances per severity")
    stats.set_defaults(func=_stats)

    scan = sub.add_parser("scan", help="Run a simulated scan against one asset")
    scan.add_argument("asset_id", type=_record_id, metavar="ASSET_ID")
    scan.set_defaults(func=_scan)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    args.database_url = args.database_url or get_settings().database_url
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
