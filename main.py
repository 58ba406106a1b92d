#!/usr/bin/env python3
"""
Portfolio CMS -- maintenance commands.

Usage:
  python main.py seed
  python main.py sync-admin-perms
  python main.py bootstrap-superadmin
  python main.py purge-tokens

Environment variables (or .env):
  DATABASE_URL               Database to operate on (default: sqlite portfolio.db)
  BOOTSTRAP_ADMIN_EMAIL      bootstrap-superadmin: email for the first ADMIN
  BOOTSTRAP_ADMIN_USERNAME   bootstrap-superadmin: username for the first ADMIN
  BOOTSTRAP_ADMIN_PASSWORD   bootstrap-superadmin: password (min 8 characters)
"""

import argparse
import logging
import sys

from auth.models import User
from auth.rbac import ADMIN_ROLE, USER_ROLE, ensure_admin_owns_all_permissions, seed_rbac
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import Settings, get_settings

logger = logging.getLogger("portfolio.cli")

SUPERADMIN_SETTING = "SUPERADMIN_USER_ID"


def cmd_seed(store: UserStore, settings: Settings) -> int:
    counts = seed_rbac(store)
    print(
        f"Seeded {counts['permissions']} permissions and {counts['roles']} roles "
        f"({counts['grants_added']} default grants added, {counts['admin_grants_added']} ADMIN grants added)."
    )
    return 0


def cmd_sync_admin_perms(store: UserStore, settings: Settings) -> int:
    added = ensure_admin_owns_all_permissions(store)
    admin = store.get_role(ADMIN_ROLE)
    total = store.count_role_permissions(admin.id)
    print(f"ADMIN owns {total} permission(s); {added} added.")
    return 0


def cmd_bootstrap_superadmin(store: UserStore, settings: Settings) -> int:
    """Create the first ADMIN account once. A settings row locks out re-runs."""
    existing = store.get_setting(SUPERADMIN_SETTING)
    if existing:
        print(f"  [!] Superadmin already bootstrapped (user_id={existing}). Refusing to run again.")
        return 1

    email = settings.bootstrap_admin_email.strip().lower()
    username = settings.bootstrap_admin_username.strip()
    password = settings.bootstrap_admin_password
    if not (email and username and password):
        print("  [!] Set BOOTSTRAP_ADMIN_EMAIL, BOOTSTRAP_ADMIN_USERNAME and BOOTSTRAP_ADMIN_PASSWORD.")
        return 1
    if len(password) < 8:
        print("  [!] BOOTSTRAP_ADMIN_PASSWORD must be at least 8 characters.")
        return 1
    if store.get_by_email(email) is not None or store.get_by_username(username) is not None:
        print(f"  [!] A user with email '{email}' or username '{username}' already exists.")
        return 1

    seed_rbac(store)
    user_id = store.create_user(
        User(email=email, username=username, password_hash=hash_password(password)),
        roles=[USER_ROLE, ADMIN_ROLE],
    )
    ensure_admin_owns_all_permissions(store)
    store.set_setting(SUPERADMIN_SETTING, str(user_id))
    logger.info("Superadmin bootstrapped: user_id=%s", user_id)
    print(f"Created ADMIN user '{username}' (id={user_id}).")
    return 0


def cmd_purge_tokens(store: UserStore, settings: Settings) -> int:
    removed = store.purge_expired_refresh_tokens()
    print(f"Purged {removed} expired refresh token(s).")
    return 0


_COMMANDS = {
    "seed": (cmd_seed, "Upsert default permissions and roles, then sync ADMIN grants"),
    "sync-admin-perms": (cmd_sync_admin_perms, "Grant the ADMIN role every permission it lacks"),
    "bootstrap-superadmin": (cmd_bootstrap_superadmin, "Create the first ADMIN user from BOOTSTRAP_ADMIN_* settings"),
    "purge-tokens": (cmd_purge_tokens, "Delete expired refresh tokens"),
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="portfolio-cms",
        description="Maintenance commands for the portfolio CMS database.",
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="Override DATABASE_URL for this run",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    for name, (_, help_text) in _COMMANDS.items():
        subparsers.add_parser(name, help=help_text)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    settings = get_settings()
    store = UserStore(args.database_url or settings.database_url)
    try:
        handler, _ = _COMMANDS[args.command]
        return handler(store, settings)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
