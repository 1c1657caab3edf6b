#!/usr/bin/env python3
"""Bootstrap script to create a user with an API key directly in the database.

Usage:
    python scripts/create_user.py --login admin --permissions admin
    python scripts/create_user.py --login gates-bot --permissions gateadmin
"""
from __future__ import annotations

import argparse
import sys
import uuid

# Ensure the project root is importable
sys.path.insert(0, str(__import__("pathlib").Path(__file__).resolve().parents[1]))

from qualitygate.auth import hash_api_key  # noqa: E402
from qualitygate.models import GlobalPermission  # noqa: E402
from qualitygate.store import STORE  # noqa: E402

VALID_PERMISSIONS = frozenset(permission.value for permission in GlobalPermission)


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a quality gate store user")
    parser.add_argument("--login", required=True, help="Unique user login")
    parser.add_argument("--name", default=None, help="Display name")
    parser.add_argument(
        "--permissions",
        default="",
        help=f"Comma-separated global permissions ({', '.join(sorted(VALID_PERMISSIONS))})",
    )
    args = parser.parse_args()

    permissions = [p.strip() for p in args.permissions.split(",") if p.strip()]
    invalid = set(permissions) - VALID_PERMISSIONS
    if invalid:
        print(f"ERROR: Invalid permissions: {sorted(invalid)}", file=sys.stderr)
        print(f"Valid permissions: {sorted(VALID_PERMISSIONS)}", file=sys.stderr)
        sys.exit(1)

    raw_key = f"qgs_{uuid.uuid4().hex}"
    record = STORE.create_user(
        login=args.login,
        name=args.name,
        key_hash=hash_api_key(raw_key),
        global_permissions=permissions,
    )

    print("User created successfully!")
    print(f"  UUID:        {record['uuid']}")
    print(f"  Login:       {record['login']}")
    print(f"  Permissions: {record['global_permissions']}")
    print(f"  Raw Key:     {raw_key}")
    print()
    print("IMPORTANT: Save this key now, it cannot be retrieved again.")


if __name__ == "__main__":
    main()
