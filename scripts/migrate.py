#!/usr/bin/env python3
"""Run data migrations against the configured database.

Usage:
    python scripts/migrate.py --list
    python scripts/migrate.py
    python scripts/migrate.py --version 0001_populate_quality_gate_conditions_metric_uuid --force
"""
from __future__ import annotations

import argparse
import sys

# Ensure the project root is importable
sys.path.insert(0, str(__import__("pathlib").Path(__file__).resolve().parents[1]))

from qualitygate.db import init_db  # noqa: E402
from qualitygate.logging_config import configure_logging  # noqa: E402
from qualitygate.migrations import MigrationRunner  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Run quality gate store data migrations")
    parser.add_argument("--list", action="store_true", help="List migrations and their status")
    parser.add_argument("--version", default=None, help="Run a single migration version")
    parser.add_argument("--force", action="store_true", help="Re-run --version even if already applied")
    parser.add_argument("--batch-size", type=int, default=None, help="Rows per mass-update page")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    configure_logging(args.log_level)
    init_db()
    runner = MigrationRunner(batch_size=args.batch_size)

    if args.list:
        applied = runner.applied()
        for version in runner.versions():
            marker = "applied" if version in applied else "pending"
            print(f"{marker:8} {version}")
        return

    if args.version:
        try:
            stats = runner.run(args.version, force=args.force)
        except KeyError as exc:
            print(f"ERROR: {exc.args[0]}", file=sys.stderr)
            sys.exit(1)
        print(f"{args.version}: {stats or 'already applied'}")
        return

    results = runner.run_pending()
    for version, stats in results.items():
        print(f"{version}: {stats}")
    if not results:
        print("No pending migrations.")


if __name__ == "__main__":
    main()
