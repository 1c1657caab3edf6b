#!/usr/bin/env python3
"""Delete quality gate conditions that reference a missing or disabled metric."""
from __future__ import annotations

import argparse
import sys

# Ensure the project root is importable
sys.path.insert(0, str(__import__("pathlib").Path(__file__).resolve().parents[1]))

from qualitygate.cleanup import ReferentialCleaner  # noqa: E402
from qualitygate.db import init_db  # noqa: E402
from qualitygate.logging_config import configure_logging  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Remove conditions with invalid metric references")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    configure_logging(args.log_level)
    init_db()
    deleted = ReferentialCleaner().clean_invalid_references()
    print(f"Deleted {deleted} condition(s).")


if __name__ == "__main__":
    main()
