#!/usr/bin/env python3
"""
Backfill missing fields on stored profiles and wallets.

Older user documents may lack counters, role or profile fields added
later; older wallets may lack one of the four balance fields.  This adds
every missing field with its default and leaves existing values alone, so
running it twice is harmless.

Usage:
    python3 scripts/run_migrations.py [--config PATH] [--log-level LEVEL]

Examples:
    # Use the file named by WORKHUB_CONFIG, or the packaged defaults
    python3 scripts/run_migrations.py

    # Explicit settings file, verbose logging
    python3 scripts/run_migrations.py --config prod.yaml --log-level DEBUG
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Backfill missing profile and wallet fields.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML (default: $WORKHUB_CONFIG or the packaged defaults).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override the configured log level (e.g. DEBUG, WARNING).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from workhub_config import get_active_config
    from workhub_kernel.bootstrap import Workhub
    from workhub_kernel.exceptions import WorkhubKernelError
    from workhub_kernel.logging_config import configure_logging

    if args.log_level:
        level = logging.getLevelName(args.log_level.upper())
        if not isinstance(level, int):
            print(f"ERROR: Unknown log level: {args.log_level}", file=sys.stderr)
            return 2
        configure_logging(level=level)

    try:
        config = get_active_config(args.config)
    except FileNotFoundError as e:
        print(f"ERROR: Config file not found: {e.filename}", file=sys.stderr)
        return 1
    except WorkhubKernelError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    hub = Workhub.from_config(config)
    try:
        counts = hub.accounts.run_migrations()
    except WorkhubKernelError as e:
        print(f"ERROR: Migration failed: {e}", file=sys.stderr)
        return 1

    print(f"Profiles: {counts['users']} field(s) added")
    print(f"Wallets:  {counts['wallets']} field(s) added")
    return 0


if __name__ == "__main__":
    sys.exit(main())
