# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
spaceledger CLI - credential and delegation ledger administration.

Commands:
  spaceledger init-db          Create the ledger tables (postgres backend)
  spaceledger sweep            Run every expiry sweep once
  spaceledger generate-did     Generate a new Ed25519 did:key
"""

from __future__ import annotations

import argparse
import logging
import sys

from ..core.exceptions import SpaceLedgerException
from ..core.logging import configure_logging
from .commands import COMMAND_MODULES

logger = logging.getLogger(__name__)


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="spaceledger",
        description="Credential and delegation ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  SPACELEDGER_STORE_BACKEND=postgres spaceledger init-db
  spaceledger sweep --json
  spaceledger generate-did admin-did.json
        """,
    )
    parser.add_argument("--log-level", default=None, help="Override SPACELEDGER_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    for module in COMMAND_MODULES:
        module.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    configure_logging(level=args.log_level)
    try:
        return args.func(args)
    except SpaceLedgerException as e:
        logger.error("Command failed: %s", e.message, extra={"extra_data": e.details})
        print(f"❌ {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
