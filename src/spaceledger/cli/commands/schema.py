# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Schema command: init-db."""

from __future__ import annotations

import argparse
import sys

from ...core.config import get_config
from ...core.db import ConnectionPool, init_schema
from ...core.exceptions import ConfigException, PersistenceError


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the init-db command on the CLI parser."""
    init_parser = subparsers.add_parser("init-db", help="Create the ledger tables in PostgreSQL")
    init_parser.add_argument("--schema", default=None, help="Path to an alternative schema.sql")
    init_parser.set_defaults(func=cmd_init_db)


def cmd_init_db(args: argparse.Namespace) -> int:
    """Apply schema.sql to the configured database."""
    config = get_config()
    if config.store_backend != "postgres":
        raise ConfigException(
            "init-db needs the postgres backend (set SPACELEDGER_STORE_BACKEND=postgres)",
            missing_vars=["SPACELEDGER_STORE_BACKEND"],
        )

    pool = ConnectionPool(config)
    try:
        init_schema(pool, args.schema)
    except (FileNotFoundError, PersistenceError) as e:
        print(f"❌ Schema initialization failed: {e}", file=sys.stderr)
        return 1
    finally:
        pool.close()

    print(f"✅ Schema applied to {config.db_host}:{config.db_port}/{config.db_name}")
    return 0
