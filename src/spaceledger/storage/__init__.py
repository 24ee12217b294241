# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Storage backends for the ledger.

Configure via environment variables:
    SPACELEDGER_STORE_BACKEND=memory|postgres  (default: memory)
    SPACELEDGER_DB_*                           (postgres connection)
"""

from __future__ import annotations

import logging

from ..core.config import CoreSettings, get_config
from .base import LedgerBackend
from .memory import MemoryBackend
from .postgres import PostgresBackend

logger = logging.getLogger(__name__)


def create_backend(settings: CoreSettings | None = None) -> LedgerBackend:
    """Build the backend named by ``settings.store_backend``.

    Every call returns a new instance; the caller owns it and must
    ``close()`` it on shutdown.
    """
    settings = settings or get_config()

    if settings.store_backend == "postgres":
        logger.info("Using PostgreSQL ledger backend at %s:%s/%s", settings.db_host, settings.db_port, settings.db_name)
        return PostgresBackend(settings)

    logger.info("Using in-memory ledger backend")
    return MemoryBackend()


__all__ = [
    "LedgerBackend",
    "MemoryBackend",
    "PostgresBackend",
    "create_backend",
]
