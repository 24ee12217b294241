# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Core infrastructure: configuration, database pool, caching, logging and errors."""

from .config import CoreSettings, clear_config_cache, get_config
from .exceptions import (
    AuthenticationError,
    ConfigException,
    InvalidDIDError,
    MissingPrincipalError,
    PersistenceError,
    SpaceLedgerException,
    ValidationException,
)

__all__ = [
    "CoreSettings",
    "get_config",
    "clear_config_cache",
    "SpaceLedgerException",
    "ValidationException",
    "InvalidDIDError",
    "AuthenticationError",
    "PersistenceError",
    "MissingPrincipalError",
    "ConfigException",
]
