# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for spaceledger.

Provides specific exception types for different error categories,
enabling better error handling and clearer error messages.

Absence (unknown session, unknown delegation) is never an exception here:
lookups return None or False. Authentication failures are reported as a
plain False so callers cannot tell which check failed.
"""

from __future__ import annotations

from typing import Any


class SpaceLedgerException(Exception):  # noqa: N818
    """Base exception for all spaceledger errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(SpaceLedgerException):
    """Exception for validation errors.

    Raised before any state change when:
    - Input validation fails
    - Required fields are missing
    - Field values are malformed
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class InvalidDIDError(ValidationException):
    """Raised when a DID is not a decodable Ed25519 did:key."""

    def __init__(self, did: str, reason: str):
        super().__init__(f"Invalid DID: {reason}", field="did", value=did)
        self.reason = reason


class AuthenticationError(SpaceLedgerException):
    """Raised when an authenticated action is attempted without valid proof.

    Signature checks never raise this; they return False. It is used where
    a caller asks for a session on behalf of an identity it has not proven.
    """


class PersistenceError(SpaceLedgerException):
    """Exception for durable store failures.

    Raised when:
    - The database connection fails
    - A query fails to execute
    - A pooled connection cannot be obtained in time
    """

    def __init__(self, message: str, operation: str | None = None):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)
        self.operation = operation


class MissingPrincipalError(SpaceLedgerException):
    """Raised when a delegation is stored for a user without a principal."""

    def __init__(self, user_did: str):
        super().__init__(
            "Cannot store delegation: no principal found for user",
            {"user_did": user_did},
        )
        self.user_did = user_did


class ConfigException(SpaceLedgerException):
    """Exception for configuration errors.

    Raised when:
    - Required environment variables are missing
    - Service configuration is incomplete
    """

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []
