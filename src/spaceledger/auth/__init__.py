# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Authentication: signed DID challenges and account sessions."""

from .challenges import ChallengeAuthenticator, IssuedChallenge
from .sessions import CreatedSession, SessionManager

__all__ = [
    "ChallengeAuthenticator",
    "IssuedChallenge",
    "CreatedSession",
    "SessionManager",
]
