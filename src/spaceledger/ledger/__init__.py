# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Delegation ledger."""

from .delegations import DelegationLedger

__all__ = ["DelegationLedger"]
