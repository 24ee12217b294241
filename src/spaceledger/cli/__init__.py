# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""spaceledger command-line interface.

Entry point: ``spaceledger.cli.main:main``.
"""
