# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Maintenance command: sweep."""

from __future__ import annotations

import argparse
import json


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the sweep command on the CLI parser."""
    sweep_parser = subparsers.add_parser("sweep", help="Run every expiry sweep once")
    sweep_parser.add_argument("--json", action="store_true", dest="output_json", help="Output as JSON")
    sweep_parser.set_defaults(func=cmd_sweep)


def cmd_sweep(args: argparse.Namespace) -> int:
    """Expire sessions, delegations and challenges."""
    from ...maintenance import run_all_sweeps
    from ...service import CredentialLedger

    with CredentialLedger() as ledger:
        results = run_all_sweeps(ledger)

    if args.output_json:
        output = [{"operation": r.operation, **r.details} for r in results]
        print(json.dumps(output, indent=2, default=str))
    else:
        print("Sweep Report")
        print("=" * 50)
        for r in results:
            print(f"  {r}")
        print("=" * 50)
        print(f"  {len(results)} sweep(s) completed")
    return 0
