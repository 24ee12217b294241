# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Identity command: generate-did."""

from __future__ import annotations

import argparse
import json
from datetime import UTC, datetime
from pathlib import Path

from ...identity.principals import Principal


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the generate-did command on the CLI parser."""
    gen_parser = subparsers.add_parser("generate-did", help="Generate a new Ed25519 did:key")
    gen_parser.add_argument("output", nargs="?", default=None, help="File to write (default: did-<timestamp>.json)")
    gen_parser.add_argument("--stdout", action="store_true", help="Print the archive instead of writing a file")
    gen_parser.set_defaults(func=cmd_generate_did)


def cmd_generate_did(args: argparse.Namespace) -> int:
    """Create a fresh signer and save ``{did, archive}``."""
    principal = Principal.generate()
    data = {"did": principal.did, "archive": json.loads(principal.export())}
    rendered = json.dumps(data, indent=2)

    if args.stdout:
        print(rendered)
        return 0

    output = args.output
    if not output:
        stamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S")
        output = f"did-{stamp}.json"
    path = Path.cwd() / output
    path.write_text(rendered)
    path.chmod(0o600)

    print(f"Generated DID: {principal.did}")
    print(f"Saved to: {path}")
    return 0
