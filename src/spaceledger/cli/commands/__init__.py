# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""CLI command modules.

Each module exposes a ``register(subparsers)`` function that wires up
its argparse sub-commands and sets ``parser.set_defaults(func=handler)``.
"""

from . import identity, maintenance, schema
from .identity import cmd_generate_did
from .maintenance import cmd_sweep
from .schema import cmd_init_db

# All command modules with register() functions, in registration order.
COMMAND_MODULES = [
    schema,
    maintenance,
    identity,
]

__all__ = [
    "COMMAND_MODULES",
    "cmd_generate_did",
    "cmd_init_db",
    "cmd_sweep",
]
