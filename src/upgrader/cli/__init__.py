"""CLI for upgrader.

Commands:
  upgrader upgrade [--backup-path PATH] [--no-backup] [--diag] <project-path>
"""

from __future__ import annotations

import sys

from upgrader.cli._parser import build_parser
from upgrader.cli.upgrade import cmd_upgrade


# ===================================================================
# Dispatch
# ===================================================================

_DISPATCH = {
    "upgrade": cmd_upgrade,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if not args.command:
        parser.print_help()
        return 1

    handler = _DISPATCH.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    return handler(args)
