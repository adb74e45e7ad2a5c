"""Argparse parser definition for the upgrader CLI."""

from __future__ import annotations

import argparse

from upgrader import __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="upgrader",
        description="Step-by-step, resumable dependency upgrades for Python projects",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")
    _register_upgrade_command(sub)
    return parser


def _register_upgrade_command(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("upgrade", help="Upgrade the project(s) at a path")
    p.add_argument("project_path", help="pyproject.toml file or directory containing projects")
    p.add_argument("--backup-path", help="Directory that receives project backups")
    p.add_argument("--no-backup", action="store_true", help="Do not back up projects")
    p.add_argument("--diag", action="store_true", help="Enable diagnostic (debug) logging")
    p.add_argument("--non-interactive", action="store_true",
                   help="Apply every step without prompting")
    p.add_argument("--max-iterations", type=int,
                   help="Analyze/apply cap for dependency updates (default 3)")
    p.add_argument("--package-map", help="JSON package map replacing the bundled one")
    p.add_argument("--index-url", help="Package index JSON API base URL")
    p.add_argument("--offline", action="store_true", help="Skip analyzers that need the network")
    p.add_argument("--log-format", choices=["text", "json"], help="Console log format")
