"""Run configuration.

Configuration (env vars, overridden by CLI flags):
    UPGRADER_MAX_ITERATIONS: analyze/apply cap per project (default 3)
    UPGRADER_LOG_LEVEL: console log level (default "INFO")
    UPGRADER_LOG_FORMAT: "text" or "json" (default "text")
    UPGRADER_PACKAGE_MAP: JSON package map replacing the bundled one
    UPGRADER_INDEX_URL: package index JSON API base URL
    UPGRADER_OFFLINE: "1" disables analyzers that need the network
    UPGRADER_STATE_DIR: directory for progress and report files
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path

from upgrader.defaults import DEFAULT_INDEX_URL, MAX_ANALYSIS_ITERATIONS, STATE_DIR_NAME


class ConfigError(ValueError):
    """A configuration value cannot be used."""


def _iterations(raw: str | int, source: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{source} must be a whole number, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{source} must be >= 0, got {value}")
    return value


class UpgradeConfig:
    """Upgrade runtime configuration from environment."""

    def __init__(self) -> None:
        self.max_iterations = _iterations(
            os.environ.get("UPGRADER_MAX_ITERATIONS", str(MAX_ANALYSIS_ITERATIONS)),
            "UPGRADER_MAX_ITERATIONS",
        )
        self.log_level = os.environ.get("UPGRADER_LOG_LEVEL", "INFO")
        self.log_format = os.environ.get("UPGRADER_LOG_FORMAT", "text")
        self.package_map = os.environ.get("UPGRADER_PACKAGE_MAP", "")
        self.index_url = os.environ.get("UPGRADER_INDEX_URL", DEFAULT_INDEX_URL)
        self.offline = os.environ.get("UPGRADER_OFFLINE", "0") == "1"
        self.state_dir = os.environ.get("UPGRADER_STATE_DIR", "")
        self.backup_path = ""
        self.skip_backup = False
        self.non_interactive = False

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> UpgradeConfig:
        config = cls()
        if getattr(args, "diag", False):
            config.log_level = "DEBUG"
        if getattr(args, "log_format", None):
            config.log_format = args.log_format
        if getattr(args, "max_iterations", None) is not None:
            config.max_iterations = _iterations(args.max_iterations, "--max-iterations")
        if getattr(args, "package_map", None):
            config.package_map = args.package_map
        if getattr(args, "index_url", None):
            config.index_url = args.index_url
        if getattr(args, "offline", False):
            config.offline = True
        config.backup_path = getattr(args, "backup_path", None) or ""
        config.skip_backup = bool(getattr(args, "no_backup", False))
        config.non_interactive = bool(getattr(args, "non_interactive", False))
        return config

    def state_dir_for(self, root: Path) -> Path:
        return Path(self.state_dir) if self.state_dir else root / STATE_DIR_NAME
