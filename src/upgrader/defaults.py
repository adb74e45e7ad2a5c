"""Single source of truth for shared constants and configuration defaults.

Every magic number, threshold, or default that appears in more than one module
is defined here.  Domain-specific constants that are truly local to one module
(e.g. a regex used only by the requirement parser) stay in that module.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Convergence
# ---------------------------------------------------------------------------

MAX_ANALYSIS_ITERATIONS = 3

# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

MAX_UNATTENDED_ATTEMPTS = 3     # advances per step before a non-interactive run skips it

# ---------------------------------------------------------------------------
# Persisted progress and run artifacts
# ---------------------------------------------------------------------------

PROGRESS_FORMAT_VERSION = "1"
STATE_DIR_NAME = ".upgrader"
PROGRESS_FILE_NAME = "progress.json"
REPORT_FILE_NAME = "report.jsonl"

# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

PROJECT_FILE_NAME = "pyproject.toml"
SKIPPED_DIR_NAMES = frozenset({
    "node_modules", "venv", ".venv", "env", "__pycache__", "build", "dist",
})

# ---------------------------------------------------------------------------
# Backup
# ---------------------------------------------------------------------------

BACKUP_FLAG_FILE = "upgrade.backup"
BACKUP_SUFFIX = ".backup"
BACKUP_LOCATION_PROPERTY = "backup.base_location"
MAX_BACKUP_CANDIDATES = 100

# ---------------------------------------------------------------------------
# Console
# ---------------------------------------------------------------------------

DEFAULT_LINE_WIDTH = 80
INDENT_WIDTH = 4

# ---------------------------------------------------------------------------
# Package index
# ---------------------------------------------------------------------------

DEFAULT_INDEX_URL = "https://pypi.org/pypi"
INDEX_TIMEOUT_SECONDS = 10.0
INDEX_RETRY_ATTEMPTS = 3
INDEX_RETRY_BASE_DELAY_SECONDS = 0.5
INDEX_BACKOFF_CAP_SECONDS = 8.0
INDEX_BREAKER_FAILURES = 3
INDEX_BREAKER_COOLDOWN_SECONDS = 30.0
# Answers meaning "busy, ask again" rather than "broken".
INDEX_TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})
INDEX_LOOKUP_WORKERS = 4
INDEX_RESULT_QUEUE_SIZE = 16
