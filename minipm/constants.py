"""
Centralized constants for minipm.

This module defines immutable configuration values used across minipm,
including registry and network settings, on-disk file names, installer
defaults, and logging formats. All values are intended to be treated as
read-only.
"""

from typing import Final

# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------

#: HTTP User-Agent template used for outbound requests.
USER_AGENT_TEMPLATE: Final[str] = "minipm/{version}"

# ---------------------------------------------------------------------------
# Registry endpoints
# ---------------------------------------------------------------------------

#: Default npm-compatible registry.
DEFAULT_REGISTRY: Final[str] = "https://registry.npmjs.org"

# ---------------------------------------------------------------------------
# HTTP configuration
# ---------------------------------------------------------------------------

#: Default network timeout in seconds.
DEFAULT_TIMEOUT: Final[int] = 30

#: Maximum number of retries for failed registry metadata requests.
DEFAULT_MAX_RETRIES: Final[int] = 3

# ---------------------------------------------------------------------------
# Files and directories
# ---------------------------------------------------------------------------

#: Manifest file name, looked up in the working directory.
MANIFEST_FILE: Final[str] = "package.json"

#: Lockfile name, written next to the manifest.
DEFAULT_LOCKFILE: Final[str] = "minipm-lock.json"

#: Directory packages are extracted into.
DEFAULT_MODULES_DIR: Final[str] = "node_modules"

#: Marker written inside each installed package directory.
INSTALL_MARKER: Final[str] = ".minipm-integrity.json"

#: Project configuration file name.
CONFIG_FILE: Final[str] = "minipm.toml"

#: Schema version written to and accepted from lockfiles.
LOCKFILE_VERSION: Final[int] = 1

#: Range recorded when ``add`` is called without one.
DEFAULT_RANGE: Final[str] = "latest"

# ---------------------------------------------------------------------------
# Installer defaults
# ---------------------------------------------------------------------------

#: Number of simultaneous fetch+extract tasks.
DEFAULT_MAX_CONCURRENCY: Final[int] = 4

#: Attempts per artifact before a transient failure is recorded.
DEFAULT_FETCH_ATTEMPTS: Final[int] = 3

#: Base delay (seconds) for exponential backoff between attempts.
DEFAULT_RETRY_BACKOFF: Final[float] = 0.5

#: Upper bound (seconds) for a single backoff delay.
MAX_RETRY_BACKOFF: Final[float] = 8.0

# ---------------------------------------------------------------------------
# Security constraints
# ---------------------------------------------------------------------------

#: Maximum allowed file size (in bytes) when reading manifests and lockfiles.
MAX_FILE_SIZE: Final[int] = 10 * 1024 * 1024  # 10 MB

# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

#: Timestamp format for verbose logging.
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Default log format (non-verbose).
LOG_DEFAULT_FORMAT: Final[str] = "%(levelname)s: %(message)s"

#: Verbose log format including timestamp and logger name.
LOG_VERBOSE_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
