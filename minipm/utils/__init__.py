"""
Helpers shared by the commands and the core engine.

Commands usually import from here rather than from the submodules:
console output (Rich), logging setup, safe file access, the registry
HTTP client and the lockfile change labels.
"""

from __future__ import annotations

from minipm.utils.console import (
    colorize_update_type,
    get_raw_console,
    print_error,
    print_info,
    print_success,
    print_table,
    print_warning,
    reconfigure_console,
)
from minipm.utils.filesystem import (
    remove_tree,
    safe_read_bytes,
    safe_read_file,
    safe_write_bytes,
    safe_write_file,
    validate_path,
)
from minipm.utils.http import HTTPClient
from minipm.utils.logger import (
    disable_logging,
    get_logger,
    is_logging_configured,
    level_for_verbosity,
    setup_logging,
)
from minipm.utils.version_utils import get_update_type

__all__ = [
    "HTTPClient",
    "colorize_update_type",
    "disable_logging",
    "get_logger",
    "get_raw_console",
    "get_update_type",
    "is_logging_configured",
    "level_for_verbosity",
    "print_error",
    "print_info",
    "print_success",
    "print_table",
    "print_warning",
    "reconfigure_console",
    "remove_tree",
    "safe_read_bytes",
    "safe_read_file",
    "safe_write_bytes",
    "safe_write_file",
    "validate_path",
]
