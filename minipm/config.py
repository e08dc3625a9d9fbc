"""Configuration file loader for minipm.

Handles discovery, loading, parsing, and validation of ``minipm.toml``.
Settings live under a ``[minipm]`` table.

Discovery order:

1. Explicit path from ``--config`` or ``MINIPM_CONFIG``
2. ``minipm.toml`` in current directory

Configuration precedence: defaults < config file < CLI args.

Typical usage::

    config = load_config()  # Auto-discover
    config = load_config(Path("custom.toml"))  # Explicit path

Example (``minipm.toml``)::

    [minipm]
    registry = "https://registry.npmjs.org"
    max_concurrency = 8
    cache_dir = "~/.cache/minipm"
"""

from __future__ import annotations


import tomli as tomllib
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from minipm.exceptions import ConfigError
from minipm.utils.logger import get_logger
from minipm.constants import (
    CONFIG_FILE,
    DEFAULT_TIMEOUT,
    DEFAULT_LOCKFILE,
    DEFAULT_REGISTRY,
    DEFAULT_MODULES_DIR,
    DEFAULT_RETRY_BACKOFF,
    DEFAULT_FETCH_ATTEMPTS,
    DEFAULT_MAX_CONCURRENCY,
)

logger = get_logger("config")


@dataclass
class MinipmConfig:
    """Parsed and validated minipm configuration.

    All fields have defaults, so empty config files are valid. Relative
    paths are interpreted against the project directory by the commands.

    Attributes:
        registry: Base URL of the npm-compatible registry.
        modules_dir: Directory packages are installed into.
        lockfile: Lockfile name or path.
        max_concurrency: Simultaneous fetch+extract workers.
        fetch_attempts: Tries per artifact for transient faults.
        retry_backoff: Base backoff delay in seconds.
        timeout: HTTP timeout in seconds.
        cache_dir: Artifact cache directory, or ``None`` to disable.
        source_path: Path to loaded config file, or ``None`` if using defaults.
    """

    registry: str = DEFAULT_REGISTRY
    modules_dir: str = DEFAULT_MODULES_DIR
    lockfile: str = DEFAULT_LOCKFILE
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    fetch_attempts: int = DEFAULT_FETCH_ATTEMPTS
    retry_backoff: float = DEFAULT_RETRY_BACKOFF
    timeout: int = DEFAULT_TIMEOUT
    cache_dir: Optional[str] = None

    # Metadata (not a user-facing option)
    source_path: Optional[Path] = field(default=None, repr=False)

    def to_log_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary for debug logging.

        Excludes ``source_path`` metadata.
        """
        return {name: getattr(self, name) for name in _OPTIONS}


def _is_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _is_non_negative_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


#: option → (validator, description used in error messages)
_OPTIONS: Dict[str, Tuple[Callable[[Any], bool], str]] = {
    "registry": (_is_str, "a non-empty string"),
    "modules_dir": (_is_str, "a non-empty string"),
    "lockfile": (_is_str, "a non-empty string"),
    "max_concurrency": (_is_positive_int, "an integer >= 1"),
    "fetch_attempts": (_is_positive_int, "an integer >= 1"),
    "retry_backoff": (_is_non_negative_number, "a number >= 0"),
    "timeout": (_is_positive_int, "an integer >= 1"),
    "cache_dir": (_is_str, "a non-empty string"),
}


def discover_config_file(explicit_path: Optional[Path] = None) -> Optional[Path]:
    """Find the configuration file to load.

    Search order:

    1. ``explicit_path`` (from ``--config`` or ``MINIPM_CONFIG``)
    2. ``minipm.toml`` in current directory

    Args:
        explicit_path: Explicit config path. If provided, must exist.

    Returns:
        Resolved path to config file, or ``None`` if not found.

    Raises:
        ConfigError: Explicit path provided but does not exist.
    """
    if explicit_path is not None:
        resolved = explicit_path.resolve()
        if not resolved.is_file():
            raise ConfigError(
                f"Configuration file not found: {explicit_path}",
                config_path=str(explicit_path),
            )
        logger.debug("Using explicit config: %s", resolved)
        return resolved

    candidate = Path.cwd() / CONFIG_FILE
    if candidate.is_file():
        logger.debug("Found %s: %s", CONFIG_FILE, candidate)
        return candidate

    logger.debug("No configuration file found")
    return None


def load_config(config_path: Optional[Path] = None) -> MinipmConfig:
    """Load and validate minipm configuration.

    Args:
        config_path: Explicit path to config file. If ``None``, uses
            auto-discovery (see :func:`discover_config_file`).

    Returns:
        Validated :class:`MinipmConfig` with values from file or defaults.

    Raises:
        ConfigError: File cannot be parsed, has unknown keys, or invalid values.
    """
    resolved = discover_config_file(config_path)

    if resolved is None:
        logger.debug("No config file found, using defaults")
        return MinipmConfig()

    logger.info("Loading configuration from %s", resolved)
    raw = _read_toml(resolved)
    section = raw.get("minipm", {})

    if not isinstance(section, dict):
        raise ConfigError(
            "[minipm] must be a table",
            config_path=str(resolved),
        )
    if not section:
        logger.debug("Config file found but no [minipm] table, using defaults")
        return MinipmConfig(source_path=resolved)

    config = _parse_section(section, config_path=str(resolved))
    config.source_path = resolved

    logger.debug("Loaded configuration: %s", config.to_log_dict())
    return config


def _read_toml(path: Path) -> Dict[str, Any]:
    """Read and parse a TOML file.

    Raises:
        ConfigError: File cannot be read or is not valid TOML.
    """
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Invalid TOML in {path.name}: {exc}",
            config_path=str(path),
        ) from exc
    except OSError as exc:
        raise ConfigError(
            f"Cannot read configuration file {path}: {exc}",
            config_path=str(path),
        ) from exc


def _parse_section(
    section: Dict[str, Any],
    *,
    config_path: str,
) -> MinipmConfig:
    """Parse and validate the ``[minipm]`` table.

    Rejects unknown keys and values of the wrong type or range.

    Raises:
        ConfigError: Unknown keys or invalid values.
    """
    unknown = set(section.keys()) - set(_OPTIONS)
    if unknown:
        raise ConfigError(
            f"Unknown configuration keys: {', '.join(sorted(unknown))}",
            config_path=config_path,
        )

    config = MinipmConfig()
    for option, value in section.items():
        validator, expected = _OPTIONS[option]
        if not validator(value):
            raise ConfigError(
                f"{option} must be {expected}, got {value!r}",
                config_path=config_path,
                option=option,
            )
        if option == "retry_backoff":
            value = float(value)
        setattr(config, option, value)

    return config
