"""
Errors raised by minipm.

Every error derives from :class:`MinipmError` and carries a ``details``
mapping (package, url, path, ...) that the CLI logs at debug level and
appends to the one-line message.

The installer distinguishes three families:

- *Run-fatal* errors (:class:`NotFoundError`, :class:`VersionConflictError`,
  :class:`SchemaError`) abort the whole operation.
- *Retryable* errors (:class:`TransientIOError`) are retried locally by the
  installation scheduler.
- *Node-fatal* errors (:class:`IntegrityMismatchError`, :class:`FatalIOError`,
  permanent :class:`NetworkError`) fail a single package only.
"""

from __future__ import annotations

from typing import Any, Mapping, MutableMapping, Optional, Sequence


class MinipmError(Exception):
    """Root of the minipm error hierarchy.

    ``str(exc)`` renders the message followed by ``key=value`` pairs from
    ``details``, which is what the CLI prints.

    Args:
        message: One-line summary for the user.
        details: Extra context; copied into a fresh dict.
    """

    __slots__ = ("message", "details")

    def __init__(
        self,
        message: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.message: str = message
        self.details: MutableMapping[str, Any] = dict(details) if details else {}
        super().__init__(message)

    def __str__(self) -> str:
        if not self.details:
            return self.message
        pairs = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} ({pairs})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, details={dict(self.details)!r})"
        )


def _add_if(details: MutableMapping[str, Any], key: str, value: Any) -> None:
    """Record ``value`` under ``key`` unless it is ``None``."""
    if value is not None:
        details[key] = value


def _truncate(text: str, max_length: int = 200) -> str:
    """Clip response bodies and similar blobs for display."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------


class ConfigError(MinipmError):
    """Raised when a configuration file is missing, malformed or invalid.

    Args:
        config_path: Path of the offending configuration file.
        option: Configuration key that failed validation.
    """

    __slots__ = ("config_path", "option")

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        option: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", config_path)
        _add_if(details, "option", option)

        super().__init__(message, details)

        self.config_path = config_path
        self.option = option


class ParseError(MinipmError):
    """Raised when a manifest cannot be parsed.

    Args:
        file_path: The manifest that failed to parse.
    """

    __slots__ = ("file_path",)

    def __init__(
        self,
        message: str,
        *,
        file_path: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "file", file_path)

        super().__init__(message, details)

        self.file_path = file_path


class InvalidRangeError(MinipmError):
    """Raised when a version or version range cannot be parsed.

    Args:
        value: The offending version or range text.
    """

    __slots__ = ("value",)

    def __init__(self, message: str, *, value: Optional[str] = None) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "value", value)

        super().__init__(message, details)

        self.value = value


# ---------------------------------------------------------------------------
# Network errors
# ---------------------------------------------------------------------------


class NetworkError(MinipmError):
    """Raised when HTTP or network operations fail permanently.

    Args:
        url: Registry or tarball URL.
        status_code: HTTP status, when a response arrived.
        response_body: Response text; only a prefix goes into ``details``.
    """

    __slots__ = ("url", "status_code", "response_body")

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "url", url)
        _add_if(details, "status_code", status_code)

        if response_body is not None:
            details["response"] = _truncate(response_body)

        super().__init__(message, details)

        self.url = url
        self.status_code = status_code
        self.response_body = response_body


class TransientIOError(NetworkError):
    """Raised for retryable faults: timeouts, dropped connections, 5xx."""

    __slots__ = ()


# ---------------------------------------------------------------------------
# Resolution errors
# ---------------------------------------------------------------------------


class ResolutionError(MinipmError):
    """Base class for errors that make dependency resolution impossible."""

    __slots__ = ()


class NotFoundError(ResolutionError):
    """Raised when a package, or a version matching a range, does not exist.

    Args:
        package_name: The package that was looked up.
        requested: Range or version that was requested.
    """

    __slots__ = ("package_name", "requested")

    def __init__(
        self,
        message: str,
        *,
        package_name: Optional[str] = None,
        requested: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "package", package_name)
        _add_if(details, "requested", requested)

        super().__init__(message, details)

        self.package_name = package_name
        self.requested = requested


class VersionConflictError(ResolutionError):
    """Raised when no single version satisfies every range for a package.

    Args:
        package_name: Name of the conflicting package.
        ranges: Every range that was accumulated for the package.
    """

    __slots__ = ("package_name", "ranges")

    def __init__(
        self,
        message: str,
        *,
        package_name: str,
        ranges: Sequence[str] = (),
    ) -> None:
        details: MutableMapping[str, Any] = {"package": package_name}
        if ranges:
            details["ranges"] = "; ".join(ranges)

        super().__init__(message, details)

        self.package_name = package_name
        self.ranges = tuple(ranges)


# ---------------------------------------------------------------------------
# Installation errors
# ---------------------------------------------------------------------------


class IntegrityMismatchError(MinipmError):
    """Raised when a downloaded artifact does not match its expected digest.

    Args:
        package_name: Name of the package whose artifact was checked.
        expected: Integrity string recorded in the graph.
        actual: Integrity string computed from the downloaded bytes.
    """

    __slots__ = ("package_name", "expected", "actual")

    def __init__(
        self,
        message: str,
        *,
        package_name: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "package", package_name)
        _add_if(details, "expected", expected)
        _add_if(details, "actual", actual)

        super().__init__(message, details)

        self.package_name = package_name
        self.expected = expected
        self.actual = actual


class SchemaError(MinipmError):
    """Raised when a lockfile has an unsupported schema or malformed content.

    Args:
        found: Schema version found in the file, if any.
        expected: Schema version this build understands.
    """

    __slots__ = ("found", "expected")

    def __init__(
        self,
        message: str,
        *,
        found: Optional[Any] = None,
        expected: Optional[int] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "found", found)
        _add_if(details, "expected", expected)

        super().__init__(message, details)

        self.found = found
        self.expected = expected


class FileOperationError(MinipmError):
    """Raised when reading, writing or deleting a path fails.

    Args:
        file_path: The path that was being touched.
        operation: The step that failed, e.g. ``read`` or ``extract``.
        original_error: The underlying ``OSError`` or similar.
    """

    __slots__ = ("file_path", "operation", "original_error")

    def __init__(
        self,
        message: str,
        *,
        file_path: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", file_path)
        _add_if(details, "operation", operation)
        _add_if(
            details,
            "original_error",
            str(original_error) if original_error else None,
        )

        super().__init__(message, details)

        self.file_path = file_path
        self.operation = operation
        self.original_error = original_error


class FatalIOError(FileOperationError):
    """Raised for unrecoverable disk faults such as permission denied or a
    corrupt or unsafe archive."""

    __slots__ = ()
