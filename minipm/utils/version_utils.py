"""
Version comparison utilities for minipm.

Helpers for classifying how a locked package version changed between two
resolutions, used to summarise lockfile updates after ``install``.
"""

from __future__ import annotations

from typing import Optional

from semantic_version import Version


def get_update_type(
    current_version: Optional[str],
    target_version: Optional[str],
) -> str:
    """Determine the semantic update type between two versions.

    Args:
        current_version: Previously locked version, or ``None`` if absent.
        target_version: Newly locked version, or ``None`` if removed.

    Returns:
        One of ``"new"``, ``"removed"``, ``"same"``, ``"downgrade"``,
        ``"major"``, ``"minor"``, ``"patch"``, ``"update"`` (prerelease
        only) or ``"unknown"`` (unparseable input).

    Examples:
        >>> get_update_type("1.0.0", "2.0.0")
        'major'
        >>> get_update_type(None, "1.0.0")
        'new'
        >>> get_update_type("1.2.3", None)
        'removed'
    """
    if current_version is None and target_version is None:
        return "unknown"

    if current_version is None:
        return "new"

    if target_version is None:
        return "removed"

    try:
        current = Version(current_version.lstrip("v"))
        target = Version(target_version.lstrip("v"))
    except ValueError:
        return "unknown"

    if target == current:
        return "same"

    if target < current:
        return "downgrade"

    if current.major != target.major:
        return "major"
    if current.minor != target.minor:
        return "minor"
    if current.patch != target.patch:
        return "patch"

    # Covers pre-release → release
    return "update"
