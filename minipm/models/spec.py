"""
Requirement data model for minipm.

A :class:`PackageSpec` names a package and the range of versions that
would satisfy the requirement. It is what a manifest or a package's
``dependencies`` mapping declares, never a concrete install.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from minipm.constants import DEFAULT_RANGE
from minipm.exceptions import InvalidRangeError

_NAME_RE = re.compile(
    r"^(?:@[a-z0-9][a-z0-9._~-]*/)?[a-z0-9][a-z0-9._~-]*$",
    re.IGNORECASE,
)


def validate_name(name: str) -> str:
    """Return ``name`` unchanged if it is a valid (optionally scoped) package name.

    Names end up as directories under the modules folder, so anything
    that could escape it (``..``, extra slashes, absolute paths) is
    rejected here.

    Raises:
        InvalidRangeError: The name is empty or malformed.
    """
    if not name or not _NAME_RE.match(name):
        raise InvalidRangeError(f"Invalid package name: {name!r}", value=name)
    return name


@dataclass(frozen=True)
class PackageSpec:
    """A requirement on a package.

    Attributes:
        name: Package name, possibly scoped (``@scope/name``).
        range: Version range expression, e.g. ``^1.2.0`` or ``latest``.
    """

    name: str
    range: str = DEFAULT_RANGE

    @classmethod
    def parse(cls, text: str) -> "PackageSpec":
        """Parse ``name``, ``name@range`` or ``@scope/name@range``.

        A missing or empty range becomes ``latest``.

        Examples:
            >>> PackageSpec.parse("left-pad@^1.0.0")
            PackageSpec(name='left-pad', range='^1.0.0')
            >>> PackageSpec.parse("@types/node")
            PackageSpec(name='@types/node', range='latest')
        """
        text = text.strip()
        split_at = text.find("@", 1)
        if split_at == -1:
            name, range_ = text, ""
        else:
            name, range_ = text[:split_at], text[split_at + 1 :]

        return cls(validate_name(name), range_.strip() or DEFAULT_RANGE)

    def __str__(self) -> str:
        return f"{self.name}@{self.range}"
