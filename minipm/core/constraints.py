"""Semantic-version range parsing and matching for minipm.

Ranges follow the npm grammar:

- exact versions: ``1.2.3``, ``=1.2.3``, ``v1.2.3``
- caret ranges (compatible within the left-most non-zero field): ``^1.2.3``
- tilde ranges (compatible within minor): ``~1.2.3``, ``~>1.2``
- comparators joined by whitespace (AND): ``>=1.2.0 <2.0.0``
- alternatives joined by ``||`` (OR): ``^1.0.0 || ^2.0.0``
- hyphen ranges: ``1.2.3 - 2.3.4``
- partial and x-ranges: ``1``, ``1.x``, ``1.2.*``
- "any": ``*``, ``x``, ``latest`` or the empty string

Every range is desugared into a disjunction of comparator sets. Upper
bounds produced by caret, tilde and partial ranges carry a ``-0``
prerelease floor so that ``2.0.0-alpha`` never satisfies ``^1.0.0``.

Prereleases follow the node-semver convention: ``1.3.0-rc.1`` only
satisfies a comparator set that itself names a prerelease of ``1.3.0``,
so ``^1.0.0`` rejects ``1.1.0-beta`` and ``^1.0.0-beta`` rejects
``1.3.0-rc.1``.

Typical usage::

    >>> from minipm.core.constraints import VersionRange, pick_best, parse_version
    >>> r = VersionRange.parse("^1.0.0")
    >>> r.matches(parse_version("1.4.2"))
    True
    >>> pick_best([parse_version(v) for v in ("1.0.0", "1.1.0", "1.1.0-beta")], r)
    Version('1.1.0')
"""

from __future__ import annotations

import re
import operator
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from semantic_version import Version

from minipm.exceptions import InvalidRangeError, NotFoundError

__all__ = [
    "Comparator",
    "VersionRange",
    "admits",
    "parse_version",
    "pick_best",
    "satisfies",
]

_PARTIAL_RE = re.compile(
    r"""
    ^v?
    (?P<major>\d+|[xX*])
    (?:\.(?P<minor>\d+|[xX*]))?
    (?:\.(?P<patch>\d+|[xX*]))?
    (?:-(?P<pre>[0-9A-Za-z.-]+))?
    (?:\+[0-9A-Za-z.-]+)?
    $
    """,
    re.VERBOSE,
)

_TOKEN_RE = re.compile(r"^(?P<op>~>|>=|<=|>|<|=|~|\^)?(?P<version>.+)$")
_HYPHEN_RE = re.compile(r"^(?P<low>\S+)\s+-\s+(?P<high>\S+)$")
_OPERATOR_GAP_RE = re.compile(r"(~>|>=|<=|>|<|=|~|\^)\s+")

_ANY_TOKENS = frozenset({"", "*", "x", "X", "latest"})

_OPS: Dict[str, Callable[[Version, Version], bool]] = {
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
    "=": operator.eq,
}


def parse_version(text: str) -> Version:
    """Parse a full semantic version, tolerating a leading ``v``.

    Build metadata is discarded: it carries no precedence and would
    otherwise make two equal versions compare unequal.

    Raises:
        InvalidRangeError: ``text`` is not a valid ``MAJOR.MINOR.PATCH``
            version.
    """
    cleaned = text.strip()
    if cleaned[:1] in ("v", "V"):
        cleaned = cleaned[1:]
    cleaned = cleaned.split("+", 1)[0]
    try:
        return Version(cleaned)
    except ValueError as exc:
        raise InvalidRangeError(f"Invalid version: {text!r}", value=text) from exc


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Comparator:
    """A single ``<op><version>`` test."""

    op: str
    version: Version

    def test(self, version: Version) -> bool:
        return _OPS[self.op](version, self.version)

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


@dataclass(frozen=True)
class _Partial:
    """A possibly incomplete version such as ``1``, ``1.2`` or ``1.x``."""

    major: Optional[int]
    minor: Optional[int]
    patch: Optional[int]
    prerelease: str = ""

    @property
    def is_full(self) -> bool:
        return self.patch is not None

    def floor(self) -> Version:
        """Lowest version the partial stands for (wildcards become 0)."""
        return _make(self.major or 0, self.minor or 0, self.patch or 0, self.prerelease)


def _make(major: int, minor: int, patch: int, prerelease: str = "") -> Version:
    text = f"{major}.{minor}.{patch}"
    if prerelease:
        text = f"{text}-{prerelease}"
    return Version(text)


def _ceiling(major: int, minor: int = 0, patch: int = 0) -> Comparator:
    """``<MAJOR.MINOR.PATCH-0``: excludes the bound and all its prereleases."""
    return Comparator("<", _make(major, minor, patch, "0"))


_NOTHING: Tuple[Comparator, ...] = (Comparator("<", _make(0, 0, 0, "0")),)


def _parse_partial(text: str, raw: str) -> _Partial:
    match = _PARTIAL_RE.match(text)
    if not match:
        raise InvalidRangeError(f"Invalid version in range: {text!r}", value=raw)

    def field(name: str) -> Optional[int]:
        value = match.group(name)
        if value is None or value in ("x", "X", "*"):
            return None
        return int(value)

    major, minor, patch = field("major"), field("minor"), field("patch")
    # "1.x.3" is meaningless; everything after a wildcard is a wildcard
    if major is None:
        minor = patch = None
    elif minor is None:
        patch = None

    prerelease = match.group("pre") or ""
    if prerelease and patch is None:
        raise InvalidRangeError(
            f"Prerelease requires a full version: {text!r}", value=raw
        )

    partial = _Partial(major, minor, patch, prerelease)
    if partial.is_full:
        try:
            partial.floor()
        except ValueError as exc:
            raise InvalidRangeError(f"Invalid version: {text!r}", value=raw) from exc
    return partial


# ---------------------------------------------------------------------------
# Desugaring
# ---------------------------------------------------------------------------


def _desugar_plain(p: _Partial) -> Tuple[Comparator, ...]:
    if p.major is None:
        return ()
    if p.minor is None:
        return (Comparator(">=", p.floor()), _ceiling(p.major + 1))
    if p.patch is None:
        return (Comparator(">=", p.floor()), _ceiling(p.major, p.minor + 1))
    return (Comparator("=", p.floor()),)


def _desugar_caret(p: _Partial) -> Tuple[Comparator, ...]:
    if p.major is None:
        return ()
    low = Comparator(">=", p.floor())
    if p.major > 0 or p.minor is None:
        return (low, _ceiling(p.major + 1))
    if p.minor > 0 or p.patch is None:
        return (low, _ceiling(0, p.minor + 1))
    return (low, _ceiling(0, 0, p.patch + 1))


def _desugar_tilde(p: _Partial) -> Tuple[Comparator, ...]:
    if p.major is None:
        return ()
    low = Comparator(">=", p.floor())
    if p.minor is None:
        return (low, _ceiling(p.major + 1))
    return (low, _ceiling(p.major, p.minor + 1))


def _desugar_comparator(op: str, p: _Partial) -> Tuple[Comparator, ...]:
    if p.is_full:
        return (Comparator(op, p.floor()),)

    if p.major is None:
        # ">*" and "<*" match nothing; ">=*" and "<=*" match everything
        return _NOTHING if op in (">", "<") else ()

    if op == ">":
        if p.minor is None:
            return (Comparator(">=", _make(p.major + 1, 0, 0)),)
        return (Comparator(">=", _make(p.major, p.minor + 1, 0)),)
    if op == ">=":
        return (Comparator(">=", p.floor()),)
    if op == "<":
        return (Comparator("<", _make(p.major, p.minor or 0, 0, "0")),)
    # "<="
    if p.minor is None:
        return (_ceiling(p.major + 1),)
    return (_ceiling(p.major, p.minor + 1),)


def _desugar_hyphen(low: _Partial, high: _Partial) -> Tuple[Comparator, ...]:
    comparators = []
    if low.major is not None:
        comparators.append(Comparator(">=", low.floor()))
    if high.major is not None:
        if high.is_full:
            comparators.append(Comparator("<=", high.floor()))
        elif high.minor is None:
            comparators.append(_ceiling(high.major + 1))
        else:
            comparators.append(_ceiling(high.major, high.minor + 1))
    return tuple(comparators)


# ---------------------------------------------------------------------------
# Public range type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VersionRange:
    """A parsed range: OR of AND-ed comparator sets.

    Attributes:
        raw: The range text as written by the user.
        alternatives: One comparator tuple per ``||`` branch. An empty
            tuple inside matches every release.
    """

    raw: str
    alternatives: Tuple[Tuple[Comparator, ...], ...]

    @classmethod
    def parse(cls, text: str) -> "VersionRange":
        """Parse an npm-style range expression.

        Raises:
            InvalidRangeError: The expression is not a valid range.
        """
        raw = text
        alternatives = []
        for branch in text.split("||"):
            branch = " ".join(branch.split())
            if branch in _ANY_TOKENS:
                alternatives.append(())
                continue

            hyphen = _HYPHEN_RE.match(branch)
            if hyphen:
                low = _parse_partial(hyphen.group("low"), raw)
                high = _parse_partial(hyphen.group("high"), raw)
                alternatives.append(_desugar_hyphen(low, high))
                continue

            comparators = []
            for token in _OPERATOR_GAP_RE.sub(r"\1", branch).split(" "):
                if token in _ANY_TOKENS:
                    continue
                match = _TOKEN_RE.match(token)
                if not match:
                    raise InvalidRangeError(f"Invalid range token: {token!r}", value=raw)
                op = match.group("op") or ""
                partial = _parse_partial(match.group("version"), raw)

                if op == "^":
                    comparators.extend(_desugar_caret(partial))
                elif op in ("~", "~>"):
                    comparators.extend(_desugar_tilde(partial))
                elif op in ("", "="):
                    comparators.extend(_desugar_plain(partial))
                else:
                    comparators.extend(_desugar_comparator(op, partial))
            alternatives.append(tuple(comparators))

        return cls(raw, tuple(alternatives))

    @property
    def is_any(self) -> bool:
        """``True`` when some branch places no restriction at all."""
        return any(not branch for branch in self.alternatives)

    def matches(self, version: Version, *, include_prerelease: bool = False) -> bool:
        """Return ``True`` if ``version`` satisfies the range.

        A prerelease only matches a branch that names a prerelease of the
        same ``MAJOR.MINOR.PATCH``, unless ``include_prerelease`` is set.
        """
        return any(
            _branch_matches(branch, version, include_prerelease)
            for branch in self.alternatives
        )

    def __contains__(self, version: Version) -> bool:
        return self.matches(version)

    def __str__(self) -> str:
        return self.raw

    def describe(self) -> str:
        """Return the desugared comparator form, e.g. ``>=1.2.3 <2.0.0-0``."""
        return " || ".join(
            " ".join(str(c) for c in branch) or "*" for branch in self.alternatives
        )


def _release(version: Version) -> Tuple[int, int, int]:
    return (version.major, version.minor, version.patch)


def _branch_matches(
    branch: Tuple[Comparator, ...],
    version: Version,
    include_prerelease: bool,
) -> bool:
    if not all(comparator.test(version) for comparator in branch):
        return False
    if not version.prerelease or include_prerelease:
        return True
    return any(
        c.version.prerelease and _release(c.version) == _release(version)
        for c in branch
    )


RangeLike = Union[str, VersionRange]


def _as_range(value: RangeLike) -> VersionRange:
    return value if isinstance(value, VersionRange) else VersionRange.parse(value)


def satisfies(version: Union[str, Version], range_: RangeLike) -> bool:
    """Return ``True`` if ``version`` satisfies ``range_``."""
    if isinstance(version, str):
        version = parse_version(version)
    return _as_range(range_).matches(version)


def admits(
    version: Version,
    range_: RangeLike,
    candidates: Iterable[Version],
) -> bool:
    """Return ``True`` if :func:`pick_best` could have chosen ``version`` for
    ``range_`` out of ``candidates``.

    This is :func:`satisfies` plus the prerelease fallback: a prerelease
    outside the range's own prereleases is still admitted when no
    candidate satisfies the range outright.
    """
    range_ = _as_range(range_)
    if range_.matches(version):
        return True
    if not version.prerelease or not range_.matches(version, include_prerelease=True):
        return False
    return not any(range_.matches(c) for c in candidates)


def pick_best(
    candidates: Iterable[Version],
    *ranges: RangeLike,
    name: Optional[str] = None,
) -> Version:
    """Return the highest candidate satisfying every range in ``ranges``.

    Prereleases are eligible under the same rule as
    :meth:`VersionRange.matches`. Only when nothing matches that way does
    a range with no outright match admit any prerelease inside it (see
    :func:`admits`).

    Args:
        candidates: Available versions, in any order.
        *ranges: One or more ranges; all of them must be satisfied.
        name: Package name, used only for error reporting.

    Raises:
        NotFoundError: No candidate satisfies the ranges.
    """
    parsed = [_as_range(r) for r in ranges]
    candidates = list(candidates)
    pool = [v for v in candidates if all(r.matches(v) for r in parsed)]
    if not pool:
        # Same outcome as admits() for every range, without its rescans
        loose = [not any(r.matches(c) for c in candidates) for r in parsed]
        pool = [
            v
            for v in candidates
            if all(r.matches(v, include_prerelease=ok) for r, ok in zip(parsed, loose))
        ]

    if not pool:
        requested = " and ".join(r.raw or "*" for r in parsed)
        raise NotFoundError(
            f"No version of {name or 'package'} satisfies {requested}",
            package_name=name,
            requested=requested,
        )

    return max(pool)
