"""Semantic versions and version requirements."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering

_NUMBER = re.compile(r"0|[1-9][0-9]*")
_IDENTIFIER = re.compile(r"[0-9A-Za-z-]+")
_WILDCARDS = frozenset({"*", "x", "X"})


class VersionError(ValueError):
    """Raised when a version or a version requirement cannot be parsed."""


def _parse_number(text: str, source: str) -> int:
    if not _NUMBER.fullmatch(text):
        raise VersionError(f"invalid version number {text!r} in {source!r}")
    return int(text)


def _parse_identifiers(text: str, source: str, *, numeric_strict: bool) -> tuple[str, ...]:
    if not text:
        raise VersionError(f"empty identifier list in {source!r}")
    idents = tuple(text.split("."))
    for ident in idents:
        if not _IDENTIFIER.fullmatch(ident):
            raise VersionError(f"invalid identifier {ident!r} in {source!r}")
        if numeric_strict and ident.isdigit() and len(ident) > 1 and ident.startswith("0"):
            raise VersionError(f"leading zero in identifier {ident!r} in {source!r}")
    return idents


def _pre_key(pre: tuple[str, ...]) -> tuple:
    # A version without a pre-release sorts above any pre-release of it.
    if not pre:
        return (1,)
    return (0, tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in pre))


def _split_suffixes(text: str, source: str) -> tuple[str, str | None, str | None]:
    core, plus, build = text.partition("+")
    core, dash, pre = core.partition("-")
    return core, (pre if dash else None), (build if plus else None)


@total_ordering
@dataclass(frozen=True, eq=True)
class Version:
    """A semantic version: MAJOR.MINOR.PATCH[-pre][+build]."""

    major: int
    minor: int
    patch: int
    pre: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def _key(self) -> tuple:
        return (self.major, self.minor, self.patch, _pre_key(self.pre), self.build)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(self.pre)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


def parse_version(text: str) -> Version:
    """Parse a strict semantic version string."""
    source = text
    text = text.strip()
    core, pre, build = _split_suffixes(text, source)
    parts = core.split(".")
    if len(parts) != 3:
        raise VersionError(f"expected MAJOR.MINOR.PATCH in {source!r}")
    major, minor, patch = (_parse_number(p, source) for p in parts)
    return Version(
        major,
        minor,
        patch,
        _parse_identifiers(pre, source, numeric_strict=True) if pre is not None else (),
        _parse_identifiers(build, source, numeric_strict=False) if build is not None else (),
    )


class Op(Enum):
    EXACT = "="
    GREATER = ">"
    GREATER_EQ = ">="
    LESS = "<"
    LESS_EQ = "<="
    TILDE = "~"
    CARET = "^"
    WILDCARD = "*"


_OP_PREFIXES = (
    (">=", Op.GREATER_EQ),
    ("<=", Op.LESS_EQ),
    (">", Op.GREATER),
    ("<", Op.LESS),
    ("=", Op.EXACT),
    ("~", Op.TILDE),
    ("^", Op.CARET),
)


@dataclass(frozen=True)
class Comparator:
    op: Op
    major: int
    minor: int | None = None
    patch: int | None = None
    pre: tuple[str, ...] = ()

    def matches(self, v: Version) -> bool:
        match self.op:
            case Op.EXACT | Op.WILDCARD:
                return self._exact(v)
            case Op.GREATER:
                return self._greater(v)
            case Op.GREATER_EQ:
                return self._exact(v) or self._greater(v)
            case Op.LESS:
                return self._less(v)
            case Op.LESS_EQ:
                return self._exact(v) or self._less(v)
            case Op.TILDE:
                return self._tilde(v)
            case Op.CARET:
                return self._caret(v)
        return False

    def _exact(self, v: Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is not None and v.minor != self.minor:
            return False
        if self.patch is not None and v.patch != self.patch:
            return False
        return v.pre == self.pre

    def _greater(self, v: Version) -> bool:
        if v.major != self.major:
            return v.major > self.major
        if self.minor is None:
            return False
        if v.minor != self.minor:
            return v.minor > self.minor
        if self.patch is None:
            return False
        if v.patch != self.patch:
            return v.patch > self.patch
        return _pre_key(v.pre) > _pre_key(self.pre)

    def _less(self, v: Version) -> bool:
        if v.major != self.major:
            return v.major < self.major
        if self.minor is None:
            return False
        if v.minor != self.minor:
            return v.minor < self.minor
        if self.patch is None:
            return False
        if v.patch != self.patch:
            return v.patch < self.patch
        return _pre_key(v.pre) < _pre_key(self.pre)

    def _tilde(self, v: Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is not None and v.minor != self.minor:
            return False
        if self.patch is not None and v.patch != self.patch:
            return v.patch > self.patch
        return _pre_key(v.pre) >= _pre_key(self.pre)

    def _caret(self, v: Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is None:
            return True
        if self.major > 0:
            if v.minor != self.minor:
                return v.minor > self.minor
            if self.patch is None:
                return True
            if v.patch != self.patch:
                return v.patch > self.patch
        elif self.minor > 0:
            if v.minor != self.minor:
                return False
            if self.patch is None:
                return True
            if v.patch != self.patch:
                return v.patch > self.patch
        else:
            if v.minor != self.minor:
                return False
            if self.patch is None:
                return True
            if v.patch != self.patch:
                return False
        return _pre_key(v.pre) >= _pre_key(self.pre)

    def allows_prerelease_of(self, v: Version) -> bool:
        return (
            self.major == v.major
            and self.minor == v.minor
            and self.patch == v.patch
            and bool(self.pre)
        )


def _parse_comparator(text: str, source: str) -> Comparator | None:
    op: Op | None = None
    for prefix, candidate in _OP_PREFIXES:
        if text.startswith(prefix):
            op = candidate
            text = text[len(prefix):].strip()
            break
    if not text:
        raise VersionError(f"missing version in requirement {source!r}")

    core, pre, _build = _split_suffixes(text, source)
    parts = core.split(".")
    if len(parts) > 3:
        raise VersionError(f"too many version components in {source!r}")

    if parts[0] in _WILDCARDS:
        if len(parts) > 1 and any(p not in _WILDCARDS for p in parts[1:]):
            raise VersionError(f"unexpected version after wildcard in {source!r}")
        if op not in (None, Op.EXACT) or pre is not None:
            raise VersionError(f"unexpected wildcard in {source!r}")
        return None

    numbers: list[int | None] = []
    wildcard = False
    for part in parts:
        if part in _WILDCARDS:
            wildcard = True
            numbers.append(None)
        elif wildcard:
            raise VersionError(f"unexpected version after wildcard in {source!r}")
        else:
            numbers.append(_parse_number(part, source))
    numbers += [None] * (3 - len(numbers))
    major, minor, patch = numbers

    if pre is not None and patch is None:
        raise VersionError(f"pre-release needs a full version in {source!r}")
    if op is None:
        op = Op.WILDCARD if wildcard else Op.CARET
    return Comparator(
        op,
        major,  # type: ignore[arg-type]
        minor,
        patch,
        _parse_identifiers(pre, source, numeric_strict=True) if pre is not None else (),
    )


@dataclass(frozen=True)
class VersionReq:
    """A set of comparators that a version must all satisfy."""

    comparators: tuple[Comparator, ...] = field(default=())

    def matches(self, version: Version) -> bool:
        if not all(c.matches(version) for c in self.comparators):
            return False
        if not version.pre:
            return True
        return any(c.allows_prerelease_of(version) for c in self.comparators)


def parse_version_req(text: str) -> VersionReq:
    """Parse a comma-separated version requirement such as ``>=1.0, <2``."""
    source = text
    if not text.strip():
        raise VersionError("empty version requirement")
    comparators = []
    for piece in text.split(","):
        piece = piece.strip()
        if not piece:
            raise VersionError(f"empty comparator in {source!r}")
        comparator = _parse_comparator(piece, source)
        if comparator is not None:
            comparators.append(comparator)
    return VersionReq(tuple(comparators))


def satisfies(version: str, req: str) -> bool:
    """Whether ``version`` satisfies ``req``; unparsable input never does."""
    try:
        return parse_version_req(req).matches(parse_version(version))
    except VersionError:
        return False


def normalize_version_req(value: str) -> str:
    """Turn shorthand requirements into their canonical form."""
    value = value.strip()
    if value in ("", "*", "latest"):
        return "*"
    if value[0] in "^~><=":
        return value
    dots = value.count(".")
    if dots == 0:
        return f"^{value}.0.0"
    if dots == 1:
        return f"^{value}.0"
    return value


def display_version(version: str) -> str:
    """Strip leading ``v`` characters for display."""
    return version.lstrip("v")