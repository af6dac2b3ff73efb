"""Shared types and the interface every package registry implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from ionx.registry.cache import PackageCache


class RegistryError(Exception):
    """Raised when a registry cannot resolve, fetch or store a package."""


@dataclass
class PackageDependency:
    """A dependency declared by a package in a registry index."""

    name: str
    version_req: str
    optional: bool = False


@dataclass
class PackageInfo:
    """An available package version from any registry."""

    name: str
    version: str
    source: str
    source_uri: str
    description: str | None = None
    homepage: str | None = None
    license: str | None = None
    cmake_targets: list[str] = field(default_factory=list)
    dependencies: list[PackageDependency] = field(default_factory=list)
    features: list[str] = field(default_factory=list)


@dataclass
class DownloadResult:
    """A downloaded and unpacked package."""

    checksum: str
    extracted_path: Path
    include_dirs: list[Path] = field(default_factory=list)
    lib_files: list[Path] = field(default_factory=list)
    cmake_targets: list[str] = field(default_factory=list)


class GitRevKind(Enum):
    TAG = "tag"
    BRANCH = "branch"
    COMMIT = "commit"


@dataclass(frozen=True)
class GitRev:
    """A git revision: a tag, a branch or a commit."""

    kind: GitRevKind
    value: str


@dataclass(frozen=True)
class IonSpec:
    """A package from the native registry: ``fmt = "10.2"``."""

    name: str
    version_req: str
    features: tuple[str, ...] = ()


@dataclass(frozen=True)
class GitSpec:
    """A package from a git repository."""

    name: str
    url: str
    rev: GitRev


@dataclass(frozen=True)
class ConanSpec:
    """A ConanCenter reference such as ``fmt/10.2.1@``."""

    reference: str

    @property
    def name(self) -> str:
        return self.reference.split("/", 1)[0]


@dataclass(frozen=True)
class VcpkgSpec:
    """A vcpkg port."""

    port: str
    features: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.port


@dataclass(frozen=True)
class LocalSpec:
    """A package on the local filesystem."""

    name: str
    path: Path


DependencySpec = IonSpec | GitSpec | ConanSpec | VcpkgSpec | LocalSpec


class Registry(ABC):
    """A source of packages."""

    name: ClassVar[str]

    @abstractmethod
    async def search(self, query: str) -> list[PackageInfo]:
        """Packages matching ``query``."""

    @abstractmethod
    async def resolve(self, name: str, version_req: str) -> PackageInfo:
        """The best version of ``name`` that satisfies ``version_req``."""

    @abstractmethod
    async def download(self, info: PackageInfo, cache: PackageCache) -> DownloadResult:
        """Fetch ``info`` into ``cache`` and unpack it."""

    @abstractmethod
    def can_handle(self, spec: DependencySpec) -> bool:
        """Whether this registry serves ``spec``."""