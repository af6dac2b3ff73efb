"""Client for the native Ion package registry and its sparse JSON index."""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from ionx.registry.base import (
    DependencySpec,
    DownloadResult,
    IonSpec,
    PackageDependency,
    PackageInfo,
    Registry,
    RegistryError,
)
from ionx.registry.cache import PackageCache
from ionx.versions import Version, VersionError, VersionReq, parse_version, parse_version_req

DEFAULT_REGISTRY_URL = "https://registry.ion-cpp.dev"
USER_AGENT = "ion/0.40.0"

_MALFORMED = (ValueError, KeyError, TypeError)


def _str(data: dict[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise TypeError(f"`{key}` must be a string")
    return value


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise TypeError(f"`{key}` must be a string")
    return value


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise TypeError(f"`{key}` must be a list of strings")
    return list(value)


@dataclass
class _IndexDependency:
    name: str
    version_req: str
    optional: bool = False

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> _IndexDependency:
        return cls(
            name=_str(data, "name"),
            version_req=_str(data, "version_req"),
            optional=bool(data.get("optional", False)),
        )


@dataclass
class _VersionEntry:
    """One version of a package in the registry index."""

    version: str
    tarball: str
    checksum: str
    description: str | None = None
    homepage: str | None = None
    license: str | None = None
    cmake_targets: list[str] = field(default_factory=list)
    dependencies: list[_IndexDependency] = field(default_factory=list)
    features: list[str] = field(default_factory=list)
    yanked: bool = False

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> _VersionEntry:
        return cls(
            version=_str(data, "version"),
            tarball=_str(data, "tarball"),
            checksum=_str(data, "checksum"),
            description=_opt_str(data, "description"),
            homepage=_opt_str(data, "homepage"),
            license=_opt_str(data, "license"),
            cmake_targets=_str_list(data, "cmake_targets"),
            dependencies=[_IndexDependency.from_json(d) for d in data.get("dependencies", [])],
            features=_str_list(data, "features"),
            yanked=bool(data.get("yanked", False)),
        )


def _highest(candidates: Iterable[tuple[Version, _VersionEntry]]) -> _VersionEntry | None:
    best: tuple[Version, _VersionEntry] | None = None
    for candidate in candidates:
        if best is None or candidate[0] >= best[0]:
            best = candidate
    return best[1] if best else None


class IonRegistry(Registry):
    """The native registry: ``GET /index/<name>.json`` lists every version."""

    name: ClassVar[str] = "ion"

    def __init__(
        self, base_url: str = DEFAULT_REGISTRY_URL, client: httpx.AsyncClient | None = None
    ) -> None:
        self.base_url = base_url
        self._client = client

    @contextlib.asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                yield client

    async def _get(self, url: str, error_message: str) -> httpx.Response:
        try:
            async with self._session() as client:
                return await client.get(url, headers={"User-Agent": USER_AGENT})
        except httpx.HTTPError as exc:
            raise RegistryError(f"{error_message}: {exc}") from exc

    async def fetch_index(self, name: str) -> list[_VersionEntry]:
        """Every version entry the index holds for ``name``."""
        url = f"{self.base_url}/index/{name.lower()}.json"
        resp = await self._get(url, f"Failed to reach Ion registry for package '{name}'")
        if resp.status_code == httpx.codes.NOT_FOUND:
            raise RegistryError(f"Package '{name}' not found in Ion registry")
        try:
            data = resp.json()
            if not isinstance(data, list):
                raise TypeError("index must be a list")
            return [_VersionEntry.from_json(entry) for entry in data]
        except _MALFORMED as exc:
            raise RegistryError(
                f"Failed to parse Ion registry response for '{name}': {exc}"
            ) from exc

    async def search(self, query: str) -> list[PackageInfo]:
        resp = await self._get(f"{self.base_url}/search?q={query}", "Ion registry search failed")
        if not resp.is_success:
            return []
        try:
            packages = resp.json()["packages"]
            return [
                PackageInfo(
                    name=_str(entry, "name"),
                    version=_str(entry, "latest_version"),
                    source="ion",
                    source_uri=f"ion+{self.base_url}",
                    description=_opt_str(entry, "description"),
                )
                for entry in packages
            ]
        except _MALFORMED as exc:
            raise RegistryError(f"Failed to parse Ion registry search response: {exc}") from exc

    async def resolve(self, name: str, version_req: str) -> PackageInfo:
        entries = await self.fetch_index(name)
        available = [e for e in entries if not e.yanked]
        if not available:
            raise RegistryError(f"No available versions for '{name}' in Ion registry")

        if version_req in ("", "*"):
            req = VersionReq()
        else:
            try:
                req = parse_version_req(version_req)
            except VersionError as exc:
                raise RegistryError(f"Invalid version requirement: {version_req}") from exc

        def candidates() -> Iterable[tuple[Version, _VersionEntry]]:
            for entry in available:
                try:
                    version = parse_version(entry.version)
                except VersionError:
                    continue
                if req.matches(version):
                    yield version, entry

        entry = _highest(candidates())
        if entry is None:
            raise RegistryError(
                f"No version of '{name}' satisfies '{version_req}' in Ion registry"
            )

        return PackageInfo(
            name=name,
            version=entry.version,
            source="ion",
            source_uri=f"ion+{self.base_url}#{entry.checksum}",
            description=entry.description,
            homepage=entry.homepage,
            license=entry.license,
            cmake_targets=list(entry.cmake_targets),
            dependencies=[
                PackageDependency(d.name, d.version_req, d.optional) for d in entry.dependencies
            ],
            features=list(entry.features),
        )

    async def download(self, info: PackageInfo, cache: PackageCache) -> DownloadResult:
        entries = await self.fetch_index(info.name)
        entry = next((e for e in entries if e.version == info.version), None)
        if entry is None:
            raise RegistryError(f"Version {info.version} not found in index")

        resp = await self._get(entry.tarball, f"Failed to download {info.name}@{info.version}")
        checksum = entry.checksum
        if not checksum.startswith("sha256:"):
            checksum = f"sha256:{checksum}"
        return cache.store(info, resp.content, checksum)

    def can_handle(self, spec: DependencySpec) -> bool:
        return isinstance(spec, IonSpec)