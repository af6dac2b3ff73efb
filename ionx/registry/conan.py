"""Packages from ConanCenter."""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from ionx.registry.base import (
    ConanSpec,
    DependencySpec,
    DownloadResult,
    PackageInfo,
    Registry,
    RegistryError,
)
from ionx.registry.cache import PackageCache
from ionx.versions import Version, VersionError, VersionReq, parse_version, parse_version_req

API_ROOT = "https://conan.io/center/api/ui/v1/packages"
SOURCE_URI = "conan+https://conan.io/center"
USER_AGENT = "ion/0.40.0"

_MALFORMED = (ValueError, KeyError, TypeError)

_KNOWN_TARGETS: dict[str, list[str]] = {
    "fmt": ["fmt::fmt"],
    "spdlog": ["spdlog::spdlog"],
    "catch2": ["Catch2::Catch2"],
    "boost": ["Boost::boost"],
    "nlohmann_json": ["nlohmann_json::nlohmann_json"],
    "openssl": ["OpenSSL::SSL", "OpenSSL::Crypto"],
    "zlib": ["ZLIB::ZLIB"],
    "gtest": ["GTest::gtest"],
    "googletest": ["GTest::gtest"],
    "eigen": ["Eigen3::Eigen"],
    "protobuf": ["protobuf::libprotobuf"],
    "grpc": ["gRPC::grpc++"],
}


def infer_cmake_targets_for_conan(name: str) -> list[str]:
    """CMake import targets a Conan package conventionally exports."""
    return list(_KNOWN_TARGETS.get(name.lower(), [f"{name}::{name}"]))


def parse_conan_reference(reference: str) -> tuple[str, str]:
    """Split ``fmt/10.2.1@`` into ``("fmt", "10.2.1")``; no version gives ``"*"``."""
    reference = reference.rstrip("@")
    name, sep, version = reference.partition("/")
    if not sep:
        return reference, "*"
    return name, version


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise TypeError(f"`{key}` must be a string")
    return value


@dataclass
class _ConanPackage:
    name: str
    latest: str | None = None
    description: str | None = None
    license: str | None = None
    homepage: str | None = None
    topics: list[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> _ConanPackage:
        name = data["name"]
        if not isinstance(name, str):
            raise TypeError("`name` must be a string")
        return cls(
            name=name,
            latest=_opt_str(data, "latest"),
            description=_opt_str(data, "description"),
            license=_opt_str(data, "license"),
            homepage=_opt_str(data, "homepage"),
            topics=list(data.get("topics") or []),
        )


def _highest(candidates: Iterable[tuple[Version, str]]) -> str | None:
    best: tuple[Version, str] | None = None
    for candidate in candidates:
        if best is None or candidate[0] >= best[0]:
            best = candidate
    return best[1] if best else None


class ConanRegistry(Registry):
    """Resolves ``conan = "pkg/version@"`` dependencies."""

    name: ClassVar[str] = "conan"

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
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

    async def search(self, query: str) -> list[PackageInfo]:
        resp = await self._get(f"{API_ROOT}?search={query}", "ConanCenter search failed")
        if not resp.is_success:
            return []
        try:
            packages = [_ConanPackage.from_json(p) for p in resp.json()["results"]]
        except _MALFORMED:
            packages = []
        return [
            PackageInfo(
                name=p.name,
                version=p.latest or "*",
                source="conan",
                source_uri=SOURCE_URI,
                description=p.description,
                homepage=p.homepage,
                license=p.license,
                cmake_targets=infer_cmake_targets_for_conan(p.name),
            )
            for p in packages
        ]

    async def resolve(self, name: str, version_req: str) -> PackageInfo:
        meta_resp = await self._get(
            f"{API_ROOT}/{name}", f"Failed to query ConanCenter for '{name}'"
        )
        if meta_resp.status_code == httpx.codes.NOT_FOUND:
            raise RegistryError(f"Package '{name}' not found in ConanCenter")
        try:
            pkg = _ConanPackage.from_json(meta_resp.json())
        except _MALFORMED as exc:
            raise RegistryError(f"Failed to parse ConanCenter package info: {exc}") from exc

        ver_resp = await self._get(
            f"{API_ROOT}/{name}/versions", f"Failed to query ConanCenter versions for '{name}'"
        )
        try:
            versions = ver_resp.json()["versions"]
            if not isinstance(versions, list) or not all(isinstance(v, str) for v in versions):
                raise TypeError("`versions` must be a list of strings")
        except _MALFORMED:
            versions = [pkg.latest] if pkg.latest is not None else []

        req = VersionReq()
        if version_req not in ("", "*"):
            try:
                req = parse_version_req(version_req)
            except VersionError:
                req = VersionReq()

        def candidates() -> Iterable[tuple[Version, str]]:
            for text in versions:
                try:
                    version = parse_version(text)
                except VersionError:
                    continue
                if req.matches(version):
                    yield version, text

        version = _highest(candidates()) or pkg.latest
        if version is None:
            raise RegistryError(f"No version of '{name}' satisfies '{version_req}'")

        return PackageInfo(
            name=name,
            version=version,
            source="conan",
            source_uri=f"{SOURCE_URI}#{name}:{version}",
            description=pkg.description,
            homepage=pkg.homepage,
            license=pkg.license,
            cmake_targets=infer_cmake_targets_for_conan(name),
        )

    async def download(self, info: PackageInfo, cache: PackageCache) -> DownloadResult:
        resp = await self._get(
            f"{API_ROOT}/{info.name}/{info.version}/sources",
            f"Failed to get download info for {info.name}@{info.version}",
        )
        if not resp.is_success:
            raise RegistryError(
                f"ConanCenter download failed for {info.name}@{info.version}. "
                "Try specifying the git source directly instead."
            )
        try:
            data = resp.json()
            url = data["url"]
            if not isinstance(url, str):
                raise TypeError("`url` must be a string")
            checksum = _opt_str(data, "checksum")
        except _MALFORMED as exc:
            raise RegistryError(f"Failed to parse ConanCenter source info: {exc}") from exc

        archive = await self._get(
            url, f"Failed to download archive for {info.name}@{info.version}"
        )
        return cache.store(info, archive.content, checksum)

    def can_handle(self, spec: DependencySpec) -> bool:
        return isinstance(spec, ConanSpec)