"""Packages from the public vcpkg port index."""

from __future__ import annotations

import contextlib
import json
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

import httpx

from ionx.registry.base import (
    DependencySpec,
    DownloadResult,
    PackageInfo,
    Registry,
    RegistryError,
    VcpkgSpec,
)
from ionx.registry.cache import PackageCache

RAW_ROOT = "https://raw.githubusercontent.com/microsoft/vcpkg/master"
BASELINE_URL = f"{RAW_ROOT}/versions/baseline.json"
SOURCE_URI = "vcpkg+https://github.com/microsoft/vcpkg"
USER_AGENT = "ion/0.40.0"
BASELINE_MAX_AGE = 86400
SEARCH_LIMIT = 20

_MALFORMED = (ValueError, KeyError, TypeError)

_KNOWN_TARGETS: dict[str, list[str]] = {
    "fmt": ["fmt::fmt"],
    "spdlog": ["spdlog::spdlog"],
    "boost": ["Boost::boost"],
    "nlohmann-json": ["nlohmann_json::nlohmann_json"],
    "catch2": ["Catch2::Catch2"],
    "gtest": ["GTest::gtest", "GTest::gtest_main"],
    "eigen3": ["Eigen3::Eigen"],
    "zlib": ["ZLIB::ZLIB"],
    "openssl": ["OpenSSL::SSL", "OpenSSL::Crypto"],
    "sqlite3": ["SQLite::SQLite3"],
    "curl": ["CURL::libcurl"],
    "protobuf": ["protobuf::libprotobuf"],
    "grpc": ["gRPC::grpc++"],
}


def infer_cmake_targets_vcpkg(name: str) -> list[str]:
    """CMake import targets a vcpkg port conventionally exports."""
    return list(_KNOWN_TARGETS.get(name.lower(), [f"{name}::{name}"]))


def extract_cmake_arg(content: str, arg: str) -> str | None:
    """The value of the first ``ARG value`` line in CMake portfile content."""
    pattern = f"{arg} "
    for line in content.splitlines():
        stripped = line.strip()
        if stripped.startswith(pattern):
            return stripped[len(pattern):].strip().strip('"')
    return None


@dataclass
class _BaselineEntry:
    version: str
    port_version: int


def _parse_baseline(text: str) -> dict[str, _BaselineEntry]:
    data = json.loads(text)
    entries = {}
    for name, entry in data["default"].items():
        version = entry["baseline"]
        port_version = entry["port-version"]
        if not isinstance(version, str) or not isinstance(port_version, int):
            raise TypeError(f"invalid baseline entry for {name}")
        entries[name] = _BaselineEntry(version, port_version)
    return entries


def _first_str(entry: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = entry.get(key)
        if isinstance(value, str):
            return value
    return None


class VcpkgRegistry(Registry):
    """Resolves ``vcpkg = "port"`` dependencies from the vcpkg baseline."""

    name: ClassVar[str] = "vcpkg"

    def __init__(self, cache_dir: str | Path, client: httpx.AsyncClient | None = None) -> None:
        self.index_dir = Path(cache_dir) / "vcpkg-index"
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

    def _ensure_index(self) -> None:
        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RegistryError("Failed to create vcpkg index directory") from exc

    async def fetch_baseline(self) -> dict[str, _BaselineEntry]:
        """Port name to baseline entry, from a copy under a day old or the network."""
        self._ensure_index()
        cache_path = self.index_dir / "baseline.json"
        try:
            age = time.time() - cache_path.stat().st_mtime
        except OSError:
            age = None
        if age is not None and 0 <= age < BASELINE_MAX_AGE:
            try:
                return _parse_baseline(cache_path.read_text(encoding="utf-8"))
            except _MALFORMED:
                pass

        resp = await self._get(BASELINE_URL, "Failed to fetch vcpkg baseline")
        text = resp.text
        cache_path.write_text(text, encoding="utf-8")
        try:
            return _parse_baseline(text)
        except _MALFORMED as exc:
            raise RegistryError(f"Failed to parse vcpkg baseline: {exc}") from exc

    async def fetch_port_versions(self, name: str) -> list[str]:
        """Every version listed for a port; empty if the port has no version file."""
        self._ensure_index()
        first = name[:1].lower() or "a"
        cache_path = self.index_dir / f"{name}.json"
        if cache_path.exists():
            text = cache_path.read_text(encoding="utf-8")
        else:
            resp = await self._get(
                f"{RAW_ROOT}/versions/{first}-/{name}.json",
                f"Failed to fetch vcpkg versions for {name}",
            )
            if not resp.is_success:
                return []
            text = resp.text
            cache_path.write_text(text, encoding="utf-8")
        try:
            entries = json.loads(text)["versions"]
            return [
                version
                for entry in entries
                if (version := _first_str(entry, "version-semver", "version", "version-string"))
                is not None
            ]
        except _MALFORMED:
            return []

    def _info(self, name: str, version: str) -> PackageInfo:
        return PackageInfo(
            name=name,
            version=version,
            source="vcpkg",
            source_uri=f"{SOURCE_URI}#{name}",
            homepage=f"https://vcpkg.io/en/package/{name}",
            cmake_targets=infer_cmake_targets_vcpkg(name),
        )

    async def search(self, query: str) -> list[PackageInfo]:
        baseline = await self.fetch_baseline()
        matches = (name for name in sorted(baseline) if query in name)
        return [
            self._info(name, baseline[name].version)
            for _, name in zip(range(SEARCH_LIMIT), matches)
        ]

    async def resolve(self, name: str, version_req: str) -> PackageInfo:
        try:
            baseline = await self.fetch_baseline()
        except RegistryError as exc:
            raise RegistryError(f"Failed to load vcpkg baseline: {exc}") from exc
        entry = baseline.get(name)
        if entry is None:
            raise RegistryError(f"Package '{name}' not found in vcpkg registry")
        return self._info(name, entry.version)

    async def download(self, info: PackageInfo, cache: PackageCache) -> DownloadResult:
        portfile_resp = await self._get(
            f"{RAW_ROOT}/ports/{info.name}/portfile.cmake",
            f"Failed to fetch portfile for {info.name}",
        )
        if not portfile_resp.is_success:
            raise RegistryError(f"vcpkg port '{info.name}' portfile not found")

        archive_url = extract_cmake_arg(portfile_resp.text, "URL")
        if archive_url is None:
            raise RegistryError(
                f"Could not find archive URL in vcpkg portfile for {info.name}"
            )

        resp = await self._get(archive_url, f"Failed to download vcpkg package {info.name}")
        if archive_url.endswith(".zip"):
            return cache.store_zip(info, resp.content, None)
        return cache.store(info, resp.content, None)

    def can_handle(self, spec: DependencySpec) -> bool:
        return isinstance(spec, VcpkgSpec)