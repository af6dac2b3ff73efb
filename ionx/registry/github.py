"""Packages from GitHub repositories, resolved through the Releases API."""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from ionx.registry.base import (
    DependencySpec,
    DownloadResult,
    GitSpec,
    PackageInfo,
    Registry,
    RegistryError,
)
from ionx.registry.cache import PackageCache
from ionx.versions import Version, VersionError, VersionReq, parse_version, parse_version_req

API_ROOT = "https://api.github.com"
USER_AGENT = "ion/0.40.0"
_DESCRIPTION_LIMIT = 200

_KNOWN_TARGETS: dict[str, list[str]] = {
    "fmt": ["fmt::fmt", "fmt::fmt-header-only"],
    "spdlog": ["spdlog::spdlog"],
    "catch2": ["Catch2::Catch2", "Catch2::Catch2WithMain"],
    "boost": ["Boost::boost"],
    "nlohmann_json": ["nlohmann_json::nlohmann_json"],
    "nlohmann-json": ["nlohmann_json::nlohmann_json"],
    "json": ["nlohmann_json::nlohmann_json"],
    "abseil": ["absl::base"],
    "absl": ["absl::base"],
    "googletest": ["GTest::gtest", "GTest::gtest_main"],
    "gtest": ["GTest::gtest", "GTest::gtest_main"],
    "eigen": ["Eigen3::Eigen"],
    "eigen3": ["Eigen3::Eigen"],
    "zlib": ["ZLIB::ZLIB"],
    "openssl": ["OpenSSL::SSL", "OpenSSL::Crypto"],
}

_KNOWN_OWNERS: dict[str, str] = {
    "fmt": "fmtlib",
    "spdlog": "gabime",
    "catch2": "catchorg",
    "nlohmann_json": "nlohmann",
    "json": "nlohmann",
    "googletest": "google",
    "gtest": "google",
    "eigen": "libeigen",
    "eigen3": "libeigen",
    "abseil": "abseil",
    "absl": "abseil",
    "zlib": "madler",
    "cli11": "CLIUtils",
    "cxxopts": "jarro2783",
    "doctest": "doctest",
    "tinyxml2": "leethomason",
    "sqlite3": "sqlite",
    "openssl": "openssl",
}


def infer_cmake_targets(name: str) -> list[str]:
    """Likely CMake import targets for a package name."""
    return list(_KNOWN_TARGETS.get(name.lower(), [f"{name}::{name}"]))


def common_owner_for(name: str) -> str:
    """The GitHub owner of a well-known package, or the name itself."""
    return _KNOWN_OWNERS.get(name.lower(), name)


def parse_github_url(url: str) -> tuple[str, str] | None:
    """Split ``https://github.com/owner/repo`` into ``(owner, repo)``."""
    url = url.rstrip("/")
    for prefix in ("https://github.com/", "http://github.com/", "github.com/"):
        if url.startswith(prefix):
            rest = url[len(prefix):]
            break
    else:
        return None
    owner, sep, repo = rest.partition("/")
    if not sep:
        return None
    while repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return owner, repo


@dataclass
class _Asset:
    name: str
    browser_download_url: str
    content_type: str


@dataclass
class _Release:
    tag_name: str
    draft: bool
    prerelease: bool
    name: str | None = None
    body: str | None = None
    tarball_url: str | None = None
    zipball_url: str | None = None
    assets: list[_Asset] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> _Release:
        return cls(
            tag_name=str(data["tag_name"]),
            draft=bool(data["draft"]),
            prerelease=bool(data["prerelease"]),
            name=data.get("name"),
            body=data.get("body"),
            tarball_url=data.get("tarball_url"),
            zipball_url=data.get("zipball_url"),
            assets=[
                _Asset(a["name"], a["browser_download_url"], a["content_type"])
                for a in data["assets"]
            ],
        )


def _highest(candidates: Iterable[tuple[Version, _Release]]) -> _Release | None:
    best: tuple[Version, _Release] | None = None
    for candidate in candidates:
        if best is None or candidate[0] >= best[0]:
            best = candidate
    return best[1] if best else None


class GitHubRegistry(Registry):
    """Resolves ``git = "https://github.com/owner/repo"`` dependencies."""

    name: ClassVar[str] = "github"

    def __init__(self, token: str | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

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
                return await client.get(url, headers=self._headers)
        except httpx.HTTPError as exc:
            raise RegistryError(f"{error_message}: {exc}") from exc

    async def list_releases(self, owner: str, repo: str) -> list[_Release]:
        """All releases of ``owner/repo``, newest first as GitHub returns them."""
        resp = await self._get(
            f"{API_ROOT}/repos/{owner}/{repo}/releases",
            f"Failed to query GitHub releases for {owner}/{repo}",
        )
        if resp.status_code == httpx.codes.NOT_FOUND:
            raise RegistryError(f"GitHub repo {owner}/{repo} not found")
        if resp.status_code == httpx.codes.FORBIDDEN:
            raise RegistryError(
                "GitHub API rate limit exceeded. Set GITHUB_TOKEN to increase limits."
            )
        try:
            return [_Release.from_json(r) for r in resp.json()]
        except (ValueError, KeyError, TypeError) as exc:
            raise RegistryError(f"Failed to parse GitHub releases response: {exc}") from exc

    @staticmethod
    def _release_info(name: str, owner: str, repo: str, release: _Release) -> PackageInfo:
        description = release.body
        if description is not None and len(description) > _DESCRIPTION_LIMIT:
            description = description[:_DESCRIPTION_LIMIT] + "..."
        return PackageInfo(
            name=name,
            version=release.tag_name.lstrip("v"),
            source="github",
            source_uri=f"github+https://github.com/{owner}/{repo}",
            description=description,
            homepage=f"https://github.com/{owner}/{repo}",
            cmake_targets=infer_cmake_targets(name),
        )

    async def search(self, query: str) -> list[PackageInfo]:
        resp = await self._get(
            f"{API_ROOT}/search/repositories?q={query}+topic:ion-cpp-package&sort=stars",
            "GitHub search failed",
        )
        try:
            items = resp.json()["items"]
            repos = [(str(i["name"]), str(i["full_name"]), i.get("description")) for i in items]
        except (ValueError, KeyError, TypeError):
            return []
        return [
            PackageInfo(
                name=name,
                version="latest",
                source="github",
                source_uri=f"github+https://github.com/{full_name}",
                description=description,
                homepage=f"https://github.com/{full_name}",
                cmake_targets=infer_cmake_targets(name),
            )
            for name, full_name, description in repos
        ]

    async def resolve(self, name: str, version_req: str) -> PackageInfo:
        if "/" in name:
            owner, repo = name.split("/", 1)
        else:
            owner, repo = common_owner_for(name), name

        releases = await self.list_releases(owner, repo)
        stable = [r for r in releases if not r.draft and not r.prerelease]
        if not stable:
            raise RegistryError(f"No stable releases found for github:{owner}/{repo}")

        req = VersionReq()
        if version_req not in ("", "*"):
            try:
                req = parse_version_req(version_req)
            except VersionError:
                req = VersionReq()

        def candidates() -> Iterable[tuple[Version, _Release]]:
            for release in stable:
                try:
                    version = parse_version(release.tag_name.lstrip("v"))
                except VersionError:
                    continue
                if req.matches(version):
                    yield version, release

        release = _highest(candidates()) or stable[0]
        return self._release_info(name, owner, repo, release)

    async def download(self, info: PackageInfo, cache: PackageCache) -> DownloadResult:
        repo_url = info.source_uri.removeprefix("github+")
        parsed = parse_github_url(repo_url)
        if parsed is None:
            raise RegistryError(f"Invalid GitHub source URI: {info.source_uri}")
        owner, repo = parsed

        releases = await self.list_releases(owner, repo)
        release = next(
            (
                r
                for r in releases
                if r.tag_name.lstrip("v") == info.version or r.tag_name == info.version
            ),
            None,
        )
        if release is None:
            raise RegistryError(f"Release {info.version} not found for {info.name}")

        download_url = release.tarball_url or release.zipball_url
        if not download_url:
            raise RegistryError(f"No download URL for release {info.version}")

        resp = await self._get(download_url, f"Failed to download {info.name}@{info.version}")
        if download_url.endswith(".zip"):
            return cache.store_zip(info, resp.content, None)
        return cache.store(info, resp.content, None)

    def can_handle(self, spec: DependencySpec) -> bool:
        return isinstance(spec, GitSpec) and "github.com" in spec.url