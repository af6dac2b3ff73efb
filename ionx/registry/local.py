"""Packages taken from a directory on the local filesystem."""

from __future__ import annotations

import json
import os
import shutil
from dataclasses import asdict
from pathlib import Path
from typing import ClassVar

from ionx.manifest import ManifestError, parse_manifest, version_req
from ionx.registry.base import (
    DependencySpec,
    DownloadResult,
    LocalSpec,
    PackageDependency,
    PackageInfo,
    Registry,
    RegistryError,
)
from ionx.registry.cache import CachedMeta, PackageCache

_LIB_EXTENSIONS = frozenset({"a", "lib", "so", "dylib", "dll"})
_LIB_MAX_DEPTH = 3


def _canonical(path: Path) -> Path:
    try:
        return path.resolve(strict=True)
    except OSError as exc:
        raise RegistryError(f"Cannot resolve local path {path}: {exc}") from exc


def read_local_info(path: str | Path, name: str) -> PackageInfo:
    """Describe the package in ``path`` from its ``ion.toml``, or minimally without one."""
    path = Path(path)
    manifest_path = path / "ion.toml"
    if manifest_path.exists():
        try:
            content = manifest_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise RegistryError(f"Failed to read ion.toml at {path}") from exc
        try:
            manifest = parse_manifest(content)
        except (ManifestError, ValueError) as exc:
            raise RegistryError(f"Failed to parse local ion.toml: {exc}") from exc
        package = manifest.package
        return PackageInfo(
            name=package.name,
            version=package.version,
            source="local",
            source_uri=f"path+{_canonical(path)}",
            description=package.description,
            homepage=package.repository,
            license=package.license,
            cmake_targets=[f"{package.name}::{package.name}"],
            dependencies=[
                PackageDependency(dep_name, version_req(dep), False)
                for dep_name, dep in manifest.dependencies.items()
            ],
        )
    return PackageInfo(
        name=name,
        version="0.0.0",
        source="local",
        source_uri=f"path+{_canonical(path)}",
        cmake_targets=[f"{name}::{name}"],
    )


def copy_dir_all(src: str | Path, dst: str | Path) -> None:
    """Copy the tree under ``src`` into ``dst``, merging with what is there."""
    src, dst = Path(src), Path(dst)
    dst.mkdir(parents=True, exist_ok=True)
    for dirpath, dirnames, filenames in os.walk(src):
        rel = Path(dirpath).relative_to(src)
        for dirname in dirnames:
            (dst / rel / dirname).mkdir(parents=True, exist_ok=True)
        for filename in filenames:
            target = dst / rel / filename
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy(Path(dirpath, filename), target)


def _find_include_dirs(root: Path) -> list[Path]:
    dirs = [root / c for c in ("include", "inc") if (root / c).is_dir()]
    return dirs or [root]


def _find_lib_files(root: Path) -> list[Path]:
    libs: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        depth = len(Path(dirpath).relative_to(root).parts)
        if depth >= _LIB_MAX_DEPTH - 1:
            dirnames.clear()
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath, filename)
            if path.suffix[1:] in _LIB_EXTENSIONS and path.is_file():
                libs.append(path)
    return libs


class LocalRegistry(Registry):
    """Serves ``path = "../mylib"`` dependencies."""

    name: ClassVar[str] = "local"

    async def search(self, query: str) -> list[PackageInfo]:
        return []

    async def resolve(self, name: str, version_req: str) -> PackageInfo:
        raise RegistryError(
            f'Local registry requires a path spec. Use: {{ path = "../{name}" }}'
        )

    async def download(self, info: PackageInfo, cache: PackageCache) -> DownloadResult:
        local_path = info.source_uri.removeprefix("path+")
        src_path = Path(local_path)
        if not src_path.exists():
            raise RegistryError(f"Local dependency path does not exist: {src_path}")

        pkg_dir = cache.package_dir(info)
        dest = pkg_dir / "src"
        dest.mkdir(parents=True, exist_ok=True)
        copy_dir_all(src_path, dest)

        meta = CachedMeta(
            name=info.name,
            version=info.version,
            source=info.source_uri,
            checksum=f"local:{local_path}",
        )
        (pkg_dir / "meta.json").write_text(json.dumps(asdict(meta), indent=2), encoding="utf-8")

        return DownloadResult(
            checksum=meta.checksum,
            extracted_path=dest,
            include_dirs=_find_include_dirs(dest),
            lib_files=_find_lib_files(dest),
            cmake_targets=list(info.cmake_targets),
        )

    def can_handle(self, spec: DependencySpec) -> bool:
        return isinstance(spec, LocalSpec)