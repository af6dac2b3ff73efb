"""On-disk package cache: ``<root>/packages/<source>/<name>/<version>/``."""

from __future__ import annotations

import hashlib
import io
import json
import os
import shutil
import tarfile
import zipfile
from dataclasses import asdict, dataclass
from pathlib import Path, PurePosixPath

from ionx.registry.base import DownloadResult, PackageInfo, RegistryError

_LIB_EXTENSIONS = frozenset({"a", "lib", "so", "dylib", "dll"})
_LIB_MAX_DEPTH = 4


class ChecksumMismatchError(RegistryError):
    """Raised when a downloaded archive does not match its expected checksum."""


@dataclass
class CachedMeta:
    """Metadata stored next to each cached package."""

    name: str
    version: str
    source: str
    checksum: str


def sha256_checksum(data: bytes) -> str:
    """The ``sha256:<hex>`` checksum of ``data``."""
    return "sha256:" + hashlib.sha256(data).hexdigest()


def find_include_dirs(root: Path) -> list[Path]:
    """Guess the include directories of an unpacked package."""
    root = Path(root)
    dirs = [root / c for c in ("include", "include/c++", "inc") if (root / c).is_dir()]
    if not dirs and ((root / "*.h").exists() or (root / "*.hpp").exists()):
        dirs.append(root)
    return dirs


def find_lib_files(root: Path) -> list[Path]:
    """Library files up to four levels below ``root``."""
    root = Path(root)
    libs: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        depth = len(Path(dirpath).relative_to(root).parts)
        if depth >= _LIB_MAX_DEPTH - 1:
            dirnames.clear()
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath, filename)
            ext = path.suffix[1:]
            if ext in _LIB_EXTENSIONS and path.is_file():
                libs.append(path)
    return libs


def _stripped(name: str) -> PurePosixPath | None:
    parts = [p for p in PurePosixPath(name.replace("\\", "/")).parts if p not in ("/", ".")]
    rest = parts[1:]
    if not rest or ".." in rest:
        return None
    return PurePosixPath(*rest)


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _meta_from_json(text: str) -> CachedMeta:
    data = json.loads(text)
    return CachedMeta(
        name=data["name"],
        version=data["version"],
        source=data["source"],
        checksum=data["checksum"],
    )


class PackageCache:
    """Stores, verifies and unpacks downloaded package archives."""

    def __init__(self, cache_dir: str | Path) -> None:
        self.root = Path(cache_dir)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RegistryError(f"Failed to create cache directory: {self.root}") from exc

    def cmake_dir(self) -> Path:
        """Directory holding generated CMake config files."""
        return self.root / "cmake"

    def package_dir(self, info: PackageInfo) -> Path:
        safe_source = info.source.replace("://", "_").replace("/", "_")
        return self.root / "packages" / safe_source / info.name / info.version

    def src_dir(self, info: PackageInfo) -> Path:
        return self.package_dir(info) / "src"

    def get_cached(self, info: PackageInfo) -> DownloadResult | None:
        """The cached unpacked package, or None if it is not cached."""
        pkg_dir = self.package_dir(info)
        meta_path = pkg_dir / "meta.json"
        src_dir = pkg_dir / "src"
        if not meta_path.exists() or not src_dir.exists():
            return None
        try:
            meta = _meta_from_json(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise RegistryError(f"Invalid cache metadata at {meta_path}: {exc}") from exc
        return self._result(info, meta.checksum, src_dir)

    def store(
        self, info: PackageInfo, archive_bytes: bytes, expected_checksum: str | None = None
    ) -> DownloadResult:
        """Verify, keep and unpack a ``.tar.gz`` archive."""
        return self._store(info, archive_bytes, expected_checksum, "archive.tar.gz", _extract_tar)

    def store_zip(
        self, info: PackageInfo, archive_bytes: bytes, expected_checksum: str | None = None
    ) -> DownloadResult:
        """Verify, keep and unpack a ``.zip`` archive."""
        return self._store(info, archive_bytes, expected_checksum, "archive.zip", _extract_zip)

    def _store(self, info, archive_bytes, expected_checksum, archive_name, extract):
        pkg_dir = self.package_dir(info)
        src_dir = pkg_dir / "src"
        src_dir.mkdir(parents=True, exist_ok=True)

        checksum = sha256_checksum(archive_bytes)
        if expected_checksum is not None and checksum != expected_checksum:
            raise ChecksumMismatchError(
                f"Checksum mismatch for {info.name}@{info.version}: "
                f"expected {expected_checksum}, got {checksum}"
            )

        archive_path = pkg_dir / archive_name
        archive_path.write_bytes(archive_bytes)
        try:
            extract(archive_path, src_dir)
        except (tarfile.TarError, zipfile.BadZipFile, EOFError, OSError) as exc:
            raise RegistryError(
                f"Failed to extract {info.name}@{info.version}: {exc}"
            ) from exc

        meta = CachedMeta(info.name, info.version, info.source_uri, checksum)
        (pkg_dir / "meta.json").write_text(json.dumps(asdict(meta), indent=2), encoding="utf-8")
        return self._result(info, checksum, src_dir)

    @staticmethod
    def _result(info: PackageInfo, checksum: str, src_dir: Path) -> DownloadResult:
        return DownloadResult(
            checksum=checksum,
            extracted_path=src_dir,
            include_dirs=find_include_dirs(src_dir),
            lib_files=find_lib_files(src_dir),
            cmake_targets=list(info.cmake_targets),
        )

    def list_cached(self) -> list[CachedMeta]:
        """Metadata of every cached package whose metadata is readable."""
        packages_dir = self.root / "packages"
        if not packages_dir.exists():
            return []
        results = []
        for meta_path in sorted(packages_dir.glob("*/*/*/meta.json")):
            try:
                results.append(_meta_from_json(meta_path.read_text(encoding="utf-8")))
            except (ValueError, KeyError, TypeError):
                continue
        return results

    def evict(self, info: PackageInfo) -> None:
        """Remove one package version from the cache."""
        directory = self.package_dir(info)
        if directory.exists():
            shutil.rmtree(directory)


def _extract_tar(archive_path: Path, dest: Path) -> None:
    with tarfile.open(archive_path, mode="r:gz") as archive:
        for member in archive:
            rel = _stripped(member.name)
            if rel is None:
                continue
            out_path = dest / rel
            if member.isdir():
                out_path.mkdir(parents=True, exist_ok=True)
                continue
            handle = archive.extractfile(member) if member.isfile() else None
            data = handle.read() if handle is not None else b""
            _write_file(out_path, data)


def _extract_zip(archive_path: Path, dest: Path) -> None:
    with zipfile.ZipFile(io.BytesIO(archive_path.read_bytes())) as archive:
        for entry in archive.infolist():
            rel = _stripped(entry.filename)
            if rel is None:
                continue
            out_path = dest / rel
            if entry.is_dir():
                out_path.mkdir(parents=True, exist_ok=True)
            else:
                _write_file(out_path, archive.read(entry))