import io
import json
import tarfile
import zipfile

import pytest

from ionx.registry.base import PackageInfo, RegistryError
from ionx.registry.cache import (
    CachedMeta,
    ChecksumMismatchError,
    PackageCache,
    find_include_dirs,
    find_lib_files,
    sha256_checksum,
)


def _info(source="ion", name="fmt", version="10.2.1"):
    return PackageInfo(
        name=name,
        version=version,
        source=source,
        source_uri="ion+https://registry.example.com",
        cmake_targets=["fmt::fmt"],
    )


def _tar_gz(files):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        top = tarfile.TarInfo("fmt-10.2.1")
        top.type = tarfile.DIRTYPE
        tar.addfile(top)
        for name, data in files.items():
            member = tarfile.TarInfo(f"fmt-10.2.1/{name}")
            member.size = len(data)
            tar.addfile(member, io.BytesIO(data))
    return buf.getvalue()


def _zip(files):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("fmt-10.2.1/", "")
        for name, data in files.items():
            zf.writestr(f"fmt-10.2.1/{name}", data)
    return buf.getvalue()


FILES = {
    "include/fmt/core.h": b"#pragma once\n",
    "lib/libfmt.a": b"archive",
    "README.md": b"readme",
}


def test_sha256_checksum_format():
    assert sha256_checksum(b"") == (
        "sha256:e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    )
    assert sha256_checksum(b"a") != sha256_checksum(b"b")


def test_store_extracts_stripping_top_level(tmp_path):
    cache = PackageCache(tmp_path / "cache")
    data = _tar_gz(FILES)
    result = cache.store(_info(), data)
    src = cache.src_dir(_info())
    assert result.extracted_path == src
    assert (src / "include/fmt/core.h").read_bytes() == b"#pragma once\n"
    assert (src / "README.md").read_bytes() == b"readme"
    assert not (src / "fmt-10.2.1").exists()
    assert result.checksum == sha256_checksum(data)
    assert result.include_dirs == [src / "include"]
    assert result.lib_files == [src / "lib/libfmt.a"]
    assert result.cmake_targets == ["fmt::fmt"]


def test_store_writes_meta(tmp_path):
    cache = PackageCache(tmp_path)
    data = _tar_gz(FILES)
    cache.store(_info(), data)
    meta = json.loads((cache.package_dir(_info()) / "meta.json").read_text())
    assert meta["name"] == "fmt"
    assert meta["version"] == "10.2.1"
    assert meta["source"] == "ion+https://registry.example.com"
    assert meta["checksum"] == sha256_checksum(data)
    assert (cache.package_dir(_info()) / "archive.tar.gz").read_bytes() == data


def test_store_accepts_matching_checksum(tmp_path):
    cache = PackageCache(tmp_path)
    data = _tar_gz(FILES)
    result = cache.store(_info(), data, sha256_checksum(data))
    assert result.checksum == sha256_checksum(data)


def test_store_rejects_mismatched_checksum(tmp_path):
    cache = PackageCache(tmp_path)
    with pytest.raises(ChecksumMismatchError, match="Checksum mismatch for fmt@10.2.1"):
        cache.store(_info(), _tar_gz(FILES), "sha256:deadbeef")
    assert not (cache.package_dir(_info()) / "meta.json").exists()


def test_mismatch_error_is_registry_error(tmp_path):
    cache = PackageCache(tmp_path)
    with pytest.raises(RegistryError):
        cache.store_zip(_info(), _zip(FILES), "sha256:00")


def test_store_invalid_archive_raises(tmp_path):
    cache = PackageCache(tmp_path)
    with pytest.raises(RegistryError):
        cache.store(_info(), b"not an archive")


def test_store_zip(tmp_path):
    cache = PackageCache(tmp_path)
    data = _zip(FILES)
    result = cache.store_zip(_info(), data)
    src = cache.src_dir(_info())
    assert (src / "include/fmt/core.h").read_bytes() == b"#pragma once\n"
    assert result.lib_files == [src / "lib/libfmt.a"]
    assert (cache.package_dir(_info()) / "archive.zip").read_bytes() == data


def test_get_cached_roundtrip(tmp_path):
    cache = PackageCache(tmp_path)
    assert cache.get_cached(_info()) is None
    stored = cache.store(_info(), _tar_gz(FILES))
    cached = cache.get_cached(_info())
    assert cached == stored


def test_get_cached_bad_meta_raises(tmp_path):
    cache = PackageCache(tmp_path)
    cache.src_dir(_info()).mkdir(parents=True)
    (cache.package_dir(_info()) / "meta.json").write_text("{broken")
    with pytest.raises(RegistryError):
        cache.get_cached(_info())


def test_package_dir_sanitizes_source(tmp_path):
    cache = PackageCache(tmp_path)
    path = cache.package_dir(_info(source="a://b/c"))
    assert path == tmp_path / "packages" / "a_b_c" / "fmt" / "10.2.1"


def test_cmake_dir(tmp_path):
    assert PackageCache(tmp_path).cmake_dir() == tmp_path / "cmake"


def test_list_cached_and_evict(tmp_path):
    cache = PackageCache(tmp_path)
    assert cache.list_cached() == []
    data = _tar_gz(FILES)
    cache.store(_info(), data)
    cache.store(_info(name="spdlog", version="1.0.0"), data)
    listed = cache.list_cached()
    assert sorted(m.name for m in listed) == ["fmt", "spdlog"]
    assert all(isinstance(m, CachedMeta) for m in listed)
    cache.evict(_info())
    assert [m.name for m in cache.list_cached()] == ["spdlog"]
    assert not cache.package_dir(_info()).exists()
    cache.evict(_info())
    assert cache.get_cached(_info()) is None


def test_find_include_dirs(tmp_path):
    (tmp_path / "include").mkdir()
    (tmp_path / "inc").mkdir()
    assert find_include_dirs(tmp_path) == [tmp_path / "include", tmp_path / "inc"]


def test_find_include_dirs_empty(tmp_path):
    (tmp_path / "core.h").write_text("x")
    assert find_include_dirs(tmp_path) == []


def test_find_lib_files_respects_depth(tmp_path):
    shallow = tmp_path / "a" / "b" / "c"
    shallow.mkdir(parents=True)
    (shallow / "libok.so").write_bytes(b"")
    deep = shallow / "d"
    deep.mkdir()
    (deep / "libdeep.a").write_bytes(b"")
    (tmp_path / "top.dll").write_bytes(b"")
    (tmp_path / "notes.txt").write_bytes(b"")
    found = find_lib_files(tmp_path)
    assert set(found) == {shallow / "libok.so", tmp_path / "top.dll"}
    assert deep / "libdeep.a" not in found