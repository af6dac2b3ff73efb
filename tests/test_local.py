from pathlib import Path

import pytest

from ionx.registry.base import IonSpec, LocalSpec, RegistryError
from ionx.registry.cache import PackageCache
from ionx.registry.local import LocalRegistry, copy_dir_all, read_local_info

MANIFEST = """\
[package]
name = "mylib"
version = "2.1.0"
cpp-standard = "20"
license = "MIT"

[dependencies]
fmt = "^10.0"
"""


@pytest.fixture
def plain_pkg(tmp_path: Path) -> Path:
    root = tmp_path / "foo"
    (root / "include" / "foo").mkdir(parents=True)
    (root / "include" / "foo" / "foo.h").write_text("#pragma once\n")
    (root / "lib").mkdir()
    (root / "lib" / "libfoo.a").write_bytes(b"!<arch>\n")
    (root / "a" / "b" / "c").mkdir(parents=True)
    (root / "a" / "b" / "c" / "deep.a").write_bytes(b"x")
    return root


def test_read_local_info_without_manifest(plain_pkg):
    info = read_local_info(plain_pkg, "foo")
    assert info.name == "foo"
    assert info.version == "0.0.0"
    assert info.source == "local"
    assert info.source_uri == f"path+{plain_pkg.resolve()}"
    assert info.cmake_targets == ["foo::foo"]
    assert info.dependencies == []


def test_read_local_info_with_manifest(tmp_path):
    root = tmp_path / "mylib"
    root.mkdir()
    (root / "ion.toml").write_text(MANIFEST)
    info = read_local_info(root, "ignored")
    assert info.name == "mylib"
    assert info.version == "2.1.0"
    assert info.license == "MIT"
    assert info.cmake_targets == ["mylib::mylib"]
    assert [(d.name, d.version_req, d.optional) for d in info.dependencies] == [
        ("fmt", "^10.0", False)
    ]


def test_read_local_info_bad_manifest(tmp_path):
    root = tmp_path / "bad"
    root.mkdir()
    (root / "ion.toml").write_text("this is = = not toml")
    with pytest.raises(RegistryError, match="Failed to parse local ion.toml"):
        read_local_info(root, "bad")


def test_read_local_info_missing_path(tmp_path):
    with pytest.raises(RegistryError):
        read_local_info(tmp_path / "nope", "nope")


def test_copy_dir_all_copies_tree(plain_pkg, tmp_path):
    dest = tmp_path / "copy"
    copy_dir_all(plain_pkg, dest)
    copied = sorted(p.relative_to(dest) for p in dest.rglob("*") if p.is_file())
    original = sorted(p.relative_to(plain_pkg) for p in plain_pkg.rglob("*") if p.is_file())
    assert copied == original
    assert (dest / "include" / "foo" / "foo.h").read_text() == "#pragma once\n"


def test_can_handle_only_local_specs():
    registry = LocalRegistry()
    assert registry.can_handle(LocalSpec("foo", Path("../foo")))
    assert not registry.can_handle(IonSpec("foo", "*"))


@pytest.mark.asyncio
async def test_search_empty():
    assert await LocalRegistry().search("foo") == []


@pytest.mark.asyncio
async def test_resolve_requires_path():
    with pytest.raises(RegistryError, match=r"\.\./foo"):
        await LocalRegistry().resolve("foo", "*")


@pytest.mark.asyncio
async def test_download_copies_into_cache(plain_pkg, tmp_path):
    cache = PackageCache(tmp_path / "cache")
    info = read_local_info(plain_pkg, "foo")
    result = await LocalRegistry().download(info, cache)

    assert result.extracted_path == cache.src_dir(info)
    assert result.checksum == "local:" + info.source_uri.removeprefix("path+")
    assert result.include_dirs == [result.extracted_path / "include"]
    assert result.lib_files == [result.extracted_path / "lib" / "libfoo.a"]
    assert result.cmake_targets == ["foo::foo"]
    listed = cache.list_cached()
    assert [(m.name, m.checksum) for m in listed] == [("foo", result.checksum)]


@pytest.mark.asyncio
async def test_download_without_include_uses_root(tmp_path):
    root = tmp_path / "hdr"
    root.mkdir()
    (root / "hdr.hpp").write_text("int x;\n")
    cache = PackageCache(tmp_path / "cache")
    info = read_local_info(root, "hdr")
    result = await LocalRegistry().download(info, cache)
    assert result.include_dirs == [result.extracted_path]
    assert result.lib_files == []


@pytest.mark.asyncio
async def test_download_missing_path_raises(tmp_path):
    from ionx.registry.base import PackageInfo

    cache = PackageCache(tmp_path / "cache")
    info = PackageInfo(
        name="gone", version="0.0.0", source="local", source_uri=f"path+{tmp_path / 'gone'}"
    )
    with pytest.raises(RegistryError, match="does not exist"):
        await LocalRegistry().download(info, cache)