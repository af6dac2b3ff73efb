import io
import tarfile

import pytest
import respx

from ionx.registry.base import ConanSpec, IonSpec, PackageInfo, RegistryError
from ionx.registry.cache import ChecksumMismatchError, PackageCache, sha256_checksum
from ionx.registry.conan import (
    ConanRegistry,
    infer_cmake_targets_for_conan,
    parse_conan_reference,
)

API = "https://conan.io/center/api/ui/v1/packages"


def make_tar(files: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in files.items():
            member = tarfile.TarInfo(f"pkg-1.0/{name}")
            member.size = len(data)
            tar.addfile(member, io.BytesIO(data))
    return buf.getvalue()


@pytest.fixture
def router():
    with respx.mock(assert_all_called=False) as mock:
        yield mock


@pytest.fixture
def cache(tmp_path):
    return PackageCache(tmp_path / "cache")


def fmt_info() -> PackageInfo:
    return PackageInfo(
        name="fmt",
        version="10.2.1",
        source="conan",
        source_uri="conan+https://conan.io/center#fmt:10.2.1",
    )


def test_parse_reference_with_version():
    assert parse_conan_reference("fmt/10.2.1@") == ("fmt", "10.2.1")
    assert parse_conan_reference("fmt/10.2.1") == ("fmt", "10.2.1")


def test_parse_reference_without_version():
    assert parse_conan_reference("zlib") == ("zlib", "*")


def test_known_targets():
    assert infer_cmake_targets_for_conan("fmt") == ["fmt::fmt"]
    assert infer_cmake_targets_for_conan("OpenSSL") == ["OpenSSL::SSL", "OpenSSL::Crypto"]
    assert infer_cmake_targets_for_conan("gtest") == infer_cmake_targets_for_conan("googletest")


def test_unknown_target_uses_name():
    assert infer_cmake_targets_for_conan("mylib") == ["mylib::mylib"]


def test_can_handle():
    registry = ConanRegistry()
    assert registry.can_handle(ConanSpec("fmt/10.2.1@"))
    assert not registry.can_handle(IonSpec("fmt", "*"))


@pytest.mark.asyncio
async def test_resolve_picks_highest_match(router):
    router.get(f"{API}/fmt").respond(json={"name": "fmt", "latest": "11.0.0", "license": "MIT"})
    router.get(f"{API}/fmt/versions").respond(
        json={"versions": ["9.1.0", "10.1.0", "10.2.1", "11.0.0"]}
    )
    info = await ConanRegistry().resolve("fmt", "^10.0")
    assert info.version == "10.2.1"
    assert info.source == "conan"
    assert info.source_uri == "conan+https://conan.io/center#fmt:10.2.1"
    assert info.license == "MIT"
    assert info.cmake_targets == ["fmt::fmt"]


@pytest.mark.asyncio
async def test_resolve_star_takes_newest(router):
    router.get(f"{API}/fmt").respond(json={"name": "fmt", "latest": "10.1.0"})
    router.get(f"{API}/fmt/versions").respond(json={"versions": ["9.1.0", "11.0.0", "10.1.0"]})
    info = await ConanRegistry().resolve("fmt", "*")
    assert info.version == "11.0.0"


@pytest.mark.asyncio
async def test_resolve_falls_back_to_latest(router):
    router.get(f"{API}/fmt").respond(json={"name": "fmt", "latest": "10.1.0"})
    router.get(f"{API}/fmt/versions").respond(404, text="missing")
    info = await ConanRegistry().resolve("fmt", "^99.0")
    assert info.version == "10.1.0"


@pytest.mark.asyncio
async def test_resolve_without_any_version_fails(router):
    router.get(f"{API}/fmt").respond(json={"name": "fmt"})
    router.get(f"{API}/fmt/versions").respond(json={"versions": []})
    with pytest.raises(RegistryError, match="satisfies"):
        await ConanRegistry().resolve("fmt", "*")


@pytest.mark.asyncio
async def test_resolve_not_found(router):
    router.get(f"{API}/nope").respond(404)
    with pytest.raises(RegistryError, match="not found in ConanCenter"):
        await ConanRegistry().resolve("nope", "*")


@pytest.mark.asyncio
async def test_search_lists_results(router):
    router.get(API, params={"search": "fmt"}).respond(
        json={"results": [{"name": "fmt", "latest": "10.2.1"}, {"name": "fmtlog"}]}
    )
    results = await ConanRegistry().search("fmt")
    assert [(r.name, r.version) for r in results] == [("fmt", "10.2.1"), ("fmtlog", "*")]
    assert all(r.source == "conan" for r in results)


@pytest.mark.asyncio
async def test_search_failure_is_empty(router):
    router.get(API, params={"search": "fmt"}).respond(500)
    assert await ConanRegistry().search("fmt") == []


@pytest.mark.asyncio
async def test_download_stores_verified_archive(router, cache):
    archive = make_tar({"include/fmt/core.h": b"#pragma once\n"})
    router.get(f"{API}/fmt/10.2.1/sources").respond(
        json={"url": "https://files.example.com/fmt.tar.gz", "checksum": sha256_checksum(archive)}
    )
    router.get("https://files.example.com/fmt.tar.gz").respond(content=archive)
    result = await ConanRegistry().download(fmt_info(), cache)
    assert result.checksum == sha256_checksum(archive)
    assert (result.extracted_path / "include" / "fmt" / "core.h").read_bytes() == b"#pragma once\n"
    assert result.include_dirs == [result.extracted_path / "include"]


@pytest.mark.asyncio
async def test_download_checksum_mismatch(router, cache):
    archive = make_tar({"a.h": b"x"})
    router.get(f"{API}/fmt/10.2.1/sources").respond(
        json={"url": "https://files.example.com/fmt.tar.gz", "checksum": "sha256:00"}
    )
    router.get("https://files.example.com/fmt.tar.gz").respond(content=archive)
    with pytest.raises(ChecksumMismatchError):
        await ConanRegistry().download(fmt_info(), cache)


@pytest.mark.asyncio
async def test_download_without_sources_fails(router, cache):
    router.get(f"{API}/fmt/10.2.1/sources").respond(404)
    with pytest.raises(RegistryError, match="ConanCenter download failed"):
        await ConanRegistry().download(fmt_info(), cache)