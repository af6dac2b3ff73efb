# ionx

Building blocks for a C++ package manager: reading and writing `ion.toml`
manifests, matching semantic versions, ordering dependencies, looking up
packages in several registries, caching and unpacking downloaded sources,
and converting diagnostic positions for editors.

## Installing

```
pip install ionx
```

To work on it and run its tests:

```
pip install -e ".[test]"
pytest
```

## Manifests

`ionx.manifest` reads and writes `ion.toml`.

```python
from ionx.manifest import new_manifest, load_manifest_from_dir, DetailedDependency

manifest = new_manifest("my-app", "20")        # version 0.1.0, licence field "MIT"
manifest.add_dependency("fmt", "^10.0")
manifest.add_dev_dependency("catch2", "3")
manifest.add_detailed_dependency(
    "json",
    DetailedDependency(git="https://github.com/nlohmann/json", tag="v3.11.3"),
)
manifest.save_to_dir(project_dir)

loaded = load_manifest_from_dir(project_dir)
for name, dep, is_dev in loaded.all_dependencies():
    print(name, is_dev)

loaded.remove_dependency("catch2")             # True: it was present
```

A dependency is either a plain version requirement string or a
`DetailedDependency` (version, features, optional, git, tag, branch, rev,
conan, vcpkg, path, registry); `version_req(dep)` and
`dependency_features(dep)` read either kind. `parse_manifest(text)`,
`load_manifest(path)` and `manifest_from_dict(data)` build a `Manifest`;
`Manifest.to_dict()` and `Manifest.to_toml()` serialise one. Problems reading,
parsing or writing raise `ManifestError`.

## Versions

`ionx.versions` parses semantic versions (`parse_version`) and comma-separated
requirements such as `>=1.0, <2` or `^10.2` (`parse_version_req`), raising
`VersionError` on bad input. Pre-release versions only match a requirement
that names a pre-release of the same version.

```python
from ionx.versions import satisfies, normalize_version_req, display_version

satisfies("10.2.1", "^10.0.0")      # True
satisfies("11.0.0", "^10.0.0")      # False
normalize_version_req("10")         # "^10.0.0"
normalize_version_req("10.2")       # "^10.2.0"
normalize_version_req("latest")     # "*"
display_version("v1.2.3")           # "1.2.3"
```

## Dependency graphs

```python
from ionx.graph import DependencyGraph, CycleError

graph = DependencyGraph()
graph.add_node("fmt", "10.2.1", [])
graph.add_node("spdlog", "1.13.0", ["fmt"])
graph.topological_sort()        # ["fmt", "spdlog"]
graph.transitive_deps("spdlog") # {"fmt"}
graph.check_removal("fmt")      # ["spdlog"]
```

A cycle makes `topological_sort` raise `CycleError`. `ResolvedNode` is a
plain record of a resolved package (name, version, source URI, CMake
targets, direct dependencies).

## Registries

Each registry in `ionx.registry` implements the asynchronous
`Registry` interface from `ionx.registry.base`: `search(query)`,
`resolve(name, version_req)`, `download(info, cache)` and
`can_handle(spec)`. Specs are `IonSpec`, `GitSpec`, `ConanSpec`,
`VcpkgSpec` and `LocalSpec`; failures raise `RegistryError`.

| Class | Module | Serves |
|-------|--------|--------|
| `IonRegistry` | `ionx.registry.ion` | the Ion sparse JSON index |
| `GitHubRegistry` | `ionx.registry.github` | GitHub releases of `GitSpec` URLs on github.com |
| `ConanRegistry` | `ionx.registry.conan` | ConanCenter references |
| `VcpkgRegistry` | `ionx.registry.vcpkg` | ports in the vcpkg baseline |
| `LocalRegistry` | `ionx.registry.local` | directories on disk |

The network registries accept an optional `httpx.AsyncClient`; without one
they open a client for each request.

```python
import asyncio
import httpx
from ionx.registry.cache import PackageCache
from ionx.registry.ion import IonRegistry

async def main():
    cache = PackageCache(cache_dir)
    async with httpx.AsyncClient() as client:
        registry = IonRegistry(client=client)
        info = await registry.resolve("fmt", "^10")
        result = cached if (cached := cache.get_cached(info)) else await registry.download(info, cache)
        print(result.extracted_path, result.include_dirs, result.cmake_targets)

asyncio.run(main())
```

`GitHubRegistry(token)` sends the token as a bearer authorisation header.
`VcpkgRegistry(cache_dir)` keeps the vcpkg baseline under
`<cache_dir>/vcpkg-index` and reuses it for a day. For local packages,
`read_local_info(path, name)` builds a `PackageInfo` from the directory's
`ion.toml` (or a minimal one at version `0.0.0`), and
`LocalRegistry().download(info, cache)` copies the tree into the cache.

## The download cache

`PackageCache(cache_dir)` stores packages under
`<cache_dir>/packages/<source>/<name>/<version>/`. `store` (`.tar.gz`) and
`store_zip` verify an optional `sha256:<hex>` checksum, raising
`ChecksumMismatchError` on a mismatch, unpack the archive without its
top-level directory into `src/` and write `meta.json`. `get_cached`,
`list_cached` and `evict` read and remove what is stored;
`find_include_dirs` and `find_lib_files` guess header and library locations.

## Editor positions

`ionx.lsp` converts 1-based line/column pairs into zero-based `Range`
values and translates between UTF-16 offsets and UTF-8 byte columns:

```python
from ionx.lsp import to_lsp_range, utf16_offset_to_byte_offset, clang_column_to_utf16

to_lsp_range(3, 5, 10)                   # Range(Position(2, 4), Position(2, 9))
utf16_offset_to_byte_offset("a😀b", 3)   # 5
clang_column_to_utf16("a😀b", 6)         # 3
```

## What it does not do

- There is no command-line tool; everything is used from Python.
- Nothing turns a whole manifest into a resolved set of packages: there is
  no choosing of a registry by spec, no following of transitive
  dependencies across registries and no lockfile. Call a registry's
  `resolve` yourself and feed the results to `DependencyGraph`.
- Arbitrary git repositories (other than GitHub releases) cannot be fetched.
- `ionx.lsp` holds position helpers only; there is no language server, no
  linter and no go-to-definition.