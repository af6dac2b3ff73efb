"""The project manifest (``ion.toml``)."""

from __future__ import annotations

import tomllib
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

import tomli_w

MANIFEST_NAME = "ion.toml"


class ManifestError(Exception):
    """Raised when a manifest cannot be read, parsed or written."""


@dataclass
class Package:
    name: str
    version: str
    cpp_standard: str
    description: str | None = None
    authors: list[str] = field(default_factory=list)
    license: str | None = None
    repository: str | None = None
    homepage: str | None = None
    keywords: list[str] = field(default_factory=list)


@dataclass
class DetailedDependency:
    version: str = ""
    features: list[str] = field(default_factory=list)
    optional: bool = False
    git: str | None = None
    tag: str | None = None
    branch: str | None = None
    rev: str | None = None
    conan: str | None = None
    vcpkg: str | None = None
    path: str | None = None
    registry: str | None = None


Dependency = Union[str, DetailedDependency]


@dataclass
class BuildSettings:
    compiler_flags: list[str] = field(default_factory=list)
    linker_flags: list[str] = field(default_factory=list)
    features: list[str] = field(default_factory=list)
    sanitizers: list[str] = field(default_factory=list)


def version_req(dep: Dependency) -> str:
    """The version requirement of a dependency."""
    return dep if isinstance(dep, str) else dep.version


def dependency_features(dep: Dependency) -> list[str]:
    """The features enabled for a dependency."""
    return [] if isinstance(dep, str) else dep.features


def _drop_none(items: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in items.items() if v is not None}


def _detailed_to_dict(dep: DetailedDependency) -> dict[str, Any]:
    return _drop_none(
        {
            "version": dep.version,
            "features": list(dep.features),
            "optional": dep.optional,
            "git": dep.git,
            "tag": dep.tag,
            "branch": dep.branch,
            "rev": dep.rev,
            "conan": dep.conan,
            "vcpkg": dep.vcpkg,
            "path": dep.path,
            "registry": dep.registry,
        }
    )


def _deps_to_dict(deps: dict[str, Dependency]) -> dict[str, Any]:
    return {
        name: dep if isinstance(dep, str) else _detailed_to_dict(dep)
        for name, dep in deps.items()
    }


@dataclass
class Manifest:
    package: Package
    dependencies: dict[str, Dependency] = field(default_factory=dict)
    dev_dependencies: dict[str, Dependency] = field(default_factory=dict)
    build: BuildSettings | None = None
    features: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """The manifest as TOML-ready data, omitting unset optional fields."""
        p = self.package
        data: dict[str, Any] = {
            "package": _drop_none(
                {
                    "name": p.name,
                    "version": p.version,
                    "cpp-standard": p.cpp_standard,
                    "description": p.description,
                    "authors": list(p.authors),
                    "license": p.license,
                    "repository": p.repository,
                    "homepage": p.homepage,
                    "keywords": list(p.keywords),
                }
            ),
            "dependencies": _deps_to_dict(self.dependencies),
            "dev-dependencies": _deps_to_dict(self.dev_dependencies),
        }
        if self.build is not None:
            data["build"] = {
                "compiler_flags": list(self.build.compiler_flags),
                "linker_flags": list(self.build.linker_flags),
                "features": list(self.build.features),
                "sanitizers": list(self.build.sanitizers),
            }
        data["features"] = {k: list(v) for k, v in self.features.items()}
        return data

    def to_toml(self) -> str:
        return tomli_w.dumps(self.to_dict())

    def save(self, path: str | Path) -> None:
        content = self.to_toml()
        try:
            Path(path).write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ManifestError(f"Failed to write {path}: {exc}") from exc

    def save_to_dir(self, directory: str | Path) -> None:
        self.save(Path(directory) / MANIFEST_NAME)

    def add_dependency(self, name: str, version_req: str) -> None:
        """Add or replace a runtime dependency given by version requirement."""
        self.dependencies[name] = version_req

    def add_detailed_dependency(self, name: str, dep: DetailedDependency) -> None:
        self.dependencies[name] = dep

    def add_dev_dependency(self, name: str, version_req: str) -> None:
        self.dev_dependencies[name] = version_req

    def remove_dependency(self, name: str) -> bool:
        """Remove ``name`` from runtime and dev dependencies; True if it was present."""
        removed_runtime = self.dependencies.pop(name, None) is not None
        removed_dev = self.dev_dependencies.pop(name, None) is not None
        return removed_runtime or removed_dev

    def has_dependency(self, name: str) -> bool:
        return name in self.dependencies or name in self.dev_dependencies

    def all_dependencies(self) -> Iterator[tuple[str, Dependency, bool]]:
        """Yield ``(name, dependency, is_dev)`` for runtime then dev dependencies."""
        for name, dep in self.dependencies.items():
            yield name, dep, False
        for name, dep in self.dev_dependencies.items():
            yield name, dep, True


def new_manifest(name: str, cpp_standard: str) -> Manifest:
    """A fresh manifest for a new project."""
    return Manifest(
        package=Package(name=name, version="0.1.0", cpp_standard=cpp_standard, license="MIT")
    )


def _table(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise ManifestError(f"invalid type for `{key}`: expected a table")
    return value


def _required_str(data: dict[str, Any], key: str) -> str:
    if key not in data:
        raise ManifestError(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, str):
        raise ManifestError(f"invalid type for `{key}`: expected a string")
    return value


def _optional_str(data: dict[str, Any], key: str, default: str | None = None) -> str | None:
    value = data.get(key, default)
    if value is not None and not isinstance(value, str):
        raise ManifestError(f"invalid type for `{key}`: expected a string")
    return value


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ManifestError(f"invalid type for `{key}`: expected a list of strings")
    return list(value)


def _dependency(name: str, value: Any) -> Dependency:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        optional = value.get("optional", False)
        if not isinstance(optional, bool):
            raise ManifestError(f"invalid type for `optional` in dependency `{name}`")
        return DetailedDependency(
            version=_optional_str(value, "version", "") or "",
            features=_str_list(value, "features"),
            optional=optional,
            git=_optional_str(value, "git"),
            tag=_optional_str(value, "tag"),
            branch=_optional_str(value, "branch"),
            rev=_optional_str(value, "rev"),
            conan=_optional_str(value, "conan"),
            vcpkg=_optional_str(value, "vcpkg"),
            path=_optional_str(value, "path"),
            registry=_optional_str(value, "registry"),
        )
    raise ManifestError(f"invalid dependency `{name}`: expected a version string or a table")


def manifest_from_dict(data: dict[str, Any]) -> Manifest:
    """Build a manifest from parsed TOML data."""
    if "package" not in data:
        raise ManifestError("missing field `package`")
    pkg = _table(data, "package")
    package = Package(
        name=_required_str(pkg, "name"),
        version=_required_str(pkg, "version"),
        cpp_standard=_required_str(pkg, "cpp-standard"),
        description=_optional_str(pkg, "description"),
        authors=_str_list(pkg, "authors"),
        license=_optional_str(pkg, "license"),
        repository=_optional_str(pkg, "repository"),
        homepage=_optional_str(pkg, "homepage"),
        keywords=_str_list(pkg, "keywords"),
    )
    build = None
    if data.get("build") is not None:
        b = _table(data, "build")
        build = BuildSettings(
            compiler_flags=_str_list(b, "compiler_flags"),
            linker_flags=_str_list(b, "linker_flags"),
            features=_str_list(b, "features"),
            sanitizers=_str_list(b, "sanitizers"),
        )
    features_table = _table(data, "features")
    return Manifest(
        package=package,
        dependencies={n: _dependency(n, v) for n, v in _table(data, "dependencies").items()},
        dev_dependencies={
            n: _dependency(n, v) for n, v in _table(data, "dev-dependencies").items()
        },
        build=build,
        features={k: _str_list(features_table, k) for k in features_table},
    )


def parse_manifest(text: str) -> Manifest:
    """Parse manifest TOML text."""
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestError(str(exc)) from exc
    return manifest_from_dict(data)


def load_manifest(path: str | Path) -> Manifest:
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Cannot read {path}: {exc}") from exc
    try:
        return parse_manifest(content)
    except ManifestError as exc:
        raise ManifestError(f"Cannot parse {path}: {exc}") from exc


def load_manifest_from_dir(directory: str | Path) -> Manifest:
    path = Path(directory) / MANIFEST_NAME
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Cannot read {path}: {exc}") from exc
    try:
        return parse_manifest(content)
    except ManifestError as exc:
        raise ManifestError(f"Cannot parse {MANIFEST_NAME}: {exc}") from exc