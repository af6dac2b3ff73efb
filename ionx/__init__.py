"""Manifests, semantic versions, dependency graphs, package registries and editor position helpers for C++ projects."""

__version__ = "0.40.0"