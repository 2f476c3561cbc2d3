"""Resource pool loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import ValidationError

from .models import Resource, ResourceKind


class ResourceLoadError(RuntimeError):
    """Raised when one or more resource files cannot be parsed."""


class ResourceCatalog:
    """Resources in definition order, split into provider and account pools."""

    def __init__(self, resources: Iterable[Resource] | None = None) -> None:
        self._resources: list[Resource] = list(resources or [])

    def __len__(self) -> int:
        return len(self._resources)

    def all(self) -> list[Resource]:
        return list(self._resources)

    def of_kind(self, kind: ResourceKind) -> list[Resource]:
        return [resource for resource in self._resources if resource.kind == kind]

    def providers(self) -> list[Resource]:
        return self.of_kind("provider")

    def accounts(self) -> list[Resource]:
        return self.of_kind("account")

    def get(self, resource_id: str) -> Resource | None:
        for resource in self._resources:
            if resource.id == resource_id:
                return resource
        return None


def _documents(document: Any) -> list[Any]:
    if isinstance(document, dict) and "resources" in document:
        entries = document["resources"]
        if entries is None:
            return []
        if not isinstance(entries, list):
            raise TypeError("'resources' must be a list")
        return entries
    if isinstance(document, list):
        return document
    return [document]


class ResourceLoader:
    """Loads resource definitions from YAML files on disk."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def load_all(self) -> ResourceCatalog:
        """Load resources from all configured search paths.

        Later definitions override earlier ones with the same id but keep the
        position where the id first appeared, so pool order stays stable.
        """

        if not self._search_paths:
            return ResourceCatalog()

        resources: dict[str, Resource] = {}
        errors: list[str] = []

        for base in self._search_paths:
            files = [base] if base.is_file() else sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml"))
            for path in files:
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:  # pragma: no cover - library type
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                if document is None:
                    continue

                try:
                    entries = _documents(document)
                except TypeError as exc:
                    errors.append(f"Invalid resource list in {path}: {exc}")
                    continue

                for entry in entries:
                    try:
                        resource = Resource.model_validate(entry)
                    except ValidationError as exc:
                        errors.append(f"Resource validation error in {path}: {exc}")
                        continue
                    resources[resource.id] = resource

        if errors:
            raise ResourceLoadError("; ".join(errors))

        return ResourceCatalog(resources.values())


def load_resources(search_paths: Iterable[Path] | None = None) -> ResourceCatalog:
    """Convenience wrapper for loading resources from the provided paths."""

    loader = ResourceLoader(search_paths)
    return loader.load_all()


__all__ = ["ResourceCatalog", "ResourceLoadError", "ResourceLoader", "load_resources"]
