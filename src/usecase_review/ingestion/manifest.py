"""Discover the repositories a review runs against."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from usecase_review.constants import MANIFEST_FILENAMES


class ManifestLoadError(RuntimeError):
    """Raised when a manifest exists but cannot be read or parsed."""


@dataclass(frozen=True, slots=True)
class RepoTarget:
    name: str
    root: Path

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "root": str(self.root)}


def find_manifest(repos_root: Path) -> Path | None:
    for filename in MANIFEST_FILENAMES:
        candidate = repos_root / filename
        if candidate.is_file():
            return candidate
    return None


def parse_manifest(payload: object, *, source: str = "<manifest>") -> tuple[str, ...]:
    """Return repo names from ``{repos: [{name}]}`` in manifest order, deduplicated."""

    if not isinstance(payload, Mapping):
        raise ManifestLoadError(f"{source}: manifest root must be an object")
    repos = payload.get("repos")
    if not isinstance(repos, Sequence) or isinstance(repos, (str, bytes)):
        raise ManifestLoadError(f"{source}: 'repos' must be a list")

    names: list[str] = []
    for index, entry in enumerate(repos):
        if not isinstance(entry, Mapping):
            raise ManifestLoadError(f"{source}: repos[{index}] must be an object")
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ManifestLoadError(f"{source}: repos[{index}].name must be a non-empty string")
        normalized = name.strip()
        if normalized not in names:
            names.append(normalized)
    return tuple(names)


def load_manifest(path: Path) -> tuple[str, ...]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestLoadError(f"unable to read manifest {path}: {exc}") from exc

    payload: Any
    try:
        if path.suffix == ".json":
            payload = json.loads(text)
        else:
            payload = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ManifestLoadError(f"invalid manifest {path}: {exc}") from exc
    return parse_manifest(payload, source=str(path))


def discover_repos(
    repos_root: str | Path,
    *,
    max_repos: int | None = None,
) -> tuple[RepoTarget, ...]:
    """Resolve repos from the manifest, or from the sorted non-hidden subdirectories."""

    root = Path(repos_root)
    if not root.is_dir():
        raise ManifestLoadError(f"repos root is not a directory: {root}")

    manifest_path = find_manifest(root)
    if manifest_path is not None:
        names = load_manifest(manifest_path)
    else:
        names = tuple(
            sorted(
                child.name
                for child in root.iterdir()
                if child.is_dir() and not child.name.startswith(".")
            )
        )

    if max_repos is not None:
        if max_repos <= 0:
            raise ValueError("max_repos must be > 0")
        names = names[:max_repos]
    return tuple(RepoTarget(name=name, root=root / name) for name in names)


__all__ = [
    "ManifestLoadError",
    "RepoTarget",
    "discover_repos",
    "find_manifest",
    "load_manifest",
    "parse_manifest",
]
