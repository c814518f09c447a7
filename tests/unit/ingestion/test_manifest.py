"""Unit tests for repository discovery."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from review_fakes import make_repos
from usecase_review.ingestion.manifest import ManifestLoadError, discover_repos, parse_manifest


def test_discover_repos_falls_back_to_sorted_directories(tmp_path: Path) -> None:
    make_repos(tmp_path, "zeta", "alpha", ".hidden")
    (tmp_path / "README.md").write_text("not a repo", encoding="utf-8")

    repos = discover_repos(tmp_path)

    assert [repo.name for repo in repos] == ["alpha", "zeta"]
    assert repos[0].root == tmp_path / "alpha"


def test_discover_repos_prefers_json_manifest_order(tmp_path: Path) -> None:
    make_repos(tmp_path, "a", "b", "c")
    (tmp_path / "manifest.json").write_text(
        json.dumps({"repos": [{"name": "c"}, {"name": "a"}, {"name": "c"}]}),
        encoding="utf-8",
    )

    repos = discover_repos(tmp_path, max_repos=5)

    assert [repo.name for repo in repos] == ["c", "a"]


def test_discover_repos_reads_yaml_manifest_and_caps(tmp_path: Path) -> None:
    (tmp_path / "manifest.yaml").write_text(
        "repos:\n  - name: one\n  - name: two\n  - name: three\n",
        encoding="utf-8",
    )

    repos = discover_repos(tmp_path, max_repos=2)

    assert [repo.name for repo in repos] == ["one", "two"]


def test_discover_repos_rejects_missing_root(tmp_path: Path) -> None:
    with pytest.raises(ManifestLoadError, match="not a directory"):
        discover_repos(tmp_path / "absent")


def test_invalid_manifest_is_an_error(tmp_path: Path) -> None:
    (tmp_path / "manifest.json").write_text("{broken", encoding="utf-8")
    with pytest.raises(ManifestLoadError, match="invalid manifest"):
        discover_repos(tmp_path)


def test_non_utf8_manifest_is_an_error(tmp_path: Path) -> None:
    (tmp_path / "manifest.json").write_bytes(b'{"repos": [{"name": "\xff"}]}')
    with pytest.raises(ManifestLoadError, match="unable to read"):
        discover_repos(tmp_path)


@pytest.mark.parametrize(
    "payload",
    [[], {"repos": "x"}, {"repos": [1]}, {"repos": [{"name": ""}]}],
)
def test_parse_manifest_validates_shape(payload: object) -> None:
    with pytest.raises(ManifestLoadError):
        parse_manifest(payload)
