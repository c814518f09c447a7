"""Unit tests for config layering: defaults, TOML file, env, CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from usecase_review.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    env_name_for_path,
    load_config,
)
from usecase_review.config.schema import ConfigValidationError


def _write_config(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_load_without_a_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config["review"]["max_repos"] == 3
    expected = tmp_path.resolve() / "docs/use_case_catalog.md"
    assert config["paths"]["catalog"] == expected.as_posix()


def test_missing_explicit_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_invalid_toml_is_an_error(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "review.toml", "[review\nmax_repos = 2\n")
    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(path, environ={})


def test_file_values_and_relative_paths(tmp_path: Path) -> None:
    config_dir = tmp_path.resolve() / "conf"
    config_dir.mkdir()
    path = _write_config(
        config_dir / "review.toml",
        """
[review]
max_repos = 2
selection_mode = "balanced"

[paths]
catalog = "../docs/catalog.md"
history = "history/last.json"
""",
    )

    config = load_config(path, environ={})

    assert config["review"]["max_repos"] == 2
    assert config["review"]["selection_mode"] == "balanced"
    assert config["paths"]["catalog"] == (config_dir.parent / "docs/catalog.md").as_posix()
    assert config["paths"]["history"] == (config_dir / "history/last.json").as_posix()


def test_invalid_file_values_raise_validation_error(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "review.toml", "[review]\nmax_repos = 0\n")
    with pytest.raises(ConfigValidationError, match="review.max_repos"):
        load_config(path, environ={})


def test_env_overrides_are_coerced(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "review.toml", "[review]\nmax_repos = 2\n")
    environ = {
        "UC_REVIEW_REVIEW_MAX_REPOS": "5",
        "UC_REVIEW_REVIEW_DETERMINISTIC_QUERIES": "off",
        "UC_REVIEW_TIMEOUTS_QUERY_TIMEOUT_SECONDS": "12.5",
        "UC_REVIEW_ENGINE_FACTORY": "pkg.engines:build",
    }

    config = load_config(path, environ=environ)

    assert config["review"]["max_repos"] == 5
    assert config["review"]["deterministic_queries"] is False
    assert config["timeouts"]["query_timeout_seconds"] == 12.5
    assert config["engine"]["factory"] == "pkg.engines:build"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("UC_REVIEW_REVIEW_MAX_REPOS", "many"),
        ("UC_REVIEW_REVIEW_PROGRESSIVE_PREREQUISITES", "maybe"),
        ("UC_REVIEW_TIMEOUTS_INIT_TIMEOUT_SECONDS", "soon"),
    ],
)
def test_uncoercible_env_values_raise(tmp_path: Path, name: str, value: str) -> None:
    path = _write_config(tmp_path / "review.toml", "")
    with pytest.raises(ConfigLoadError, match=name):
        load_config(path, environ={name: value})


def test_cli_overrides_take_precedence_over_env(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "review.toml", "[review]\nmax_repos = 2\n")

    config = load_config(
        path,
        environ={"UC_REVIEW_REVIEW_MAX_REPOS": "5"},
        cli_overrides={
            "review.max_repos": 7,
            "review.uc_end": None,
            "thresholds": {"min_pass_rate": 0.5},
        },
    )

    assert config["review"]["max_repos"] == 7
    assert config["review"]["uc_end"] == 310
    assert config["thresholds"]["min_pass_rate"] == 0.5


def test_invalid_cli_override_is_validated(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "review.toml", "")
    with pytest.raises(ConfigValidationError, match="review.selection_mode"):
        load_config(path, environ={}, cli_overrides={"review.selection_mode": "random"})


def test_env_names_follow_section_and_key() -> None:
    assert env_name_for_path(("review", "max_repos")) == "UC_REVIEW_REVIEW_MAX_REPOS"


def test_dump_is_sorted_json(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "review.toml", "")
    config = load_config(path, environ={})

    dumped = dump_effective_config(config)

    assert json.loads(dumped) == config
    assert dumped.index('"engine"') < dumped.index('"review"')
