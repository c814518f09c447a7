"""
usecase-review: unit tests for config schema validation

Every issue is reported with its dotted path; validation keeps going after the
first problem.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from usecase_review.config.schema import (
    ConfigValidationError,
    ReviewSettings,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)
from usecase_review.selection.selector import SelectionMode


def _issue_paths(config: object) -> list[str]:
    return [issue.path for issue in validate_config(config)]


def test_defaults_are_valid() -> None:
    assert validate_config(default_config()) == ()


def test_default_config_is_a_copy() -> None:
    config = default_config()
    config["review"]["max_repos"] = 99
    assert default_config()["review"]["max_repos"] == 3


def test_non_mapping_root_is_rejected() -> None:
    issues = validate_config(["not", "a", "mapping"])
    assert [issue.path for issue in issues] == ["<root>"]


def test_all_issues_are_collected_with_dotted_paths() -> None:
    config = merge_config(
        default_config(),
        {
            "review": {"max_repos": 0, "selection_mode": "random", "surprise": 1},
            "timeouts": {"query_timeout_seconds": -1},
            "thresholds": {"min_pass_rate": 1.5},
            "observability": {"log_level": "chatty"},
        },
    )

    paths = _issue_paths(config)

    assert "review.max_repos" in paths
    assert "review.selection_mode" in paths
    assert "review.surprise" in paths
    assert "timeouts.query_timeout_seconds" in paths
    assert "thresholds.min_pass_rate" in paths
    assert "observability.log_level" in paths


def test_range_end_before_start_is_reported() -> None:
    config = merge_config(default_config(), {"review": {"uc_start": 50, "uc_end": 10}})
    assert "review.uc_end" in _issue_paths(config)


def test_exploration_intents_cannot_exceed_catalogued_intents() -> None:
    config = merge_config(default_config(), {"review": {"exploration_intents": 99}})
    assert "review.exploration_intents" in _issue_paths(config)


def test_missing_section_and_field_are_reported() -> None:
    config = default_config()
    del config["timeouts"]  # type: ignore[misc]
    del config["paths"]["catalog"]  # type: ignore[misc]

    paths = _issue_paths(config)

    assert "timeouts" in paths
    assert "paths.catalog" in paths


@pytest.mark.parametrize("factory", ["no_colon", ":attr", "module:", ""])
def test_engine_factory_must_name_module_and_attribute(factory: str) -> None:
    config = merge_config(default_config(), {"engine": {"factory": factory}})
    assert "engine.factory" in _issue_paths(config)


def test_assert_valid_config_raises_with_every_issue() -> None:
    config = merge_config(
        default_config(), {"review": {"max_repos": 0, "progressive_prerequisites": "yes"}}
    )

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)

    rendered = str(excinfo.value)
    assert "review.max_repos" in rendered
    assert "review.progressive_prerequisites" in rendered
    assert len(excinfo.value.issues) == 2


def test_review_settings_expose_typed_values() -> None:
    config = merge_config(
        default_config(),
        {
            "review": {"selection_mode": "adaptive"},
            "paths": {"history": "/tmp/history.json"},
            "engine": {"factory": "pkg.engines:build"},
            "thresholds": {"min_pass_rate": 0.6},
        },
    )

    settings = ReviewSettings.from_config(config)

    assert settings.selection_mode is SelectionMode.ADAPTIVE
    assert settings.history_path == Path("/tmp/history.json")
    assert settings.engine_factory == "pkg.engines:build"
    assert settings.thresholds.min_pass_rate == 0.6
    options = settings.options()
    assert options["selection_mode"] == "adaptive"
    assert options["history"] == "/tmp/history.json"
    assert options["max_repos"] == 3


def test_review_settings_without_optional_fields() -> None:
    settings = ReviewSettings.from_config(default_config())
    assert settings.history_path is None
    assert settings.engine_factory is None
    assert settings.selection_mode is SelectionMode.PROBABILISTIC
