"""Configuration: defaults, TOML/env/CLI layering and validation."""

from usecase_review.config.loader import (
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
    normalize_paths,
)
from usecase_review.config.schema import (
    ConfigValidationError,
    ConfigValidationIssue,
    ReviewSettings,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)

__all__ = [
    "ENV_PREFIX",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ReviewSettings",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "load_config",
    "merge_config",
    "normalize_paths",
    "validate_config",
]
