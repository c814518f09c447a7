"""
Runtime config loader.

Layers are applied in order: defaults, TOML file, env
(``UC_REVIEW_<SECTION>_<KEY>``), then CLI overrides. Env variables are typed
from the ``ReviewConfig`` section declarations, so every declared field can
be set from the environment even when it has no default.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from functools import cache
from pathlib import Path
from typing import Any, Final, get_type_hints

from usecase_review.config.schema import (
    PATH_FIELDS,
    ReviewConfig,
    assert_valid_config,
    default_config,
    merge_config,
)
from usecase_review.constants import DEFAULT_CONFIG_FILE

ENV_PREFIX: Final[str] = "UC_REVIEW_"

FieldPath = tuple[str, ...]


class ConfigLoadError(ValueError):
    """Raised when config cannot be read or an override cannot be coerced."""


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in ("1", "true", "t", "yes", "y", "on"):
        return True
    if lowered in ("0", "false", "f", "no", "n", "off"):
        return False
    raise ValueError(raw)


# scalar type -> (parser, wording used in errors)
_PARSERS: Final[dict[type, tuple[Callable[[str], object], str]]] = {
    bool: (_parse_bool, "a boolean (true/false/1/0/yes/no)"),
    int: (int, "an integer"),
    float: (float, "a number"),
    str: (str, "a string"),
}


def env_name_for_path(path: FieldPath) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


@cache
def _declared_fields() -> dict[str, tuple[FieldPath, type]]:
    declared: dict[str, tuple[FieldPath, type]] = {}
    for section, section_type in get_type_hints(ReviewConfig).items():
        for key, hint in get_type_hints(section_type).items():
            if hint in _PARSERS:
                path = (section, key)
                declared[env_name_for_path(path)] = (path, hint)
    return declared


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load the effective config.

    ``cli_overrides`` uses dotted keys (``"review.max_repos"``) or nested
    mappings; ``None`` values are skipped. A missing default config file is
    fine; a missing explicit one is a ``ConfigLoadError``.
    """

    if config_path is None:
        source = Path.cwd().joinpath(DEFAULT_CONFIG_FILE).resolve()
    else:
        source = Path(config_path).expanduser().resolve()
    env = os.environ if environ is None else environ

    # File values are validated on their own first so errors point at the file.
    effective = assert_valid_config(
        merge_config(default_config(), _read_file_layer(source, explicit=config_path is not None))
    )
    for layer in (_env_layer(env), _cli_layer(cli_overrides or {})):
        effective = merge_config(effective, layer)
    effective = assert_valid_config(effective)
    return normalize_paths(effective, base_dir=source.parent)


def _read_file_layer(source: Path, *, explicit: bool) -> dict[str, Any]:
    try:
        raw = source.read_bytes()
    except FileNotFoundError as exc:
        if explicit:
            raise ConfigLoadError(f"config file not found: {source}") from exc
        return {}
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {source}: {exc}") from exc
    try:
        return tomllib.loads(raw.decode("utf-8"))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"invalid TOML in {source}: {exc}") from exc


def _env_layer(env: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for env_name, (path, scalar) in sorted(_declared_fields().items()):
        if env_name not in env:
            continue
        parse, wording = _PARSERS[scalar]
        text = env[env_name].strip()
        try:
            value = parse(text)
        except ValueError as exc:
            raise ConfigLoadError(
                f"{env_name} -> {'.'.join(path)} must be {wording}"
            ) from exc
        _place(layer, path, value)
    return layer


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in sorted(overrides.items()):
        if value is None:
            continue
        path = tuple(filter(None, dotted.split(".")))
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        fragment: dict[str, Any] = {}
        _place(fragment, path, value)
        layer = merge_config(layer, fragment)
    return layer


def _place(tree: dict[str, Any], path: FieldPath, value: object) -> None:
    *parents, leaf = path
    node = tree
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[leaf] = value


def _walk(tree: Mapping[str, object], path: FieldPath) -> Iterator[object]:
    node: object = tree
    for part in path:
        if not isinstance(node, Mapping) or part not in node:
            return
        node = node[part]
    yield node


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve configured path fields against ``base_dir``.

    ``~`` and ``$VARS`` are expanded; results are normalized POSIX strings.
    """

    resolved = merge_config({}, config)
    for path in PATH_FIELDS:
        for value in _walk(resolved, path):
            if not isinstance(value, str):
                continue
            target = Path(os.path.expandvars(value)).expanduser()
            if not target.is_absolute():
                target = base_dir / target
            _place(resolved, path, Path(os.path.normpath(target)).as_posix())
    return resolved


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(config, sort_keys=True, indent=2, ensure_ascii=False)


__all__ = [
    "ENV_PREFIX",
    "ConfigLoadError",
    "dump_effective_config",
    "env_name_for_path",
    "load_config",
    "normalize_paths",
]
