"""
ux-autofix — runtime config loader.

File: src/ux_autofix/config/loader.py
Last updated: 2026-10-18

Purpose
- Build the effective config for one run from four layers, lowest first:
  built-in defaults, ``autofix.toml``, ``UXFIX_*`` environment variables, CLI flags.

What should be included in this file
- TOML loading via ``tomllib``.
- One environment variable per scalar setting, named from its section and key
  (``repair.max_rounds`` -> ``UXFIX_REPAIR_MAX_ROUNDS``) and coerced to the type of
  the built-in default.
- Path normalization: ``paths.workspace_root`` relative to the config file; every
  other ``paths.*`` entry relative to the workspace root.

Functional requirements
- Every layer is schema-validated once merged, so a bad env var fails the same way a
  bad file entry does.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from ux_autofix.config.schema import PATH_FIELDS, assert_valid_config, default_config, merge_config

DEFAULT_CONFIG_FILE: Final[str] = "autofix.toml"
ENV_PREFIX: Final[str] = "UXFIX_"

_WORKSPACE_ROOT: Final[tuple[str, ...]] = ("paths", "workspace_root")
_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

SettingPath = tuple[str, ...]


class ConfigLoadError(ValueError):
    """The config file is missing or unreadable, or an override cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config. Precedence: CLI > env > file > defaults.

    ``config_path=None`` looks for ``autofix.toml`` in the working directory and
    tolerates its absence; an explicit path must exist.
    """
    path = Path.cwd() / DEFAULT_CONFIG_FILE if config_path is None else Path(config_path).expanduser()
    path = path.resolve()

    file_layer = _read_toml(path, required=config_path is not None)
    effective = assert_valid_config(merge_config(default_config(), file_layer))
    for layer in (
        _env_layer(os.environ if environ is None else environ),
        _cli_layer(cli_overrides or {}),
    ):
        effective = merge_config(effective, layer)
    effective = assert_valid_config(effective)
    return assert_valid_config(normalize_paths(effective, base_dir=path.parent))


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Make every path setting absolute (POSIX form); see the module docstring."""
    result = merge_config({}, config)
    root_raw = _lookup(result, _WORKSPACE_ROOT)
    if isinstance(root_raw, str):
        workspace_root = Path(_absolute(root_raw, base_dir))
        _assign(result, _WORKSPACE_ROOT, workspace_root.as_posix())
    else:
        workspace_root = base_dir
    for setting in PATH_FIELDS:
        raw = _lookup(result, setting)
        if setting != _WORKSPACE_ROOT and isinstance(raw, str):
            _assign(result, setting, _absolute(raw, workspace_root))
    return result


def env_name_for_path(path: SettingPath) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        if required:
            raise ConfigLoadError(f"config file not found: {path}") from None
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for setting, default in _scalar_settings(default_config()):
        env_name = env_name_for_path(setting)
        raw = environ.get(env_name)
        if raw is None:
            continue
        coerce = _coercer_for(default)
        if coerce is None:
            continue
        try:
            value = coerce(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(setting)} {exc}") from exc
        _assign(layer, setting, value)
    return layer


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in sorted(overrides.items()):
        if value is None:
            continue
        setting = tuple(part for part in dotted.split(".") if part)
        if not setting:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        _assign(layer, setting, value)
    return layer


def _scalar_settings(
    tree: Mapping[str, object], prefix: SettingPath = ()
) -> Iterator[tuple[SettingPath, object]]:
    for key in sorted(tree):
        value = tree[key]
        if isinstance(value, Mapping):
            yield from _scalar_settings(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _coercer_for(default: object) -> Callable[[str], object] | None:
    # bool before int: bool is an int subclass.
    if isinstance(default, bool):
        return _parse_bool
    if isinstance(default, int):
        return _parse_number(int, "an integer")
    if isinstance(default, float):
        return _parse_number(float, "a number")
    if isinstance(default, str):
        return str
    return None


def _parse_number(kind: Callable[[str], object], label: str) -> Callable[[str], object]:
    def parse(raw: str) -> object:
        try:
            return kind(raw)
        except ValueError:
            raise ValueError(f"must be {label}") from None

    return parse


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


def _assign(tree: dict[str, Any], setting: SettingPath, value: object) -> None:
    *parents, leaf = setting
    node = tree
    for part in parents:
        node = node.setdefault(part, {})
    node[leaf] = value


def _lookup(tree: Mapping[str, object], setting: SettingPath) -> object:
    node: object = tree
    for part in setting:
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def _absolute(raw: str, base: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "env_name_for_path",
    "load_config",
    "normalize_paths",
]
