"""
craft-reconciler — configuration schema and validation.

File: src/craft_reconciler/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, and numeric constraints.
- Profile overlay validation and deterministic deep-merge helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Support the built-in ``conservative`` and ``greedy`` profile overlays.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from craft_reconciler.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_ALLOWED_CPUS,
    DEFAULT_BACKEND_FACTORY,
    DEFAULT_CATALOG_FILE,
    DEFAULT_CRAFTING_CHECK_INTERVAL_S,
    DEFAULT_FULL_CHECK_INTERVAL_S,
    DEFAULT_LOG_DIR,
    DEFAULT_MAX_BATCH,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("conservative", "greedy")

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_FACTORY_PATTERN = re.compile(r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$")
_SECTIONS: Final[tuple[str, ...]] = ("reconciler", "backend", "paths", "observability")

# Config paths that are normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "catalog"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class ReconcilerSection(TypedDict):
    allowed_cpus: float
    max_batch: int
    full_check_interval: float
    crafting_check_interval: float
    learn_on_start: bool


class BackendSection(TypedDict):
    factory: str
    options: dict[str, object]


class PathsSection(TypedDict):
    catalog: str


class ObservabilitySection(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stdout: bool


class ProfileOverlay(TypedDict, total=False):
    reconciler: dict[str, object]
    backend: dict[str, object]
    paths: dict[str, object]
    observability: dict[str, object]


class ReconcilerConfig(TypedDict):
    meta: MetaConfig
    reconciler: ReconcilerSection
    backend: BackendSection
    paths: PathsSection
    observability: ObservabilitySection
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[ReconcilerConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "reconciler": {
        "allowed_cpus": DEFAULT_ALLOWED_CPUS,
        "max_batch": DEFAULT_MAX_BATCH,
        "full_check_interval": DEFAULT_FULL_CHECK_INTERVAL_S,
        "crafting_check_interval": DEFAULT_CRAFTING_CHECK_INTERVAL_S,
        "learn_on_start": True,
    },
    "backend": {
        "factory": DEFAULT_BACKEND_FACTORY,
        "options": {},
    },
    "paths": {
        "catalog": DEFAULT_CATALOG_FILE,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": DEFAULT_LOG_DIR,
        "log_to_stdout": False,
    },
    "profiles": {
        "conservative": {
            "reconciler": {"allowed_cpus": 0.5, "max_batch": 64},
        },
        "greedy": {
            "reconciler": {"allowed_cpus": 0},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> ReconcilerConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade reconciler.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade craft-reconciler"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the result."""

    materialized = _deep_copy_mapping(config)
    selected = (profile or "").strip()
    if not selected:
        return materialized

    profiles = materialized.get("profiles")
    overlay = profiles.get(selected) if isinstance(profiles, Mapping) else None
    if overlay is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    return assert_valid_config(merge_config(materialized, overlay), active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)

    selected = active_profile.strip() if isinstance(active_profile, str) else ""
    if selected:
        profiles = normalized.get("profiles", {})
        if selected not in profiles:
            issues.add("profiles", f"profile {selected!r} is not defined")

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


_SectionValidator = Callable[[Mapping[str, object], str, _IssueCollector, bool], dict[str, Any]]


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"meta", "profiles", *_SECTIONS}, "", issues)
    _require_keys(payload, {"meta", *_SECTIONS}, "", issues)

    out: dict[str, Any] = {}
    meta = payload.get("meta")
    if meta is not None:
        meta_obj = _as_object(meta, "meta", issues)
        if meta_obj is not None:
            out["meta"] = _validate_meta(meta_obj, "meta", issues)

    for section in _SECTIONS:
        raw = payload.get(section)
        if raw is None:
            continue
        section_obj = _as_object(raw, section, issues)
        if section_obj is not None:
            out[section] = _VALIDATORS[section](section_obj, section, issues, False)

    profiles_raw = payload.get("profiles")
    if profiles_raw is not None:
        profiles_obj = _as_object(profiles_raw, "profiles", issues)
        if profiles_obj is not None:
            out["profiles"] = _validate_profiles(profiles_obj, "profiles", issues)
    return out


def _validate_meta(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(payload["schema_version"], _join(path, "schema_version"), issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_reconciler(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {
        "allowed_cpus",
        "max_batch",
        "full_check_interval",
        "crafting_check_interval",
        "learn_on_start",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "allowed_cpus" in payload:
        parsed_cpus = _as_number(payload["allowed_cpus"], _join(path, "allowed_cpus"), issues)
        if parsed_cpus is not None:
            out["allowed_cpus"] = parsed_cpus

    if "max_batch" in payload:
        parsed_batch = _as_int(payload["max_batch"], _join(path, "max_batch"), issues, minimum=1)
        if parsed_batch is not None:
            out["max_batch"] = parsed_batch

    for key in ("full_check_interval", "crafting_check_interval"):
        if key in payload:
            parsed_interval = _as_positive_float(payload[key], _join(path, key), issues)
            if parsed_interval is not None:
                out[key] = parsed_interval

    if "learn_on_start" in payload:
        parsed_learn = _as_bool(payload["learn_on_start"], _join(path, "learn_on_start"), issues)
        if parsed_learn is not None:
            out["learn_on_start"] = parsed_learn
    return out


def _validate_backend(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"factory", "options"}, path, issues)
    if not partial:
        _require_keys(payload, {"factory"}, path, issues)

    out: dict[str, Any] = {}
    if "factory" in payload:
        factory = _as_str(payload["factory"], _join(path, "factory"), issues)
        if factory is not None:
            if _FACTORY_PATTERN.fullmatch(factory):
                out["factory"] = factory
            else:
                issues.add(_join(path, "factory"), "must look like 'package.module:callable'")

    if "options" in payload:
        options = _as_object(payload["options"], _join(path, "options"), issues)
        if options is not None:
            out["options"] = options
    elif not partial:
        out["options"] = {}
    return out


def _validate_paths(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"catalog"}, path, issues)
    if not partial:
        _require_keys(payload, {"catalog"}, path, issues)

    out: dict[str, Any] = {}
    if "catalog" in payload:
        parsed = _as_path_text(payload["catalog"], _join(path, "catalog"), issues)
        if parsed is not None:
            out["catalog"] = parsed
    return out


def _validate_observability(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"log_level", "log_dir", "log_to_stdout"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        parsed_level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=("DEBUG", "INFO", "WARNING", "ERROR"),
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level

    if "log_dir" in payload:
        parsed_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_dir is not None:
            out["log_dir"] = parsed_dir

    if "log_to_stdout" in payload:
        parsed_stdout = _as_bool(payload["log_to_stdout"], _join(path, "log_to_stdout"), issues)
        if parsed_stdout is not None:
            out["log_to_stdout"] = parsed_stdout
    return out


_VALIDATORS: Final[dict[str, _SectionValidator]] = {
    "reconciler": _validate_reconciler,
    "backend": _validate_backend,
    "paths": _validate_paths,
    "observability": _validate_observability,
}


def _validate_profiles(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        overlay = _as_object(payload[profile_name], profile_path, issues)
        if overlay is None:
            continue

        _reject_unknown_keys(overlay, set(_SECTIONS), profile_path, issues)
        validated: dict[str, Any] = {}
        for section in _SECTIONS:
            raw = overlay.get(section)
            if raw is None:
                continue
            section_path = _join(profile_path, section)
            section_obj = _as_object(raw, section_path, issues)
            if section_obj is not None:
                validated[section] = _VALIDATORS[section](section_obj, section_path, issues, True)
        out[profile_name] = validated
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is not None and "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_number(value: object, path: str, issues: _IssueCollector) -> int | float | None:
    """Accept ints and finite floats without converting one into the other."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    if isinstance(value, float) and not math.isfinite(value):
        issues.add(path, "must be finite")
        return None
    return value


def _as_positive_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    parsed = _as_number(value, path, issues)
    if parsed is None:
        return None
    if parsed <= 0:
        issues.add(path, "must be > 0")
        return None
    return float(parsed)


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            nested = _deep_copy_mapping(existing) if isinstance(existing, Mapping) else {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: _deep_copy_value(value[key]) for key in sorted(value)}


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "ProfileOverlay",
    "ReconcilerConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
