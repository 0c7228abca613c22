"""Settings loader for the query plan analyzer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

DEFAULT_PLANS_LIMIT = 10_000
DEFAULT_MAX_OVERRIDE_LABELS = 10
DEFAULT_WORKERS = 4
# 2^20 planner invocations is the largest matrix we agree to enumerate.
MAX_OVERRIDE_LABELS_LIMIT = 20
ENGINE_MODES = {"federation"}


@dataclass(frozen=True)
class PlannerConfiguration:
    """Options forwarded to the planning engine on every invocation."""

    disable_generate_query_fragments: bool = False
    disable_defer_support: bool = False
    experimental_type_conditioned_fetching: bool = False
    experimental_plans_limit: int = DEFAULT_PLANS_LIMIT
    experimental_paths_limit: int = 0

    def __post_init__(self) -> None:
        if self.experimental_plans_limit < 0:
            raise ValueError("experimental_plans_limit must be >= 0")
        if self.experimental_paths_limit < 0:
            raise ValueError("experimental_paths_limit must be >= 0")

    @property
    def enable_defer(self) -> bool:
        return not self.disable_defer_support

    @property
    def max_evaluated_plans(self) -> int:
        # Zero falls back to the default.
        return self.experimental_plans_limit or DEFAULT_PLANS_LIMIT

    @property
    def paths_limit(self) -> Optional[int]:
        # Zero means no limit.
        return self.experimental_paths_limit or None


@dataclass(frozen=True)
class MatrixConfig:
    max_override_labels: int = DEFAULT_MAX_OVERRIDE_LABELS
    workers: int = DEFAULT_WORKERS


@dataclass(frozen=True)
class EngineConfig:
    mode: str = "federation"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "WARNING"


@dataclass(frozen=True)
class AnalyzerSettings:
    version: str = "1"
    planner: PlannerConfiguration = field(default_factory=PlannerConfiguration)
    matrix: MatrixConfig = field(default_factory=MatrixConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class SettingsLoadError(RuntimeError):
    """Raised when settings cannot be loaded."""


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise SettingsLoadError(f"{key} must be an object")
    return value


def _bool(data: dict[str, Any], key: str, default: bool, section: str) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise SettingsLoadError(f"{section}.{key} must be a boolean")
    return value


def _int(data: dict[str, Any], key: str, default: int, section: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise SettingsLoadError(f"{section}.{key} must be an integer")
    return value


def parse_planner_configuration(data: dict[str, Any]) -> PlannerConfiguration:
    unknown = set(data) - set(PlannerConfiguration.__dataclass_fields__)
    if unknown:
        raise SettingsLoadError(f"unknown planner option: {sorted(unknown)[0]}")

    plans_limit = _int(data, "experimental_plans_limit", DEFAULT_PLANS_LIMIT, "planner")
    paths_limit = _int(data, "experimental_paths_limit", 0, "planner")
    if plans_limit < 0:
        raise SettingsLoadError("planner.experimental_plans_limit must be >= 0")
    if paths_limit < 0:
        raise SettingsLoadError("planner.experimental_paths_limit must be >= 0")

    return PlannerConfiguration(
        disable_generate_query_fragments=_bool(data, "disable_generate_query_fragments", False, "planner"),
        disable_defer_support=_bool(data, "disable_defer_support", False, "planner"),
        experimental_type_conditioned_fetching=_bool(
            data, "experimental_type_conditioned_fetching", False, "planner"
        ),
        experimental_plans_limit=plans_limit,
        experimental_paths_limit=paths_limit,
    )


def parse_settings(raw: Any) -> AnalyzerSettings:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise SettingsLoadError("settings root must be an object")

    matrix_raw = _section(raw, "matrix")
    engine_raw = _section(raw, "engine")
    logging_raw = _section(raw, "logging")

    max_labels = _int(matrix_raw, "max_override_labels", DEFAULT_MAX_OVERRIDE_LABELS, "matrix")
    if not 0 <= max_labels <= MAX_OVERRIDE_LABELS_LIMIT:
        raise SettingsLoadError(
            f"matrix.max_override_labels must be between 0 and {MAX_OVERRIDE_LABELS_LIMIT}"
        )

    workers = _int(matrix_raw, "workers", DEFAULT_WORKERS, "matrix")
    if workers < 1:
        raise SettingsLoadError("matrix.workers must be >= 1")

    mode = str(engine_raw.get("mode", "federation")).strip()
    if mode not in ENGINE_MODES:
        raise SettingsLoadError(f"invalid engine.mode: {mode}")

    level = str(logging_raw.get("level", "WARNING")).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise SettingsLoadError(f"invalid logging.level: {level}")

    return AnalyzerSettings(
        version=str(raw.get("version", "1")),
        planner=parse_planner_configuration(_section(raw, "planner")),
        matrix=MatrixConfig(max_override_labels=max_labels, workers=workers),
        engine=EngineConfig(mode=mode),
        logging=LoggingConfig(level=level),
    )


def load_settings(path: Path) -> AnalyzerSettings:
    if not path.exists():
        raise SettingsLoadError(f"settings file not found: {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise SettingsLoadError(f"settings file is not valid YAML: {path}") from exc
    return parse_settings(raw)
