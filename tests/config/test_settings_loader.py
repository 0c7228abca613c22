from pathlib import Path

import pytest
import yaml

from qp_analyzer.config.settings import (
    AnalyzerSettings,
    PlannerConfiguration,
    SettingsLoadError,
    load_settings,
    parse_planner_configuration,
    parse_settings,
)

ROOT = Path(__file__).resolve().parents[2]
CONFIG = ROOT / "config/analyzer.yaml"


def _write(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "analyzer.yaml"
    path.write_text(yaml.safe_dump(data, allow_unicode=False), encoding="utf-8")
    return path


def test_default_settings_file_loads() -> None:
    settings = load_settings(CONFIG)
    assert settings.engine.mode == "federation"
    assert settings.matrix.max_override_labels == 10
    assert settings.matrix.workers == 4
    assert settings.planner == PlannerConfiguration()


def test_empty_document_uses_defaults() -> None:
    assert parse_settings(None) == AnalyzerSettings()


def test_shipped_file_matches_built_in_defaults() -> None:
    assert load_settings(CONFIG) == AnalyzerSettings()
    assert AnalyzerSettings().matrix.workers == 4


def test_rejects_invalid_engine_mode(tmp_path: Path) -> None:
    src = yaml.safe_load(CONFIG.read_text(encoding="utf-8"))
    src["engine"]["mode"] = "router"

    with pytest.raises(SettingsLoadError):
        load_settings(_write(tmp_path, src))


def test_rejects_ceiling_above_limit(tmp_path: Path) -> None:
    src = yaml.safe_load(CONFIG.read_text(encoding="utf-8"))
    src["matrix"]["max_override_labels"] = 21

    with pytest.raises(SettingsLoadError):
        load_settings(_write(tmp_path, src))


def test_rejects_zero_workers() -> None:
    with pytest.raises(SettingsLoadError):
        parse_settings({"matrix": {"workers": 0}})


def test_rejects_unknown_planner_option() -> None:
    with pytest.raises(SettingsLoadError):
        parse_planner_configuration({"experimental_reuse_query_fragments": True})


def test_rejects_non_boolean_toggle() -> None:
    with pytest.raises(SettingsLoadError):
        parse_planner_configuration({"disable_defer_support": "yes"})


def test_rejects_negative_limits() -> None:
    with pytest.raises(SettingsLoadError):
        parse_planner_configuration({"experimental_paths_limit": -1})


def test_missing_file_is_reported(tmp_path: Path) -> None:
    with pytest.raises(SettingsLoadError):
        load_settings(tmp_path / "missing.yaml")


def test_invalid_log_level_is_rejected() -> None:
    with pytest.raises(SettingsLoadError):
        parse_settings({"logging": {"level": "LOUD"}})


def test_planner_limits_fall_back() -> None:
    config = PlannerConfiguration(experimental_plans_limit=0, experimental_paths_limit=0)
    assert config.max_evaluated_plans == 10_000
    assert config.paths_limit is None

    limited = PlannerConfiguration(experimental_plans_limit=5, experimental_paths_limit=2)
    assert limited.max_evaluated_plans == 5
    assert limited.paths_limit == 2


def test_defer_toggle_is_an_inverted_view() -> None:
    assert PlannerConfiguration().enable_defer
    assert not PlannerConfiguration(disable_defer_support=True).enable_defer
