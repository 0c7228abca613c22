"""Application runtime wiring."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Sequence

from qp_analyzer.adapters.engine_factory import create_plan_engine
from qp_analyzer.adapters.plan_engine import PlanEngine
from qp_analyzer.config.settings import AnalyzerSettings, PlannerConfiguration, load_settings
from qp_analyzer.core.diff_service import PlanValue, compare_plans
from qp_analyzer.core.labels import override_labels
from qp_analyzer.core.matrix import MatrixBuilder
from qp_analyzer.core.single import build_one_plan
from qp_analyzer.models.result import DiffReport, PlanResult

LOGGER = logging.getLogger(__name__)

CONFIG_PATH_ENV = "QPA_CONFIG_PATH"


def resolve_settings(config_path: Optional[Path] = None) -> AnalyzerSettings:
    """Explicit path, then ``QPA_CONFIG_PATH``, then built-in defaults."""
    if config_path is None:
        raw = os.getenv(CONFIG_PATH_ENV, "").strip()
        config_path = Path(raw) if raw else None
    if config_path is None:
        LOGGER.info("using built-in settings")
        return AnalyzerSettings()
    LOGGER.info("loading settings from %s", config_path)
    return load_settings(config_path)


class AnalyzerRuntime:
    def __init__(
        self,
        settings: Optional[AnalyzerSettings] = None,
        engine: Optional[PlanEngine] = None,
    ) -> None:
        self.settings = settings or AnalyzerSettings()
        self.engine = engine or create_plan_engine(self.settings)
        self.matrix = MatrixBuilder(
            self.engine,
            max_override_labels=self.settings.matrix.max_override_labels,
            workers=self.settings.matrix.workers,
        )

    def planner_config(self, override: Optional[PlannerConfiguration] = None) -> PlannerConfiguration:
        return override or self.settings.planner

    def override_labels(self, schema: str) -> list[str]:
        return override_labels(schema, engine=self.engine)

    def build_all_plans(
        self,
        schema: str,
        query: str,
        query_path: str,
        planner_config: Optional[PlannerConfiguration] = None,
    ) -> list[PlanResult]:
        return self.matrix.build_all(schema, query, query_path, self.planner_config(planner_config))

    def build_one_plan(
        self,
        schema: str,
        query: str,
        query_path: str,
        planner_config: Optional[PlannerConfiguration] = None,
        override_all: bool = False,
        override_labels: Optional[Sequence[str]] = None,
    ) -> PlanResult:
        return build_one_plan(
            schema,
            query,
            query_path,
            self.planner_config(planner_config),
            override_all=override_all,
            override_labels=override_labels,
            engine=self.engine,
        )

    def compare_plans(self, schema: str, plan_a: PlanValue, plan_b: PlanValue) -> Optional[DiffReport]:
        return compare_plans(schema, plan_a, plan_b)
