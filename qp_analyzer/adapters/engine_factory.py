"""Factory for selecting the planning engine implementation."""

from __future__ import annotations

from typing import Optional

from qp_analyzer.adapters.federation_engine import FederationPlanEngine
from qp_analyzer.adapters.plan_engine import PlanEngine
from qp_analyzer.config.settings import AnalyzerSettings


class EngineFactoryError(RuntimeError):
    """Planning engine initialization error."""


def create_plan_engine(settings: Optional[AnalyzerSettings] = None) -> PlanEngine:
    mode = settings.engine.mode if settings is not None else "federation"

    if mode == "federation":
        return FederationPlanEngine()

    raise EngineFactoryError(f"unsupported engine mode: {mode}")
