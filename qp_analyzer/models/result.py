"""Planning results and plan comparison reports."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from qp_analyzer.models.plan import QueryPlan

DivergenceReason = Literal["kind_mismatch", "value_mismatch", "missing_child"]


class QueryPlanConfig(BaseModel):
    """The configuration affecting the generation of a query plan."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    override_conditions: list[str] = Field(default_factory=list)


class PlanResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    query_plan_config: QueryPlanConfig
    # Human-readable rendering of the plan.
    query_plan_display: str
    experimental_query_plan_serialized: QueryPlan


class Divergence(BaseModel):
    """First point at which two plans differ."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    location: str
    reason: DivergenceReason
    left: Optional[str] = None
    right: Optional[str] = None


class DiffReport(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    full_diff: str
    diff_description: str
    first_divergence: Divergence
