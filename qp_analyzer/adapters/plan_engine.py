"""Planning engine interface."""

from __future__ import annotations

from typing import Protocol, Sequence

from qp_analyzer.config.settings import PlannerConfiguration
from qp_analyzer.models.plan import QueryPlan


class PlanEngine(Protocol):
    def override_labels(self, schema: str) -> list[str]:
        """Return the schema's override labels in a stable order."""

    def build_plan(
        self,
        schema: str,
        query: str,
        query_path: str,
        config: PlannerConfiguration,
        override_conditions: Sequence[str],
    ) -> QueryPlan:
        """Plan one operation with exactly ``override_conditions`` enabled.

        Must behave as a pure function of its arguments.
        """
