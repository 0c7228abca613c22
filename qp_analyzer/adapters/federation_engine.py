"""Built-in planning engine backed by graphql-core.

Parsed supergraphs and operations are memoized per input text. Cached values
are never mutated, so one planning call cannot influence another.
"""

from __future__ import annotations

from typing import Sequence

from qp_analyzer.config.settings import PlannerConfiguration
from qp_analyzer.federation.operation import load_operation
from qp_analyzer.federation.query_planner import QueryPlanner
from qp_analyzer.federation.supergraph import load_supergraph
from qp_analyzer.models.plan import QueryPlan


class FederationPlanEngine:
    def override_labels(self, schema: str) -> list[str]:
        return list(load_supergraph(schema).override_labels)

    def build_plan(
        self,
        schema: str,
        query: str,
        query_path: str,
        config: PlannerConfiguration,
        override_conditions: Sequence[str],
    ) -> QueryPlan:
        supergraph = load_supergraph(schema)
        operation = load_operation(schema, query, query_path)
        planner = QueryPlanner(supergraph, config)
        return planner.build_query_plan(operation, override_conditions)
