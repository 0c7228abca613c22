"""Override combinations and single-combination planning."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Sequence

from qp_analyzer.adapters.plan_engine import PlanEngine
from qp_analyzer.config.settings import PlannerConfiguration
from qp_analyzer.core.errors import AnalyzerError, PlannerError, QueryParseError, SchemaParseError
from qp_analyzer.federation.display import render_query_plan
from qp_analyzer.models.result import PlanResult, QueryPlanConfig

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class OverrideCombination:
    """A bitmask over the label catalog: bit j enables ``catalog[j]``."""

    index: int
    catalog: tuple[str, ...]

    def __post_init__(self) -> None:
        if not 0 <= self.index < (1 << len(self.catalog)):
            raise ValueError(
                f"combination index {self.index} is outside [0, {1 << len(self.catalog)})"
            )

    @classmethod
    def from_labels(cls, labels: Sequence[str], catalog: Sequence[str]) -> OverrideCombination:
        positions = {label: bit for bit, label in enumerate(catalog)}
        index = 0
        for label in labels:
            index |= 1 << positions[label]
        return cls(index=index, catalog=tuple(catalog))

    @property
    def enabled(self) -> list[str]:
        return [label for bit, label in enumerate(self.catalog) if (self.index >> bit) & 1]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OverrideCombination):
            return NotImplemented
        return frozenset(self.enabled) == frozenset(other.enabled)

    def __hash__(self) -> int:
        return hash(frozenset(self.enabled))


def iter_combinations(catalog: Sequence[str]) -> Iterator[OverrideCombination]:
    """Yield every combination in increasing index order."""
    labels = tuple(catalog)
    for index in range(1 << len(labels)):
        yield OverrideCombination(index=index, catalog=labels)


def plan_combination(
    engine: PlanEngine,
    schema: str,
    query: str,
    query_path: str,
    config: PlannerConfiguration,
    combination: OverrideCombination,
) -> PlanResult:
    enabled = combination.enabled
    LOGGER.debug("planning override combination #%d: %s", combination.index, enabled)
    try:
        plan = engine.build_plan(schema, query, query_path, config, list(enabled))
    except (SchemaParseError, QueryParseError):
        raise
    except PlannerError as exc:
        raise PlannerError(
            f"override combination #{combination.index} {enabled}: {exc}",
            combination_index=combination.index,
            override_conditions=enabled,
        ) from exc
    except AnalyzerError:
        raise
    except Exception as exc:
        raise PlannerError(
            f"override combination #{combination.index} {enabled}: planning engine failed: {exc}",
            combination_index=combination.index,
            override_conditions=enabled,
        ) from exc

    return PlanResult(
        query_plan_config=QueryPlanConfig(override_conditions=enabled),
        query_plan_display=render_query_plan(plan),
        experimental_query_plan_serialized=plan,
    )
