"""Plan for one caller-chosen override combination."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from qp_analyzer.adapters.engine_factory import create_plan_engine
from qp_analyzer.adapters.plan_engine import PlanEngine
from qp_analyzer.config.settings import PlannerConfiguration
from qp_analyzer.core.combinations import OverrideCombination, plan_combination
from qp_analyzer.core.errors import InvalidLabelError
from qp_analyzer.core.labels import override_labels as read_override_labels
from qp_analyzer.models.result import PlanResult

LOGGER = logging.getLogger(__name__)


def resolve_combination(
    catalog: Sequence[str],
    override_all: bool = False,
    override_labels: Optional[Sequence[str]] = None,
) -> OverrideCombination:
    """Map the caller's selection onto a catalog combination.

    ``override_all`` wins over an explicit label list. Requested labels must
    be known and may appear only once; the result is in catalog order.
    """
    if override_all:
        return OverrideCombination(index=(1 << len(catalog)) - 1, catalog=tuple(catalog))

    requested = list(override_labels or [])
    seen: set[str] = set()
    for label in requested:
        if label not in catalog:
            raise InvalidLabelError(
                f"unknown override label {label!r}; available labels: {list(catalog)}",
                label=label,
                available=catalog,
            )
        if label in seen:
            raise InvalidLabelError(
                f"override label {label!r} was given more than once",
                label=label,
                available=catalog,
            )
        seen.add(label)
    return OverrideCombination.from_labels(requested, catalog)


def build_one_plan(
    schema: str,
    query: str,
    query_path: str,
    planner_config: Optional[PlannerConfiguration] = None,
    override_all: bool = False,
    override_labels: Optional[Sequence[str]] = None,
    engine: Optional[PlanEngine] = None,
) -> PlanResult:
    engine = engine or create_plan_engine()
    catalog = read_override_labels(schema, engine=engine)
    if override_all and override_labels:
        LOGGER.info("override_all is set; ignoring explicit labels %s", list(override_labels))
    combination = resolve_combination(catalog, override_all, override_labels)
    LOGGER.info("planning combination #%d: %s", combination.index, combination.enabled)
    return plan_combination(
        engine,
        schema,
        query,
        query_path,
        planner_config or PlannerConfiguration(),
        combination,
    )
