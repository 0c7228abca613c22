"""Override combination plan matrix.

Builds one plan per combination of override labels. Index ``i`` enables the
labels whose bit is set in ``i`` (bit j is catalog label j), so index 0 has
every label disabled and index ``2**n - 1`` has every label enabled. The
result list is always complete and index-aligned; any failure aborts the
whole matrix.
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Optional

from qp_analyzer.adapters.engine_factory import create_plan_engine
from qp_analyzer.adapters.plan_engine import PlanEngine
from qp_analyzer.config.settings import DEFAULT_MAX_OVERRIDE_LABELS, PlannerConfiguration
from qp_analyzer.core.combinations import OverrideCombination, iter_combinations, plan_combination
from qp_analyzer.core.errors import CombinationLimitExceeded
from qp_analyzer.core.labels import override_labels
from qp_analyzer.models.result import PlanResult

LOGGER = logging.getLogger(__name__)


class MatrixBuilder:
    def __init__(
        self,
        engine: PlanEngine,
        max_override_labels: int = DEFAULT_MAX_OVERRIDE_LABELS,
        workers: int = 1,
    ) -> None:
        if max_override_labels < 0:
            raise ValueError("max_override_labels must be >= 0")
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._engine = engine
        self._max_override_labels = max_override_labels
        self._workers = workers

    def combinations(self, schema: str) -> list[OverrideCombination]:
        labels = override_labels(schema, engine=self._engine)
        if len(labels) > self._max_override_labels:
            raise CombinationLimitExceeded(len(labels), self._max_override_labels)
        combinations = list(iter_combinations(labels))
        LOGGER.info("override condition combinations: %d", len(combinations))
        return combinations

    def build_all(
        self,
        schema: str,
        query: str,
        query_path: str,
        config: PlannerConfiguration,
    ) -> list[PlanResult]:
        combinations = self.combinations(schema)
        if self._workers == 1 or len(combinations) == 1:
            return [
                plan_combination(self._engine, schema, query, query_path, config, combination)
                for combination in combinations
            ]
        return self._build_parallel(combinations, schema, query, query_path, config)

    def _build_parallel(
        self,
        combinations: list[OverrideCombination],
        schema: str,
        query: str,
        query_path: str,
        config: PlannerConfiguration,
    ) -> list[PlanResult]:
        results: list[Optional[PlanResult]] = [None] * len(combinations)
        workers = min(self._workers, len(combinations))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="qp-matrix") as pool:
            futures: dict[Future[PlanResult], int] = {
                pool.submit(
                    plan_combination, self._engine, schema, query, query_path, config, combination
                ): combination.index
                for combination in combinations
            }
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            failed = sorted(
                (futures[future] for future in done if future.exception() is not None),
            )
            if failed:
                for future in pending:
                    future.cancel()
                first = next(f for f, index in futures.items() if index == failed[0])
                LOGGER.debug("aborting matrix after failure at combination #%d", failed[0])
                raise first.exception()  # type: ignore[misc]
            for future, index in futures.items():
                results[index] = future.result()
        return [result for result in results if result is not None]


def build_all_plans(
    schema: str,
    query: str,
    query_path: str,
    planner_config: Optional[PlannerConfiguration] = None,
    engine: Optional[PlanEngine] = None,
    max_override_labels: int = DEFAULT_MAX_OVERRIDE_LABELS,
    workers: int = 1,
) -> list[PlanResult]:
    builder = MatrixBuilder(
        engine or create_plan_engine(),
        max_override_labels=max_override_labels,
        workers=workers,
    )
    return builder.build_all(schema, query, query_path, planner_config or PlannerConfiguration())
