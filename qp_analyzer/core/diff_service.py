"""Structural query plan comparison."""

from __future__ import annotations

import difflib
import json
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from pydantic import ValidationError

from qp_analyzer.core.errors import PlanFormatError
from qp_analyzer.federation.display import (
    field_label,
    format_path,
    fragment_label,
    summarize_node,
    summarize_selection,
)
from qp_analyzer.federation.supergraph import Supergraph, load_supergraph
from qp_analyzer.models.plan import (
    FetchNode,
    FieldSelection,
    FlattenNode,
    PlanNode,
    QueryPlan,
    Selection,
    iter_fetch_nodes,
)
from qp_analyzer.models.result import DiffReport, Divergence, PlanResult

LOGGER = logging.getLogger(__name__)

PlanValue = Union[QueryPlan, PlanResult, dict, str, bytes]

_PLAN_RESULT_KEY = "experimental_query_plan_serialized"


def coerce_plan(value: PlanValue, source: str = "plan") -> QueryPlan:
    """Accept a plan tree, a whole PlanResult, or their JSON forms."""
    if isinstance(value, QueryPlan):
        return value
    if isinstance(value, PlanResult):
        return value.experimental_query_plan_serialized
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except (ValueError, RecursionError) as exc:
            # ValueError covers JSONDecodeError and UnicodeDecodeError.
            raise PlanFormatError(f"{source} is not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise PlanFormatError(f"{source} must be a JSON object, got {type(value).__name__}")
    try:
        if _PLAN_RESULT_KEY in value:
            return PlanResult.model_validate(value).experimental_query_plan_serialized
        return QueryPlan.model_validate(value)
    except ValidationError as exc:
        raise PlanFormatError(f"{source} is not a well-formed query plan: {exc}") from exc
    except RecursionError as exc:
        raise PlanFormatError(f"{source} is nested too deeply") from exc


def canonical_text(plan: QueryPlan) -> str:
    return json.dumps(plan.model_dump(mode="json"), indent=2, sort_keys=True)


@dataclass(frozen=True)
class _Mismatch:
    location: str
    reason: str
    left: Optional[str]
    right: Optional[str]
    left_node: Optional[PlanNode] = None
    right_node: Optional[PlanNode] = None


def _child(location: str, segment: str) -> str:
    return f"{location} > {segment}"


def _selection_segment(selection: Selection) -> str:
    if isinstance(selection, FieldSelection):
        return field_label(selection)
    return fragment_label(selection)


class PlanDiffer:
    """Lock-step walk over two plan trees.

    Child nodes and selections are visited in serialization order. Within a
    fetch the service is compared first, then requires and selections, then
    the operation fields, so a changed fetch target is reported as such even
    though it sorts last in the canonical text.
    """

    def __init__(self, supergraph: Supergraph) -> None:
        self._supergraph = supergraph

    def compare(self, plan_a: QueryPlan, plan_b: QueryPlan) -> Optional[DiffReport]:
        left_text = canonical_text(plan_a)
        right_text = canonical_text(plan_b)
        if left_text == right_text:
            return None

        full_diff = "\n".join(
            difflib.unified_diff(
                left_text.splitlines(),
                right_text.splitlines(),
                fromfile="plan_a",
                tofile="plan_b",
                lineterm="",
            )
        )
        mismatch = self._node("QueryPlan", plan_a.node, plan_b.node)
        if mismatch is None:
            # Canonical texts differ but no walked field did.
            mismatch = _Mismatch("QueryPlan", "value_mismatch", "plan_a", "plan_b")
        divergence = Divergence(
            location=mismatch.location,
            reason=mismatch.reason,  # type: ignore[arg-type]
            left=mismatch.left,
            right=mismatch.right,
        )
        LOGGER.info("plans diverge at %s (%s)", divergence.location, divergence.reason)
        return DiffReport(
            full_diff=full_diff,
            diff_description=self._describe(mismatch),
            first_divergence=divergence,
        )

    def _node(
        self,
        location: str,
        left: Optional[PlanNode],
        right: Optional[PlanNode],
    ) -> Optional[_Mismatch]:
        if left is None or right is None:
            if left is None and right is None:
                return None
            return _Mismatch(
                location, "missing_child", summarize_node(left), summarize_node(right), left, right
            )
        if left.kind != right.kind:
            return _Mismatch(
                location, "kind_mismatch", summarize_node(left), summarize_node(right), left, right
            )

        if isinstance(left, FetchNode):
            return self._fetch(location, left, right)  # type: ignore[arg-type]
        if isinstance(left, FlattenNode):
            assert isinstance(right, FlattenNode)
            if left.path != right.path:
                return _Mismatch(
                    _child(location, "path"),
                    "value_mismatch",
                    format_path(left.path),
                    format_path(right.path),
                    left,
                    right,
                )
            return self._node(
                _child(location, f'Flatten(path: "{format_path(left.path)}")'),
                left.node,
                right.node,
            )
        return self._nodes(location, left.kind, left.nodes, right.nodes)  # type: ignore[union-attr]

    def _nodes(
        self,
        location: str,
        kind: str,
        left: Sequence[PlanNode],
        right: Sequence[PlanNode],
    ) -> Optional[_Mismatch]:
        for index in range(max(len(left), len(right))):
            child_location = _child(location, f"{kind}[{index}]")
            left_child = left[index] if index < len(left) else None
            right_child = right[index] if index < len(right) else None
            mismatch = self._node(child_location, left_child, right_child)
            if mismatch is not None:
                return mismatch
        return None

    def _fetch(self, location: str, left: FetchNode, right: FetchNode) -> Optional[_Mismatch]:
        here = _child(location, f'Fetch(service: "{left.service_name}")')
        if left.service_name != right.service_name:
            return _Mismatch(
                _child(location, "Fetch.service"),
                "value_mismatch",
                left.service_name,
                right.service_name,
                left,
                right,
            )
        if (left.requires is None) != (right.requires is None):
            return _Mismatch(
                _child(here, "requires"),
                "missing_child",
                "requires" if left.requires is not None else "(none)",
                "requires" if right.requires is not None else "(none)",
            )
        if left.requires is not None and right.requires is not None:
            mismatch = self._selections(_child(here, "requires"), left.requires, right.requires)
            if mismatch is not None:
                return mismatch
        mismatch = self._selections(_child(here, "selections"), left.selections, right.selections)
        if mismatch is not None:
            return mismatch
        for attribute in ("operation_kind", "operation_name", "variable_usages", "operation"):
            left_value = getattr(left, attribute)
            right_value = getattr(right, attribute)
            if left_value != right_value:
                return _Mismatch(
                    _child(here, attribute), "value_mismatch", str(left_value), str(right_value)
                )
        return None

    def _selections(
        self,
        location: str,
        left: Sequence[Selection],
        right: Sequence[Selection],
    ) -> Optional[_Mismatch]:
        for index in range(max(len(left), len(right))):
            left_item = left[index] if index < len(left) else None
            right_item = right[index] if index < len(right) else None
            if left_item is None or right_item is None:
                return _Mismatch(
                    _child(location, f"[{index}]"),
                    "missing_child",
                    summarize_selection(left_item),
                    summarize_selection(right_item),
                )
            item_location = _child(location, _selection_segment(left_item))
            if left_item.kind != right_item.kind:
                return _Mismatch(
                    item_location,
                    "kind_mismatch",
                    summarize_selection(left_item),
                    summarize_selection(right_item),
                )
            if _selection_segment(left_item) != _selection_segment(right_item):
                return _Mismatch(
                    _child(location, f"[{index}]"),
                    "value_mismatch",
                    summarize_selection(left_item),
                    summarize_selection(right_item),
                )
            mismatch = self._selections(item_location, left_item.selections, right_item.selections)
            if mismatch is not None:
                return mismatch
        return None

    def _describe(self, mismatch: _Mismatch) -> str:
        lines = [
            f"First divergence at {mismatch.location}: {mismatch.reason.replace('_', ' ')}",
            f"  plan_a: {mismatch.left or '(none)'}",
            f"  plan_b: {mismatch.right or '(none)'}",
        ]
        left_services = self._services(mismatch.left_node)
        right_services = self._services(mismatch.right_node)
        only_left = [name for name in left_services if name not in right_services]
        only_right = [name for name in right_services if name not in left_services]
        if only_left:
            lines.append("  fetch services only in plan_a: " + ", ".join(only_left))
        if only_right:
            lines.append("  fetch services only in plan_b: " + ", ".join(only_right))
        known = set(self._supergraph.subgraph_names)
        unknown = [name for name in only_left + only_right if name not in known]
        if unknown:
            lines.append("  not subgraphs of the supergraph: " + ", ".join(unknown))
        return "\n".join(lines)

    @staticmethod
    def _services(node: Optional[PlanNode]) -> list[str]:
        if node is None:
            return []
        services: list[str] = []
        for fetch in iter_fetch_nodes(QueryPlan(node=node)):
            if fetch.service_name not in services:
                services.append(fetch.service_name)
        return services


def compare_plans(schema: str, plan_a: PlanValue, plan_b: PlanValue) -> Optional[DiffReport]:
    """Compare two plans; ``None`` means they are structurally identical."""
    supergraph = load_supergraph(schema)
    left = coerce_plan(plan_a, "plan_a")
    right = coerce_plan(plan_b, "plan_b")
    return PlanDiffer(supergraph).compare(left, right)
