"""Human-readable query plan rendering."""

from __future__ import annotations

from typing import Optional

from qp_analyzer.models.plan import (
    FetchNode,
    FieldSelection,
    FlattenNode,
    InlineFragmentSelection,
    ParallelNode,
    PlanNode,
    QueryPlan,
    Selection,
    SequenceNode,
)

INDENT = "  "


def render_query_plan(plan: QueryPlan) -> str:
    lines = ["QueryPlan {"]
    if plan.node is not None:
        _render_node(plan.node, 1, lines)
    lines.append("}")
    return "\n".join(lines)


def format_path(path: list[str]) -> str:
    return ".".join(path)


def field_label(selection: FieldSelection) -> str:
    label = f"{selection.alias}: {selection.name}" if selection.alias else selection.name
    if selection.arguments:
        args = ", ".join(f"{arg.name}: {arg.value}" for arg in selection.arguments)
        label += f"({args})"
    return label


def fragment_label(selection: InlineFragmentSelection) -> str:
    if selection.type_condition:
        return f"... on {selection.type_condition}"
    return "..."


def _render_node(node: PlanNode, depth: int, lines: list[str]) -> None:
    pad = INDENT * depth
    if isinstance(node, FetchNode):
        lines.append(f'{pad}Fetch(service: "{node.service_name}") {{')
        if node.requires is not None:
            _render_selection_set(node.requires, depth + 1, lines, suffix=" =>")
        _render_selection_set(node.selections, depth + 1, lines)
    elif isinstance(node, FlattenNode):
        lines.append(f'{pad}Flatten(path: "{format_path(node.path)}") {{')
        _render_node(node.node, depth + 1, lines)
    else:
        lines.append(f"{pad}{node.kind} {{")
        for child in node.nodes:
            _render_node(child, depth + 1, lines)
    lines.append(f"{pad}}},")


def _render_selection_set(
    selections: list[Selection],
    depth: int,
    lines: list[str],
    suffix: str = "",
) -> None:
    pad = INDENT * depth
    lines.append(f"{pad}{{")
    for selection in selections:
        _render_selection(selection, depth + 1, lines)
    lines.append(f"{pad}}}{suffix}")


def _render_selection(selection: Selection, depth: int, lines: list[str]) -> None:
    pad = INDENT * depth
    if isinstance(selection, FieldSelection):
        label = field_label(selection)
    else:
        label = fragment_label(selection)
    if not selection.selections:
        lines.append(f"{pad}{label}")
        return
    lines.append(f"{pad}{label} {{")
    for child in selection.selections:
        _render_selection(child, depth + 1, lines)
    lines.append(f"{pad}}}")


def summarize_node(node: Optional[PlanNode]) -> str:
    """Single-line description of a plan subtree."""
    if node is None:
        return "(none)"
    if isinstance(node, FetchNode):
        return f'Fetch(service: "{node.service_name}")'
    if isinstance(node, FlattenNode):
        return f'Flatten(path: "{format_path(node.path)}") -> {summarize_node(node.node)}'
    if isinstance(node, (SequenceNode, ParallelNode)):
        return f"{node.kind}[" + ", ".join(summarize_node(child) for child in node.nodes) + "]"
    raise TypeError(f"unknown plan node: {node!r}")


def summarize_selection(selection: Optional[Selection]) -> str:
    if selection is None:
        return "(none)"
    if isinstance(selection, FieldSelection):
        label = field_label(selection)
    else:
        label = fragment_label(selection)
    if not selection.selections:
        return label
    return label + " { " + " ".join(summarize_selection(child) for child in selection.selections) + " }"
