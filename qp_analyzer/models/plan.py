"""Query plan tree contract.

Plan nodes and selections are tagged variants keyed by ``kind``. Models are
frozen and reject unknown keys, so a plan read back from JSON either
validates into exactly this shape or fails.
"""

from __future__ import annotations

from typing import Annotated, Iterator, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

LIST_PATH_SEGMENT = "@"


class Argument(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    # GraphQL literal as printed, e.g. ``$id`` or ``"abc"``.
    value: str = Field(min_length=1)


class FieldSelection(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["Field"] = "Field"
    name: str = Field(min_length=1)
    alias: Optional[str] = None
    arguments: list[Argument] = Field(default_factory=list)
    selections: list[Selection] = Field(default_factory=list)


class InlineFragmentSelection(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["InlineFragment"] = "InlineFragment"
    type_condition: Optional[str] = None
    selections: list[Selection] = Field(min_length=1)


Selection = Annotated[
    Union[FieldSelection, InlineFragmentSelection],
    Field(discriminator="kind"),
]


class FetchNode(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["Fetch"] = "Fetch"
    service_name: str = Field(min_length=1)
    requires: Optional[list[Selection]] = None
    selections: list[Selection] = Field(min_length=1)
    operation_kind: Literal["query", "mutation"] = "query"
    operation_name: Optional[str] = None
    operation: str = Field(min_length=1)
    variable_usages: list[str] = Field(default_factory=list)


class FlattenNode(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["Flatten"] = "Flatten"
    path: list[str] = Field(min_length=1)
    node: PlanNode

    @field_validator("path")
    @classmethod
    def validate_path(cls, value: list[str]) -> list[str]:
        if any(not segment for segment in value):
            raise ValueError("flatten path must not contain empty segments")
        return value


class SequenceNode(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["Sequence"] = "Sequence"
    nodes: list[PlanNode] = Field(min_length=1)


class ParallelNode(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["Parallel"] = "Parallel"
    nodes: list[PlanNode] = Field(min_length=1)


PlanNode = Annotated[
    Union[FetchNode, FlattenNode, SequenceNode, ParallelNode],
    Field(discriminator="kind"),
]


class QueryPlan(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    node: Optional[PlanNode] = None


def iter_fetch_nodes(plan: QueryPlan) -> Iterator[FetchNode]:
    """Yield fetch nodes in execution order (depth-first, left to right)."""
    stack: list[PlanNode] = [plan.node] if plan.node is not None else []
    while stack:
        node = stack.pop()
        if isinstance(node, FetchNode):
            yield node
        elif isinstance(node, FlattenNode):
            stack.append(node.node)
        else:
            stack.extend(reversed(node.nodes))


for _model in (
    FieldSelection,
    InlineFragmentSelection,
    FetchNode,
    FlattenNode,
    SequenceNode,
    ParallelNode,
    QueryPlan,
):
    _model.model_rebuild()
