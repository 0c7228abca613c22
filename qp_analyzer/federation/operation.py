"""Operation document reader."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from graphql import (
    FragmentDefinitionNode,
    GraphQLError,
    OperationDefinitionNode,
    Source,
    parse,
    print_ast,
    validate,
)

from qp_analyzer.core.errors import QueryParseError
from qp_analyzer.federation.supergraph import load_supergraph


@dataclass(frozen=True)
class Operation:
    definition: OperationDefinitionNode
    fragments: dict[str, FragmentDefinitionNode]
    query_path: str
    # Variable name -> printed GraphQL type, in declaration order.
    variable_types: dict[str, str]

    @property
    def kind(self) -> str:
        return self.definition.operation.value

    @property
    def name(self) -> Optional[str]:
        return self.definition.name.value if self.definition.name else None


def parse_operation(
    schema_text: str,
    query: str,
    query_path: str,
    operation_name: Optional[str] = None,
) -> Operation:
    supergraph = load_supergraph(schema_text)
    try:
        document = parse(Source(query, query_path))
    except GraphQLError as exc:
        raise QueryParseError(f"failed to parse {query_path}: {exc.message}") from exc

    errors = validate(supergraph.schema, document)
    if errors:
        raise QueryParseError(
            f"invalid operation in {query_path}: " + "; ".join(e.message for e in errors)
        )

    operations = [d for d in document.definitions if isinstance(d, OperationDefinitionNode)]
    if operation_name is not None:
        operations = [op for op in operations if op.name and op.name.value == operation_name]
        if not operations:
            raise QueryParseError(f"operation {operation_name} not found in {query_path}")
    if len(operations) != 1:
        raise QueryParseError(
            f"{query_path} must contain exactly one operation (found {len(operations)})"
        )

    definition = operations[0]
    fragments = {
        d.name.value: d for d in document.definitions if isinstance(d, FragmentDefinitionNode)
    }
    variable_types = {
        v.variable.name.value: print_ast(v.type) for v in definition.variable_definitions or ()
    }
    return Operation(
        definition=definition,
        fragments=fragments,
        query_path=query_path,
        variable_types=variable_types,
    )


@lru_cache(maxsize=64)
def load_operation(schema_text: str, query: str, query_path: str) -> Operation:
    return parse_operation(schema_text, query, query_path)
