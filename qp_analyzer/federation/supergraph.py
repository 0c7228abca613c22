"""Federation 2 supergraph reader.

Extracts what query planning needs from supergraph SDL: the subgraphs
declared by ``join__Graph``, per-type ``@join__type`` graphs and keys, and
per-field ``@join__field`` entries including progressive override labels.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Optional

from graphql import (
    DirectiveDefinitionNode,
    DirectiveNode,
    DocumentNode,
    EnumTypeDefinitionNode,
    FieldDefinitionNode,
    GraphQLError,
    GraphQLSchema,
    InterfaceTypeDefinitionNode,
    InterfaceTypeExtensionNode,
    ListTypeNode,
    NamedTypeNode,
    ObjectTypeDefinitionNode,
    ObjectTypeExtensionNode,
    OperationType,
    SchemaDefinitionNode,
    TypeNode,
    build_ast_schema,
    parse,
    validate_schema,
    value_from_ast_untyped,
)

from qp_analyzer.core.errors import SchemaParseError

GRAPH_ENUM = "join__Graph"

# Operations are validated against the API schema, which always knows @defer.
DEFER_DIRECTIVE_SDL = (
    "directive @defer(label: String, if: Boolean! = true) on FRAGMENT_SPREAD | INLINE_FRAGMENT"
)


@dataclass(frozen=True)
class Subgraph:
    enum_value: str
    name: str
    url: str


@dataclass(frozen=True)
class JoinField:
    graph: Optional[str]
    external: bool = False
    override: Optional[str] = None
    override_label: Optional[str] = None
    used_overridden: bool = False
    requires: Optional[str] = None
    provides: Optional[str] = None


@dataclass(frozen=True)
class FieldInfo:
    name: str
    type_name: str
    is_list: bool
    join_fields: tuple[JoinField, ...] = ()


@dataclass(frozen=True)
class TypeInfo:
    name: str
    kind: str
    graphs: tuple[str, ...]
    # (subgraph name, key field set) for resolvable keys, in declaration order.
    keys: tuple[tuple[str, str], ...]
    fields: dict[str, FieldInfo] = field(default_factory=dict)

    @property
    def is_abstract(self) -> bool:
        return self.kind == "interface"

    def keys_for(self, graph: str) -> list[str]:
        return [key for key_graph, key in self.keys if key_graph == graph]


@dataclass(frozen=True)
class Supergraph:
    schema: GraphQLSchema
    subgraphs: tuple[Subgraph, ...]
    types: dict[str, TypeInfo]
    query_type: str
    mutation_type: Optional[str]
    override_labels: tuple[str, ...]

    @property
    def subgraph_names(self) -> list[str]:
        return [subgraph.name for subgraph in self.subgraphs]

    def subgraph(self, name: str) -> Optional[Subgraph]:
        for subgraph in self.subgraphs:
            if subgraph.name == name:
                return subgraph
        return None

    def type_info(self, name: str) -> Optional[TypeInfo]:
        return self.types.get(name)


def _arguments(directive: DirectiveNode) -> dict[str, Any]:
    return {arg.name.value: value_from_ast_untyped(arg.value) for arg in directive.arguments or ()}


def _directives(node: Any, name: str) -> list[DirectiveNode]:
    return [d for d in node.directives or () if d.name.value == name]


def _unwrap(type_node: TypeNode) -> tuple[str, bool]:
    is_list = False
    while not isinstance(type_node, NamedTypeNode):
        if isinstance(type_node, ListTypeNode):
            is_list = True
        type_node = type_node.type  # type: ignore[union-attr]
    return type_node.name.value, is_list


def _graph_enum(document: Any) -> EnumTypeDefinitionNode:
    for definition in document.definitions:
        if isinstance(definition, EnumTypeDefinitionNode) and definition.name.value == GRAPH_ENUM:
            return definition
    raise SchemaParseError(f"schema is not a supergraph: missing {GRAPH_ENUM} enum")


def _read_subgraphs(document: Any) -> tuple[Subgraph, ...]:
    subgraphs: list[Subgraph] = []
    for value in _graph_enum(document).values or ():
        directives = _directives(value, "join__graph")
        if not directives:
            raise SchemaParseError(f"{GRAPH_ENUM}.{value.name.value} is missing @join__graph")
        args = _arguments(directives[0])
        name = args.get("name")
        if not isinstance(name, str) or not name:
            raise SchemaParseError(f"{GRAPH_ENUM}.{value.name.value} has no subgraph name")
        subgraphs.append(Subgraph(enum_value=value.name.value, name=name, url=str(args.get("url") or "")))
    if not subgraphs:
        raise SchemaParseError(f"schema is not a supergraph: {GRAPH_ENUM} declares no subgraphs")
    return tuple(subgraphs)


def _join_field(args: dict[str, Any], graph_names: dict[str, str], owner: str) -> JoinField:
    graph = args.get("graph")
    if graph is not None and graph not in graph_names:
        raise SchemaParseError(f"{owner}: @join__field references unknown graph {graph}")
    label = args.get("overrideLabel")
    return JoinField(
        graph=graph_names[graph] if graph is not None else None,
        external=bool(args.get("external", False)),
        override=args.get("override"),
        override_label=str(label) if label is not None else None,
        used_overridden=bool(args.get("usedOverridden", False)),
        requires=args.get("requires"),
        provides=args.get("provides"),
    )


class _TypeCollector:
    def __init__(self, graph_names: dict[str, str]) -> None:
        self._graph_names = graph_names
        self.graphs: dict[str, list[str]] = {}
        self.keys: dict[str, list[tuple[str, str]]] = {}
        self.fields: dict[str, dict[str, FieldInfo]] = {}
        self.kinds: dict[str, str] = {}
        self.labels: list[str] = []

    def add(self, node: Any, kind: str) -> None:
        type_name = node.name.value
        self.kinds.setdefault(type_name, kind)
        graphs = self.graphs.setdefault(type_name, [])
        keys = self.keys.setdefault(type_name, [])
        fields = self.fields.setdefault(type_name, {})

        for directive in _directives(node, "join__type"):
            args = _arguments(directive)
            graph = args.get("graph")
            if graph not in self._graph_names:
                raise SchemaParseError(f"{type_name}: @join__type references unknown graph {graph}")
            subgraph = self._graph_names[graph]
            if subgraph not in graphs:
                graphs.append(subgraph)
            key = args.get("key")
            if key and args.get("resolvable", True):
                keys.append((subgraph, str(key)))

        for field_node in node.fields or ():
            fields[field_node.name.value] = self._field(type_name, field_node)

    def _field(self, type_name: str, node: FieldDefinitionNode) -> FieldInfo:
        owner = f"{type_name}.{node.name.value}"
        join_fields = []
        for directive in _directives(node, "join__field"):
            join = _join_field(_arguments(directive), self._graph_names, owner)
            if join.override_label is not None and join.override_label not in self.labels:
                self.labels.append(join.override_label)
            join_fields.append(join)
        named, is_list = _unwrap(node.type)
        return FieldInfo(
            name=node.name.value,
            type_name=named,
            is_list=is_list,
            join_fields=tuple(join_fields),
        )


def _root_types(document: Any, type_names: set[str]) -> tuple[str, Optional[str]]:
    query_type = "Query" if "Query" in type_names else None
    mutation_type = "Mutation" if "Mutation" in type_names else None
    for definition in document.definitions:
        if isinstance(definition, SchemaDefinitionNode):
            for op_type in definition.operation_types:
                if op_type.operation == OperationType.QUERY:
                    query_type = op_type.type.name.value
                elif op_type.operation == OperationType.MUTATION:
                    mutation_type = op_type.type.name.value
    if query_type is None:
        raise SchemaParseError("supergraph has no query root type")
    return query_type, mutation_type


def _with_defer(document: DocumentNode) -> DocumentNode:
    for definition in document.definitions:
        if isinstance(definition, DirectiveDefinitionNode) and definition.name.value == "defer":
            return document
    extra = parse(DEFER_DIRECTIVE_SDL, no_location=True)
    return DocumentNode(definitions=tuple(document.definitions) + tuple(extra.definitions))


def parse_supergraph(schema_text: str) -> Supergraph:
    try:
        document = parse(schema_text)
    except GraphQLError as exc:
        raise SchemaParseError(f"failed to parse supergraph schema: {exc.message}") from exc

    subgraphs = _read_subgraphs(document)
    collector = _TypeCollector({s.enum_value: s.name for s in subgraphs})
    for definition in document.definitions:
        if isinstance(definition, (ObjectTypeDefinitionNode, ObjectTypeExtensionNode)):
            collector.add(definition, "object")
        elif isinstance(definition, (InterfaceTypeDefinitionNode, InterfaceTypeExtensionNode)):
            collector.add(definition, "interface")

    try:
        schema = build_ast_schema(_with_defer(document), assume_valid_sdl=True)
    except (GraphQLError, TypeError) as exc:
        raise SchemaParseError(f"failed to build supergraph schema: {exc}") from exc
    errors = validate_schema(schema)
    if errors:
        raise SchemaParseError("invalid supergraph schema: " + "; ".join(e.message for e in errors))

    types = {
        name: TypeInfo(
            name=name,
            kind=collector.kinds[name],
            graphs=tuple(collector.graphs[name]),
            keys=tuple(collector.keys[name]),
            fields=collector.fields[name],
        )
        for name in collector.kinds
    }
    query_type, mutation_type = _root_types(document, set(types))
    return Supergraph(
        schema=schema,
        subgraphs=subgraphs,
        types=types,
        query_type=query_type,
        mutation_type=mutation_type,
        override_labels=tuple(collector.labels),
    )


@lru_cache(maxsize=32)
def load_supergraph(schema_text: str) -> Supergraph:
    """Parse a supergraph once per distinct schema text.

    The cached value is never mutated after construction.
    """
    return parse_supergraph(schema_text)
