"""Built-in federated query planner.

Plans an operation against a supergraph for one set of enabled progressive
override labels. Root fields are grouped per subgraph; fields a fetch cannot
resolve are moved to dependent entity fetches keyed by ``@join__type`` keys
and merged back with ``Flatten``.

The planner keeps no state between ``build_query_plan`` calls; everything a
call needs lives on a ``_PlanningRun``.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from graphql import (
    ArgumentNode,
    DocumentNode,
    FieldNode,
    FragmentSpreadNode,
    GraphQLError,
    InlineFragmentNode,
    ListValueNode,
    NamedTypeNode,
    NameNode,
    ObjectValueNode,
    OperationDefinitionNode,
    OperationType,
    SelectionSetNode,
    ValueNode,
    VariableDefinitionNode,
    VariableNode,
    parse,
    parse_type,
    parse_value,
    print_ast,
    strip_ignored_characters,
)

from qp_analyzer.config.settings import PlannerConfiguration
from qp_analyzer.core.errors import PlannerError, SchemaParseError
from qp_analyzer.federation.operation import Operation
from qp_analyzer.federation.supergraph import FieldInfo, Supergraph, TypeInfo
from qp_analyzer.models.plan import (
    LIST_PATH_SEGMENT,
    Argument,
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

LOGGER = logging.getLogger(__name__)

TYPENAME = "__typename"
_NON_NAME_CHARS = re.compile(r"[^A-Za-z0-9_]")

CollectedFields = list[tuple[str, list[FieldNode]]]


class _SelectionSet:
    """Ordered selection set under construction, merged by response name."""

    def __init__(self) -> None:
        self._fields: dict[str, tuple[str, Optional[str], tuple[tuple[str, str], ...], _SelectionSet]] = {}
        self._fragments: dict[str, _SelectionSet] = {}
        self._order: list[tuple[str, str]] = []

    def field(
        self,
        name: str,
        alias: Optional[str] = None,
        arguments: Iterable[tuple[str, str]] = (),
    ) -> _SelectionSet:
        key = alias or name
        entry = self._fields.get(key)
        if entry is None:
            entry = (name, alias, tuple(arguments), _SelectionSet())
            self._fields[key] = entry
            self._order.append(("field", key))
        return entry[3]

    def fragment(self, type_condition: str) -> _SelectionSet:
        children = self._fragments.get(type_condition)
        if children is None:
            children = _SelectionSet()
            self._fragments[type_condition] = children
            self._order.append(("fragment", type_condition))
        return children

    def freeze(self) -> list[Selection]:
        selections: list[Selection] = []
        for kind, key in self._order:
            if kind == "field":
                name, alias, arguments, children = self._fields[key]
                selections.append(
                    FieldSelection(
                        name=name,
                        alias=alias,
                        arguments=[Argument(name=n, value=v) for n, v in arguments],
                        selections=children.freeze(),
                    )
                )
            else:
                nested = self._fragments[key].freeze()
                if nested:
                    selections.append(InlineFragmentSelection(type_condition=key, selections=nested))
        return selections


class _FetchGroup:
    def __init__(
        self,
        service: str,
        merge_path: tuple[str, ...] = (),
        entity_type: Optional[str] = None,
    ) -> None:
        self.service = service
        self.merge_path = merge_path
        self.entity_type = entity_type
        self.selections = _SelectionSet()
        self.requires: Optional[_SelectionSet] = None
        self.representation: Optional[_SelectionSet] = None
        self.entry = self.selections
        if entity_type is not None:
            self.requires = _SelectionSet()
            self.representation = self.requires.fragment(entity_type)
            self.entry = self.selections.fragment(entity_type)
        self.variables: list[str] = []
        self.dependents: list[_FetchGroup] = []

    def use_variables(self, names: Iterable[str]) -> None:
        for name in names:
            if name not in self.variables:
                self.variables.append(name)


class QueryPlanner:
    def __init__(self, supergraph: Supergraph, config: PlannerConfiguration) -> None:
        self._supergraph = supergraph
        self._config = config

    def build_query_plan(self, operation: Operation, override_conditions: Iterable[str]) -> QueryPlan:
        enabled = frozenset(override_conditions)
        LOGGER.debug(
            "planning %s with overrides=%s max_evaluated_plans=%d paths_limit=%s",
            operation.query_path,
            sorted(enabled),
            self._config.max_evaluated_plans,
            self._config.paths_limit,
        )
        return _PlanningRun(self._supergraph, self._config, operation, enabled).plan()


class _PlanningRun:
    def __init__(
        self,
        supergraph: Supergraph,
        config: PlannerConfiguration,
        operation: Operation,
        enabled: frozenset[str],
    ) -> None:
        self._supergraph = supergraph
        self._config = config
        self._operation = operation
        self._enabled = enabled
        self._fetch_count = 0

    def plan(self) -> QueryPlan:
        kind = self._operation.kind
        if kind == "subscription":
            raise PlannerError("subscriptions are not supported by the built-in planner")
        if kind == "mutation":
            if self._supergraph.mutation_type is None:
                raise PlannerError("supergraph has no mutation root type")
            root_type = self._type(self._supergraph.mutation_type)
        else:
            root_type = self._type(self._supergraph.query_type)

        serial = kind == "mutation"
        groups: list[_FetchGroup] = []
        collected = self._collect(root_type, [self._operation.definition.selection_set])
        for _, nodes in collected:
            name = nodes[0].name.value
            if name == TYPENAME:
                continue
            field = self._field(root_type, name)
            candidates = self._candidates(root_type, field)
            if not candidates:
                raise PlannerError(f"no subgraph can resolve {root_type.name}.{name} under the current overrides")
            group = self._root_group(groups, candidates, serial)
            self._add_field(group, root_type, field, nodes, group.entry, ())

        if not groups:
            return QueryPlan(node=None)
        nodes = [self._node_for(group) for group in groups]
        return QueryPlan(node=_flat_wrap("Sequence" if serial else "Parallel", nodes))

    # Schema lookups

    def _type(self, name: str) -> TypeInfo:
        info = self._supergraph.type_info(name)
        if info is None:
            raise PlannerError(f"type {name} is not an object type supported by the built-in planner")
        if info.is_abstract:
            raise PlannerError(f"abstract type {name} is not supported by the built-in planner")
        return info

    def _field(self, parent: TypeInfo, name: str) -> FieldInfo:
        info = parent.fields.get(name)
        if info is None:
            raise PlannerError(f"field {parent.name}.{name} is not plannable")
        return info

    def _resolvable(self, parent: TypeInfo, field: FieldInfo, service: str) -> bool:
        if not field.join_fields:
            return service in parent.graphs
        for join in field.join_fields:
            if join.graph is not None and join.graph != service:
                continue
            if join.graph is None and service not in parent.graphs:
                continue
            if join.external or join.used_overridden:
                continue
            if join.override_label is not None:
                label_enabled = join.override_label in self._enabled
                # The overriding subgraph owns the field only while the label is on.
                if join.override is not None:
                    return label_enabled
                return not label_enabled
            return True
        return False

    def _candidates(self, parent: TypeInfo, field: FieldInfo) -> list[str]:
        return [
            name for name in self._supergraph.subgraph_names if self._resolvable(parent, field, name)
        ]

    # Field collection

    def _collect(self, parent: TypeInfo, selection_sets: list[SelectionSetNode]) -> CollectedFields:
        collected: dict[str, list[FieldNode]] = {}

        def visit(selection_set: SelectionSetNode) -> None:
            for selection in selection_set.selections:
                self._reject_directives(selection)
                if isinstance(selection, FieldNode):
                    key = selection.alias.value if selection.alias else selection.name.value
                    collected.setdefault(key, []).append(selection)
                elif isinstance(selection, InlineFragmentNode):
                    condition = selection.type_condition.name.value if selection.type_condition else None
                    self._check_condition(parent, condition)
                    visit(selection.selection_set)
                elif isinstance(selection, FragmentSpreadNode):
                    fragment = self._operation.fragments[selection.name.value]
                    self._check_condition(parent, fragment.type_condition.name.value)
                    self._reject_directives(fragment)
                    visit(fragment.selection_set)

        for selection_set in selection_sets:
            visit(selection_set)
        return list(collected.items())

    def _check_condition(self, parent: TypeInfo, condition: Optional[str]) -> None:
        if condition is not None and condition != parent.name:
            raise PlannerError(
                f"type condition {condition} inside {parent.name} is not supported by the built-in planner"
            )

    def _reject_directives(self, node: object) -> None:
        for directive in getattr(node, "directives", None) or ():
            name = directive.name.value
            if name == "defer":
                if not self._config.enable_defer:
                    raise PlannerError("@defer is used but defer support is disabled")
                # No Defer nodes: deferred fragments are fetched inline.
                continue
            raise PlannerError(f"directive @{name} is not supported by the built-in planner")

    # Group construction

    def _root_group(self, groups: list[_FetchGroup], candidates: list[str], serial: bool) -> _FetchGroup:
        if serial:
            # Mutation fields must run in order, so only the last group can grow.
            if groups and groups[-1].service in candidates:
                return groups[-1]
        else:
            for group in groups:
                if group.service in candidates:
                    return group
        group = _FetchGroup(candidates[0])
        groups.append(group)
        return group

    def _add_field(
        self,
        group: _FetchGroup,
        parent: TypeInfo,
        field: FieldInfo,
        nodes: list[FieldNode],
        target: _SelectionSet,
        path: tuple[str, ...],
    ) -> None:
        self._check_requires(parent, field, group.service)
        first = nodes[0]
        response_name = first.alias.value if first.alias else first.name.value
        arguments = first.arguments or ()
        child = target.field(
            field.name,
            first.alias.value if first.alias else None,
            [(arg.name.value, print_ast(arg.value)) for arg in arguments],
        )
        for arg in arguments:
            group.use_variables(_variables_in(arg.value))

        sub_sets = [node.selection_set for node in nodes if node.selection_set is not None]
        if not sub_sets:
            return
        child_type = self._type(field.type_name)
        child_path = path + (response_name,)
        if field.is_list:
            child_path += (LIST_PATH_SEGMENT,)
        self._plan_fields(group, child_type, self._collect(child_type, sub_sets), child, child_path)

    def _plan_fields(
        self,
        group: _FetchGroup,
        parent: TypeInfo,
        collected: CollectedFields,
        target: _SelectionSet,
        path: tuple[str, ...],
    ) -> None:
        for _, nodes in collected:
            first = nodes[0]
            name = first.name.value
            if name == TYPENAME:
                target.field(TYPENAME, first.alias.value if first.alias else None)
                continue
            field = self._field(parent, name)
            if self._resolvable(parent, field, group.service):
                self._add_field(group, parent, field, nodes, target, path)
                continue
            dependent = self._entity_jump(group, parent, field, target, path)
            self._add_field(dependent, parent, field, nodes, dependent.entry, path)

    def _check_requires(self, parent: TypeInfo, field: FieldInfo, service: str) -> None:
        for join in field.join_fields:
            if join.graph == service and join.requires:
                raise PlannerError(
                    f"{parent.name}.{field.name} uses @requires in {service}, "
                    "which the built-in planner does not support"
                )

    def _entity_jump(
        self,
        group: _FetchGroup,
        parent: TypeInfo,
        field: FieldInfo,
        target: _SelectionSet,
        path: tuple[str, ...],
    ) -> _FetchGroup:
        options: list[tuple[str, SelectionSetNode]] = []
        for service in self._candidates(parent, field):
            if service == group.service:
                continue
            key = self._usable_key(parent, service, group.service)
            if key is not None:
                options.append((service, key))
        limit = self._config.paths_limit
        if limit:
            options = options[:limit]
        if not path or not options:
            raise PlannerError(
                f"cannot plan {parent.name}.{field.name}: no subgraph reachable from "
                f"{group.service} resolves it under the current overrides"
            )

        for dependent in group.dependents:
            if dependent.merge_path == path and dependent.entity_type == parent.name:
                if any(dependent.service == service for service, _ in options):
                    return dependent

        service, key = options[0]
        target.field(TYPENAME)
        _add_field_set(target, key)
        dependent = _FetchGroup(service, merge_path=path, entity_type=parent.name)
        dependent.representation.field(TYPENAME)  # type: ignore[union-attr]
        _add_field_set(dependent.representation, key)  # type: ignore[arg-type]
        group.dependents.append(dependent)
        return dependent

    def _usable_key(self, parent: TypeInfo, service: str, source: str) -> Optional[SelectionSetNode]:
        for key in parent.keys_for(service):
            selection_set = _parse_field_set(parent.name, key)
            resolvable = True
            for selection in selection_set.selections:
                name = selection.name.value  # type: ignore[union-attr]
                info = parent.fields.get(name)
                if info is None or not self._resolvable(parent, info, source):
                    resolvable = False
                    break
            if resolvable:
                return selection_set
        return None

    # Plan node construction

    def _node_for(self, group: _FetchGroup) -> PlanNode:
        fetch = self._fetch_node(group)
        node: PlanNode = fetch
        if group.entity_type is not None:
            node = FlattenNode(path=list(group.merge_path), node=fetch)
        if not group.dependents:
            return node
        children = [self._node_for(dependent) for dependent in group.dependents]
        return _flat_wrap("Sequence", [node, _flat_wrap("Parallel", children)])

    def _fetch_node(self, group: _FetchGroup) -> FetchNode:
        index = self._fetch_count
        self._fetch_count += 1

        selections = group.selections.freeze()
        requires = group.requires.freeze() if group.requires is not None else None
        operation_kind = "query" if group.entity_type is not None else self._operation.kind
        operation_name = None
        if self._operation.name:
            service = _NON_NAME_CHARS.sub("_", group.service)
            operation_name = f"{self._operation.name}__{service}__{index}"

        document = self._operation_document(group, selections, operation_kind, operation_name)
        return FetchNode(
            service_name=group.service,
            requires=requires,
            selections=selections,
            operation_kind=operation_kind,
            operation_name=operation_name,
            operation=strip_ignored_characters(print_ast(document)),
            variable_usages=list(group.variables),
        )

    def _operation_document(
        self,
        group: _FetchGroup,
        selections: list[Selection],
        operation_kind: str,
        operation_name: Optional[str],
    ) -> DocumentNode:
        variable_definitions = [
            VariableDefinitionNode(
                variable=VariableNode(name=NameNode(value=name)),
                type=parse_type(self._operation.variable_types[name]),
            )
            for name in group.variables
        ]
        selection_set = _selection_set_node(selections)
        if group.entity_type is not None:
            representations = VariableNode(name=NameNode(value="representations"))
            variable_definitions.insert(
                0,
                VariableDefinitionNode(variable=representations, type=parse_type("[_Any!]!")),
            )
            selection_set = SelectionSetNode(
                selections=(
                    FieldNode(
                        name=NameNode(value="_entities"),
                        arguments=(
                            ArgumentNode(name=NameNode(value="representations"), value=representations),
                        ),
                        selection_set=selection_set,
                    ),
                )
            )
        definition = OperationDefinitionNode(
            operation=OperationType(operation_kind),
            name=NameNode(value=operation_name) if operation_name else None,
            variable_definitions=tuple(variable_definitions),
            selection_set=selection_set,
        )
        return DocumentNode(definitions=(definition,))


def _flat_wrap(kind: str, nodes: list[PlanNode]) -> PlanNode:
    if not nodes:
        raise PlannerError("internal planner error: empty node list")
    if len(nodes) == 1:
        return nodes[0]
    flattened: list[PlanNode] = []
    for node in nodes:
        if node.kind == kind:
            flattened.extend(node.nodes)  # type: ignore[union-attr]
        else:
            flattened.append(node)
    if kind == "Parallel":
        return ParallelNode(nodes=flattened)
    return SequenceNode(nodes=flattened)


def _parse_field_set(type_name: str, field_set: str) -> SelectionSetNode:
    try:
        document = parse("{" + field_set + "}", no_location=True)
    except GraphQLError as exc:
        raise SchemaParseError(f"invalid key field set {field_set!r} on {type_name}") from exc
    definition = document.definitions[0]
    return definition.selection_set  # type: ignore[union-attr]


def _add_field_set(target: _SelectionSet, selection_set: SelectionSetNode) -> None:
    for selection in selection_set.selections:
        if not isinstance(selection, FieldNode):
            continue
        child = target.field(selection.name.value)
        if selection.selection_set is not None:
            _add_field_set(child, selection.selection_set)


def _variables_in(value: ValueNode) -> list[str]:
    if isinstance(value, VariableNode):
        return [value.name.value]
    if isinstance(value, ListValueNode):
        return [name for item in value.values for name in _variables_in(item)]
    if isinstance(value, ObjectValueNode):
        return [name for item in value.fields for name in _variables_in(item.value)]
    return []


def _selection_set_node(selections: list[Selection]) -> SelectionSetNode:
    nodes: list[object] = []
    for selection in selections:
        children = _selection_set_node(selection.selections) if selection.selections else None
        if isinstance(selection, FieldSelection):
            nodes.append(
                FieldNode(
                    alias=NameNode(value=selection.alias) if selection.alias else None,
                    name=NameNode(value=selection.name),
                    arguments=tuple(
                        ArgumentNode(name=NameNode(value=arg.name), value=parse_value(arg.value))
                        for arg in selection.arguments
                    ),
                    directives=(),
                    selection_set=children,
                )
            )
        else:
            nodes.append(
                InlineFragmentNode(
                    type_condition=(
                        NamedTypeNode(name=NameNode(value=selection.type_condition))
                        if selection.type_condition
                        else None
                    ),
                    directives=(),
                    selection_set=children,
                )
            )
    return SelectionSetNode(selections=tuple(nodes))
