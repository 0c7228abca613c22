from pathlib import Path

import pytest

from qp_analyzer.core.errors import QueryParseError, SchemaParseError
from qp_analyzer.federation.operation import parse_operation
from qp_analyzer.federation.supergraph import parse_supergraph

ROOT = Path(__file__).resolve().parents[2]
SCHEMA = (ROOT / "example/supergraph.graphql").read_text(encoding="utf-8")
QUERY = (ROOT / "example/op.graphql").read_text(encoding="utf-8")


def test_reads_subgraphs_in_enum_order() -> None:
    supergraph = parse_supergraph(SCHEMA)
    assert supergraph.subgraph_names == ["A", "B", "entrypoint", "monolith"]
    assert supergraph.subgraph("entrypoint").url == "http://localhost:4000"
    assert supergraph.query_type == "Query"
    assert supergraph.mutation_type is None


def test_collects_override_labels_in_document_order() -> None:
    assert parse_supergraph(SCHEMA).override_labels == ("percent(50)", "percent(90)")


def test_reads_entity_keys_and_join_fields() -> None:
    entity = parse_supergraph(SCHEMA).type_info("T")
    assert entity is not None
    assert entity.keys_for("monolith") == ["id"]
    data1 = entity.fields["data1"]
    assert [join.graph for join in data1.join_fields] == ["A", "monolith"]
    assert data1.join_fields[0].override == "monolith"
    assert data1.join_fields[0].override_label == "percent(50)"


def test_plain_schema_is_not_a_supergraph() -> None:
    with pytest.raises(SchemaParseError):
        parse_supergraph("type Query { hello: String }")


def test_syntax_error_is_schema_parse_error() -> None:
    with pytest.raises(SchemaParseError):
        parse_supergraph("type Query {")


def test_operation_names_query_path_on_syntax_error() -> None:
    with pytest.raises(QueryParseError, match="example/bad.graphql"):
        parse_operation(SCHEMA, "query {", "example/bad.graphql")


def test_operation_is_validated_against_schema() -> None:
    with pytest.raises(QueryParseError):
        parse_operation(SCHEMA, "{ test { data3 } }", "example/op.graphql")


def test_operation_requires_single_operation() -> None:
    with pytest.raises(QueryParseError):
        parse_operation(SCHEMA, "query A { test { id } } query B { test { id } }", "ops.graphql")


def test_operation_reader_keeps_name_and_kind() -> None:
    operation = parse_operation(SCHEMA, QUERY, "example/op.graphql")
    assert operation.name == "Example"
    assert operation.kind == "query"
    assert operation.variable_types == {}
