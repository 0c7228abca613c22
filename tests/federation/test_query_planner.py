from pathlib import Path

import pytest

from qp_analyzer.config.settings import PlannerConfiguration
from qp_analyzer.core.errors import PlannerError
from qp_analyzer.federation.display import render_query_plan, summarize_node
from qp_analyzer.federation.operation import parse_operation
from qp_analyzer.federation.query_planner import QueryPlanner
from qp_analyzer.federation.supergraph import load_supergraph
from qp_analyzer.models.plan import FetchNode, FlattenNode, ParallelNode, QueryPlan, SequenceNode

ROOT = Path(__file__).resolve().parents[2]
SCHEMA = (ROOT / "example/supergraph.graphql").read_text(encoding="utf-8")
QUERY = (ROOT / "example/op.graphql").read_text(encoding="utf-8")
CATALOG_SCHEMA = (ROOT / "tests/federation/fixtures/catalog_supergraph.graphql").read_text(encoding="utf-8")

NO_OVERRIDES_DISPLAY = """QueryPlan {
  Sequence {
    Fetch(service: "entrypoint") {
      {
        test {
          __typename
          id
        }
      }
    },
    Flatten(path: "test") {
      Fetch(service: "monolith") {
        {
          ... on T {
            __typename
            id
          }
        } =>
        {
          ... on T {
            data1
            data2
          }
        }
      },
    },
  },
}"""


def _plan(
    query: str = QUERY,
    labels: tuple[str, ...] = (),
    config: PlannerConfiguration = PlannerConfiguration(),
) -> QueryPlan:
    planner = QueryPlanner(load_supergraph(SCHEMA), config)
    return planner.build_query_plan(parse_operation(SCHEMA, query, "example/op.graphql"), labels)


def test_no_overrides_fetches_everything_from_monolith() -> None:
    plan = _plan()
    assert render_query_plan(plan) == NO_OVERRIDES_DISPLAY


def test_both_labels_move_fields_to_new_subgraphs() -> None:
    plan = _plan(labels=("percent(50)", "percent(90)"))
    assert isinstance(plan.node, SequenceNode)
    parallel = plan.node.nodes[1]
    assert isinstance(parallel, ParallelNode)
    services = [child.node.service_name for child in parallel.nodes]  # type: ignore[union-attr]
    assert services == ["A", "B"]


def test_fetch_operations_are_minified_subgraph_queries() -> None:
    plan = _plan()
    assert isinstance(plan.node, SequenceNode)
    root = plan.node.nodes[0]
    assert isinstance(root, FetchNode)
    assert root.operation == "query Example__entrypoint__0{test{__typename id}}"
    assert root.operation_name == "Example__entrypoint__0"
    assert root.requires is None

    flatten = plan.node.nodes[1]
    assert isinstance(flatten, FlattenNode)
    assert flatten.path == ["test"]
    assert "_entities(representations:$representations)" in flatten.node.operation  # type: ignore[union-attr]


def test_root_only_query_is_a_single_fetch() -> None:
    plan = _plan(query="{ test { id } }")
    assert isinstance(plan.node, FetchNode)
    assert plan.node.service_name == "entrypoint"
    assert plan.node.operation_name is None


def test_summary_is_single_line() -> None:
    plan = _plan(labels=("percent(90)",))
    summary = summarize_node(plan.node)
    assert "\n" not in summary
    assert summary.startswith('Sequence[Fetch(service: "entrypoint"), Parallel[')


def test_selection_directives_are_rejected() -> None:
    query = "query Example { test { data1 @include(if: true) } }"
    with pytest.raises(PlannerError, match="@include"):
        _plan(query=query)


def test_planner_does_not_share_state_between_calls() -> None:
    first = _plan(labels=("percent(50)",))
    _plan(labels=("percent(90)",))
    assert _plan(labels=("percent(50)",)) == first


def test_defer_is_rejected_when_defer_support_is_disabled() -> None:
    query = "query Example { test { ... @defer { data1 } } }"
    with pytest.raises(PlannerError, match="defer support is disabled"):
        _plan(query=query, config=PlannerConfiguration(disable_defer_support=True))


def test_deferred_fragment_is_fetched_inline_when_defer_support_is_enabled() -> None:
    deferred = _plan(query="query Example { test { ... @defer { data1 } } }")
    inline = _plan(query="query Example { test { data1 } }")
    assert deferred == inline


def _plan_catalog(query: str, config: PlannerConfiguration = PlannerConfiguration()) -> QueryPlan:
    planner = QueryPlanner(load_supergraph(CATALOG_SCHEMA), config)
    return planner.build_query_plan(parse_operation(CATALOG_SCHEMA, query, "catalog.graphql"), ())


def test_list_fields_flatten_through_every_item() -> None:
    plan = _plan_catalog("query Q($n: Int) { tests(first: $n) { id rating } }")
    assert isinstance(plan.node, SequenceNode)
    root, flatten = plan.node.nodes
    assert isinstance(root, FetchNode)
    assert root.operation == "query Q__entrypoint__0($n:Int){tests(first:$n){id __typename}}"
    assert root.variable_usages == ["n"]

    assert isinstance(flatten, FlattenNode)
    assert flatten.path == ["tests", "@"]
    assert flatten.node.service_name == "reviews"  # type: ignore[union-attr]
    assert flatten.node.variable_usages == []  # type: ignore[union-attr]
    assert 'Flatten(path: "tests.@")' in render_query_plan(plan)


def test_entity_jumps_reuse_a_fetch_that_can_resolve_the_field() -> None:
    plan = _plan_catalog("{ tests { rating price } }")
    assert isinstance(plan.node, SequenceNode)
    assert len(plan.node.nodes) == 2
    flatten = plan.node.nodes[1]
    assert isinstance(flatten, FlattenNode)
    assert flatten.node.service_name == "reviews"  # type: ignore[union-attr]


def test_paths_limit_bounds_entity_jump_candidates() -> None:
    config = PlannerConfiguration(experimental_paths_limit=1)
    plan = _plan_catalog("{ tests { rating price } }", config)
    assert isinstance(plan.node, SequenceNode)
    parallel = plan.node.nodes[1]
    assert isinstance(parallel, ParallelNode)
    services = [child.node.service_name for child in parallel.nodes]  # type: ignore[union-attr]
    assert services == ["reviews", "pricing"]


def test_mutation_root_fields_run_in_sequence() -> None:
    plan = _plan_catalog("mutation Serial { m1 m2 m3 }")
    assert isinstance(plan.node, SequenceNode)
    fetches = plan.node.nodes
    assert len(fetches) == 3
    assert all(isinstance(fetch, FetchNode) for fetch in fetches)
    assert [fetch.service_name for fetch in fetches] == ["entrypoint", "pricing", "entrypoint"]  # type: ignore[union-attr]
    assert [fetch.operation_kind for fetch in fetches] == ["mutation"] * 3  # type: ignore[union-attr]
    assert fetches[2].operation == "mutation Serial__entrypoint__2{m3}"  # type: ignore[union-attr]


def test_adjacent_mutation_fields_share_a_fetch() -> None:
    plan = _plan_catalog("mutation { m1 m3 m2 }")
    assert isinstance(plan.node, SequenceNode)
    services = [fetch.service_name for fetch in plan.node.nodes]  # type: ignore[union-attr]
    assert services == ["entrypoint", "pricing"]
