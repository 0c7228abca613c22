import pytest
from pydantic import ValidationError

from qp_analyzer.models.plan import FetchNode, FlattenNode, QueryPlan, SequenceNode, iter_fetch_nodes


def _fetch(service: str) -> dict:
    return {
        "kind": "Fetch",
        "service_name": service,
        "selections": [{"kind": "Field", "name": "id"}],
        "operation": "{id}",
    }


def test_plan_tree_validates_tagged_variants() -> None:
    plan = QueryPlan.model_validate(
        {
            "node": {
                "kind": "Sequence",
                "nodes": [
                    _fetch("entrypoint"),
                    {"kind": "Flatten", "path": ["test"], "node": _fetch("monolith")},
                ],
            }
        }
    )
    assert isinstance(plan.node, SequenceNode)
    assert isinstance(plan.node.nodes[1], FlattenNode)
    assert [fetch.service_name for fetch in iter_fetch_nodes(plan)] == ["entrypoint", "monolith"]


def test_empty_plan_has_no_node() -> None:
    assert QueryPlan.model_validate({}).node is None


def test_unknown_node_kind_is_rejected() -> None:
    with pytest.raises(ValidationError):
        QueryPlan.model_validate({"node": {"kind": "Condition", "nodes": []}})


def test_unknown_keys_are_rejected() -> None:
    payload = _fetch("A")
    payload["url"] = "http://localhost"
    with pytest.raises(ValidationError):
        FetchNode.model_validate(payload)


def test_flatten_path_segments_must_be_non_empty() -> None:
    with pytest.raises(ValidationError):
        FlattenNode.model_validate({"kind": "Flatten", "path": ["test", ""], "node": _fetch("A")})


def test_sequence_requires_children() -> None:
    with pytest.raises(ValidationError):
        SequenceNode.model_validate({"kind": "Sequence", "nodes": []})


def test_plan_is_frozen() -> None:
    plan = QueryPlan.model_validate({"node": _fetch("A")})
    with pytest.raises(ValidationError):
        plan.node = None  # type: ignore[misc]
