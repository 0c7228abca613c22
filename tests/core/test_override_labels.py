from pathlib import Path

import pytest

from qp_analyzer.core.errors import SchemaParseError
from qp_analyzer.core.labels import override_labels

ROOT = Path(__file__).resolve().parents[2]
SCHEMA = (ROOT / "example/supergraph.graphql").read_text(encoding="utf-8")


class _ListingEngine:
    def __init__(self, labels: list[str]) -> None:
        self._labels = labels

    def override_labels(self, schema: str) -> list[str]:
        return list(self._labels)

    def build_plan(self, *args, **kwargs):  # pragma: no cover
        raise AssertionError("not used")


class _BrokenEngine(_ListingEngine):
    def override_labels(self, schema: str) -> list[str]:
        raise KeyError("join__Graph")


def test_example_schema_labels() -> None:
    assert override_labels(SCHEMA) == ["percent(50)", "percent(90)"]


def test_labels_are_stable_across_calls() -> None:
    assert override_labels(SCHEMA) == override_labels(SCHEMA)


def test_schema_without_labels_has_empty_catalog() -> None:
    schema = SCHEMA.replace(', overrideLabel: "percent(50)"', "").replace(', overrideLabel: "percent(90)"', "")
    assert override_labels(schema) == []


def test_invalid_schema_fails() -> None:
    with pytest.raises(SchemaParseError):
        override_labels("not a schema")


def test_duplicate_labels_from_engine_are_dropped() -> None:
    engine = _ListingEngine(["b", "a", "b"])
    assert override_labels("schema", engine=engine) == ["b", "a"]


def test_foreign_engine_errors_become_schema_parse_errors() -> None:
    with pytest.raises(SchemaParseError):
        override_labels("schema", engine=_BrokenEngine([]))
