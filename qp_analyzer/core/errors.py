"""Analyzer error taxonomy."""

from __future__ import annotations

from typing import Optional, Sequence


class AnalyzerError(RuntimeError):
    """Base class of every failure reported by the analyzer."""


class SchemaParseError(AnalyzerError):
    """Supergraph schema cannot be parsed or is not a supergraph."""


class QueryParseError(AnalyzerError):
    """Operation document cannot be parsed or validated."""


class PlannerError(AnalyzerError):
    """The planning engine failed to produce a plan."""

    def __init__(
        self,
        message: str,
        combination_index: Optional[int] = None,
        override_conditions: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message)
        self.combination_index = combination_index
        self.override_conditions = list(override_conditions) if override_conditions is not None else None


class CombinationLimitExceeded(AnalyzerError):
    """Label count would enumerate more combinations than the ceiling allows."""

    def __init__(self, label_count: int, ceiling: int) -> None:
        super().__init__(
            f"schema declares {label_count} override labels ({1 << label_count} combinations); "
            f"the combination ceiling is {ceiling} labels ({1 << ceiling} combinations)"
        )
        self.label_count = label_count
        self.ceiling = ceiling


class InvalidLabelError(AnalyzerError):
    """A requested override label is unknown or repeated."""

    def __init__(self, message: str, label: str, available: Sequence[str]) -> None:
        super().__init__(message)
        self.label = label
        self.available = list(available)


class PlanFormatError(AnalyzerError):
    """A supplied plan value is not a well-formed plan tree."""
