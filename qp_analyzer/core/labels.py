"""Override label catalog."""

from __future__ import annotations

import logging
from typing import Optional

from qp_analyzer.adapters.engine_factory import create_plan_engine
from qp_analyzer.adapters.plan_engine import PlanEngine
from qp_analyzer.core.errors import AnalyzerError, SchemaParseError

LOGGER = logging.getLogger(__name__)


def override_labels(schema: str, engine: Optional[PlanEngine] = None) -> list[str]:
    """Return the ordered, de-duplicated override labels declared by ``schema``.

    Labels keep the engine's order (first-seen document order for the
    built-in engine); duplicates reported by an engine are dropped.
    """
    engine = engine or create_plan_engine()
    try:
        raw = engine.override_labels(schema)
    except AnalyzerError:
        raise
    except Exception as exc:
        raise SchemaParseError(f"failed to read override labels: {exc}") from exc

    labels: list[str] = []
    for label in raw:
        if label not in labels:
            labels.append(label)
    LOGGER.info("override condition labels: %s", labels)
    return labels
