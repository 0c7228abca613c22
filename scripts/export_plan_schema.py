#!/usr/bin/env python3
"""Export deterministic JSON schemas for query plans and analyzer results."""

from __future__ import annotations

import json
import pathlib
import sys
from typing import Optional

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from qp_analyzer.models.plan import QueryPlan  # noqa: E402
from qp_analyzer.models.result import DiffReport, PlanResult  # noqa: E402

MODELS = {
    "query_plan.schema.json": QueryPlan,
    "plan_result.schema.json": PlanResult,
    "diff_report.schema.json": DiffReport,
}


def main(out_dir: Optional[pathlib.Path] = None) -> list[pathlib.Path]:
    out_dir = out_dir or ROOT / "schemas"
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[pathlib.Path] = []
    for filename, model in MODELS.items():
        out_path = out_dir / filename
        out_path.write_text(
            json.dumps(model.model_json_schema(), indent=2, sort_keys=True, ensure_ascii=True) + "\n",
            encoding="utf-8",
        )
        print(f"wrote {out_path}")
        written.append(out_path)
    return written


if __name__ == "__main__":
    main()
