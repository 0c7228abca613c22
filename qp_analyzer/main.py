"""Query plan analyzer command-line entrypoint."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

from qp_analyzer.adapters.engine_factory import EngineFactoryError
from qp_analyzer.config.settings import AnalyzerSettings, PlannerConfiguration, SettingsLoadError
from qp_analyzer.core.errors import AnalyzerError, PlannerError
from qp_analyzer.core.runtime import AnalyzerRuntime, resolve_settings

LOGGER = logging.getLogger("qp_analyzer")

LOG_LEVEL_ENV = "QPA_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
SEPARATOR = "-" * 71

EPILOG = """examples:
  qp-analyzer override-labels schema.graphql
  qp-analyzer plan-all schema.graphql query.graphql --json
  qp-analyzer plan-one schema.graphql query.graphql --override-all
  qp-analyzer plan-one schema.graphql query.graphql labelA labelB
  qp-analyzer compare-plans schema.graphql plan1.json plan2.json
"""


class CliUsageError(RuntimeError):
    """Command line could not be parsed."""


class InputFileError(RuntimeError):
    """An input file could not be decoded."""


class _ParserExit(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(status)
        self.status = status


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        raise CliUsageError(message)

    def exit(self, status: int = 0, message: Optional[str] = None) -> None:  # type: ignore[override]
        if message:
            sys.stderr.write(message)
        raise _ParserExit(status)


def _non_negative_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {raw!r}") from exc
    if value < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value}")
    return value


def _positive_int(raw: str) -> int:
    value = _non_negative_int(raw)
    if value < 1:
        raise argparse.ArgumentTypeError("expected an integer >= 1")
    return value


def build_parser() -> argparse.ArgumentParser:
    common = _ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, help="Settings file (default: $QPA_CONFIG_PATH)")
    common.add_argument("-v", "--verbose", action="store_true", help="Log progress at INFO")
    common.add_argument("--json", action="store_true", help="Print JSON")

    planner = _ArgumentParser(add_help=False)
    group = planner.add_argument_group("planner options")
    group.add_argument("--disable-generate-query-fragments", action="store_true")
    group.add_argument("--disable-defer-support", action="store_true")
    group.add_argument("--experimental-type-conditioned-fetching", action="store_true")
    group.add_argument("--experimental-plans-limit", type=_non_negative_int, metavar="N")
    group.add_argument("--experimental-paths-limit", type=_non_negative_int, metavar="N")

    parser = _ArgumentParser(
        prog="qp-analyzer",
        description="Query plan analyzer for supergraph override labels",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", metavar="<command>", parser_class=_ArgumentParser)
    commands.required = True

    labels = commands.add_parser("override-labels", parents=[common], help="List override labels in a schema")
    labels.add_argument("schema", help="Supergraph schema file ('-' for stdin)")

    plan_all = commands.add_parser("plan-all", parents=[common, planner], help="Build all possible query plans")
    plan_all.add_argument("schema")
    plan_all.add_argument("query")
    plan_all.add_argument("--workers", type=_positive_int, help="Plan combinations on N threads")
    plan_all.add_argument(
        "--max-override-labels",
        type=_non_negative_int,
        metavar="N",
        help="Refuse schemas declaring more than N labels",
    )

    plan_one = commands.add_parser("plan-one", parents=[common, planner], help="Build a single query plan")
    plan_one.add_argument("schema")
    plan_one.add_argument("query")
    plan_one.add_argument("labels", nargs="*", metavar="override-label", help="Override labels to apply")
    plan_one.add_argument("--override-all", action="store_true", help="Treat all override labels as applied")

    compare = commands.add_parser("compare-plans", parents=[common], help="Compare two query plans")
    compare.add_argument("schema")
    compare.add_argument("plan_a", metavar="plan1")
    compare.add_argument("plan_b", metavar="plan2")

    commands.add_parser("help", help="Show this help message")
    return parser


def _read_text(path: str) -> str:
    try:
        if path == "-":
            return sys.stdin.read()
        return Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        name = "stdin" if path == "-" else path
        raise InputFileError(f"{name} is not valid UTF-8") from exc


def _configure_logging(settings: AnalyzerSettings, verbose: bool) -> None:
    level_name = os.getenv(LOG_LEVEL_ENV, "").strip().upper() or settings.logging.level
    level = logging.INFO if verbose else logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    LOGGER.setLevel(level)


def _apply_cli_settings(settings: AnalyzerSettings, args: argparse.Namespace) -> AnalyzerSettings:
    planner: PlannerConfiguration = settings.planner
    for flag in (
        "disable_generate_query_fragments",
        "disable_defer_support",
        "experimental_type_conditioned_fetching",
    ):
        if getattr(args, flag, False):
            planner = replace(planner, **{flag: True})
    for limit in ("experimental_plans_limit", "experimental_paths_limit"):
        value = getattr(args, limit, None)
        if value is not None:
            planner = replace(planner, **{limit: value})

    matrix = settings.matrix
    if getattr(args, "workers", None) is not None:
        matrix = replace(matrix, workers=args.workers)
    if getattr(args, "max_override_labels", None) is not None:
        matrix = replace(matrix, max_override_labels=args.max_override_labels)
    return replace(settings, planner=planner, matrix=matrix)


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _run(args: argparse.Namespace, runtime: AnalyzerRuntime) -> int:
    schema = _read_text(args.schema)

    if args.command == "override-labels":
        labels = runtime.override_labels(schema)
        if args.json:
            print(_dump(labels))
        else:
            for label in labels:
                print(label)
        return 0

    if args.command == "plan-all":
        query = _read_text(args.query)
        results = runtime.build_all_plans(schema, query, args.query)
        if args.json:
            print(_dump([result.model_dump(mode="json") for result in results]))
            return 0
        for index, result in enumerate(results):
            print(SEPARATOR)
            print(f"Override Combination #{index}: {json.dumps(result.query_plan_config.override_conditions)}")
            print(SEPARATOR)
            print(result.query_plan_display)
            print()
        return 0

    if args.command == "plan-one":
        query = _read_text(args.query)
        result = runtime.build_one_plan(
            schema,
            query,
            args.query,
            override_all=args.override_all,
            override_labels=args.labels,
        )
        if args.json:
            print(_dump(result.model_dump(mode="json")))
        else:
            print(result.query_plan_display)
        return 0

    plan_a = _read_text(args.plan_a)
    plan_b = _read_text(args.plan_b)
    report = runtime.compare_plans(schema, plan_a, plan_b)
    if args.json:
        print(_dump(report.model_dump(mode="json") if report is not None else None))
    elif report is None:
        print("The two query plans are identical.")
    else:
        print("The two query plans are different:")
        print()
        print("--- Full Diff ---")
        print(report.full_diff)
        print("--- Diff Description ---")
        print(report.diff_description)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()

    if not argv or argv[0] in {"help", "-h", "--help"}:
        parser.print_help(sys.stdout if argv else sys.stderr)
        return 0 if argv else 1

    try:
        args = parser.parse_args(argv)
    except CliUsageError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except _ParserExit as exc:
        return exc.status

    try:
        settings = _apply_cli_settings(resolve_settings(args.config), args)
        _configure_logging(settings, args.verbose)
        runtime = AnalyzerRuntime(settings)
        return _run(args, runtime)
    except PlannerError as exc:
        if exc.combination_index is not None:
            LOGGER.error(
                "planning failed for combination #%d %s",
                exc.combination_index,
                exc.override_conditions,
            )
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except (AnalyzerError, SettingsLoadError, EngineFactoryError, InputFileError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
