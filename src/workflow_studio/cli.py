"""CLI entrypoint: validate, convert and lay out workflow JSON files."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from workflow_studio import __version__
from workflow_studio.core.config import EditorConfig
from workflow_studio.layout.engine import LayoutEngine
from workflow_studio.model.conversion import convert_to_graph_mode
from workflow_studio.model.errors import ConversionError, NoMatchingBranchError, StepNotFoundError
from workflow_studio.model.graph import StepGraph
from workflow_studio.model.routing import next_step
from workflow_studio.model.steps import Workflow
from workflow_studio.model.validation import validate_draft, validate_for_publish

logger = logging.getLogger(__name__)


def _parse_bindings(values: list[str] | None) -> dict[str, str]:
    bindings: dict[str, str] = {}
    for item in values or []:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got {item!r}")
        bindings[name.strip()] = value
    return bindings


def _load(path: Path) -> Workflow:
    raw: Any = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return Workflow.from_json(raw)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflow-studio",
        description="Validate, convert and lay out workflow definitions",
    )
    parser.add_argument("--version", action="version", version=f"workflow-studio {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Report draft warnings or publish errors")
    validate.add_argument("path", type=Path, help="Workflow JSON file")
    validate.add_argument(
        "--publish", action="store_true", help="Apply publish-time validation instead of draft"
    )
    validate.add_argument(
        "--strict", action="store_true", help="Treat condition type mismatches as errors"
    )

    convert = subparsers.add_parser("convert", help="Convert a legacy workflow to graph mode")
    convert.add_argument("path", type=Path, help="Workflow JSON file")
    convert.add_argument("-o", "--output", type=Path, default=None, help="Write result here")

    layout = subparsers.add_parser("layout", help="Print node positions and edge geometry")
    layout.add_argument("path", type=Path, help="Workflow JSON file")

    route = subparsers.add_parser("next-step", help="Evaluate routing from one step")
    route.add_argument("path", type=Path, help="Workflow JSON file")
    route.add_argument("--step", required=True, help="Current step id")
    route.add_argument(
        "--set",
        dest="bindings",
        action="append",
        default=None,
        help="Variable binding NAME=VALUE (repeatable)",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = EditorConfig()
    except ValidationError as e:
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    config.setup_logging()

    try:
        workflow = _load(args.path)
        graph = StepGraph(workflow)
    except (OSError, ValueError) as e:
        logger.error("Could not load workflow", extra={"path": str(args.path), "error": str(e)})
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.command == "validate":
        if args.publish:
            report = validate_for_publish(graph, config.limits, strict_conditions=args.strict)
        else:
            report = validate_draft(graph)
        for warning in report.warnings:
            print(f"warning: {warning}")
        for error in report.errors:
            print(f"error: {error}")
        return 0 if report.ok else 1

    if args.command == "convert":
        try:
            converted = convert_to_graph_mode(workflow)
        except ConversionError as e:
            for error in e.errors:
                print(f"error: {error}", file=sys.stderr)
            return 1
        text = json.dumps(converted.to_json(), indent=2, ensure_ascii=False) + "\n"
        if args.output is None:
            sys.stdout.write(text)
        else:
            args.output.write_text(text, encoding="utf-8")
            logger.info("Converted workflow written", extra={"path": str(args.output)})
        return 0

    if args.command == "layout":
        result = LayoutEngine(config.layout).compute_for(graph)
        print(json.dumps(result.to_json(), indent=2))
        return 0

    if args.command == "next-step":
        try:
            bindings = _parse_bindings(args.bindings)
            target = next_step(graph, args.step, bindings)
        except (argparse.ArgumentTypeError, StepNotFoundError, NoMatchingBranchError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(target if target is not None else "(end)")
        return 0

    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
