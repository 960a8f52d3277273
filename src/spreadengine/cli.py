"""spreadengine CLI - deterministic command-line access to the engine.

Usage:
    spreadengine build --input FACTS.json [--deal-id ID]
    spreadengine metrics --input FACTS.json [--deal-id ID]
    spreadengine hash [--input PATH]
    spreadengine compare --facts FACTS.json --legacy SPREADS.json [--deal-id ID]
                         [--format json|markdown] [--profile default|relaxed]
    spreadengine mode [--privileged] [--deal-id ID] [--bank-id ID]

Facts input is either a JSON array of fact rows or an object with
"deal_id" and "facts". Legacy input is an array of rendered spreads or an
object with "spreads".

Exit codes:
    0: Success / parity PASS
    1: Internal error (unexpected)
    2: Invalid input / parity FAIL
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from spreadengine.authority.mode import ModeConfig, ModeConfigError, ModeContext, select_mode
from spreadengine.builder.base_values import extract_base_values
from spreadengine.builder.model_builder import build_financial_model
from spreadengine.calc.metric_graph import MetricCycleError, evaluate_metric_graph_with_diagnostics
from spreadengine.calc.registry import MetricRegistry
from spreadengine.calc.risk import evaluate_risk
from spreadengine.config import ConfigError, EngineSettings
from spreadengine.hashing.canonical import CanonicalizationError, hash_value
from spreadengine.models.facts import Fact
from spreadengine.parity.compare import compare_legacy_to_model
from spreadengine.parity.report import format_parity_report
from spreadengine.parity.thresholds import THRESHOLD_PROFILES, get_threshold_profile
from spreadengine.sources.facts import parse_facts
from spreadengine.sources.http import unwrap_list
from spreadengine.sources.legacy import LegacyLoadError, parse_spreads

DEFAULT_DEAL_ID = "cli"


class CliInputError(Exception):
    """Raised when CLI input cannot be read or parsed."""

    pass


def _output_json(data: Any) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2, default=str))


def _error(code: str, message: str) -> dict[str, Any]:
    return {"error": {"code": code, "message": message}}


def _load_json_input(input_path: str | None) -> Any:
    """Load JSON from a file, or stdin when no path is given.

    Raises:
        CliInputError: If the input is missing, empty or not JSON.
    """
    try:
        if input_path:
            with open(input_path, encoding="utf-8") as f:
                content = f.read()
        else:
            content = sys.stdin.read()
    except FileNotFoundError as e:
        raise CliInputError(f"File not found: {input_path}") from e
    except OSError as e:
        raise CliInputError(f"Cannot read input: {e}") from e

    if not content.strip():
        raise CliInputError("Empty input")
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise CliInputError(f"Invalid JSON: {e}") from e


def _load_facts(input_path: str | None, deal_id: str | None) -> tuple[str, list[Fact]]:
    data = _load_json_input(input_path)
    resolved = deal_id
    if resolved is None and isinstance(data, Mapping):
        resolved = data.get("deal_id")
    rows = [r for r in unwrap_list(data, "facts") if isinstance(r, Mapping)]
    return str(resolved or DEFAULT_DEAL_ID), parse_facts(rows)


def cmd_build(args: argparse.Namespace, settings: EngineSettings) -> int:
    """Build a model from facts and print it with its digest."""
    deal_id, facts = _load_facts(args.input, args.deal_id)
    model = build_financial_model(deal_id, facts, settings.builder_config())
    _output_json({"hash": hash_value(model), "model": model.to_dict()})
    return 0


def cmd_metrics(args: argparse.Namespace, settings: EngineSettings) -> int:
    """Build a model, evaluate the seed registry and the default risk policy."""
    deal_id, facts = _load_facts(args.input, args.deal_id)
    model = build_financial_model(deal_id, facts, settings.builder_config())
    registry = MetricRegistry.seed()
    result = evaluate_metric_graph_with_diagnostics(
        list(registry.definitions), extract_base_values(model)
    )
    risk = evaluate_risk(result.values)
    _output_json(
        {
            "computed_metrics": {
                k: (str(v) if v is not None else None) for k, v in result.values.items()
            },
            "deal_id": deal_id,
            "diagnostics": [d.model_dump(mode="json") for d in result.diagnostics],
            "policy_version": risk.policy_version,
            "registry_version": registry.version,
            "risk_flags": [f.model_dump(mode="json") for f in risk.flags],
        }
    )
    return 0


def cmd_hash(args: argparse.Namespace, settings: EngineSettings) -> int:
    """Print the canonical digest of any JSON document."""
    data = _load_json_input(args.input)
    _output_json({"sha256": hash_value(data)})
    return 0


def cmd_compare(args: argparse.Namespace, settings: EngineSettings) -> int:
    """Compare legacy spreads with the model built from facts.

    Exit codes:
        0: PASS
        2: FAIL
    """
    deal_id, facts = _load_facts(args.facts, args.deal_id)
    legacy = _load_json_input(args.legacy)
    spreads = parse_spreads(unwrap_list(legacy, "spreads"), deal_id)
    model = build_financial_model(deal_id, facts, settings.builder_config())
    report = compare_legacy_to_model(
        deal_id, spreads, model, get_threshold_profile(args.profile)
    )

    if args.format == "markdown":
        print(format_parity_report(report))
    else:
        _output_json(report.model_dump(mode="json"))
    return 0 if report.passed else 2


def cmd_mode(args: argparse.Namespace, settings: EngineSettings) -> int:
    """Resolve the engine mode for a context from SPREADENGINE_* variables."""
    config = ModeConfig.from_env()
    context = ModeContext(privileged=args.privileged, deal_id=args.deal_id, bank_id=args.bank_id)
    _output_json(select_mode(config, context).to_dict())
    return 0


COMMANDS = {
    "build": cmd_build,
    "metrics": cmd_metrics,
    "hash": cmd_hash,
    "compare": cmd_compare,
    "mode": cmd_mode,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="spreadengine",
        description="spreadengine - financial model computation and parity CLI",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    for name, help_text in [
        ("build", "Build a financial model from facts"),
        ("metrics", "Compute metrics, diagnostics and risk flags from facts"),
    ]:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--input",
            default=None,
            metavar="PATH",
            help="Path to facts JSON (reads from stdin if omitted)",
        )
        sub.add_argument("--deal-id", default=None, help="Deal identifier")

    hash_parser = subparsers.add_parser("hash", help="Canonical SHA-256 of a JSON document")
    hash_parser.add_argument(
        "--input",
        default=None,
        metavar="PATH",
        help="Path to JSON file (reads from stdin if omitted)",
    )

    compare_parser = subparsers.add_parser(
        "compare", help="Parity report: legacy spreads vs model built from facts"
    )
    compare_parser.add_argument("--facts", required=True, metavar="PATH", help="Facts JSON")
    compare_parser.add_argument(
        "--legacy", required=True, metavar="PATH", help="Legacy rendered spreads JSON"
    )
    compare_parser.add_argument("--deal-id", default=None, help="Deal identifier")
    compare_parser.add_argument(
        "--format", choices=["json", "markdown"], default="json", help="Output format"
    )
    compare_parser.add_argument(
        "--profile",
        choices=sorted(THRESHOLD_PROFILES),
        default="default",
        help="Threshold profile",
    )

    mode_parser = subparsers.add_parser("mode", help="Resolve the engine mode for a context")
    mode_parser.add_argument(
        "--privileged", action="store_true", default=False, help="Privileged context"
    )
    mode_parser.add_argument("--deal-id", default=None, help="Deal identifier")
    mode_parser.add_argument("--bank-id", default=None, help="Bank identifier")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success / PASS
        1: Internal error (unexpected)
        2: Invalid input / FAIL
    """
    try:
        parser = create_parser()
        args = parser.parse_args(argv)
        logging.basicConfig(
            level=getattr(logging, args.log_level),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )

        if args.command is None:
            parser.print_help()
            return 0

        settings = EngineSettings.from_env()
        return COMMANDS[args.command](args, settings)

    except (CliInputError, ConfigError, ModeConfigError, LegacyLoadError) as e:
        _output_json(_error("INVALID_INPUT", str(e)))
        return 2
    except (ValidationError, CanonicalizationError) as e:
        _output_json(_error("INVALID_INPUT", str(e)))
        return 2
    except MetricCycleError as e:
        _output_json(_error("METRIC_CYCLE", str(e)))
        return 2
    except Exception as e:
        # Fail-closed: unexpected errors return exit code 1
        _output_json(_error("INTERNAL_ERROR", str(e)))
        return 1


if __name__ == "__main__":
    sys.exit(main())
