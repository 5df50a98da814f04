"""Command-line interface for model-audit."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, cast

from colorama import Fore, Style

from .container import ServiceContainer, create_container
from .domain import SUITE_BIAS, SUITE_CENSORSHIP, SUITE_SIDECHANNEL, VALID_SUITES, AuditRecord, ComparisonRecord
from .exceptions import ModelAuditException
from .infrastructure.config_manager import ConfigurationManager
from .logging_config import color_enabled, configure_logging
from .service import AuditService

DEFAULT_STORE = "model-audit-data"
DEFAULT_SUITES = [SUITE_CENSORSHIP, SUITE_BIAS, SUITE_SIDECHANNEL]


def build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="model-audit",
        description="Audit LLM endpoints for refusal, bias and side-channel behaviour.",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML or JSON configuration file")
    parser.add_argument(
        "--store",
        type=Path,
        default=None,
        help=f"Directory for JSON records (default: storage.path from config, else ./{DEFAULT_STORE})",
    )
    parser.add_argument("--verbose", action="store_true", help="Log progress at INFO level.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging to trace HTTP calls.")

    sub = parser.add_subparsers(dest="command", required=True)

    register = sub.add_parser("register", help="Register or update a model configuration")
    register.add_argument("--name", required=True)
    register.add_argument("--provider", required=True, help="Adapter provider (openai, anthropic, ollama)")
    register.add_argument("--version", required=True, help="Version label for this configuration")
    register.add_argument("--model", dest="backend_model", default=None, help="Backend model identifier")
    register.add_argument("--base-url", default=None)
    register.add_argument("--api-key", default=None)
    register.add_argument(
        "--option",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra provider configuration entry (repeatable)",
    )

    run = sub.add_parser("run", help="Run an audit and wait for it to finish")
    run.add_argument("model_id")
    run.add_argument(
        "--suites",
        nargs="+",
        default=list(DEFAULT_SUITES),
        help=f"Suites to run (valid: {', '.join(VALID_SUITES)})",
    )

    compare = sub.add_parser("compare", help="Compare two completed audits")
    compare.add_argument("audit_a")
    compare.add_argument("audit_b")

    export = sub.add_parser("export", help="Export an audit record")
    export.add_argument("audit_id")
    export.add_argument("--format", default="json")
    export.add_argument("--output", type=Path, default=None, help="Write to file instead of stdout")

    serve = sub.add_parser("serve", help="Serve the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=3000)

    return parser


def _log_level(debug: bool, verbose: bool) -> str:
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    return "WARNING"


def _color(text: str, code: str, use_color: bool) -> str:
    if not use_color:
        return text
    return f"{code}{text}{Style.RESET_ALL}"


def _parse_options(options: List[str]) -> Dict[str, Any]:
    parsed: Dict[str, Any] = {}
    for option in options:
        key, sep, value = option.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got {option!r}")
        try:
            parsed[key] = json.loads(value)
        except json.JSONDecodeError:
            parsed[key] = value
    return parsed


def _storage_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    if args.store is not None:
        return {"storage": {"backend": "json", "path": str(args.store)}}
    if ConfigurationManager(config_file=args.config).get("storage.path"):
        return {}
    # Records must survive between invocations.
    return {"storage": {"backend": "json", "path": DEFAULT_STORE}}


def _print_summary(audit: AuditRecord, use_color: bool) -> None:
    status_color = Fore.GREEN if audit.status == "completed" else Fore.RED
    print(f"Audit {audit.id} [{_color(audit.status, status_color + Style.BRIGHT, use_color)}]")
    print(f"  Suites:    {', '.join(audit.test_suites)}")
    if audit.error:
        print(f"  Error:     {_color(audit.error, Fore.RED, use_color)}")
        return
    summary = audit.summary
    print(f"  Total:     {summary.total_tests}")
    print(f"  Passed:    {_color(str(summary.passed), Fore.GREEN, use_color)}")
    print(f"  Failed:    {_color(str(summary.failed), Fore.YELLOW, use_color)}")
    print(f"  Errors:    {_color(str(summary.errors), Fore.RED, use_color)}")
    print(f"  Avg (ms):  {summary.average_latency:.1f}")
    for result in audit.results.sidechannel or []:
        risk_color = {"low": Fore.GREEN, "medium": Fore.YELLOW}.get(result.risk_level, Fore.RED)
        print(f"  {result.test_name}: {_color(result.risk_level, risk_color, use_color)}")
        for anomaly in result.anomalies:
            print(f"    - {anomaly}")


def _print_comparison(comparison: ComparisonRecord, use_color: bool) -> None:
    print(f"Comparison {comparison.id}: {comparison.model_a_name} vs {comparison.model_b_name}")
    tier_colors = {"high": Fore.RED + Style.BRIGHT, "medium": Fore.YELLOW, "low": Fore.GREEN}
    for diff in comparison.differences:
        tier = _color(diff.significance, tier_colors.get(diff.significance, ""), use_color)
        print(
            f"  {diff.category:<12} {diff.metric:<20} A={diff.model_a_value!s:<10.10} "
            f"B={diff.model_b_value!s:<10.10} diff={diff.difference:.3f} [{tier}]"
        )
    summary = comparison.summary
    print(
        f"  {summary.total_differences} differences, {summary.significant_differences} significant; "
        f"A better on {summary.model_a_better}, B better on {summary.model_b_better}"
    )


def _command_register(service: AuditService, args: argparse.Namespace) -> int:
    config = _parse_options(args.option)
    if args.backend_model:
        config["model"] = args.backend_model
    if args.base_url:
        config["base_url"] = args.base_url
    if args.api_key:
        config["api_key"] = args.api_key
    model = service.upsert_model(args.name, args.provider, args.version, config)
    print(model.id)
    return 0


def _command_run(service: AuditService, args: argparse.Namespace, use_color: bool) -> int:
    handle = service.start_audit(args.model_id, args.suites)
    print(f"Started audit {handle.run_id}", file=sys.stderr)
    # A failed run is already persisted as failed; its record is reported below.
    handle.future.exception()
    audit = service.get_audit(handle.run_id)
    if audit is None:
        return 1
    _print_summary(audit, use_color)
    return 0 if audit.status == "completed" else 1


def _command_compare(service: AuditService, args: argparse.Namespace, use_color: bool) -> int:
    _print_comparison(service.compare_audits(args.audit_a, args.audit_b), use_color)
    return 0


def _command_export(service: AuditService, args: argparse.Namespace) -> int:
    body = service.export_audit(args.audit_id, args.format)
    if args.output is None:
        sys.stdout.write(body.decode("utf-8") + "\n")
    else:
        args.output.write_bytes(body)
        print(f"Wrote {args.output}", file=sys.stderr)
    return 0


def _command_serve(container: ServiceContainer, args: argparse.Namespace) -> int:
    import uvicorn

    from .webapp import create_app

    uvicorn.run(create_app(container=container), host=args.host, port=args.port)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    use_color = color_enabled()
    configure_logging(level=_log_level(args.debug, args.verbose), use_color=use_color)

    container: Optional[ServiceContainer] = None
    try:
        container = create_container(_storage_overrides(args), config_file=args.config)
        manager = cast(ConfigurationManager, container.resolve(ConfigurationManager))
        level = _log_level(args.debug, args.verbose)
        if not (args.debug or args.verbose):
            level = str(manager.get("logging.level", level))
        log_file = manager.get("logging.file")
        configure_logging(level=level, log_file=Path(log_file) if log_file else None, use_color=use_color)
        if args.command == "serve":
            return _command_serve(container, args)

        service = cast(AuditService, container.resolve(AuditService))
        if args.command == "register":
            return _command_register(service, args)
        if args.command == "run":
            return _command_run(service, args, use_color)
        if args.command == "compare":
            return _command_compare(service, args, use_color)
        if args.command == "export":
            return _command_export(service, args)
        parser.error(f"Unknown command: {args.command}")
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    except ModelAuditException as exc:
        print(_color(f"Error: {exc}", Fore.RED, use_color), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n[Interrupted] Exiting.")
        return 130
    finally:
        if container is not None:
            container.clear()
    return 2


if __name__ == "__main__":
    sys.exit(main())
