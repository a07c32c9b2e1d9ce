"""Command-line front-end for the module index."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import TextIO

from mii.config import CliOverrides, ConfigError
from mii.index import IndexStateError, ModuleInfo, PersistenceError, SearchHit
from mii.logging import configure_logging
from mii.service import MiiService, create_service, status_to_dict

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for the mii command."""
    parser = argparse.ArgumentParser(
        prog="mii", description="Find which environment module provides a command."
    )
    parser.add_argument("--modulepath", required=False, default=None)
    parser.add_argument("--data-dir", required=False, default=None)
    parser.add_argument("--fuzzy-threshold", type=int, required=False, default=None)
    parser.add_argument(
        "--expand-environment", choices=("true", "false"), required=False, default=None
    )
    parser.add_argument("--json", action="store_true", help="print results as JSON")
    parser.add_argument("-v", "--verbose", action="count", default=0)

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("build", help="rebuild the index from scratch")
    commands.add_parser("sync", help="re-analyze modules changed since the last run")
    exact = commands.add_parser("exact", help="find modules providing a command")
    exact.add_argument("query")
    search = commands.add_parser("search", help="find modules providing similar commands")
    search.add_argument("query")
    info = commands.add_parser("info", help="list the commands a module provides")
    info.add_argument("code")
    commands.add_parser("status", help="describe the persisted index")
    audit = commands.add_parser("audit", help="show recent operations from the audit log")
    audit.add_argument("--operation", default=None)
    audit.add_argument("--since", default=None, help="ISO-8601 UTC lower bound")
    audit.add_argument("--limit", type=int, default=50)
    return parser


def overrides_from_args(args: argparse.Namespace) -> CliOverrides:
    """Translate parsed arguments into configuration overrides."""
    expand_environment: bool | None = None
    if args.expand_environment == "true":
        expand_environment = True
    if args.expand_environment == "false":
        expand_environment = False
    return CliOverrides(
        modulepath=args.modulepath,
        data_dir=Path(args.data_dir).expanduser() if args.data_dir is not None else None,
        fuzzy_threshold=args.fuzzy_threshold,
        expand_environment=expand_environment,
    )


def run_command(service: MiiService, args: argparse.Namespace, out_stream: TextIO) -> int:
    """Run the selected command and print its result."""
    if args.command == "build":
        _print_summary(service.build(), args.json, out_stream)
        return EXIT_OK
    if args.command == "sync":
        _print_summary(service.sync(), args.json, out_stream)
        return EXIT_OK
    if args.command == "exact":
        _print_hits(service.search_exact(args.query), args.json, out_stream)
        return EXIT_OK
    if args.command == "search":
        _print_hits(service.search_fuzzy(args.query), args.json, out_stream)
        return EXIT_OK
    if args.command == "info":
        _print_info(service.info(args.code), args.json, out_stream)
        return EXIT_OK
    if args.command == "audit":
        events = service.audit_events(
            operation=args.operation, since=args.since, limit=args.limit
        )
        _print_events(events, args.json, out_stream)
        return EXIT_OK
    payload = status_to_dict(service.status())
    payload["effective_config"] = service.config.to_public_dict()
    _print_summary(payload, args.json, out_stream)
    return EXIT_OK


def main(
    argv: list[str] | None = None,
    out_stream: TextIO | None = None,
    err_stream: TextIO | None = None,
) -> int:
    """Entrypoint for the mii command."""
    out = out_stream if out_stream is not None else sys.stdout
    err = err_stream if err_stream is not None else sys.stderr
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, stream=err)
    try:
        service = create_service(cli_overrides=overrides_from_args(args))
        return run_command(service, args, out)
    except ConfigError as exc:
        err.write(f"mii: error: {exc}\n")
        return EXIT_CONFIG_ERROR
    except (PersistenceError, IndexStateError, OSError) as exc:
        err.write(f"mii: error: {exc}\n")
        return EXIT_FAILURE


def _print_summary(payload: dict[str, object], as_json: bool, out: TextIO) -> None:
    if as_json:
        out.write(f"{json.dumps(payload, sort_keys=True)}\n")
        return
    for key in sorted(payload):
        out.write(f"{key}: {payload[key]}\n")


def _print_hits(hits: list[SearchHit], as_json: bool, out: TextIO) -> None:
    if as_json:
        out.write(f"{json.dumps([asdict(hit) for hit in hits], sort_keys=True)}\n")
        return
    for hit in hits:
        out.write(f"{hit.command}\t{hit.module_code}\t{hit.module_path}\n")


def _print_info(modules: list[ModuleInfo], as_json: bool, out: TextIO) -> None:
    if as_json:
        out.write(f"{json.dumps([asdict(module) for module in modules], sort_keys=True)}\n")
        return
    for module in modules:
        out.write(f"{module.code}\t{module.path}\n")
        for command in module.commands:
            out.write(f"    {command}\n")


def _print_events(events: list[dict[str, object]], as_json: bool, out: TextIO) -> None:
    if as_json:
        out.write(f"{json.dumps(events, sort_keys=True)}\n")
        return
    for event in events:
        outcome = "ok" if event.get("ok") else event.get("error_code")
        out.write(
            f"{event.get('timestamp')}\t{event.get('operation')}\t{outcome}\t"
            f"{event.get('duration_ms')}ms\n"
        )


if __name__ == "__main__":
    raise SystemExit(main())
