"""Command-line entry point for jira-note-sync.

Subcommands map one-to-one onto ``SyncOrchestrator`` operations, plus
``get`` / ``search`` for raw issue lookups and ``convert`` for offline
markup conversion. All user-facing output goes to stdout; logs go to
stderr (and optionally a log file).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import ensure_config, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .converters import convert
from .converters.markdown_to_wiki import convert_with_warnings as markdown_convert
from .converters.wiki_to_markdown import convert_with_warnings as wiki_convert
from .core.async_utils import init_semaphore, run_sync_limited
from .core.client import JiraClient
from .documents import FileDocumentHost
from .errors import JiraSyncError
from .file_handler import read_file_with_encoding
from .logger import setup_logging
from .sync import (
    ExpressionCompiler,
    FieldMappingRegistry,
    SyncOrchestrator,
    format_batch_report,
    report_to_json,
)

logger = logging.getLogger(__name__)

_CONVERT_DIRECTIONS = ("auto", "to-markdown", "to-wiki")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jira-note-sync",
        description="Synchronize Markdown notes with Jira issues",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create or update the issue behind a note
  jira-note-sync push "jira-issues/Fix login (PROJ-1).md"

  # Refresh a note from Jira
  jira-note-sync pull "jira-issues/Fix login (PROJ-1).md"

  # List transitions, then apply one
  jira-note-sync status "jira-issues/Fix login (PROJ-1).md"
  jira-note-sync status "jira-issues/Fix login (PROJ-1).md" --transition 31

  # Import every issue a JQL query returns
  jira-note-sync search "project = PROJ AND status = Open" --import

  # Convert wiki markup to Markdown (stdin when no file is given)
  jira-note-sync convert to-markdown description.txt

Credentials are read from JIRA_URL, JIRA_USERNAME, JIRA_PASSWORD and
JIRA_API_TOKEN (or .env) when not passed on the command line.
        """,
    )
    parser.add_argument(
        "--url",
        help="Override Jira base URL (takes precedence over JIRA_URL and config files)",
    )
    parser.add_argument("--username", help="Override Jira username")
    parser.add_argument(
        "--password",
        help="Override Jira password"
        " (visible in process list -- prefer JIRA_PASSWORD env var for security)",
    )
    parser.add_argument(
        "--token", dest="api_token", help="API token for basic or bearer auth"
    )
    parser.add_argument(
        "--auth-method",
        choices=("session", "basic", "bearer"),
        help="How to authenticate (default: session)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--root",
        default=".",
        help="Folder holding the notes; note paths are relative to it (default: .)",
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"jira-note-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    get = sub.add_parser("get", help="Print an issue as JSON")
    get.add_argument("key", help="Issue key, e.g. PROJ-1")

    push = sub.add_parser("push", help="Create or update the issue behind a note")
    push.add_argument("note", help="Note path")

    pull = sub.add_parser("pull", help="Refresh a note from its issue")
    pull.add_argument("note", help="Note path")

    status = sub.add_parser(
        "status", help="List workflow transitions or apply one"
    )
    status.add_argument("note", help="Note path")
    status.add_argument("--transition", help="Transition id to apply")

    worklog = sub.add_parser(
        "worklog", help="Post the work-log batch stored in a note's frontmatter"
    )
    worklog.add_argument("note", help="Note path")
    worklog.add_argument("--json", action="store_true", help="Print the report as JSON")

    search = sub.add_parser("search", help="Run a JQL query")
    search.add_argument("jql", help="JQL query")
    search.add_argument("--limit", type=int, help="Maximum number of issues")
    search.add_argument(
        "--import",
        dest="do_import",
        action="store_true",
        help="Create or refresh a note for every result",
    )
    search.add_argument("--json", action="store_true", help="Print results as JSON")

    conv = sub.add_parser("convert", help="Convert between wiki markup and Markdown")
    conv.add_argument("direction", choices=_CONVERT_DIRECTIONS)
    conv.add_argument("file", nargs="?", help="Input file (default: stdin)")

    sub.add_parser("init-config", help="Write a starter config file if none exists")

    return parser


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in ("url", "username", "password", "api_token", "auth_method"):
        value = getattr(args, name, None)
        if value:
            overrides[name] = value
    if args.insecure:
        overrides["insecure"] = True
    if args.debug:
        overrides["debug"] = True
    return overrides


def _load_connection(args: argparse.Namespace, unified: UnifiedConfig) -> Config:
    """Resolve CLI > env > YAML > default for the Jira connection."""
    overrides = _cli_overrides(args)
    yaml_fallbacks = {
        k: v for k, v in unified.jira.model_dump().items() if v is not None
    }
    return load_config(
        url=overrides.get("url"),
        username=overrides.get("username"),
        password=overrides.get("password"),
        api_token=overrides.get("api_token"),
        auth_method=overrides.get("auth_method"),
        insecure=overrides.get("insecure", False),
        debug=overrides.get("debug", False),
        yaml_fallbacks=yaml_fallbacks,
    )


def _build_orchestrator(
    client: JiraClient, unified: UnifiedConfig, root: str
) -> SyncOrchestrator:
    compiler = ExpressionCompiler(
        enable_validation=unified.field_mapping.enable_field_validation
    )
    registry = FieldMappingRegistry(unified.field_mapping.mappings, compiler)
    return SyncOrchestrator(
        client=client,
        host=FileDocumentHost(root),
        registry=registry,
        notes=unified.notes,
        worklog_key=unified.worklog.frontmatter_key,
    )


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _run_convert(args: argparse.Namespace) -> int:
    if args.file:
        text, _ = read_file_with_encoding(Path(args.file))
    else:
        text = sys.stdin.read()
    if args.direction == "to-markdown":
        result = wiki_convert(text)
    elif args.direction == "to-wiki":
        result = markdown_convert(text)
    else:
        result = convert(text)
    for warning in result.warnings:
        logger.warning("%s", warning)
    sys.stdout.write(result.text)
    if result.text and not result.text.endswith("\n"):
        sys.stdout.write("\n")
    return 0


async def _dispatch(
    args: argparse.Namespace, config: Config, unified: UnifiedConfig
) -> int:
    init_semaphore(config.max_parallel_requests)
    client = JiraClient(config)
    orchestrator = _build_orchestrator(client, unified, args.root)

    if args.command == "get":
        _print_json(await run_sync_limited(client.fetch_issue, args.key))
        return 0

    if args.command == "push":
        key = await orchestrator.push_to_remote(args.note)
        print(f"Pushed {args.note} -> {key}")
        return 0

    if args.command == "pull":
        issue = await orchestrator.fetch_and_pull(args.note)
        print(f"Pulled {issue.get('key')} -> {args.note}")
        return 0

    if args.command == "status":
        transitions = await orchestrator.fetch_transitions(args.note)
        if not args.transition:
            for t in transitions:
                print(f"{t['id']}\t{t['action']}\t-> {t['status']}")
            return 0
        match = next((t for t in transitions if t["id"] == args.transition), None)
        if match is None:
            print(
                f"ERROR: Transition {args.transition} is not available",
                file=sys.stderr,
            )
            return 1
        await orchestrator.transition_status(args.note, match["id"], match["status"])
        print(f"{args.note}: {match['action']} -> {match['status']}")
        return 0

    if args.command == "worklog":
        report = await orchestrator.post_work_log_from_document(args.note)
        if args.json:
            _print_json(report_to_json(report))
        else:
            print(format_batch_report(report))
        return 0 if not report.errors else 1

    if args.command == "search":
        if args.do_import:
            report = await orchestrator.import_issues_by_query(args.jql, args.limit)
            if args.json:
                _print_json(report_to_json(report))
            else:
                print(format_batch_report(report))
            return 0 if not report.errors else 1
        issues = await run_sync_limited(
            client.fetch_issues_by_query, args.jql, args.limit
        )
        if args.json:
            _print_json(issues)
        else:
            for issue in issues:
                summary = (issue.get("fields") or {}).get("summary", "")
                print(f"{issue.get('key')}\t{summary}")
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def run(argv: list[str] | None = None) -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # .env first so ${VAR} interpolation in YAML can see its values
    load_dotenv()

    try:
        unified = build_config(load_hierarchical_config())
    except Exception as e:
        print(f"ERROR: Could not load config: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(
        mode="cli",
        debug=args.debug or unified.jira.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=unified.logging.format,
        level=unified.logging.level,
    )

    if args.command == "init-config":
        print(f"Config file: {ensure_config()}")
        sys.exit(0)

    try:
        if args.command == "convert":
            sys.exit(_run_convert(args))
        config = _load_connection(args, unified)
        sys.exit(asyncio.run(_dispatch(args, config, unified)))
    except (JiraSyncError, ValueError, OSError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
