"""Command-line interface for the inbox assistant.

Subcommands:

- ``run``: fetch a Gmail message and run the static-rule pipeline on it.
- ``match``: dry-run the rule matcher against header values, no Gmail or LLM.
- ``usage``: summarize recorded LLM usage, optionally over a recent window.

Usage::

    python -m inbox_assistant.cli run --message-id 18c2f0a1b2c3d4e5
    python -m inbox_assistant.cli match --rules config/rules.yaml --from news@example.com
    python -m inbox_assistant.cli usage --last 7d --format json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from inbox_assistant.domain.models import MessageHeaders, ParsedMessage
from inbox_assistant.rules.loader import load_rules
from inbox_assistant.rules.matcher import find_matching_rule


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with its three subcommands.

    Returns:
        A configured :class:`argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(description="Inbox rules assistant")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run the static-rule pipeline on one message")
    run.add_argument("--message-id", required=True, help="Gmail message ID")

    match = subparsers.add_parser("match", help="Show which rule would match a message")
    match.add_argument("--rules", type=str, default="config/rules.yaml", help="Rules YAML file")
    match.add_argument("--from", dest="from_", default="", help="From header")
    match.add_argument("--to", default="", help="To header")
    match.add_argument("--subject", default="", help="Subject header")
    match.add_argument("--body", default="", help="Plain text body")

    usage = subparsers.add_parser("usage", help="Summarize recorded LLM usage")
    usage.add_argument("--last", type=str, help='Shorthand duration (e.g., "7d", "24h")')
    usage.add_argument("--email", type=str, help="Only usage for this mailbox owner")
    usage.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        dest="output_format",
        help="Output format (default: table)",
    )
    usage.add_argument("--limit", type=int, default=20, help="Rows to list (default: 20)")
    usage.add_argument("--db", type=str, default="data/assistant.db", help="Path to database")

    return parser


def parse_last_duration(last: str) -> str:
    """Convert a shorthand duration (``7d``, ``24h``) to an ISO 8601 timestamp.

    Raises:
        ValueError: If the format is not recognized.
    """
    if not last or len(last) < 2:
        msg = f"Unrecognized duration format: {last!r}"
        raise ValueError(msg)

    unit = last[-1]
    try:
        value = int(last[:-1])
    except ValueError:
        msg = f"Unrecognized duration format: {last!r}"
        raise ValueError(msg) from None

    now = datetime.now(tz=UTC)
    if unit == "d":
        result = now - timedelta(days=value)
    elif unit == "h":
        result = now - timedelta(hours=value)
    else:
        msg = f"Unrecognized duration format: {last!r}. Use 'd' for days or 'h' for hours."
        raise ValueError(msg)
    return result.strftime("%Y-%m-%dT%H:%M:%SZ")


def format_usage_table(summary: dict[str, Any], rows: list[dict[str, Any]]) -> str:
    """Format a usage summary and its most recent rows as a table."""
    lines = [
        f"Calls: {summary['calls']}  Tokens: {summary['total_tokens']}  "
        f"Cost: ${summary['cost']:.4f}",
    ]
    if not rows:
        lines.append("No results found.")
        return "\n".join(lines)

    headers = ["Timestamp", "Provider", "Model", "Label", "Tokens"]
    widths = [20, 10, 30, 20, 8]
    header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths, strict=True))
    lines.extend(["", header_line, "-" * len(header_line)])
    for row in rows:
        cells = [
            str(row["created_at"]),
            str(row["provider"]),
            str(row["model"])[: widths[2]],
            str(row["label"])[: widths[3]],
            str(row["total_tokens"]),
        ]
        lines.append("  ".join(c.ljust(w) for c, w in zip(cells, widths, strict=True)))
    return "\n".join(lines)


def cmd_match(args: argparse.Namespace) -> int:
    rules = load_rules(Path(args.rules))
    message = ParsedMessage(
        id="cli",
        thread_id="cli",
        headers=MessageHeaders(from_=args.from_, to=args.to, subject=args.subject),
        text_plain=args.body or None,
    )
    rule = find_matching_rule(rules, message)
    if rule is None:
        print("No rule matched.")
        return 1
    actions = ", ".join(action.type.value for action in rule.actions) or "(none)"
    mode = "automated" if rule.automate else "planned"
    print(f"Matched rule {rule.id} ({rule.name}) [{mode}]: {actions}")
    return 0


def cmd_usage(args: argparse.Namespace) -> int:
    from inbox_assistant.state.schema import open_database
    from inbox_assistant.usage.store import UsageStore, init_usage_table

    from_date = parse_last_duration(args.last) if args.last else None
    conn = open_database(Path(args.db))
    try:
        init_usage_table(conn)
        store = UsageStore(conn)
        summary = store.summarize(email=args.email, from_date=from_date)
        rows = store.query_usage(email=args.email, from_date=from_date, limit=args.limit)
    finally:
        conn.close()

    if args.output_format == "json":
        print(json.dumps({"summary": summary, "rows": rows}, indent=2))
    else:
        print(format_usage_table(summary, rows))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    from inbox_assistant.app import configure_logging, initialize_services, process_message
    from inbox_assistant.config import get_settings

    settings = get_settings()
    configure_logging(production=settings.production)
    services = initialize_services(settings)
    try:
        result = asyncio.run(process_message(args.message_id, services))
    finally:
        services["db_conn"].close()
    print(result.model_dump_json(indent=2))
    return 0 if result.handled else 1


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch to the selected subcommand."""
    args = build_parser().parse_args(argv)
    handlers = {"run": cmd_run, "match": cmd_match, "usage": cmd_usage}
    return handlers[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
