#!/usr/bin/env python3
"""
manage.py - project management entry point

Usage:
    python manage.py                              # start the web server (default)
    python manage.py web --port 9000              # start on a given port
    python manage.py events --since 120           # print events after id 120
    python manage.py events --kind tyre_change    # only tyre changes
    python manage.py trim --cap 500               # enforce retention now
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from rich.console import Console
from rich.table import Table

from speedwatch.db.schema import MAX_EVENT_ID, EventKind
from speedwatch.web.config import AppConfig
from speedwatch.web.services.event_infra import build_context

console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_web_server(host: str, port: int, debug: bool = False) -> None:
    """Start the FastAPI server with uvicorn"""
    import uvicorn

    if debug:
        os.environ["SPEEDWATCH_DEBUG"] = "1"

    console.print(f"[bold]speedwatch[/bold] listening on http://{host}:{port}")
    console.print("Press Ctrl+C to stop\n")
    uvicorn.run("speedwatch.web.main:app", host=host, port=port, reload=debug)


async def print_events(config: AppConfig, since: int, kind: Optional[EventKind]) -> int:
    """Print every event after the watermark, following pages until caught up"""
    ctx = build_context(config)
    table = Table(title=f"events after id {since}")
    for column in ("id", "kind", "vehicle", "timestamp", "details"):
        table.add_column(column)

    count = 0
    try:
        async for ev in ctx.reader.follow(kind, since):
            details = ", ".join(f"{k}={v}" for k, v in ev.payload.items() if v is not None)
            table.add_row(str(ev.id), ev.kind.value, ev.vehicle_name, ev.created_at_iso, details)
            count += 1
    finally:
        await ctx.close()

    console.print(table)
    console.print(f"{count} event(s)")
    return count


async def run_trim(config: AppConfig, cap: int, kind: Optional[EventKind]) -> int:
    """Run the retention trimmer once"""
    ctx = build_context(config)
    try:
        if kind is None:
            deleted = await ctx.trimmer.trim_all(cap)
        else:
            deleted = {kind: await ctx.trimmer.trim(kind, cap)}
    finally:
        await ctx.close()

    for k, n in deleted.items():
        console.print(f"{k.value}: deleted {n}")
    return sum(deleted.values())


def main():
    parser = argparse.ArgumentParser(
        description="speedwatch telemetry service - management entry point",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="available commands")

    parser_web = subparsers.add_parser("web", help="start the web server")
    parser_web.add_argument("--host", default=None, help="bind address")
    parser_web.add_argument("--port", type=int, default=None, help="bind port")
    parser_web.add_argument("--debug", action="store_true", help="debug mode (auto-reload, tracebacks in 500s)")

    kinds = [k.value for k in EventKind]

    parser_events = subparsers.add_parser("events", help="print stored events after a watermark")
    parser_events.add_argument("--since", type=int, default=0, help="watermark (default: 0, from the start)")
    parser_events.add_argument("--kind", choices=kinds, default=None, help="only this kind")

    parser_trim = subparsers.add_parser("trim", help="enforce the retention cap now")
    parser_trim.add_argument("--cap", type=int, default=None, help="events to keep per kind (default: config)")
    parser_trim.add_argument("--kind", choices=kinds, default=None, help="only this kind")

    args = parser.parse_args()
    config = AppConfig.from_env()
    configure_logging(config.log_level)

    if not args.command:
        run_web_server(config.host, config.port, config.debug)
        return

    if args.command == "web":
        run_web_server(
            host=args.host or config.host,
            port=args.port or config.port,
            debug=args.debug or config.debug,
        )
    elif args.command == "events":
        if args.since > MAX_EVENT_ID:
            parser.error(f"--since must be at most {MAX_EVENT_ID}")
        kind = EventKind(args.kind) if args.kind else None
        asyncio.run(print_events(config, args.since, kind))
    elif args.command == "trim":
        kind = EventKind(args.kind) if args.kind else None
        cap = config.retention_cap if args.cap is None else args.cap
        asyncio.run(run_trim(config, cap, kind))
    else:
        parser.print_help()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n\nExited")
        sys.exit(0)
