"""Entry point for the Watchtower sidecar monitor."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel

from watchtower.config import ConfigurationError, settings
from watchtower.monitor.models import ProbeSuccess
from watchtower.monitor.probe import HealthProbe

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_server() -> None:
    """Start the API server and the monitor loops."""
    try:
        settings.require()
    except ConfigurationError as e:
        console.print(f"[bold red]FATAL:[/bold red] {e}")
        sys.exit(1)

    console.print(
        Panel.fit(
            f"[bold]Watchtower Monitor[/bold]\n"
            f"Bind:     {settings.api_host}:{settings.api_port}\n"
            f"Primary:  {settings.primary_url}\n"
            f"Storage:  {settings.db_path}\n"
            f"Probe:    every {settings.probe_interval}s (timeout {settings.probe_timeout_ms}ms)\n"
            f"Recovery: every {settings.recovery_interval}s",
            title="watchtower",
            border_style="green",
        )
    )
    uvicorn.run(
        "watchtower.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


def run_check(url: str, timeout_ms: int) -> int:
    """Probe the primary once. Returns the process exit code."""
    with console.status(f"[bold green]Probing {url}..."):
        outcome = HealthProbe().probe(url, timeout_ms)

    if isinstance(outcome, ProbeSuccess):
        console.print(f"[green]healthy[/green] {url} ({outcome.response_time_ms}ms)")
        return 0
    console.print(f"[red]down[/red] {url}: {outcome.reason}")
    return 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Watchtower sidecar monitor")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server and monitor")

    check_parser = sub.add_parser("check", help="Probe the primary service once")
    check_parser.add_argument("--url", default=settings.primary_url, help="Primary service base URL")
    check_parser.add_argument("--timeout-ms", type=int, default=settings.probe_timeout_ms)

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "check":
        sys.exit(run_check(args.url, args.timeout_ms))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
