#!/usr/bin/env python3
"""
OpenAPI Fuzzer v1.0
===================
Black-box fuzzer for HTTP APIs described by an OpenAPI 3.x document.

For every operation it generates edge-case request payloads from the
declared schemas, sends them to a live deployment and reports every response
whose status code falls outside the accepted set. Each finding is saved as a
JSON reproducer that `resend` can replay.

Usage:
  python main.py run -s openapi.yaml -u http://localhost:8080 -i 404
  python main.py resend results/items-id-1a2b3c4d/get-17.json -u http://localhost:8080
"""

import argparse
import json
import logging
import signal
import sys
import threading
import time
from typing import Dict, List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table
from dotenv import load_dotenv

from fuzzing import (
    ConfigError,
    ExecutionEngine,
    ExitStatus,
    FuzzerConfig,
    RequestsTransport,
    RunReport,
    TransportError,
    parse_header,
    replay,
)
from oas import SpecError, load_spec
from storage import ResultStore, StatsRecorder

# =============================================================================
# VERSION
# =============================================================================
__version__ = "1.0.0"

load_dotenv()
console = Console()
err_console = Console(stderr=True)


# =============================================================================
# LOGGING
# =============================================================================
def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """Configure structured logging for the fuzzer."""
    logger = logging.getLogger("openapi_fuzzer")
    logger.setLevel(logging.DEBUG if log_file else logging.INFO)

    # Clear existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

    return logger


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        return json.dumps({
            "timestamp": self.formatTime(record, '%Y-%m-%dT%H:%M:%S'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }, ensure_ascii=False)


logger = logging.getLogger("openapi_fuzzer.cli")


# =============================================================================
# OUTPUT
# =============================================================================
def make_findings_table(report: RunReport, limit: int = 50) -> Table:
    t = Table(title=" Findings", box=box.ROUNDED, header_style="bold magenta")
    t.add_column("#", style="dim", width=4)
    t.add_column("Method", width=8)
    t.add_column("Path", max_width=40)
    t.add_column("Trial", justify="right", width=6)
    t.add_column("Status", width=12)
    t.add_column("Rendered", style="dim", max_width=40)

    for i, result in enumerate(report.findings[:limit], 1):
        if result.status is not None:
            status = f"[red]{result.status}[/red]"
        else:
            status = f"[yellow]{(result.error or '').split(':')[0]}[/yellow]"
        t.add_row(str(i), result.method, result.path, str(result.trial), status, result.rendered_path or "")

    if len(report.findings) > limit:
        t.add_row("...", "", f"... +{len(report.findings) - limit} more", "", "", "")
    return t


def make_summary(report: RunReport, config: FuzzerConfig) -> Panel:
    color = "red" if report.findings else "green"
    txt = (
        f"[bold cyan] Run Summary[/bold cyan]\n\n"
        f"[bold]Operations:[/bold] {len(report.trial_counts)} | Trials: {report.total_trials}\n"
        f"[bold]Findings:[/bold] [{color}]{len(report.findings)}[/{color}]\n"
        f"[bold]Transport errors:[/bold] {report.total_transport_errors}\n"
        f"[bold]Seed:[/bold] {report.seed}\n"
        f"[bold]Results:[/bold] {config.results_dir}"
    )
    if report.stats_path:
        txt += f"\n[bold]Stats:[/bold] {report.stats_path}"
    if report.cancelled:
        txt += "\n[yellow]Cancelled before completion[/yellow]"
    return Panel(txt, border_style=color)


def parse_headers(raw: Optional[List[str]]) -> Dict[str, str]:
    return dict(parse_header(h) for h in raw or [])


# =============================================================================
# COMMANDS
# =============================================================================
def cmd_run(args: argparse.Namespace) -> int:
    config = FuzzerConfig.load(
        args.config,
        base_url=args.url,
        ignore_status_codes=args.ignore_status_code,
        headers=parse_headers(args.header) or None,
        max_test_case_count=args.max_test_case_count,
        results_dir=args.results_dir,
        stats_dir=args.stats_dir,
        seed=args.seed,
        timeout=args.timeout,
        verify_tls=False if args.insecure else None,
        accept_declared_status_codes=True if args.accept_declared_status else None,
        transport_errors_as_findings=True if args.transport_errors_as_findings else None,
    )
    spec = load_spec(args.spec)

    if not args.quiet:
        console.print(f"\n[bold cyan] Fuzzing[/bold cyan] {spec.title} {spec.version} "
                      f"[dim]({len(spec.operations)} operations against {config.base_url})[/dim]")
    logger.info(f"Fixed headers: {sorted(config.headers)}")

    cancel = threading.Event()

    def on_sigint(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        cancel.set()
        err_console.print("\n[yellow]Interrupted, stopping after the current request[/yellow]")

    previous = signal.signal(signal.SIGINT, on_sigint)
    transport = RequestsTransport(timeout=config.timeout, verify_tls=config.verify_tls)
    started = time.perf_counter()
    try:
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                      BarColumn(), TextColumn("{task.completed}/{task.total}"),
                      console=console, disable=args.quiet) as prog:
            task = prog.add_task("[cyan]Fuzzing", total=len(spec.operations) * config.max_test_case_count)

            def on_operation(operation, index, total):
                prog.update(task, description=f"[cyan]{operation.identity[:40]}")

            engine = ExecutionEngine(
                spec.operations,
                config,
                transport,
                result_store=ResultStore(config.results_dir),
                stats=StatsRecorder(config.stats_dir),
                cancel_event=cancel,
                on_trial=lambda outcome: prog.advance(task),
                on_operation=on_operation,
            )
            report = engine.run()
    finally:
        transport.close()
        signal.signal(signal.SIGINT, previous)
    elapsed = time.perf_counter() - started

    if not args.quiet:
        if report.findings:
            console.print(make_findings_table(report))
        console.print(make_summary(report, config))
        for warning in report.warnings:
            console.print(f"[yellow] {warning}[/yellow]")
        console.print(f"Elapsed time: {elapsed:.3f}s")

    return report.exit_status.value


def cmd_resend(args: argparse.Namespace) -> int:
    config = FuzzerConfig.load(
        args.config,
        base_url=args.url,
        headers=parse_headers(args.header) or None,
        timeout=args.timeout,
        verify_tls=False if args.insecure else None,
    )
    try:
        result = ResultStore().load(args.file)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot load result file {args.file}: {e}")
        err_console.print(f"[red]Error: cannot load {args.file}: {e}[/red]")
        return ExitStatus.FATAL.value

    transport = RequestsTransport(timeout=config.timeout, verify_tls=config.verify_tls)
    try:
        response = replay(result, config.base_url, config.headers, transport)
    except TransportError as e:
        logger.error(f"Replay failed: {e}")
        err_console.print(f"[red]Error: {e}[/red]")
        return ExitStatus.FATAL.value
    finally:
        transport.close()

    print(f"{response.status} ({response.reason})", file=sys.stderr)
    sys.stdout.write(response.text)
    sys.stdout.flush()
    return ExitStatus.CLEAN.value


# =============================================================================
# ARGUMENTS
# =============================================================================
def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-u", "--url", help="Base URL of the API (or FUZZER_URL)")
    parser.add_argument("-H", "--header", action="append", metavar="NAME:VALUE",
                        help="Header sent with every request (repeatable)")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds (default: 10)")
    parser.add_argument("-k", "--insecure", action="store_true", help="Skip TLS certificate verification")
    parser.add_argument("--config", metavar="FILE", help="Configuration file (JSON/YAML)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="openapi-fuzzer",
        description=f"OpenAPI Fuzzer v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py run -s openapi.yaml -u http://localhost:8080 -i 404
  python main.py run -s api.json -u https://staging.example.com/api -H "x-api-key: secret" --seed 7
  python main.py run -s api.json -u http://localhost:8080 --accept-declared-status --stats-dir stats
  python main.py resend results/items-id-1a2b3c4d/get-17.json -u http://localhost:8080
        """
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal output")
    parser.add_argument("--log-file", metavar="FILE", help="Write JSON-line debug log to file")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Fuzz every operation of a specification")
    run.add_argument("-s", "--spec", required=True, help="Path to the OpenAPI specification (JSON/YAML)")
    add_common_arguments(run)

    classify_group = run.add_argument_group("Classification")
    classify_group.add_argument("-i", "--ignore-status-code", action="append", type=int, metavar="CODE",
                                help="Status code that is not a finding (repeatable)")
    classify_group.add_argument("--accept-declared-status", action="store_true",
                                help="Also accept status codes the operation declares")
    classify_group.add_argument("--transport-errors-as-findings", action="store_true",
                                help="Count timeouts and connection failures as findings")

    budget_group = run.add_argument_group("Budget & Reproducibility")
    budget_group.add_argument("--max-test-case-count", type=int, metavar="N",
                              help="Trials per operation (default: 256)")
    budget_group.add_argument("--seed", type=int, help="Random seed (default: random, reported)")

    output_group = run.add_argument_group("Output Options")
    output_group.add_argument("-o", "--results-dir", metavar="DIR", help="Findings directory (default: results)")
    output_group.add_argument("--stats-dir", metavar="DIR", help="Write per-trial timings to DIR/stats.json")

    resend = sub.add_parser("resend", help="Replay a saved finding")
    resend.add_argument("file", help="Result file written by a previous run")
    add_common_arguments(resend)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    if args.command == "run" and not args.quiet:
        console.print(Panel.fit(
            f"[bold cyan] OpenAPI Fuzzer v{__version__}[/bold cyan]\n"
            "[dim]Schema-driven payloads | Replayable findings[/dim]",
            border_style="cyan"
        ))

    try:
        if args.command == "run":
            return cmd_run(args)
        return cmd_resend(args)
    except (SpecError, ConfigError) as e:
        logger.error(str(e))
        err_console.print(f"[red]Error: {e}[/red]")
        return ExitStatus.FATAL.value
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Interrupted[/yellow]")
        return 130
    except Exception as e:
        logger.exception("Unexpected error")
        err_console.print(f"\n[red]Error: {e}[/red]")
        if args.verbose:
            err_console.print_exception()
        return ExitStatus.FATAL.value


if __name__ == "__main__":
    sys.exit(main())
