#!/usr/bin/env python3
"""
cfspeed -- Cloudflare speed test from the terminal.

Usage::

    cfspeed                         # rich dashboard
    cfspeed --simple                # plain text
    cfspeed --json                  # JSON to stdout
    cfspeed -o result.json          # save to file
    cfspeed --no-upload             # latency and download only
    cfspeed --retries 0             # fail on the first probe error
    cfspeed --history               # show past results
    cfspeed --set retries 3         # persist a config value
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal as signals
import sys
from typing import Any, Dict, Optional

from cfspeed.cancellation import SpeedTestCancelled, abortable
from cfspeed.metadata import get_network_identity
from cfspeed.runner import RunConfig, SpeedTestRunner
from ui.config import DEFAULTS, config_path, load_config, set_config_value
from ui.dashboard import (
    ProgressDisplay,
    console,
    print_final_results,
    print_header,
    print_history,
    print_latency_details,
)
from ui.history import load_history, save_result
from ui.logging_setup import configure_logging
from ui.output import create_result_json, format_text_result, save_json

logger = logging.getLogger("cfspeed.cli")

MIN_RETRIES = 0
MAX_RETRIES = 10

EXIT_FAILURE = 1
EXIT_CANCELLED = 130


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------

def _validate(retries: int) -> None:
    """Raise ``ValueError`` if any parameter is out of range."""
    if not MIN_RETRIES <= retries <= MAX_RETRIES:
        raise ValueError(f"Retries must be between {MIN_RETRIES} and {MAX_RETRIES}")


def _parse_config_value(raw: str) -> Any:
    """Interpret ``--set`` values as JSON when possible (``true``, ``3``)."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


# ---------------------------------------------------------------------------
# Core test runner
# ---------------------------------------------------------------------------

async def run_speedtest(
    *,
    enable_upload: bool = True,
    retries: int = 2,
    json_output: bool = False,
    output_file: Optional[str] = None,
    simple: bool = False,
    history_limit: int = 5,
    runner: Optional[SpeedTestRunner] = None,
    cancel: Optional[asyncio.Event] = None,
) -> Dict[str, Any]:
    """Run one measurement and return its JSON-serialisable document."""
    show_ui = not json_output and not simple
    cancel = cancel or asyncio.Event()

    # Ctrl-C fires the run's cancellation signal instead of killing the loop.
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signals.SIGINT, cancel.set)
        installed = True
    except (NotImplementedError, RuntimeError):
        installed = False

    try:
        if show_ui:
            print_header()
            progress = ProgressDisplay()
            progress.start()
            on_progress = progress.update
        else:
            on_progress = None

        config = RunConfig(
            enable_upload=enable_upload,
            retries=retries,
            signal=cancel,
            on_progress=on_progress,
        )
        try:
            result = await (runner or SpeedTestRunner()).run(config)
        finally:
            if show_ui:
                progress.stop()

        # Only rendering and history need the label, so it is looked up once
        # the timed stages are over.
        isp = await abortable(get_network_identity(), cancel)
    finally:
        if installed:
            loop.remove_signal_handler(signals.SIGINT)

    if show_ui:
        if result.latency:
            print_latency_details(result.latency)
        print_final_results(result, isp)
    elif simple:
        print(format_text_result(result, isp))

    result_json = create_result_json(result, isp)

    if json_output:
        print(json.dumps(result_json, indent=2))

    if output_file:
        save_json(result_json, output_file)
        if not json_output:
            console.print(f"\n[green]Results saved to:[/green] {output_file}")

    save_result(result.to_dict(), isp=isp, limit=history_limit)
    return result_json


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cfspeed",
        description="Cloudflare speed test -- latency, jitter, download and upload",
    )
    # Output modes
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save results to JSON file")
    parser.add_argument("--simple", "-s", action="store_true", help="Simple output mode (no dashboard)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log probe details to stderr")

    # Test parameters
    parser.add_argument("--no-upload", action="store_true", help="Skip the upload stage")
    parser.add_argument("--retries", type=int, default=None, metavar="N", help="Extra attempts per probe (default: 2)")

    # History / config
    parser.add_argument("--history", action="store_true", help="Show past test results and exit")
    parser.add_argument("--set", nargs=2, metavar=("KEY", "VALUE"), help="Persist a config value and exit")

    return parser


def main(argv: Optional[list] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)

    # Config mode
    if args.set:
        key, raw = args.set
        try:
            path = set_config_value(key, _parse_config_value(raw))
        except KeyError:
            console.print(f"[red]Error: unknown config key '{key}' (known: {', '.join(DEFAULTS)})[/red]")
            sys.exit(EXIT_FAILURE)
        console.print(f"[green]Saved[/green] {key} to {path}")
        return

    config = load_config()

    # History mode
    if args.history:
        print_history(load_history(limit=int(config["history_limit"])))
        return

    retries = args.retries if args.retries is not None else int(config["retries"])
    enable_upload = bool(config["enable_upload"]) and not args.no_upload

    try:
        _validate(retries)
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(EXIT_FAILURE)

    logger.debug("Using config from %s", config_path())

    try:
        asyncio.run(
            run_speedtest(
                enable_upload=enable_upload,
                retries=retries,
                json_output=args.json,
                output_file=args.output,
                simple=args.simple,
                history_limit=int(config["history_limit"]),
            )
        )
    except (SpeedTestCancelled, KeyboardInterrupt):
        if not args.json:
            console.print("\n[yellow]Test cancelled[/yellow]")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        logger.debug("Run failed", exc_info=True)
        console.print(
            "\n[red]Unable to complete the speed test. "
            f"Please check your connection and try again.[/red] [dim]({exc})[/dim]"
        )
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
