#!/usr/bin/env python3
"""
Run the recurring invoice scheduler.

Loads settings from an optional YAML file plus the environment
(BILLING_DATABASE_URL / DATABASE_URL, BILLING_SCHEDULER_*), wires the
scheduler with the given generation invoker, and either runs one pass
(--once) or runs hourly in the background until SIGINT/SIGTERM.

The invoker is given as ``module:attribute``.  The attribute may be an
object with a ``generate(tenant_id, tenant_name)`` method, or a zero-argument
callable (class or factory) returning one.

Usage:
    python3 scripts/run_invoice_scheduler.py --invoker myapp.billing:InvoiceGenerator [options]

Examples:
    # Run one pass now and exit
    python3 scripts/run_invoice_scheduler.py --invoker myapp.billing:InvoiceGenerator --once

    # Long-running scheduler with a settings file
    python3 scripts/run_invoice_scheduler.py --config scheduler.yaml --invoker myapp.billing:InvoiceGenerator
"""

from __future__ import annotations

import argparse
import importlib
import signal
import sys
import threading
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the recurring invoice generation scheduler.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML settings file (environment variables override it).",
    )
    parser.add_argument(
        "--invoker",
        required=True,
        help="Generation invoker as module:attribute.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass and exit instead of running hourly.",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before starting.",
    )
    return parser.parse_args()


def _load_invoker(spec: str):
    module_name, _, attribute = spec.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Expected module:attribute, got {spec!r}")
    target = getattr(importlib.import_module(module_name), attribute)
    if hasattr(target, "generate") and not isinstance(target, type):
        return target
    return target()


def main() -> int:
    args = _parse_args()

    # Lazy imports so we fail fast on args first
    from billing_kernel.db.engine import create_tables
    from billing_kernel.exceptions import InvalidSchedulerSettingsError
    from billing_scheduler.config import load_settings
    from billing_scheduler.orchestrator import SchedulerOrchestrator

    try:
        settings = load_settings(args.config)
        invoker = _load_invoker(args.invoker)
        orchestrator = SchedulerOrchestrator.from_settings(settings, invoker)
    except (InvalidSchedulerSettingsError, ImportError, AttributeError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if args.create_tables:
        create_tables()

    scheduler = orchestrator.create_scheduler()

    if args.once:
        result = scheduler.trigger_manual_check()
        print(
            f"Pass {result.pass_id} {result.status.value}: "
            f"{result.due_count} due, {result.succeeded} succeeded, "
            f"{result.failed} failed, {result.deferred} deferred"
        )
        return 0 if result.failed == 0 else 2

    stop = threading.Event()

    def _handle_signal(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    scheduler.start()
    print(
        f"Invoice scheduler running (next pass in "
        f"{scheduler.seconds_until_next_run():.0f}s). Ctrl+C to stop."
    )
    while not stop.wait(timeout=1.0):
        pass
    scheduler.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
