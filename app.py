#!/usr/bin/env python3
"""
Runtime Risk Monitor - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
Runs the monitoring core as one long-lived process.

- Can be started, stopped, and restarted safely
- Handles SIGINT / SIGTERM gracefully
- Logs alerts and scaling decisions by default

============================================================
USAGE
============================================================
Direct execution:
    python app.py --config monitor.yaml

One collection cycle, then exit:
    python app.py --single-cycle

Environment-based configuration:
    MONITOR_INTERVAL=15 RISK_THRESHOLD=0.6 python app.py

============================================================
EXIT CODES
============================================================
0  clean shutdown
1  runtime failure
2  invalid configuration or arguments
130 interrupted

============================================================
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from dataclasses import replace
from typing import List, Optional

from core.config import MonitoringConfig
from core.exceptions import ConfigurationError
from monitoring.service import MonitoringService


logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="runtime-risk-monitor",
        description="Metrics collection, risk scoring, alerting and scaling recommendations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              # Defaults plus MONITOR_* environment
  %(prog)s --config monitor.yaml        # YAML thresholds
  %(prog)s --interval 15 --log-level DEBUG
  %(prog)s --single-cycle               # One snapshot, then exit
        """
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=os.getenv("MONITOR_CONFIG"),
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Collection interval in seconds (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--single-cycle",
        action="store_true",
        help="Run one collection cycle and exit",
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=float,
        default=None,
        help="Grace period for the in-flight tick on shutdown (overrides config)",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """Return a list of argument errors."""
    errors = []

    if args.interval is not None and args.interval <= 0:
        errors.append("--interval must be greater than 0")

    if args.shutdown_timeout is not None and args.shutdown_timeout < 0:
        errors.append("--shutdown-timeout must not be negative")

    return errors


def build_config(args: argparse.Namespace) -> MonitoringConfig:
    """
    Defaults, then YAML, then environment, then CLI flags.

    Raises:
        ConfigurationError: naming the offending field
    """
    config = MonitoringConfig.load(args.config)

    overrides = {}
    if args.interval is not None:
        overrides["interval_seconds"] = args.interval
    if args.shutdown_timeout is not None:
        overrides["shutdown_grace_seconds"] = args.shutdown_timeout

    if overrides:
        config = replace(config, collector=replace(config.collector, **overrides))
    return config


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )


# ============================================================
# RUNTIME
# ============================================================

def install_signal_handlers(stop_event: asyncio.Event) -> None:
    """SIGINT / SIGTERM request a graceful shutdown."""
    loop = asyncio.get_running_loop()

    if sys.platform == "win32":
        # No loop signal handlers on Windows; Ctrl+C raises KeyboardInterrupt
        return

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: _request_stop(s, stop_event))


def _request_stop(sig: signal.Signals, stop_event: asyncio.Event) -> None:
    logger.info(f"Received signal {sig.name}, shutting down")
    stop_event.set()


async def run_application(config: MonitoringConfig, single_cycle: bool = False) -> int:
    """Run the monitoring service until a shutdown signal."""
    service = MonitoringService(config)
    service.add_logging_sinks()

    if single_cycle:
        try:
            snapshot = await service.run_cycle()
            health = await service.check_health()
        finally:
            await service.stop()

        if snapshot is None:
            logger.error("Collection cycle failed")
            return 1

        decision = service.last_decision
        print(f"\nSnapshot:  {snapshot.timestamp.isoformat()}")
        print(f"Alerts:    {len(service.last_alerts)}")
        print(f"Health:    {health.overall_state.value}")
        if decision is not None:
            print(f"Risk:      {decision.risks.score:.2f} ({decision.risks.level.value})")
            print(f"Scaling:   {decision.strategy.value}")
        return 0

    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)

    task = service.start()
    waiter = asyncio.ensure_future(stop_event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        await service.stop()

    if task.done() and not task.cancelled() and task.exception() is not None:
        logger.error("Collector loop failed", exc_info=task.exception())
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 2

    setup_logging(args.log_level)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(run_application(config, single_cycle=args.single_cycle))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
