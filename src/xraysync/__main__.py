"""Command-line entry point: ``xraysync`` / ``python -m xraysync``.

Configuration comes from the environment (see :class:`xraysync.SyncConfig`);
flags only override the loop behaviour and logging.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from typing import Any

from xraysync.agent import SyncAgent
from xraysync.config import SyncConfig
from xraysync.exceptions import SyncConfigError, TargetUnavailableError

_logger = logging.getLogger("xraysync")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xraysync",
        description="Keep an Xray inbound's users in sync with the control plane.",
    )
    parser.add_argument("--once", action="store_true", help="Run a single cycle, print its report and exit")
    parser.add_argument("--interval", type=float, help="Override SYNC_INTERVAL (seconds)")
    parser.add_argument("--max-cycles", type=int, help="Exit after this many cycles")
    parser.add_argument("--inbound-tag", help="Override XRAY_INBOUND_TAG")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.interval is not None:
        overrides["sync_interval"] = args.interval
    if args.inbound_tag:
        overrides["inbound_tag"] = args.inbound_tag
    return overrides


async def _run(config: SyncConfig, args: argparse.Namespace) -> int:
    async with SyncAgent(config) as agent:
        if args.once:
            report = await agent.run_once()
            print(json.dumps(report.to_dict(), indent=2))
            return 0 if report.converged else 1

        main_task = asyncio.current_task()
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            if agent.is_running:
                _logger.info("Shutdown requested; finishing current cycle")
                agent.stop()
            elif main_task is not None:
                main_task.cancel()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

        await agent.run(max_cycles=args.max_cycles)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = SyncConfig.from_env(**_overrides(args))
    except SyncConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_run(config, args))
    except (asyncio.CancelledError, KeyboardInterrupt):
        return 130
    except TargetUnavailableError as exc:
        _logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
