from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from paybot.core.config import get_settings
from paybot.core.container import build_hub
from paybot.core.logging import setup_logging
from paybot.services.pipeline import summarize
from paybot.workers.scheduler import WorkerScheduler

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="paybot")
    parser.add_argument("--once", action="store_true", help="run a single poll cycle and exit")
    parser.add_argument("--replay", nargs="+", metavar="MENTION_ID", help="forget these mention ids before polling")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    hub = build_hub(settings)

    if args.replay:
        removed = await hub.pipeline.force_reprocess(args.replay)
        logger.info("replay_requested", extra={"event": "replay_requested", "count": len(removed)})

    if args.once:
        try:
            report = await hub.pipeline.run_cycle()
            logger.info("single_cycle_done", extra={"event": "single_cycle_done", **summarize(report)})
        finally:
            await hub.close()
        return

    scheduler = WorkerScheduler(hub)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    scheduler.start()
    logger.info("worker_started", extra={"event": "worker_started", "handle": settings.bot_handle})
    try:
        await stop.wait()
    finally:
        scheduler.stop()
        await hub.close()
        logger.info("worker_stopped", extra={"event": "worker_stopped"})


def main(argv: list[str] | None = None) -> None:
    asyncio.run(run(_parse_args(argv)))


if __name__ == "__main__":
    main()
