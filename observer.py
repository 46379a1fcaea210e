from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys

from daylens.app import AssistantAPI, build_context
from daylens.config import get_settings
from daylens.logging_utils import component_logger, init_logger


def main() -> None:
    parser = argparse.ArgumentParser(description="Daylens observer (periodic capture and classification)")
    parser.add_argument(
        "--capture-root",
        default=None,
        help="Override CAPTURE_ROOT (e.g. D:/Daylens/captures)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Override CAPTURE_INTERVAL_SECONDS",
    )
    args = parser.parse_args()

    if args.capture_root:
        os.environ["CAPTURE_ROOT"] = args.capture_root
    if args.interval is not None:
        os.environ["CAPTURE_INTERVAL_SECONDS"] = str(args.interval)

    try:
        settings = get_settings()
    except RuntimeError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)

    logger = init_logger("observer", settings.logging)
    asyncio.run(run_observer(settings, logger))


async def run_observer(settings, logger) -> None:
    idle_monitor = None
    if settings.capture.skip_when_idle:
        from daylens.activity import InputIdleMonitor

        idle_monitor = InputIdleMonitor(settings.capture.idle_threshold_minutes * 60, component_logger(logger, "input"))
        idle_monitor.start()

    context = build_context(settings, logger, idle_monitor=idle_monitor)
    api = AssistantAPI(context)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _graceful_stop(signum) -> None:
        logger.info("Received signal %s - shutting down observer", signum)
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, _graceful_stop, signum)
        except NotImplementedError:
            # Windows event loops do not support signal handlers; Ctrl+C still raises KeyboardInterrupt.
            signal.signal(signum, lambda received, frame: loop.call_soon_threadsafe(_graceful_stop, received))

    result = await api.start_periodic_capture()
    if not result.success:
        logger.error("Observer not started: %s", result.error)
        if idle_monitor is not None:
            idle_monitor.stop()
        return

    logger.info(
        "Observer started: interval=%ss backend=%s timezone=%s",
        settings.capture.interval_seconds,
        settings.analyzer.backend,
        settings.timezone.key,
    )

    events = context.channel.subscribe()
    try:
        while not stop_event.is_set():
            try:
                event = await asyncio.wait_for(events.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            logger.debug("Event %s: %s", event.name, event.payload)
    finally:
        context.channel.unsubscribe(events)
        await api.stop_periodic_capture()
        if idle_monitor is not None:
            idle_monitor.stop()
        logger.info("Observer stopped")


if __name__ == "__main__":
    main()
