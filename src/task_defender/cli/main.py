# src/task_defender/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs everything on one asyncio loop:
- push permission request (Matrix login, when configured),
- escalation scheduler (due-check and reassessment tickers),
- console REPL (optional; stdin is read in a daemon thread).
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import signal

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import render_event, run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        state.scheduler.stop()
    except Exception:
        logger.exception("Failed to stop scheduler.")

    if state.tone_player is not None:
        with contextlib.suppress(Exception):
            state.tone_player.stop_all()

    if not state.store.persist():
        logger.warning("Final reminder store write failed; last state may be lost.")

    for obj in reversed(state.closers):
        for hook in ("shutdown", "close"):
            fn = getattr(obj, hook, None)
            if fn is None:
                continue
            try:
                res = fn()
                if inspect.isawaitable(res):
                    await res
            except Exception:
                logger.debug("%s.%s failed.", type(obj).__name__, hook, exc_info=True)
            break


def _log_event(event: object) -> None:
    text = render_event(event)
    if text:
        logger.info("%s", text)


async def run(state: AppState) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows: no loop signal handlers
            pass

    if state.push_notifier is not None and state.settings.push_enabled:
        try:
            permission = await state.push_notifier.request_permission()
            logger.info("Push permission: %s", permission)
        except Exception:
            logger.exception("Push permission request failed.")

    state.scheduler.start()

    console_task: asyncio.Task | None = None
    try:
        if state.settings.console_enabled:
            console_task = asyncio.create_task(run_console_loop(state, stop), name="console")
        else:
            state.bus.subscribe(_log_event)
            logger.info("Console disabled. Running the scheduler only. Press Ctrl+C to stop.")
        await stop.wait()
    finally:
        if console_task is not None and not console_task.done():
            console_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await console_task
        await _shutdown(state)


def main() -> None:
    settings = get_settings()
    setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)

    logger.info("Starting %s...", settings.app_name)
    state = create_initial_state(settings=settings)

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run(state))
    logger.info("Bye.")


if __name__ == "__main__":
    main()
