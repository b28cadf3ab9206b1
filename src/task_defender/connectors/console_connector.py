# src/task_defender/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.events import ModalAction, ReminderDue, ReminderModalClosed
from ..core.state import AppState

logger = logging.getLogger(__name__)

_EOF = object()


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def render_event(event: object) -> str | None:
    """Console rendering of UI events; None for events the console ignores."""
    if isinstance(event, ReminderDue):
        short = event.reminder_id[:8]
        header = f"=== {event.title} ({event.kind}, #{event.reminder_count}) [{short}] ==="
        answers = []
        for opt in event.options:
            if opt.action == ModalAction.ACKNOWLEDGE:
                answers.append(f"/ack -> {opt.label}")
            elif opt.action == ModalAction.SNOOZE:
                answers.append(f"/snooze {opt.minutes}")
            else:
                answers.append("/dismiss")
        return f"{header}\n    {event.message}\n    Answer: {' | '.join(answers)}"

    if isinstance(event, ReminderModalClosed):
        if event.reason == "timeout":
            return f"(reminder {event.reminder_id[:8]} dialog closed without an answer; it will come back)"
        return None

    return None


def _print_event(event: object) -> None:
    text = render_event(event)
    if text:
        sys.stdout.write("\n")
        _print_ts(text)


def _start_reader(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> threading.Thread:
    """
    Read stdin in a daemon thread and hand lines to the event loop.

    input() blocks; a daemon thread never holds up interpreter exit.
    """

    def reader() -> None:
        while True:
            try:
                line = input(">>> ")
            except (EOFError, KeyboardInterrupt):
                loop.call_soon_threadsafe(lines.put_nowait, _EOF)
                return
            except Exception:
                logger.exception("Console reader crashed.")
                loop.call_soon_threadsafe(lines.put_nowait, _EOF)
                return
            loop.call_soon_threadsafe(lines.put_nowait, line)

    t = threading.Thread(target=reader, name="console-reader", daemon=True)
    t.start()
    return t


async def run_console_loop(state: AppState, stop: asyncio.Event) -> None:
    logger.info("Console connector started.")
    state.bus.subscribe(_print_event)
    _print_ts("[CONSOLE] Task defender is running. Use /help for commands, /exit to quit.\n")

    lines: asyncio.Queue = asyncio.Queue()
    _start_reader(asyncio.get_running_loop(), lines)

    while not stop.is_set():
        item = await lines.get()
        if item is _EOF:
            logger.info("Console EOF received, exiting.")
            break

        user_input = str(item).strip()
        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            response = command_registry.handle(state, user_input, emit=_print_ts)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            response = "Commands start with '/'. Use /help to list them."
        _print_ts(response)

    stop.set()
    logger.info("Console connector finished.")
