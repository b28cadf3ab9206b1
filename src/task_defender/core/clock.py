# src/task_defender/core/clock.py

from __future__ import annotations

import asyncio
from datetime import datetime


class SystemClock:
    """Wall clock with local-timezone aware timestamps."""

    def now(self) -> datetime:
        return datetime.now().astimezone()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, float(seconds)))
