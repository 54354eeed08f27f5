"""Cancellable countdown with a single fire-once expiry callback.

Lifecycle: idle -> running -> (expired | stopped). Both end states are
terminal; a timer is never restarted, a new one is created instead.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Literal

logger = logging.getLogger(__name__)

TimerPhase = Literal["idle", "running", "stopped", "expired"]


def parse_timer_preset(preset: str | None) -> int | None:
    """Parse timer preset string (MM:SS format) to total seconds.

    Examples:
        - "10:00" → 600
        - "3:30" → 210
        - "" → None
        - "invalid" → None
    """
    if not preset:
        return None
    try:
        minutes, seconds = (preset or "").split(":")
        total = int(minutes or 0) * 60 + int(seconds or 0)
    except ValueError:
        return None
    return total if total >= 0 else None


def format_remaining(seconds: int) -> str:
    """Render a countdown as m:ss, or h:mm:ss past an hour."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class DeadlineTimer:
    def __init__(self, tick_seconds: float = 1.0) -> None:
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        self._tick_seconds = tick_seconds
        self._phase: TimerPhase = "idle"
        self._remaining = 0
        self._task: asyncio.Task | None = None

    @property
    def phase(self) -> TimerPhase:
        return self._phase

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._phase == "running"

    def start(
        self,
        initial_seconds: int,
        on_tick: Callable[[int], None],
        on_expire: Callable[[], None],
    ) -> None:
        """Begin counting down; must be called from inside a running loop."""
        if self._phase != "idle":
            raise RuntimeError(f"timer already used (phase={self._phase})")
        if initial_seconds < 0:
            raise ValueError("initial_seconds must be >= 0")
        self._remaining = int(initial_seconds)
        self._phase = "running"
        self._task = asyncio.get_running_loop().create_task(
            self._run(on_tick, on_expire), name="deadline-timer"
        )
        logger.debug(f"Deadline timer started at {self._remaining}s")

    def stop(self) -> None:
        """Cancel future ticks. Idempotent and safe from inside callbacks."""
        if self._phase == "running":
            self._phase = "stopped"
            logger.debug(f"Deadline timer stopped at {self._remaining}s")
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self, on_tick: Callable[[int], None], on_expire: Callable[[], None]) -> None:
        while self._remaining > 0:
            await asyncio.sleep(self._tick_seconds)
            if self._phase != "running":
                return
            self._remaining -= 1
            on_tick(self._remaining)

        # on_tick may have called stop(); a stop observed first always wins.
        if self._phase != "running":
            return
        self._phase = "expired"
        logger.debug("Deadline timer expired")
        on_expire()
