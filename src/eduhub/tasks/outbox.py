"""
Best-effort outbound tasks.

Notifications and emails that follow a committed purchase must never fail
or roll back the purchase. They are submitted here and run as tracked
background tasks with a per-attempt timeout and bounded exponential backoff.
A task is retried when it raises, times out, or returns False.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from eduhub.config import Settings, get_settings

log = structlog.get_logger()

TaskFactory = Callable[[], Awaitable[object]]


class Outbox:
    """Runs outbound side effects without coupling them to the caller's outcome."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        task_timeout: float = 15.0,
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.task_timeout = task_timeout
        self._tasks: set[asyncio.Task[bool]] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> Outbox:
        return cls(
            max_attempts=settings.outbox_max_attempts,
            base_delay=settings.outbox_base_delay_seconds,
            task_timeout=settings.outbox_task_timeout_seconds,
        )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, factory: TaskFactory) -> asyncio.Task[bool]:
        """Schedule `factory()` in the background. The task resolves to True on success."""
        task = asyncio.create_task(self.run(name, factory), name=f"outbox:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self, name: str, factory: TaskFactory) -> bool:
        """Run a task to success or until attempts are exhausted. Never raises."""
        for attempt in range(self.max_attempts):
            try:
                result = await asyncio.wait_for(factory(), timeout=self.task_timeout)
            except asyncio.CancelledError:
                raise
            except asyncio.TimeoutError:
                log.warning("outbound_task_timeout", task=name, attempt=attempt + 1)
            except Exception as exc:
                log.warning("outbound_task_failed", task=name, attempt=attempt + 1, error=str(exc))
            else:
                if result is not False:
                    return True
                log.warning("outbound_task_rejected", task=name, attempt=attempt + 1)

            if attempt + 1 < self.max_attempts:
                await asyncio.sleep(self.base_delay * (2**attempt))

        log.error("outbound_task_abandoned", task=name, attempts=self.max_attempts)
        return False

    async def drain(self) -> None:
        """Wait for every in-flight task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


_outbox: Outbox | None = None


def init_outbox(settings: Settings | None = None) -> Outbox:
    """Create the process-wide outbox."""
    global _outbox  # noqa: PLW0603
    _outbox = Outbox.from_settings(settings or get_settings())
    return _outbox


async def close_outbox() -> None:
    """Drain and drop the process-wide outbox."""
    global _outbox  # noqa: PLW0603
    if _outbox is not None:
        await _outbox.drain()
        _outbox = None


def get_outbox() -> Outbox:
    """Get the outbox (FastAPI dependency)."""
    if _outbox is None:
        msg = "Outbox not initialized. Call init_outbox() first."
        raise RuntimeError(msg)
    return _outbox
