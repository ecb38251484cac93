"""Poll-until-done primitive for the asynchronous AMO stages.

Validation and approval both follow the same pattern: GET a status URL, ask a
predicate whether the stage is finished, and try again later if not. Two
scheduled tasks race per stage:

  - the *check* task, re-armed after every unfinished poll;
  - the *abort* task, armed once for the whole stage.

Whichever outcome comes first (success, predicate error, timeout) wins, and
every other scheduled task plus any in-flight request is cancelled before the
caller sees the result. Scheduling goes through ``Scheduler`` so tests can
drive virtual time with ``ManualScheduler`` instead of sleeping.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, TypeVar

import httpx

from .errors import PollTimeoutError
from .gateway import HttpGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")

DETAILS_ERROR_CONTEXT = "Getting details failed"


# ── Scheduling ───────────────────────────────────────────────────


class ScheduledTask(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Runs a callback once after ``delay`` seconds unless cancelled."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        ...


class AsyncioScheduler:
    """Scheduler backed by the running event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        return asyncio.get_running_loop().call_later(delay, callback)


# ── Waiter ───────────────────────────────────────────────────────


class PollingWaiter:
    """Repeats a status GET until a predicate yields a result or time runs out."""

    def __init__(self, gateway: HttpGateway, scheduler: Scheduler | None = None) -> None:
        self._gateway = gateway
        self._scheduler = scheduler or AsyncioScheduler()

    async def wait_retry(
        self,
        success_fn: Callable[[Any], T | None],
        check_url: str | httpx.URL,
        check_interval: float,
        abort_interval: float,
        context: str,
    ) -> T:
        """Poll ``check_url`` until ``success_fn`` returns a truthy value.

        ``success_fn`` receives the parsed JSON of each poll. A falsy return
        means "not done yet"; raising aborts the wait immediately.

        Raises:
            PollTimeoutError: If ``abort_interval`` elapses first.
        """
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[T] = loop.create_future()
        check_task: ScheduledTask | None = None
        poll_task: asyncio.Task[None] | None = None

        def finish(result: T | None = None, error: BaseException | None = None) -> None:
            if outcome.done():
                return
            abort_task.cancel()
            if check_task is not None:
                check_task.cancel()
            if error is not None:
                outcome.set_exception(error)
            else:
                outcome.set_result(result)

        def on_abort() -> None:
            if poll_task is not None and not poll_task.done():
                poll_task.cancel()
            finish(error=PollTimeoutError(context))

        async def poll_status() -> None:
            nonlocal check_task
            try:
                data = await self._gateway.request_json(
                    check_url, "GET", error_context=DETAILS_ERROR_CONTEXT
                )
                result = success_fn(data)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                finish(error=exc)
                return

            if outcome.done():
                return
            if result:
                finish(result)
            else:
                # Still in progress, so wait for a while and try again.
                check_task = self._scheduler.call_later(check_interval, start_poll)

        def start_poll() -> None:
            nonlocal poll_task
            if not outcome.done():
                poll_task = loop.create_task(poll_status())

        abort_task = self._scheduler.call_later(abort_interval, on_abort)
        start_poll()

        try:
            return await outcome
        finally:
            abort_task.cancel()
            if check_task is not None:
                check_task.cancel()
            if poll_task is not None and not poll_task.done():
                poll_task.cancel()


# ── In-memory implementations (testing) ──────────────────────────


@dataclass(order=True)
class _ManualEntry:
    when: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-time scheduler for deterministic tests.

    Nothing fires until ``advance()`` moves the clock past a task's due time.
    After each callback the event loop is given a few turns so tasks the
    callback started (such as a poll request) can complete.
    """

    def __init__(self, settle_turns: int = 20) -> None:
        self.now = 0.0
        self._settle_turns = settle_turns
        self._queue: list[_ManualEntry] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        entry = _ManualEntry(self.now + max(delay, 0.0), next(self._seq), callback)
        heapq.heappush(self._queue, entry)
        return entry

    @property
    def pending(self) -> int:
        return sum(1 for e in self._queue if not e.cancelled)

    async def settle(self) -> None:
        for _ in range(self._settle_turns):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await self.settle()
        while self._queue and self._queue[0].when <= target:
            entry = heapq.heappop(self._queue)
            if entry.cancelled:
                continue
            self.now = entry.when
            entry.callback()
            await self.settle()
        self.now = target
