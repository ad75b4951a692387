# --------------------------------------------------------------------
# utils/event_bus.py
# --------------------------------------------------------------------
"""A light asyncio-based pub/sub for the engine's outbound events
(trade records, close reasons, emergency stops, risk levels, halts).

Inside a running loop, ``publish`` queues the event for a background worker,
so a slow alert backend never blocks a tick. Outside a loop (plain scripts,
sync tests) handlers run inline."""
from __future__ import annotations
import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

_Handler = Callable[[Any], Union[Awaitable[None], None]]

DECISION = "decision"
TRADE_RECORD = "trade_record"
POSITION_OPENED = "position_opened"
POSITION_CLOSED = "position_closed"
EMERGENCY_STOP = "emergency_stop"
RISK_LEVEL = "risk_level"
ENGINE_HALTED = "engine_halted"


class EventBus:
    def __init__(self) -> None:
        self._subs: Dict[str, List[_Handler]] = defaultdict(list)
        self._q: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        # background task started lazily on first publish
        self._task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------- #
    def subscribe(self, topic: str, fn: _Handler) -> None:
        self._subs[topic].append(fn)

    def unsubscribe(self, topic: str, fn: _Handler) -> None:
        if fn in self._subs.get(topic, []):
            self._subs[topic].remove(fn)

    def publish(self, topic: str, payload: object) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver_inline(topic, payload)
            return

        if self._loop is not loop:
            # queues are bound to the loop that created them
            self._loop = loop
            self._q = asyncio.Queue()
            self._task = None
        if self._task is None or self._task.done():
            self._task = loop.create_task(self._worker())
        self._q.put_nowait((topic, payload))

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        if self._q is not None and self._loop is asyncio.get_running_loop():
            await self._q.join()

    # -------------------------------------------------------------- #
    async def _worker(self) -> None:
        q = self._q
        while True:
            topic, payload = await q.get()
            try:
                for fn in list(self._subs.get(topic, [])):
                    try:
                        res = fn(payload)
                        if asyncio.iscoroutine(res):
                            await res
                    except Exception:  # keep bus alive
                        logger.exception("[event_bus] handler error on %s", topic)
            finally:
                q.task_done()

    def _deliver_inline(self, topic: str, payload: object) -> None:
        for fn in list(self._subs.get(topic, [])):
            try:
                res = fn(payload)
                if asyncio.iscoroutine(res):
                    asyncio.run(res)
            except Exception:
                logger.exception("[event_bus] handler error on %s", topic)


# singleton – default bus for components that are not handed one
BUS = EventBus()

# convenience shims so callers don't care about the BUS name
subscribe = BUS.subscribe
publish = BUS.publish
