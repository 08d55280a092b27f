"""Ordered delivery of session events to a single observer context."""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from .events import Observer, SessionEvent

logger = logging.getLogger(__name__)

Dispatch = Callable[[Callable[[], None]], None]


class EventSink:
    """
    Posts one delivery per event onto one serial execution context.

    Events are delivered in the order they were emitted and never
    concurrently with each other. The dispatch function must run the
    callables it receives one at a time, in submission order (a
    single-worker executor, an event loop, a UI thread's post method).
    Without one, a private single-worker thread is used.

    After ``detach()`` nothing more reaches the observer, including events
    already posted but not yet run.
    """

    def __init__(self, observer: Observer, dispatch: Optional[Dispatch] = None) -> None:
        self._observer: Optional[Observer] = observer
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        if dispatch is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="keytransfer-events")
            dispatch = self._executor.submit
        self._dispatch = dispatch

    @classmethod
    def for_event_loop(cls, observer: Observer, loop: asyncio.AbstractEventLoop) -> "EventSink":
        """Creates a sink delivering on ``loop`` via ``call_soon_threadsafe``."""
        return cls(observer, dispatch=loop.call_soon_threadsafe)

    @property
    def attached(self) -> bool:
        with self._lock:
            return self._observer is not None

    def emit(self, event: SessionEvent) -> None:
        """Queue ``event`` for delivery; never blocks on the observer."""
        if not self.attached:
            logger.debug("Dropping %s: observer detached", type(event).__name__)
            return
        try:
            self._dispatch(lambda: self._deliver(event))
        except RuntimeError:
            # Executor or event loop already shut down.
            logger.debug("Dropping %s: delivery context closed", type(event).__name__)

    def detach(self) -> None:
        """Stop delivering events and release the private delivery thread."""
        with self._lock:
            self._observer = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)

    def close(self) -> None:
        """Release the private delivery thread after pending events ran."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)

    def _deliver(self, event: SessionEvent) -> None:
        with self._lock:
            observer = self._observer
        if observer is None:
            return
        try:
            observer(event)
        except Exception:
            logger.exception("Observer failed handling %s", type(event).__name__)
