"""A readiness-driven I/O event loop with one-shot read and write callbacks."""

from __future__ import annotations

import collections
import enum
import selectors
import socket
import threading
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable

from weaveio.logformat import LogLevel
from weaveio.logger import get_logger

_logger = get_logger("system")

_MAX_TIMEOUT = 5.0
_WAKE = object()


class Event(enum.IntFlag):
    """I/O events a callback can wait for."""

    NONE = 0x0
    READ = 0x1
    WRITE = 0x4


_SELECTOR_BITS = {Event.READ: selectors.EVENT_READ, Event.WRITE: selectors.EVENT_WRITE}


class EventRegistrationError(RuntimeError):
    """Raised when an event cannot be registered or unregistered for a descriptor."""


def _selector_mask(events: Event) -> int:
    mask = 0
    for event, bit in _SELECTOR_BITS.items():
        if events & event:
            mask |= bit
    return mask


def _to_fd(fd: Any) -> int:
    value = fd if isinstance(fd, int) else fd.fileno()
    if value < 0:
        raise ValueError(f"invalid file descriptor: {value}")
    return value


def _single_event(event: Any) -> Event:
    event = Event(event)
    if event not in (Event.READ, Event.WRITE):
        raise ValueError(f"expected Event.READ or Event.WRITE, got {event!r}")
    return event


def _without(events: Event, removed: Event) -> Event:
    return Event(int(events) & ~int(removed))


@dataclass
class _FdContext:
    fd: int
    events: Event = Event.NONE
    callbacks: dict[Event, Callable[[], Any]] = field(default_factory=dict)


class _Current(threading.local):
    manager: "IOManager | None" = None


_current = _Current()


class IOManager:
    """Runs scheduled callbacks and fires one-shot callbacks when descriptors become ready.

    A registered event fires once: after its callback is scheduled the
    registration is gone and must be added again to wait once more.
    Stopping waits until every registered event has fired or been removed.
    """

    def __init__(self, name: str = "IOManager") -> None:
        self.name = name
        self._lock = threading.RLock()
        self._selector = selectors.DefaultSelector()
        self._wake_r, self._wake_w = socket.socketpair()
        self._wake_r.setblocking(False)
        self._wake_w.setblocking(False)
        self._selector.register(self._wake_r, selectors.EVENT_READ, _WAKE)
        self._contexts: dict[int, _FdContext] = {}
        self._pending = 0
        self._tasks: collections.deque[Callable[[], Any]] = collections.deque()
        self._stopping = False
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    @classmethod
    def current(cls) -> "IOManager | None":
        """The manager whose loop runs on the calling thread, if any."""
        return _current.manager

    @property
    def pending_event_count(self) -> int:
        """Number of registered events that have not fired yet."""
        with self._lock:
            return self._pending

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"IOManager {self.name} is stopped")

    def add_event(self, fd: Any, event: Event, callback: Callable[[], Any]) -> None:
        """Call callback once when fd becomes ready for event."""
        fd = _to_fd(fd)
        event = _single_event(event)
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._lock:
            self._check_open()
            ctx = self._contexts.setdefault(fd, _FdContext(fd))
            if ctx.events & event:
                raise EventRegistrationError(
                    f"add_event fd={fd} event={event!r} already registered, events={ctx.events!r}"
                )
            new_events = ctx.events | event
            try:
                if ctx.events:
                    self._selector.modify(fd, _selector_mask(new_events))
                else:
                    self._selector.register(fd, _selector_mask(new_events))
            except (OSError, ValueError, KeyError) as exc:
                raise EventRegistrationError(
                    f"cannot register fd={fd} events={new_events!r}: {exc}"
                ) from exc
            self._pending += 1
            ctx.events = new_events
            ctx.callbacks[event] = callback
        self._tickle()

    def _update_selector(self, fd: int, remaining: Event) -> None:
        try:
            if remaining:
                self._selector.modify(fd, _selector_mask(remaining))
            else:
                self._selector.unregister(fd)
        except (OSError, ValueError, KeyError) as exc:
            raise EventRegistrationError(
                f"cannot update fd={fd} events={remaining!r}: {exc}"
            ) from exc

    def _trigger(self, ctx: _FdContext, event: Event) -> None:
        ctx.events = _without(ctx.events, event)
        callback = ctx.callbacks.pop(event)
        self._tasks.append(callback)
        self._pending -= 1

    def _registered(self, fd: int, event: Event) -> _FdContext | None:
        ctx = self._contexts.get(fd)
        if ctx is None or not ctx.events & event:
            return None
        return ctx

    def del_event(self, fd: Any, event: Event) -> bool:
        """Remove a registered event without calling its callback."""
        fd = _to_fd(fd)
        event = _single_event(event)
        with self._lock:
            ctx = self._registered(fd, event)
            if ctx is None:
                return False
            remaining = _without(ctx.events, event)
            self._update_selector(fd, remaining)
            self._pending -= 1
            ctx.events = remaining
            ctx.callbacks.pop(event, None)
            return True

    def cancel_event(self, fd: Any, event: Event) -> bool:
        """Remove a registered event and schedule its callback once."""
        fd = _to_fd(fd)
        event = _single_event(event)
        with self._lock:
            ctx = self._registered(fd, event)
            if ctx is None:
                return False
            self._update_selector(fd, _without(ctx.events, event))
            self._trigger(ctx, event)
        self._tickle()
        return True

    def cancel_all(self, fd: Any) -> bool:
        """Remove every event of fd, scheduling each callback once."""
        fd = _to_fd(fd)
        with self._lock:
            ctx = self._contexts.get(fd)
            if ctx is None or not ctx.events:
                return False
            self._update_selector(fd, Event.NONE)
            for event in (Event.READ, Event.WRITE):
                if ctx.events & event:
                    self._trigger(ctx, event)
        self._tickle()
        return True

    def schedule(self, callback: Callable[[], Any]) -> None:
        """Run callback on the manager's loop thread."""
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._lock:
            self._check_open()
            self._tasks.append(callback)
        self._tickle()

    def stop(self) -> None:
        """Ask the loop to finish and, unless called from it, wait until it has."""
        with self._lock:
            if self._closed:
                return
            self._stopping = True
        self._tickle()
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def __enter__(self) -> "IOManager":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.stop()

    def _tickle(self) -> None:
        try:
            self._wake_w.send(b"T")
        except (BlockingIOError, OSError):
            pass

    def _drain_wakeups(self) -> None:
        while True:
            try:
                if not self._wake_r.recv(256):
                    return
            except (BlockingIOError, OSError):
                return

    def _run_tasks(self) -> None:
        while True:
            with self._lock:
                if not self._tasks:
                    return
                task = self._tasks.popleft()
            try:
                task()
            except Exception:
                _logger.log_message(
                    LogLevel.ERROR,
                    f"IOManager {self.name} task failed: {traceback.format_exc()}",
                )

    def _should_stop(self) -> bool:
        with self._lock:
            return self._stopping and self._pending == 0 and not self._tasks

    def _dispatch(self, fd: int, mask: int) -> None:
        real = Event.NONE
        if mask & selectors.EVENT_READ:
            real |= Event.READ
        if mask & selectors.EVENT_WRITE:
            real |= Event.WRITE
        with self._lock:
            ctx = self._contexts.get(fd)
            if ctx is None:
                return
            fired = ctx.events & real
            if not fired:
                return
            try:
                self._update_selector(fd, _without(ctx.events, fired))
            except EventRegistrationError as exc:
                _logger.log_message(LogLevel.ERROR, str(exc))
                return
            for event in (Event.READ, Event.WRITE):
                if fired & event:
                    self._trigger(ctx, event)

    def _run(self) -> None:
        _current.manager = self
        try:
            while True:
                self._run_tasks()
                if self._should_stop():
                    break
                for key, mask in self._selector.select(_MAX_TIMEOUT):
                    if key.data is _WAKE:
                        self._drain_wakeups()
                    else:
                        self._dispatch(key.fd, mask)
        finally:
            _current.manager = None
            with self._lock:
                self._closed = True
                self._selector.close()
                self._wake_r.close()
                self._wake_w.close()