"""Log levels, log events and pattern-driven log formatting."""

from __future__ import annotations

import enum
import io
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, TextIO

DEFAULT_PATTERN = "%d{%Y-%m-%d %H:%M:%S} [%rms]%T%t%T%N%T%F%T[%p]%T[%c]%T%f:%l%T%m%n"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogLevel(enum.IntEnum):
    """Severity of a log event; a smaller value is more severe."""

    FATAL = 0
    ALERT = 100
    CRIT = 200
    ERROR = 300
    WARN = 400
    NOTICE = 500
    INFO = 600
    DEBUG = 700
    NOTSET = 800

    def to_string(self) -> str:
        """Return the upper-case name of the level."""
        return self.name

    @classmethod
    def from_string(cls, text: str) -> "LogLevel":
        """Parse an all-lower or all-upper level name; anything else is NOTSET."""
        if text.isupper() or text.islower():
            member = cls.__members__.get(text.upper())
            if member is not None and member is not cls.NOTSET:
                return member
        return cls.NOTSET


def _current_thread_id() -> int:
    return threading.get_native_id()


def _current_thread_name() -> str:
    return threading.current_thread().name


@dataclass
class LogEvent:
    """A single log record whose message is built up by writing to it."""

    logger_name: str
    level: LogLevel
    file: str = ""
    line: int = 0
    elapse: int = 0
    thread_id: int = field(default_factory=_current_thread_id)
    fiber_id: int = 0
    time: int = field(default_factory=lambda: int(time.time()))
    thread_name: str = field(default_factory=_current_thread_name)
    _buffer: io.StringIO = field(default_factory=io.StringIO, repr=False, compare=False)

    @property
    def content(self) -> str:
        """The message text written so far."""
        return self._buffer.getvalue()

    def write(self, text: object) -> "LogEvent":
        """Append text to the message and return the event for chaining."""
        self._buffer.write(str(text))
        return self

    def printf(self, fmt: str, *args: object) -> "LogEvent":
        """Append printf-style formatted text to the message."""
        self._buffer.write(fmt % args)
        return self


class LogPatternError(ValueError):
    """Raised when a log format pattern cannot be parsed."""


_FormatItem = Callable[[LogEvent], str]


def _date_item(date_format: str) -> _FormatItem:
    fmt = date_format or DEFAULT_DATE_FORMAT

    def render(event: LogEvent) -> str:
        return time.strftime(fmt, time.localtime(event.time))

    return render


def _literal_item(text: str) -> _FormatItem:
    return lambda event: text


_SIMPLE_ITEMS: dict[str, _FormatItem] = {
    "m": lambda e: e.content,
    "p": lambda e: LogLevel(e.level).to_string(),
    "c": lambda e: e.logger_name,
    "r": lambda e: str(e.elapse),
    "f": lambda e: e.file,
    "l": lambda e: str(e.line),
    "t": lambda e: str(e.thread_id),
    "F": lambda e: str(e.fiber_id),
    "N": lambda e: e.thread_name,
    "%": lambda e: "%",
    "T": lambda e: "\t",
    "n": lambda e: "\n",
}


class LogFormatter:
    """Turns log events into text according to a pattern.

    Pattern items: %m message, %p level, %c logger name, %d date and time
    (optionally followed by {strftime format}), %r elapsed milliseconds,
    %f file, %l line, %t thread id, %F fiber id, %N thread name, %% percent,
    %T tab, %n newline.
    """

    def __init__(self, pattern: str = DEFAULT_PATTERN) -> None:
        self.pattern = pattern
        self._items = self._parse(pattern)

    def _parse(self, pattern: str) -> list[_FormatItem]:
        items: list[_FormatItem] = []
        literal: list[str] = []
        i, n = 0, len(pattern)
        while i < n:
            ch = pattern[i]
            if ch != "%":
                literal.append(ch)
                i += 1
                continue
            if literal:
                items.append(_literal_item("".join(literal)))
                literal = []
            i += 1
            if i >= n:
                break
            code = pattern[i]
            i += 1
            if code == "d":
                date_format = ""
                if i < n and pattern[i] == "{":
                    end = pattern.find("}", i + 1)
                    if end < 0:
                        raise LogPatternError(f"pattern: [{pattern}] '{{' not closed")
                    date_format = pattern[i + 1:end]
                    i = end + 1
                items.append(_date_item(date_format))
                continue
            item = _SIMPLE_ITEMS.get(code)
            if item is None:
                raise LogPatternError(f"pattern: [{pattern}] unknown format item: {code}")
            items.append(item)
        if literal:
            items.append(_literal_item("".join(literal)))
        return items

    def format(self, event: LogEvent) -> str:
        """Return the formatted text of the event."""
        return "".join(item(event) for item in self._items)

    def format_to(self, stream: TextIO, event: LogEvent) -> TextIO:
        """Write the formatted event to a stream and return the stream."""
        for item in self._items:
            stream.write(item(event))
        return stream