"""Loggers, log appenders, the logger registry and YAML log configuration."""

from __future__ import annotations

import abc
import enum
import inspect
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, TextIO

import yaml

from weaveio.logformat import LogEvent, LogFormatter, LogLevel

_REOPEN_INTERVAL = 3


def _elapsed_ms() -> int:
    return int(time.monotonic() * 1000)


def _dump_yaml(node: Any) -> str:
    return yaml.safe_dump(node, sort_keys=False, default_flow_style=False, allow_unicode=True)


class LogAppender(abc.ABC):
    """A destination for log events with its own formatter."""

    def __init__(self, default_formatter: LogFormatter | None = None) -> None:
        self._lock = threading.RLock()
        self._default_formatter = default_formatter or LogFormatter()
        self._formatter: LogFormatter | None = None

    @property
    def formatter(self) -> LogFormatter:
        """The formatter in use: the one set explicitly, else the default."""
        with self._lock:
            return self._formatter or self._default_formatter

    @formatter.setter
    def formatter(self, value: LogFormatter | None) -> None:
        with self._lock:
            self._formatter = value

    @abc.abstractmethod
    def log(self, event: LogEvent) -> None:
        """Write one event."""

    @abc.abstractmethod
    def to_yaml_string(self) -> str:
        """Describe the appender's configuration as YAML."""


class StdoutLogAppender(LogAppender):
    """Writes log events to standard output, or to a given stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        super().__init__(LogFormatter())
        self._stream = stream

    def log(self, event: LogEvent) -> None:
        stream = self._stream if self._stream is not None else sys.stdout
        with self._lock:
            self.formatter.format_to(stream, event)

    def to_yaml_string(self) -> str:
        with self._lock:
            return _dump_yaml({"type": "StdoutLogAppender", "pattern": self.formatter.pattern})


class FileLogAppender(LogAppender):
    """Appends log events to a file, reopening it when events are 3 s or more apart."""

    def __init__(self, filename: str) -> None:
        super().__init__(LogFormatter())
        self.filename = str(filename)
        self._file: TextIO | None = None
        self._last_time = 0
        self.reopen_error = False
        if not self.reopen():
            print(f"reopen file {self.filename} error", file=sys.stderr)

    def log(self, event: LogEvent) -> None:
        now = event.time
        if now >= self._last_time + _REOPEN_INTERVAL:
            if not self.reopen():
                print(f"reopen file {self.filename} error", file=sys.stderr)
            self._last_time = now
        if self.reopen_error:
            return
        with self._lock:
            if self._file is None:
                return
            self.formatter.format_to(self._file, event)
            self._file.flush()

    def reopen(self) -> bool:
        """Close and reopen the file for appending; return whether it opened."""
        with self._lock:
            self._close_file()
            try:
                self._file = open(self.filename, "a", encoding="utf-8")
            except OSError:
                self._file = None
                self.reopen_error = True
            else:
                self.reopen_error = False
            return not self.reopen_error

    def close(self) -> None:
        """Close the underlying file."""
        with self._lock:
            self._close_file()

    def _close_file(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def to_yaml_string(self) -> str:
        with self._lock:
            return _dump_yaml(
                {
                    "type": "FileLogAppender",
                    "file": self.filename,
                    "pattern": self.formatter.pattern,
                }
            )


class Logger:
    """A named logger that passes events at or above its level to its appenders."""

    def __init__(self, name: str = "default") -> None:
        self._lock = threading.RLock()
        self.name = name
        self.level = LogLevel.INFO
        self.create_time = _elapsed_ms()
        self._appenders: list[LogAppender] = []

    @property
    def appenders(self) -> list[LogAppender]:
        """A copy of the appender list."""
        with self._lock:
            return list(self._appenders)

    def add_appender(self, appender: LogAppender) -> None:
        with self._lock:
            self._appenders.append(appender)

    def del_appender(self, appender: LogAppender) -> None:
        """Remove the first occurrence of the appender, if present."""
        with self._lock:
            for index, current in enumerate(self._appenders):
                if current is appender:
                    del self._appenders[index]
                    break

    def clear_appenders(self) -> None:
        with self._lock:
            self._appenders.clear()

    def log(self, event: LogEvent) -> None:
        """Write the event to every appender if its level passes the logger's level."""
        if event.level <= self.level:
            for appender in self.appenders:
                appender.log(event)

    def log_message(self, level: LogLevel, message: str) -> LogEvent | None:
        """Build an event for the caller's location and log it; None if filtered out."""
        if level > self.level:
            return None
        caller = inspect.currentframe()
        caller = caller.f_back if caller is not None else None
        file = caller.f_code.co_filename if caller is not None else ""
        line = caller.f_lineno if caller is not None else 0
        event = LogEvent(
            logger_name=self.name,
            level=LogLevel(level),
            file=file,
            line=line,
            elapse=_elapsed_ms() - self.create_time,
        )
        event.write(message)
        self.log(event)
        return event

    def to_yaml_string(self) -> str:
        with self._lock:
            node: dict[str, Any] = {"name": self.name, "level": LogLevel(self.level).to_string()}
            if self._appenders:
                node["appenders"] = [yaml.safe_load(a.to_yaml_string()) for a in self._appenders]
            return _dump_yaml(node)


class LoggerManager:
    """Registry of loggers by name, with a root logger writing to stdout."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.root = Logger("root")
        self.root.add_appender(StdoutLogAppender())
        self._loggers: dict[str, Logger] = {self.root.name: self.root}

    def get_logger(self, name: str) -> Logger:
        """Return the named logger, creating one without appenders if needed."""
        with self._lock:
            logger = self._loggers.get(name)
            if logger is None:
                logger = Logger(name)
                self._loggers[name] = logger
            return logger

    def to_yaml_string(self) -> str:
        with self._lock:
            nodes = [
                yaml.safe_load(self._loggers[name].to_yaml_string())
                for name in sorted(self._loggers)
            ]
            return _dump_yaml(nodes)


class AppenderKind(enum.IntEnum):
    """Kind of appender named in a log configuration."""

    FILE = 1
    STDOUT = 2


@dataclass(frozen=True)
class LogAppenderDefine:
    """Configuration of one appender."""

    kind: AppenderKind
    pattern: str = ""
    file: str = ""


@dataclass(frozen=True)
class LogDefine:
    """Configuration of one logger."""

    name: str
    level: LogLevel = LogLevel.NOTSET
    appenders: tuple[LogAppenderDefine, ...] = field(default_factory=tuple)

    def __lt__(self, other: "LogDefine") -> bool:
        return self.name < other.name

    @property
    def is_valid(self) -> bool:
        return bool(self.name)


def _config_error(message: str, node: Any) -> None:
    print(f"log appender config error: {message}, {node}", file=sys.stderr)


def parse_log_define(text: str) -> LogDefine:
    """Parse a YAML logger definition; raise ValueError if it has no name."""
    node = yaml.safe_load(text)
    if not isinstance(node, dict) or node.get("name") is None:
        raise ValueError("log config name is null")
    name = str(node["name"])
    level_value = node.get("level")
    level = LogLevel.from_string("" if level_value is None else str(level_value))
    appenders: list[LogAppenderDefine] = []
    for item in node.get("appenders") or []:
        if not isinstance(item, dict) or item.get("type") is None:
            _config_error("appender type is null", item)
            continue
        kind = str(item["type"])
        pattern = "" if item.get("pattern") is None else str(item["pattern"])
        if kind == "FileLogAppender":
            if item.get("file") is None:
                _config_error("file appender file is null", item)
                continue
            appenders.append(LogAppenderDefine(AppenderKind.FILE, pattern, str(item["file"])))
        elif kind == "StdoutLogAppender":
            appenders.append(LogAppenderDefine(AppenderKind.STDOUT, pattern))
        else:
            _config_error("appender type is invalid", item)
    return LogDefine(name, level, tuple(appenders))


def dump_log_define(define: LogDefine) -> str:
    """Render a logger definition as YAML."""
    node: dict[str, Any] = {"name": define.name, "level": LogLevel(define.level).to_string()}
    items = []
    for appender in define.appenders:
        item: dict[str, Any] = {}
        if appender.kind == AppenderKind.FILE:
            item["type"] = "FileLogAppender"
            item["file"] = appender.file
        elif appender.kind == AppenderKind.STDOUT:
            item["type"] = "StdoutLogAppender"
        if appender.pattern:
            item["pattern"] = appender.pattern
        items.append(item)
    if items:
        node["appenders"] = items
    return _dump_yaml(node)


def apply_log_defines(
    manager: LoggerManager,
    old_defines: Iterable[LogDefine],
    new_defines: Iterable[LogDefine],
    daemon: bool = False,
) -> None:
    """Reconfigure loggers from a changed set of definitions.

    New or changed loggers get the configured level and appenders; loggers that
    are no longer defined are reset to NOTSET with no appenders. In daemon mode
    stdout appenders are left out.
    """
    manager.root.log_message(LogLevel.INFO, "on log config changed")
    old_by_name = {d.name: d for d in old_defines}
    new_by_name = {d.name: d for d in new_defines}
    for name, define in new_by_name.items():
        previous = old_by_name.get(name)
        if previous is not None and previous == define:
            continue
        logger = manager.get_logger(name)
        logger.level = define.level
        logger.clear_appenders()
        for spec in define.appenders:
            appender: LogAppender
            if spec.kind == AppenderKind.FILE:
                appender = FileLogAppender(spec.file)
            elif daemon:
                continue
            else:
                appender = StdoutLogAppender()
            appender.formatter = LogFormatter(spec.pattern) if spec.pattern else LogFormatter()
            logger.add_appender(appender)
    for name in old_by_name:
        if name not in new_by_name:
            logger = manager.get_logger(name)
            logger.level = LogLevel.NOTSET
            logger.clear_appenders()


_manager: LoggerManager | None = None
_manager_lock = threading.Lock()


def get_manager() -> LoggerManager:
    """Return the process-wide logger manager."""
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = LoggerManager()
        return _manager


def get_logger(name: str) -> Logger:
    """Return the named logger from the process-wide manager."""
    return get_manager().get_logger(name)


def root_logger() -> Logger:
    """Return the process-wide root logger."""
    return get_manager().root