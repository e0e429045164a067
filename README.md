# weaveio

Building blocks for small event-driven services, in four modules:

- `weaveio.logformat`: `LogLevel`, `LogEvent`, `LogFormatter` and
  `LogPatternError`.
- `weaveio.logger`: `Logger`, `StdoutLogAppender`, `FileLogAppender`,
  `LoggerManager` and YAML logger definitions (`LogDefine`,
  `LogAppenderDefine`, `AppenderKind`, `parse_log_define`,
  `dump_log_define`, `apply_log_defines`), plus the process-wide helpers
  `get_manager`, `get_logger` and `root_logger`.
- `weaveio.iomanager`: `IOManager`, `Event` and `EventRegistrationError`.
- `weaveio.servlet`: `Servlet`, `FunctionServlet`, `NotFoundServlet`,
  `ServletDispatch` and the creators `ServletCreator`,
  `HoldServletCreator` and `ClassServletCreator`.

## Install

```
pip install weaveio
```

The only runtime dependency is PyYAML.

## Log formatting

`LogLevel` is an integer enum where a smaller value is more severe:
`FATAL` (0), `ALERT`, `CRIT`, `ERROR`, `WARN`, `NOTICE`, `INFO`, `DEBUG`
(700) and `NOTSET` (800). `LogLevel.from_string` accepts a level name
written all in lower case or all in upper case; anything else gives
`NOTSET`.

A `LogEvent` collects its message through `write(text)` or
`printf(fmt, *args)`; both return the event so calls can be chained.

`LogFormatter(pattern)` renders events with these items:

| Item | Output |
|------|--------|
| `%m` | message |
| `%p` | level name |
| `%c` | logger name |
| `%d` / `%d{fmt}` | local time, with an optional strftime format (default `%Y-%m-%d %H:%M:%S`) |
| `%r` | elapsed milliseconds since the logger was created |
| `%f` | file |
| `%l` | line |
| `%t` | thread id |
| `%F` | fiber id |
| `%N` | thread name |
| `%T` | tab |
| `%n` | newline |
| `%%` | a percent sign |

An unknown item or an unclosed `%d{` raises `LogPatternError` (a
`ValueError`). `format(event)` returns a string; `format_to(stream, event)`
writes to a stream and returns it.

## Loggers

```python
from weaveio.logformat import LogLevel
from weaveio.logger import get_logger, StdoutLogAppender

log = get_logger("app")
log.add_appender(StdoutLogAppender())
log.log_message(LogLevel.INFO, "service started")
```

A `Logger` starts at level `INFO` and passes an event to its appenders when
the event's level is at or above the logger's in severity.
`log_message` records the caller's file and line and returns the event, or
`None` when the level is filtered out.

`StdoutLogAppender` writes to standard output or to a stream passed to it.
`FileLogAppender` appends to a file and reopens it whenever an event comes
3 seconds or more after the last reopen; call `close()` when done with it.
Every appender has a `formatter` property that falls back to the default
pattern when none is set.

`LoggerManager` holds a `root` logger writing to standard output and creates
loggers without appenders on first request. Each object has a
`to_yaml_string()` describing its configuration.

### YAML definitions

```python
from weaveio.logger import parse_log_define, dump_log_define

define = parse_log_define("""
name: app
level: debug
appenders:
  - type: FileLogAppender
    file: /tmp/app.log
""")
print(dump_log_define(define))
```

A definition without `name` raises `ValueError`; appenders with a missing or
unknown `type`, or a `FileLogAppender` without `file`, are reported on
standard error and skipped.
`apply_log_defines(manager, old_defines, new_defines, daemon=False)` gives
new or changed loggers their configured level and appenders, and resets
loggers that are no longer defined to `NOTSET` with no appenders. With
`daemon=True` stdout appenders are left out.

## IO events

```python
import os
from weaveio.iomanager import IOManager, Event

read_end, write_end = os.pipe()
with IOManager("io") as iom:
    iom.add_event(read_end, Event.READ, lambda: print(os.read(read_end, 10)))
    os.write(write_end, b"ping")
```

An `IOManager` runs its loop on one background thread. It takes file
descriptors or objects with `fileno()`.

- `add_event(fd, event, callback)` waits once for `Event.READ` or
  `Event.WRITE`; registering the same event twice raises
  `EventRegistrationError`. After firing, a registration is gone and must be
  added again.
- `del_event` removes a registration without calling it; `cancel_event` and
  `cancel_all` remove registrations and run their callbacks once. Each
  returns `False` when there was nothing to remove.
- `schedule(callback)` runs a callback on the loop thread.
- `stop()` (also on leaving the `with` block) waits until every registered
  event has fired or been removed and all scheduled callbacks have run.
  After that, `add_event` and `schedule` raise `RuntimeError`.

`IOManager.current()` returns the manager running on the calling thread, and
`pending_event_count` the number of registrations not yet fired. Exceptions
from callbacks are logged to the `system` logger.

## Servlets

```python
from weaveio.servlet import ServletDispatch, FunctionServlet

dispatch = ServletDispatch()
dispatch.add_servlet("/hello", FunctionServlet(lambda req, rsp, session: 0))
dispatch.add_glob_servlet("/api/*", lambda req, rsp, session: 0)
servlet = dispatch.get_matched_servlet("/api/users")
```

`ServletDispatch` looks for an exact route first, then the first glob route
(case-sensitive shell-style match) in the order added, then `default`, a
`NotFoundServlet` that sets status 404, `Server` and `Content-Type` headers
and an HTML body. Re-adding a glob pattern moves it to the end.
`add_servlet` and `add_glob_servlet` take a `Servlet` or a callable;
`ClassServletCreator` makes a fresh servlet per lookup.

A request is any object with a `path` attribute; a response is any object
with writable `status` and `body` and a `headers` mapping.

## What it does not do

The package has no HTTP server, client, session or request and response
types, no socket streams and no timers; the servlets work with whatever
request and response objects the caller supplies. `IOManager` runs plain
callbacks, not coroutines. Logging configuration is applied by calling
`apply_log_defines`; nothing watches configuration files.

## Tests

```
pip install -e ".[test]"
pytest
```