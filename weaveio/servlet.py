"""Request handlers (servlets) and a dispatcher that routes paths to them.

A request is any object with a ``path`` attribute. A response is any object
with writable ``status`` and ``body`` attributes and a ``headers`` mapping.
"""

from __future__ import annotations

import abc
import fnmatch
import threading
from http import HTTPStatus
from typing import Any, Callable, Union

ServletCallback = Callable[[Any, Any, Any], int]

DEFAULT_SERVER_NAME = "weaveio/1.0"
NOT_FOUND_SERVER_HEADER = "weaveio/1.0.0"


class Servlet(abc.ABC):
    """Handles one HTTP request by filling in the response."""

    def __init__(self, name: str) -> None:
        self.name = name

    @abc.abstractmethod
    def handle(self, request: Any, response: Any, session: Any) -> int:
        """Process the request; return 0 on success."""


class FunctionServlet(Servlet):
    """A servlet whose work is done by a plain callable."""

    def __init__(self, callback: ServletCallback) -> None:
        if not callable(callback):
            raise TypeError("callback must be callable")
        super().__init__("FunctionServlet")
        self._callback = callback

    def handle(self, request: Any, response: Any, session: Any) -> int:
        return self._callback(request, response, session)


class ServletCreator(abc.ABC):
    """Supplies the servlet for a route."""

    @abc.abstractmethod
    def get(self) -> Servlet:
        """Return the servlet to handle a request."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """A descriptive name of the servlet supplied."""


class HoldServletCreator(ServletCreator):
    """Always supplies the same servlet instance."""

    def __init__(self, servlet: Servlet) -> None:
        self._servlet = servlet

    def get(self) -> Servlet:
        return self._servlet

    @property
    def name(self) -> str:
        return self._servlet.name


class ClassServletCreator(ServletCreator):
    """Supplies a new instance of a servlet class for each request."""

    def __init__(self, servlet_class: type[Servlet]) -> None:
        self._servlet_class = servlet_class

    def get(self) -> Servlet:
        return self._servlet_class()

    @property
    def name(self) -> str:
        return self._servlet_class.__name__


class NotFoundServlet(Servlet):
    """Answers every request with a 404 page."""

    def __init__(self, name: str) -> None:
        super().__init__("NotFoundServlet")
        self.server_name = name
        self.content = (
            "<html><head><title>404 Not Found"
            "</title></head><body><center><h1>404 Not Found</h1></center>"
            "<hr><center>" + name + "</center></body></html>"
        )

    def handle(self, request: Any, response: Any, session: Any) -> int:
        response.status = HTTPStatus.NOT_FOUND
        response.headers["Server"] = NOT_FOUND_SERVER_HEADER
        response.headers["Content-Type"] = "text/html"
        response.body = self.content
        return 0


ServletLike = Union[Servlet, ServletCallback]


def _as_servlet(servlet: ServletLike) -> Servlet:
    if isinstance(servlet, Servlet):
        return servlet
    if callable(servlet):
        return FunctionServlet(servlet)
    raise TypeError("expected a Servlet or a callable")


class ServletDispatch(Servlet):
    """Routes requests by path: exact routes first, then glob routes, then the default."""

    def __init__(self) -> None:
        super().__init__("ServletDispatch")
        self._lock = threading.RLock()
        self._exact: dict[str, ServletCreator] = {}
        self._globs: list[tuple[str, ServletCreator]] = []
        self.default: Servlet | None = NotFoundServlet(DEFAULT_SERVER_NAME)

    def handle(self, request: Any, response: Any, session: Any) -> int:
        servlet = self.get_matched_servlet(request.path)
        if servlet is not None:
            servlet.handle(request, response, session)
        return 0

    def add_servlet(self, uri: str, servlet: ServletLike) -> None:
        """Route an exact path to a servlet or a callback."""
        self.add_servlet_creator(uri, HoldServletCreator(_as_servlet(servlet)))

    def add_glob_servlet(self, uri: str, servlet: ServletLike) -> None:
        """Route a glob pattern to a servlet or a callback."""
        self.add_glob_servlet_creator(uri, HoldServletCreator(_as_servlet(servlet)))

    def add_servlet_creator(self, uri: str, creator: ServletCreator) -> None:
        with self._lock:
            self._exact[uri] = creator

    def add_glob_servlet_creator(self, uri: str, creator: ServletCreator) -> None:
        """Add a glob route; an existing route with the same pattern moves to the end."""
        with self._lock:
            self._remove_glob(uri)
            self._globs.append((uri, creator))

    def _remove_glob(self, uri: str) -> None:
        for index, (pattern, _) in enumerate(self._globs):
            if pattern == uri:
                del self._globs[index]
                return

    def del_servlet(self, uri: str) -> None:
        with self._lock:
            self._exact.pop(uri, None)

    def del_glob_servlet(self, uri: str) -> None:
        with self._lock:
            self._remove_glob(uri)

    def get_servlet(self, uri: str) -> Servlet | None:
        """Return the servlet routed at exactly this path, if any."""
        with self._lock:
            creator = self._exact.get(uri)
        return creator.get() if creator is not None else None

    def get_glob_servlet(self, uri: str) -> Servlet | None:
        """Return the servlet of the glob route whose pattern is exactly uri, if any."""
        with self._lock:
            creator = next((c for pattern, c in self._globs if pattern == uri), None)
        return creator.get() if creator is not None else None

    def get_matched_servlet(self, uri: str) -> Servlet | None:
        """Return the exact match, else the first matching glob, else the default."""
        with self._lock:
            creator = self._exact.get(uri)
            if creator is None:
                creator = next(
                    (c for pattern, c in self._globs if fnmatch.fnmatchcase(uri, pattern)),
                    None,
                )
            default = self.default
        return creator.get() if creator is not None else default

    def list_all_servlet_creators(self) -> dict[str, ServletCreator]:
        with self._lock:
            return dict(self._exact)

    def list_all_glob_servlet_creators(self) -> dict[str, ServletCreator]:
        with self._lock:
            return dict(self._globs)