from dataclasses import dataclass, field

import pytest

from weaveio.servlet import (
    ClassServletCreator,
    FunctionServlet,
    HoldServletCreator,
    NotFoundServlet,
    Servlet,
    ServletDispatch,
)


@dataclass
class FakeRequest:
    path: str


@dataclass
class FakeResponse:
    status: int = 200
    headers: dict = field(default_factory=dict)
    body: str = ""


class EchoServlet(Servlet):
    def __init__(self, tag="echo"):
        super().__init__("EchoServlet")
        self.tag = tag

    def handle(self, request, response, session):
        response.body = f"{self.tag}:{request.path}"
        return 0


def test_function_servlet_passes_arguments_and_result():
    seen = []

    def cb(req, rsp, sess):
        seen.append((req, rsp, sess))
        return 7

    servlet = FunctionServlet(cb)
    req, rsp = FakeRequest("/a"), FakeResponse()
    assert servlet.handle(req, rsp, "session") == 7
    assert seen == [(req, rsp, "session")]
    assert servlet.name == "FunctionServlet"


def test_function_servlet_rejects_non_callable():
    with pytest.raises(TypeError):
        FunctionServlet(42)


def test_not_found_servlet_fills_response():
    servlet = NotFoundServlet("myserver")
    rsp = FakeResponse()
    assert servlet.handle(FakeRequest("/x"), rsp, None) == 0
    assert rsp.status == 404
    assert rsp.headers["Content-Type"] == "text/html"
    assert "404 Not Found" in rsp.body
    assert "<center>myserver</center>" in rsp.body


def test_hold_creator_returns_same_instance():
    servlet = EchoServlet()
    creator = HoldServletCreator(servlet)
    assert creator.get() is servlet
    assert creator.name == "EchoServlet"


def test_class_creator_builds_new_instances():
    creator = ClassServletCreator(EchoServlet)
    first, second = creator.get(), creator.get()
    assert isinstance(first, EchoServlet)
    assert first is not second
    assert creator.name == "EchoServlet"


def test_unmatched_path_uses_default_not_found():
    dispatch = ServletDispatch()
    rsp = FakeResponse()
    assert dispatch.handle(FakeRequest("/missing"), rsp, None) == 0
    assert rsp.status == 404
    assert isinstance(dispatch.get_matched_servlet("/missing"), NotFoundServlet)


def test_exact_match_beats_glob():
    dispatch = ServletDispatch()
    exact, glob = EchoServlet("exact"), EchoServlet("glob")
    dispatch.add_glob_servlet("/api/*", glob)
    dispatch.add_servlet("/api/users", exact)
    assert dispatch.get_matched_servlet("/api/users") is exact
    assert dispatch.get_matched_servlet("/api/other") is glob


def test_dispatch_handle_routes_to_servlet():
    dispatch = ServletDispatch()
    dispatch.add_servlet("/hello", EchoServlet("hi"))
    rsp = FakeResponse()
    dispatch.handle(FakeRequest("/hello"), rsp, None)
    assert rsp.body == "hi:/hello"
    assert rsp.status == 200


def test_add_servlet_with_callback():
    dispatch = ServletDispatch()

    def cb(req, rsp, sess):
        rsp.body = "from callback"
        return 0

    dispatch.add_servlet("/cb", cb)
    rsp = FakeResponse()
    dispatch.handle(FakeRequest("/cb"), rsp, None)
    assert rsp.body == "from callback"
    assert isinstance(dispatch.get_servlet("/cb"), FunctionServlet)


def test_add_servlet_rejects_non_servlet():
    with pytest.raises(TypeError):
        ServletDispatch().add_servlet("/x", "not a servlet")


def test_glob_order_and_readd_moves_to_end():
    dispatch = ServletDispatch()
    first, second = EchoServlet("1"), EchoServlet("2")
    dispatch.add_glob_servlet("/a*", first)
    dispatch.add_glob_servlet("/ab*", second)
    assert dispatch.get_matched_servlet("/abc") is first
    replacement = EchoServlet("3")
    dispatch.add_glob_servlet("/a*", replacement)
    assert dispatch.get_matched_servlet("/abc") is second
    assert dispatch.get_glob_servlet("/a*") is replacement
    assert list(dispatch.list_all_glob_servlet_creators()) == ["/ab*", "/a*"]


def test_glob_star_crosses_slashes():
    dispatch = ServletDispatch()
    glob = EchoServlet()
    dispatch.add_glob_servlet("/static/*", glob)
    assert dispatch.get_matched_servlet("/static/css/site.css") is glob


def test_get_servlet_missing_returns_none():
    dispatch = ServletDispatch()
    assert dispatch.get_servlet("/nope") is None
    assert dispatch.get_glob_servlet("/nope*") is None


def test_delete_routes():
    dispatch = ServletDispatch()
    dispatch.add_servlet("/x", EchoServlet())
    dispatch.add_glob_servlet("/y*", EchoServlet())
    dispatch.del_servlet("/x")
    dispatch.del_glob_servlet("/y*")
    dispatch.del_servlet("/never-added")
    assert dispatch.get_servlet("/x") is None
    assert dispatch.get_glob_servlet("/y*") is None
    assert dispatch.list_all_servlet_creators() == {}
    assert dispatch.list_all_glob_servlet_creators() == {}


def test_servlet_creator_routes():
    dispatch = ServletDispatch()
    dispatch.add_servlet_creator("/new", ClassServletCreator(EchoServlet))
    dispatch.add_glob_servlet_creator("/g*", ClassServletCreator(EchoServlet))
    a, b = dispatch.get_servlet("/new"), dispatch.get_servlet("/new")
    assert isinstance(a, EchoServlet) and a is not b
    assert isinstance(dispatch.get_matched_servlet("/go"), EchoServlet)
    creators = dispatch.list_all_servlet_creators()
    assert set(creators) == {"/new"}
    assert creators["/new"].name == "EchoServlet"


def test_default_can_be_replaced_or_removed():
    dispatch = ServletDispatch()
    fallback = EchoServlet("fallback")
    dispatch.default = fallback
    assert dispatch.get_matched_servlet("/zzz") is fallback
    dispatch.default = None
    rsp = FakeResponse()
    assert dispatch.handle(FakeRequest("/zzz"), rsp, None) == 0
    assert rsp.body == "" and rsp.status == 200


def test_listing_is_a_copy():
    dispatch = ServletDispatch()
    dispatch.add_servlet("/x", EchoServlet())
    listing = dispatch.list_all_servlet_creators()
    listing.clear()
    assert set(dispatch.list_all_servlet_creators()) == {"/x"}