import pytest
import requests

from systools.mcp.servers import srv_web
from systools.mcp.servers.srv_web import WebServer, html_to_text


def make_response(status, body=b"", headers=None, reason="OK"):
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response._content = body
    response.headers.update(headers or {})
    response.encoding = "utf-8"
    response.url = "https://example.com/"
    return response


@pytest.fixture
def fetch(monkeypatch):
    calls = []

    def install(response):
        def fake_get(url, **kwargs):
            calls.append((url, kwargs))
            if isinstance(response, Exception):
                raise response
            return response
        monkeypatch.setattr(srv_web.requests, "get", fake_get)
        return calls
    return install


def test_html_to_text_strips_markup():
    html = "<html><style>p {}</style><script>alert(1)</script><p>Hello <b>world</b></p>\n\n</html>"
    assert html_to_text(html) == "Hello world"


def test_fetch_returns_text(fetch, ctx):
    calls = fetch(make_response(200, b"<h1>Title</h1><p>Body</p>"))
    result = WebServer().web_fetch(ctx, {"url": "https://example.com", "prompt": "summarize"})

    assert result.text == "Title Body"
    assert calls[0][1]["allow_redirects"] is False


def test_fetch_truncates(fetch, ctx):
    fetch(make_response(200, b"x" * 100))
    result = WebServer(text_limit=10).web_fetch(ctx, {"url": "https://example.com", "prompt": ""})
    assert result.text == "x" * 10 + "\n[truncated]"


def test_redirect_is_reported_not_followed(fetch, ctx):
    fetch(make_response(301, reason="Moved Permanently", headers={"Location": "https://example.org/"}))
    result = WebServer().web_fetch(ctx, {"url": "https://example.com", "prompt": ""})
    assert not result.is_error
    assert result.text == "Redirect to: https://example.org/"


def test_http_error_status(fetch, ctx):
    fetch(make_response(404, reason="Not Found"))
    result = WebServer().web_fetch(ctx, {"url": "https://example.com/missing", "prompt": ""})
    assert result.is_error
    assert result.text.startswith("HTTP 404")


def test_network_failure(fetch, ctx):
    fetch(requests.ConnectionError("no route to host"))
    result = WebServer().web_fetch(ctx, {"url": "https://example.com", "prompt": ""})
    assert result.is_error
    assert result.text == "Fetch failed: no route to host"


def test_missing_charset_decodes_as_utf8(fetch, ctx):
    response = make_response(200, "<p>café ☃</p>".encode("utf-8"), headers={"Content-Type": "text/html"})
    response.encoding = "ISO-8859-1"
    fetch(response)

    result = WebServer().web_fetch(ctx, {"url": "https://example.com", "prompt": ""})
    assert result.text == "café ☃"


def test_declared_charset_is_respected(fetch, ctx):
    response = make_response(200, "<p>café</p>".encode("latin-1"),
                             headers={"Content-Type": "text/html; charset=ISO-8859-1"})
    response.encoding = "ISO-8859-1"
    fetch(response)

    result = WebServer().web_fetch(ctx, {"url": "https://example.com", "prompt": ""})
    assert result.text == "café"
