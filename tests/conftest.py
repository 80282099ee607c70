import io
import json
import sys
import textwrap

import pytest

from systools.core.context import ServerContext
from systools.core.processes import BackgroundProcessManager
from systools.core.router import Router
from systools.core.tasks import BackgroundTaskManager
from systools.mcp.catalog import build_registry
from systools.mcp.protocol import MCPProtocol
from systools.mcp.server import StdioServer
from systools.mcp.servers.srv_agent import AgentServer

FAKE_LSP_SOURCE = textwrap.dedent('''
    import json
    import os
    import sys

    MODE = os.environ.get("FAKE_LSP_MODE", "ok")
    LOG = os.environ.get("FAKE_LSP_LOG")
    stdin, stdout = sys.stdin.buffer, sys.stdout.buffer


    def read():
        length = None
        while True:
            line = stdin.readline()
            if not line:
                sys.exit(0)
            if not line.strip():
                break
            name, _, value = line.decode().partition(":")
            if name.lower() == "content-length":
                length = int(value)
        return json.loads(stdin.read(length))


    def send(message):
        body = json.dumps(message).encode()
        stdout.write(b"Content-Length: %d\\r\\n\\r\\n" % len(body) + body)
        stdout.flush()


    def log(method):
        if LOG:
            with open(LOG, "a") as f:
                f.write(method + "\\n")


    def answer(msg):
        method, params = msg["method"], msg.get("params") or {}
        pos = params.get("position", {})
        if MODE == "error" and method.startswith(("textDocument/", "workspace/", "callHierarchy/")):
            return {"error": {"code": -32603, "message": "boom from server"}}
        if MODE == "empty" and method not in ("initialize", "shutdown"):
            return {"result": None}
        if method == "initialize":
            return {"result": {"capabilities": {}}}
        if method == "shutdown":
            return {"result": None}
        if method == "textDocument/hover":
            return {"result": {"contents": {"kind": "markdown",
                    "value": "line %d char %d" % (pos["line"], pos["character"])}}}
        if method in ("textDocument/definition", "textDocument/implementation"):
            return {"result": [{"uri": "file:///src/app.py",
                    "range": {"start": {"line": 4, "character": 2}, "end": {"line": 4, "character": 9}}}]}
        if method == "textDocument/references":
            return {"result": [
                {"uri": "file:///src/a.py", "range": {"start": {"line": 0, "character": 0}, "end": {"line": 0, "character": 1}}},
                {"targetUri": "file:///src/b%20c.py", "targetRange": {"start": {"line": 9, "character": 4}, "end": {"line": 9, "character": 5}}},
            ]}
        if method == "textDocument/documentSymbol":
            return {"result": [{"name": "Greeter", "kind": 5,
                    "range": {"start": {"line": 0, "character": 0}, "end": {"line": 5, "character": 0}},
                    "children": [{"name": "greet", "kind": 6,
                        "range": {"start": {"line": 2, "character": 4}, "end": {"line": 3, "character": 0}}}]}]}
        if method == "workspace/symbol":
            return {"result": [{"name": "main", "kind": 12,
                    "location": {"uri": "file:///src/app.py", "range": {"start": {"line": 11, "character": 0}, "end": {"line": 11, "character": 4}}}}]}
        if method == "textDocument/prepareCallHierarchy":
            return {"result": [{"name": "greet", "kind": 6, "uri": "file:///src/app.py",
                    "range": {"start": {"line": 2, "character": 4}, "end": {"line": 3, "character": 0}},
                    "selectionRange": {"start": {"line": 2, "character": 8}, "end": {"line": 2, "character": 13}}}]}
        if method == "callHierarchy/incomingCalls":
            return {"result": [{"from": {"name": "main", "kind": 12, "uri": "file:///src/app.py",
                    "range": {"start": {"line": 11, "character": 0}, "end": {"line": 12, "character": 0}}},
                    "fromRanges": []}]}
        return {"result": None}


    while True:
        msg = read()
        if "method" not in msg:
            log("<response>")
            continue
        log(msg["method"])
        if msg["method"] == "exit":
            sys.exit(0)
        if "id" not in msg:
            continue
        if msg["method"] == "initialize":
            send({"jsonrpc": "2.0", "method": "window/logMessage", "params": {"type": 3, "message": "hi"}})
            send({"jsonrpc": "2.0", "id": "srv-1", "method": "workspace/configuration", "params": {"items": []}})
        if MODE == "hang" and msg["method"] == "textDocument/hover":
            continue
        send(dict({"jsonrpc": "2.0", "id": msg["id"]}, **answer(msg)))
''')


@pytest.fixture
def ctx(tmp_path):
    context = ServerContext(
        processes=BackgroundProcessManager(log_dir=str(tmp_path / "logs")),
        tasks=BackgroundTaskManager(max_workers=2),
    )
    yield context
    context.close()


@pytest.fixture
def fake_lsp(tmp_path):
    """Command line for a scripted language server"""
    script = tmp_path / "fake_lsp.py"
    script.write_text(FAKE_LSP_SOURCE)
    return [sys.executable, str(script)]


@pytest.fixture
def router(ctx):
    registry = build_registry(srv_agent=AgentServer(complete=lambda model, system, prompt: f"echo: {prompt}"))
    return Router(registry, ctx)


@pytest.fixture
def run_server(router):
    """Feed newline-delimited messages through the transport loop and collect the responses"""
    def run(*messages):
        lines = []
        for message in messages:
            lines.append(message if isinstance(message, str) else json.dumps(message))
        instream = io.BytesIO(("\n".join(lines) + "\n").encode("utf-8"))
        outstream = io.BytesIO()
        StdioServer(router, MCPProtocol(instream, outstream), request_workers=4).serve()
        return [json.loads(line) for line in outstream.getvalue().decode("utf-8").splitlines()]
    return run
