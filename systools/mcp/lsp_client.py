"""Language server client - one short-lived stdio session per query"""
import json
import os
import subprocess
import threading
from pathlib import Path
from typing import Any, Dict, List, Tuple
from urllib.parse import unquote, urlparse

from systools.config import Config
from systools.core.errors import (
    ExternalToolNotFoundError,
    FramingError,
    QueryError,
    ToolTimeoutError,
    UnsupportedLanguageError,
)
from systools.mcp.protocol import CONTENT_LENGTH, MessageCodec
from systools.observability.logger import logger

# extension -> (server command, languageId)
LANGUAGE_SERVERS: Dict[str, Tuple[List[str], str]] = {
    ".rb": (["ruby-lsp"], "ruby"),
    ".ts": (["typescript-language-server", "--stdio"], "typescript"),
    ".tsx": (["typescript-language-server", "--stdio"], "typescriptreact"),
    ".js": (["typescript-language-server", "--stdio"], "javascript"),
    ".jsx": (["typescript-language-server", "--stdio"], "javascriptreact"),
    ".py": (["pylsp"], "python"),
    ".go": (["gopls"], "go"),
    ".rs": (["rust-analyzer"], "rust"),
}

OPERATIONS = {
    "goToDefinition": "textDocument/definition",
    "findReferences": "textDocument/references",
    "hover": "textDocument/hover",
    "documentSymbol": "textDocument/documentSymbol",
    "workspaceSymbol": "workspace/symbol",
    "goToImplementation": "textDocument/implementation",
    "prepareCallHierarchy": "textDocument/prepareCallHierarchy",
    "incomingCalls": "callHierarchy/incomingCalls",
    "outgoingCalls": "callHierarchy/outgoingCalls",
}

LOCATION_OPERATIONS = {"goToDefinition", "findReferences", "goToImplementation"}
SYMBOL_OPERATIONS = {"documentSymbol", "workspaceSymbol"}
CALL_OPERATIONS = {"incomingCalls", "outgoingCalls"}

SYMBOL_KINDS = {
    1: "File", 2: "Module", 3: "Namespace", 4: "Package", 5: "Class",
    6: "Method", 7: "Property", 8: "Field", 9: "Constructor", 10: "Enum",
    11: "Interface", 12: "Function", 13: "Variable", 14: "Constant",
    15: "String", 16: "Number", 17: "Boolean", 18: "Array", 19: "Object",
    20: "Key", 21: "Null", 22: "EnumMember", 23: "Struct", 24: "Event",
    25: "Operator", 26: "TypeParameter",
}

SHUTDOWN_GRACE_SEC = 2


class LanguageServerSession:
    """A spawned language server and its request id counter, for one query"""

    def __init__(self, command: List[str], timeout: float, cwd: str = None):
        self.command = command
        self.timeout = timeout
        self.codec = MessageCodec(CONTENT_LENGTH)
        self._request_id = 0
        self._timed_out = threading.Event()

        try:
            self.process = subprocess.Popen(
                command,
                cwd=cwd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
            )
        except FileNotFoundError:
            raise ExternalToolNotFoundError(f"LSP server not found: {command[0]}") from None

        self._watchdog = threading.Timer(timeout, self._expire)
        self._watchdog.daemon = True
        self._watchdog.start()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _expire(self):
        self._timed_out.set()
        self.process.kill()

    def _get_next_id(self) -> int:
        """Get next request ID"""
        self._request_id += 1
        return self._request_id

    def _connection_lost(self, cause: Exception = None):
        if self._timed_out.is_set():
            raise ToolTimeoutError(f"LSP server timed out after {self.timeout}s: {self.command[0]}")
        detail = f": {cause}" if cause else ""
        raise QueryError(f"LSP server closed the connection{detail}")

    def send(self, message: Dict[str, Any]):
        try:
            self.process.stdin.write(self.codec.encode(message))
            self.process.stdin.flush()
        except OSError as e:
            self._connection_lost(e)

    def notify(self, method: str, params: Any):
        self.send({"jsonrpc": "2.0", "method": method, "params": params})

    def request(self, method: str, params: Any) -> Dict[str, Any]:
        """Send a request and wait for the response carrying its id"""
        request_id = self._get_next_id()
        self.send({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})

        while True:
            try:
                message = self.codec.decode(self.process.stdout)
            except FramingError as e:
                self._connection_lost(e)
            if message is None:
                self._connection_lost()

            if "method" not in message:
                if message.get("id") == request_id:
                    return message
                continue
            if "id" in message:
                # server -> client request (configuration, progress tokens)
                self.send({"jsonrpc": "2.0", "id": message["id"], "result": None})

    def close(self):
        self._watchdog.cancel()
        try:
            self.process.stdin.close()
        except OSError:
            pass
        try:
            self.process.wait(timeout=SHUTDOWN_GRACE_SEC)
        except subprocess.TimeoutExpired:
            self.process.kill()
            self.process.wait()
        self.process.stdout.close()


class LanguageServerClient:
    """Run a single initialize -> open -> query -> shutdown exchange per call"""

    def __init__(self, servers: Dict[str, Tuple[List[str], str]] = None,
                 timeout: float = None, root_dir: str = None):
        self.servers = servers if servers is not None else LANGUAGE_SERVERS
        self.timeout = timeout or Config.LSP_TIMEOUT
        self.root_dir = Path(root_dir or os.getcwd()).resolve()

    def resolve_server(self, path: Path) -> Tuple[List[str], str]:
        ext = path.suffix
        if ext not in self.servers:
            raise UnsupportedLanguageError(f"No LSP server configured for {ext or path.name}")
        return self.servers[ext]

    def query(self, operation: str, file_path: str, line: int, character: int) -> str:
        """Run operation at a 1-indexed position and return formatted text"""
        if operation not in OPERATIONS:
            raise QueryError(f"Unsupported operation: {operation}")

        path = Path(file_path).expanduser().resolve()
        command, language_id = self.resolve_server(path)
        if not path.is_file():
            raise QueryError(f"Not found: {path}")
        text = path.read_text(encoding="utf-8", errors="replace")
        uri = path.as_uri()

        # The wire protocol is 0-indexed
        position = {"line": max(line - 1, 0), "character": max(character - 1, 0)}

        logger.info("lsp_query", operation=operation, server=command[0], path=str(path))
        with LanguageServerSession(command, self.timeout, cwd=str(self.root_dir)) as session:
            session.request("initialize", {
                "processId": os.getpid(),
                "rootUri": self.root_dir.as_uri(),
                "workspaceFolders": [{"uri": self.root_dir.as_uri(), "name": self.root_dir.name}],
                "capabilities": {
                    "textDocument": {"hover": {"contentFormat": ["plaintext", "markdown"]}}
                },
            })
            session.notify("initialized", {})
            session.notify("textDocument/didOpen", {
                "textDocument": {"uri": uri, "languageId": language_id, "version": 1, "text": text}
            })

            response = self._run_operation(session, operation, uri, position)

            try:
                session.request("shutdown", None)
                session.notify("exit", None)
            except (QueryError, ToolTimeoutError) as e:
                logger.warning("lsp_shutdown_failed", server=command[0], error=str(e))

        return format_result(operation, response)

    def _run_operation(self, session: LanguageServerSession, operation: str,
                       uri: str, position: Dict[str, int]) -> Dict[str, Any]:
        document = {"uri": uri}
        if operation == "documentSymbol":
            return session.request(OPERATIONS[operation], {"textDocument": document})
        if operation == "workspaceSymbol":
            return session.request(OPERATIONS[operation], {"query": ""})

        params = {"textDocument": document, "position": position}
        if operation == "findReferences":
            params["context"] = {"includeDeclaration": True}
        if operation not in CALL_OPERATIONS:
            return session.request(OPERATIONS[operation], params)

        prepared = session.request(OPERATIONS["prepareCallHierarchy"], params)
        items = prepared.get("result")
        if prepared.get("error") or not items:
            return prepared
        return session.request(OPERATIONS[operation], {"item": items[0]})


def uri_to_path(uri: str) -> str:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return unquote(parsed.path)
    return uri


def _as_list(result) -> list:
    return result if isinstance(result, list) else [result]


def _start_line(item: Dict) -> Any:
    rng = item.get("selectionRange") or item.get("range") or item.get("location", {}).get("range")
    if not rng:
        return "?"
    return rng["start"]["line"] + 1


def format_location(location: Dict) -> str:
    uri = location.get("uri") or location.get("targetUri", "")
    rng = location.get("range") or location.get("targetSelectionRange") or location.get("targetRange")
    start = rng["start"]
    return f"{uri_to_path(uri)}:{start['line'] + 1}:{start['character'] + 1}"


def _flatten_symbols(symbols: list) -> list:
    flat = []
    for symbol in symbols:
        flat.append(symbol)
        flat.extend(_flatten_symbols(symbol.get("children") or []))
    return flat


def format_symbol(symbol: Dict) -> str:
    kind = SYMBOL_KINDS.get(symbol.get("kind"), symbol.get("kind"))
    rng = symbol.get("range") or symbol.get("location", {}).get("range")
    line = rng["start"]["line"] + 1 if rng else "?"
    return f"{kind}: {symbol.get('name')} @ line {line}"


def format_call_item(item: Dict) -> str:
    kind = SYMBOL_KINDS.get(item.get("kind"), item.get("kind"))
    return f"{kind}: {item.get('name')} @ {uri_to_path(item.get('uri', ''))}:{_start_line(item)}"


def hover_text(contents) -> str:
    """Normalize MarkupContent, MarkedString or a list of them to plain text"""
    if contents is None:
        return ""
    if isinstance(contents, str):
        return contents.strip()
    if isinstance(contents, list):
        parts = [hover_text(part) for part in contents]
        return "\n\n".join(part for part in parts if part)
    if isinstance(contents, dict):
        return str(contents.get("value", "")).strip()
    return str(contents).strip()


def format_result(operation: str, response: Dict[str, Any]) -> str:
    error = response.get("error")
    if error:
        raise QueryError(error.get("message") or "Unknown LSP error")

    result = response.get("result")
    if result is None or result == [] or result == {}:
        return "No results"

    if operation == "hover":
        text = hover_text(result.get("contents") if isinstance(result, dict) else result)
        return text or "No results"
    if operation in LOCATION_OPERATIONS:
        return "\n".join(format_location(loc) for loc in _as_list(result))
    if operation in SYMBOL_OPERATIONS:
        return "\n".join(format_symbol(s) for s in _flatten_symbols(_as_list(result)))
    if operation == "prepareCallHierarchy":
        return "\n".join(format_call_item(item) for item in _as_list(result))
    if operation == "incomingCalls":
        return "\n".join(format_call_item(call["from"]) for call in _as_list(result))
    if operation == "outgoingCalls":
        return "\n".join(format_call_item(call["to"]) for call in _as_list(result))
    return json.dumps(result)
