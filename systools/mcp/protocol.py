"""MCP Protocol - JSON-RPC 2.0 framing for stdio and language-server pipes"""
import json
import sys
import threading
from typing import Any, BinaryIO, Dict, Optional

from systools.core.errors import FramingError

LINE = "line"
CONTENT_LENGTH = "content-length"

INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603


class MessageCodec:
    """Encode/decode one JSON object per frame.

    ``line`` frames are a single JSON document terminated by a newline.
    ``content-length`` frames carry ``Content-Length: N`` headers, a blank
    line, then exactly N body bytes.
    """

    def __init__(self, framing: str = LINE):
        if framing not in (LINE, CONTENT_LENGTH):
            raise ValueError(f"Unknown framing: {framing}")
        self.framing = framing

    def encode(self, message: Dict[str, Any]) -> bytes:
        body = json.dumps(message, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        if self.framing == LINE:
            return body + b"\n"
        return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body

    def decode(self, stream: BinaryIO) -> Optional[Dict[str, Any]]:
        """Read one message; None on a clean end of stream"""
        if self.framing == LINE:
            return self._decode_line(stream)
        return self._decode_framed(stream)

    def _decode_line(self, stream: BinaryIO) -> Optional[Dict[str, Any]]:
        while True:
            line = stream.readline()
            if not line:
                return None
            if line.strip():
                return self._parse(line)

    def _decode_framed(self, stream: BinaryIO) -> Optional[Dict[str, Any]]:
        headers = {}
        while True:
            line = stream.readline()
            if not line:
                if headers:
                    raise FramingError("Stream closed inside message headers")
                return None
            if not line.strip():
                if headers:
                    break
                continue
            name, sep, value = line.decode("latin-1").partition(":")
            if not sep:
                raise FramingError(f"Malformed header line: {line!r}")
            headers[name.strip().lower()] = value.strip()

        raw_length = headers.get("content-length")
        if raw_length is None:
            raise FramingError("Missing Content-Length header")
        try:
            length = int(raw_length)
        except ValueError:
            raise FramingError(f"Malformed Content-Length: {raw_length!r}") from None
        if length < 0:
            raise FramingError(f"Negative Content-Length: {length}")

        return self._parse(self._read_exact(stream, length))

    @staticmethod
    def _read_exact(stream: BinaryIO, length: int) -> bytes:
        chunks = []
        remaining = length
        while remaining > 0:
            chunk = stream.read(remaining)
            if not chunk:
                raise FramingError(
                    f"Stream closed after {length - remaining} of {length} body bytes"
                )
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    @staticmethod
    def _parse(raw: bytes) -> Dict[str, Any]:
        try:
            message = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise FramingError(f"Parse error: {e}") from e
        if not isinstance(message, dict):
            raise FramingError(f"Expected a JSON object, got {type(message).__name__}")
        return message


class MCPProtocol:
    """Handle MCP JSON-RPC 2.0 protocol over newline-delimited stdio"""

    def __init__(self, instream: BinaryIO = None, outstream: BinaryIO = None,
                 codec: MessageCodec = None):
        self.instream = instream if instream is not None else sys.stdin.buffer
        self.outstream = outstream if outstream is not None else sys.__stdout__.buffer
        self.codec = codec or MessageCodec(LINE)
        self._write_lock = threading.Lock()

    @staticmethod
    def setup_stdio_mode():
        """Setup stdio mode - redirect all print statements to stderr"""
        original_stdout = sys.stdout

        # Only JSON-RPC responses may reach the real stdout
        sys.stdout = sys.stderr

        return original_stdout

    def read_request(self) -> Optional[Dict]:
        """Read JSON-RPC message from the input stream; raises FramingError"""
        return self.codec.decode(self.instream)

    def write_message(self, message: Dict[str, Any]):
        """Write one whole message; concurrent writers never interleave"""
        data = self.codec.encode(message)
        with self._write_lock:
            self.outstream.write(data)
            self.outstream.flush()


def success_response(request_id: Any, result: Any) -> Dict[str, Any]:
    """JSON-RPC success envelope"""
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "result": result
    }


def error_response(request_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    """JSON-RPC error envelope"""
    error = {
        "code": code,
        "message": message
    }
    if data is not None:
        error["data"] = data

    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": error
    }
