#!/usr/bin/env python3
"""sys-tools MCP server - newline-delimited JSON-RPC over stdio"""
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Dict

from systools.config import Config
from systools.core.context import ServerContext
from systools.core.errors import FramingError
from systools.core.router import Router
from systools.mcp.catalog import build_registry
from systools.mcp.protocol import MCPProtocol
from systools.observability.logger import logger


class StdioServer:
    """Single reader thread; tools/call runs on a worker pool so slow tools
    (blocking polls, long shell commands) never stall the read loop."""

    def __init__(self, router: Router, protocol: MCPProtocol, request_workers: int = None):
        self.router = router
        self.protocol = protocol
        self._workers = ThreadPoolExecutor(
            max_workers=request_workers or Config.REQUEST_WORKERS,
            thread_name_prefix="systools-call",
        )

    def serve(self):
        """Process messages until end of input, then drain in-flight calls"""
        logger.info("server_started", tools=len(self.router.registry))
        try:
            while True:
                try:
                    message = self.protocol.read_request()
                except FramingError as e:
                    logger.warning("framing_error", error=str(e))
                    continue
                if message is None:
                    break
                self.dispatch(message)
        finally:
            self._workers.shutdown(wait=True)
            logger.info("server_stopped")

    def dispatch(self, message: Dict):
        if self.router.is_notification(message):
            if message.get("method") == "tools/call":
                self._workers.submit(self._notify, message)
            else:
                self.router.handle_notification(message)
            return
        if "method" not in message and ("result" in message or "error" in message):
            logger.debug("client_response_ignored", request_id=message.get("id"))
            return
        if message.get("method") == "tools/call":
            self._workers.submit(self._respond, message)
        else:
            self._respond(message)

    def _notify(self, message: Dict):
        try:
            self.router.handle_notification(message)
        except Exception as e:
            logger.error("notification_failed", method=message.get("method"),
                         error=str(e), exc_info=True)

    def _respond(self, message: Dict):
        response = self.router.handle_request(message)
        try:
            self.protocol.write_message(response)
        except OSError as e:
            logger.error("write_failed", request_id=message.get("id"), error=str(e))


def main():
    """Main entry point for stdio server"""
    # Setup stdio mode - stray prints go to stderr
    original_stdout = MCPProtocol.setup_stdio_mode()
    Config.ensure_directories()

    ctx = ServerContext()
    router = Router(build_registry(), ctx)
    protocol = MCPProtocol(sys.stdin.buffer, original_stdout.buffer)
    try:
        StdioServer(router, protocol).serve()
    except KeyboardInterrupt:
        logger.info("server_interrupted")
    finally:
        ctx.close()


if __name__ == "__main__":
    main()
