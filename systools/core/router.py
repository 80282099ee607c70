import time
from typing import Any, Dict

from systools.config import Config
from systools.core.context import ServerContext
from systools.core.errors import ProtocolMethodError, UnknownToolError
from systools.core.models import ToolResult
from systools.mcp.protocol import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    error_response,
    success_response,
)
from systools.mcp.registry import ToolRegistry
from systools.observability.logger import log_tool_execution, logger


class Router:
    """Route decoded JSON-RPC messages to protocol bookkeeping or tool calls"""

    def __init__(self, registry: ToolRegistry, ctx: ServerContext,
                 server_name: str = None, server_version: str = None,
                 protocol_version: str = None):
        self.registry = registry
        self.ctx = ctx
        self.server_name = server_name or Config.SERVER_NAME
        self.server_version = server_version or Config.SERVER_VERSION
        self.protocol_version = protocol_version or Config.PROTOCOL_VERSION

    @staticmethod
    def is_notification(message: Dict) -> bool:
        return "id" not in message

    def handle_notification(self, message: Dict):
        """Apply side effects only; notifications never get a response"""
        method = message.get("method")
        if method == "notifications/initialized":
            self.ctx.initialized = True
        elif method == "notifications/cancelled":
            logger.info("request_cancelled", params=message.get("params"))
        elif method == "tools/call":
            # fire-and-forget: the tool runs, its result is dropped
            params = message.get("params") or {}
            if not isinstance(params, dict):
                logger.warning("notification_invalid_params", method=method)
                return
            arguments = params.get("arguments")
            self.call_tool(params.get("name"), {} if arguments is None else arguments)
        else:
            logger.debug("notification_ignored", method=method)

    def handle_request(self, message: Dict) -> Dict:
        """Build exactly one response for a request carrying an id"""
        request_id = message["id"]
        method = message.get("method")
        if not isinstance(method, str):
            return error_response(request_id, INVALID_REQUEST, "Invalid Request: missing method")

        logger.info("request", method=method, request_id=request_id)
        params = message.get("params") or {}
        try:
            result = self.route(method, params, request_id)
        except ProtocolMethodError as e:
            return error_response(request_id, METHOD_NOT_FOUND, str(e))
        except Exception as e:
            logger.error("request_failed", method=method, request_id=request_id,
                         error=str(e), exc_info=True)
            return error_response(request_id, INTERNAL_ERROR, str(e))

        return success_response(request_id, result)

    def route(self, method: str, params: Dict, request_id: Any = None) -> Dict:
        if method == "initialize":
            return self.initialize_result()
        if method == "tools/list":
            return {"tools": self.registry.descriptors()}
        if method == "tools/call":
            arguments = params.get("arguments")
            return self.call_tool(params.get("name"), {} if arguments is None else arguments,
                                  request_id).to_content()
        if method == "ping":
            return {}
        raise ProtocolMethodError(method)

    def initialize_result(self) -> Dict:
        return {
            "protocolVersion": self.protocol_version,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.server_name, "version": self.server_version},
        }

    def call_tool(self, name: str, arguments: Dict, request_id: Any = None) -> ToolResult:
        """Run one tool; every failure comes back as an error-flagged result"""
        start_ms = int(time.time() * 1000)
        tool = self.registry.lookup(name)

        if tool is None:
            result = ToolResult.from_exception(UnknownToolError(name))
        elif not isinstance(arguments, dict):
            result = ToolResult.error("arguments must be an object", kind="invalid_arguments")
        else:
            missing = self.registry.missing_arguments(tool, arguments)
            if missing:
                result = ToolResult.error(
                    f"Missing required argument(s) for {tool.value}: {', '.join(missing)}",
                    kind="invalid_arguments",
                )
            else:
                try:
                    result = self.registry.handler(tool)(self.ctx, arguments)
                except Exception as e:
                    logger.error("tool_failed", tool=tool.value, request_id=request_id,
                                 error=str(e), exc_info=True)
                    result = ToolResult.from_exception(e)

        end_ms = int(time.time() * 1000)
        log_tool_execution(str(name), "error" if result.is_error else "success",
                           start_ms, end_ms, request_id=request_id,
                           error=result.text if result.is_error else None)
        return result
