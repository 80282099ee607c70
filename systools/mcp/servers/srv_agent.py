"""Agent Server - subagent delegation through Bedrock"""
import threading
from typing import Callable, Dict

from anthropic import AnthropicBedrock, APIError

from systools.config import Config
from systools.core.errors import NotFoundError
from systools.core.models import TaskStatus, ToolResult
from systools.mcp.registry import ToolName
from systools.observability.logger import logger

# Bedrock model IDs
MODEL_MAP = {
    "sonnet": "us.anthropic.claude-sonnet-4-20250514-v1:0",
    "opus": "us.anthropic.claude-opus-4-20250514-v1:0",
    "haiku": "us.anthropic.claude-haiku-4-20250514-v1:0",
}
DEFAULT_MODEL = "sonnet"

SSL_HINT = """SSL Certificate Error: {error}

This usually happens behind a proxy that intercepts TLS (corporate proxies,
Zero Trust agents). Install the proxy's root CA certificate into the system
trust store, or point AWS_CA_BUNDLE at it, then restart the server."""


class AgentServer:
    def __init__(self, complete: Callable[[str, str, str], str] = None,
                 region: str = None, profile: str = None, max_tokens: int = None,
                 poll_timeout_ms: int = None, max_poll_timeout_ms: int = None):
        """
        Args:
            complete: (model_id, system, prompt) -> text. Defaults to a Bedrock call.
        """
        self.region = region or Config.AWS_REGION
        self.profile = profile or Config.AWS_PROFILE
        self.max_tokens = max_tokens or Config.SUBAGENT_MAX_TOKENS
        self.poll_timeout_ms = poll_timeout_ms or Config.TASK_POLL_TIMEOUT_MS
        self.max_poll_timeout_ms = max_poll_timeout_ms or Config.TASK_POLL_MAX_TIMEOUT_MS
        self._complete = complete or self._bedrock_complete
        self._client = None
        self._client_lock = threading.Lock()

    def _get_client(self) -> AnthropicBedrock:
        with self._client_lock:
            if self._client is None:
                self._client = AnthropicBedrock(aws_region=self.region, aws_profile=self.profile)
            return self._client

    def _bedrock_complete(self, model: str, system: str, prompt: str) -> str:
        response = self._get_client().messages.create(
            model=model,
            max_tokens=self.max_tokens,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        return "\n".join(
            block.text for block in response.content if getattr(block, "text", None) is not None
        )

    def run_subagent(self, model: str, system: str, prompt: str) -> ToolResult:
        try:
            return ToolResult.ok(self._complete(model, system, prompt))
        except APIError as e:
            error = f"{e} ({e.__cause__})" if e.__cause__ else str(e)
            logger.error("subagent_failed", model=model, error=error)
            if "SSL" in error or "certificate" in error:
                return ToolResult.error(SSL_HINT.format(error=error), kind="subagent")
            return ToolResult.error(f"Subagent failed: {error}", kind="subagent")

    def task(self, ctx, args: Dict) -> ToolResult:
        model = MODEL_MAP.get(args.get("model"), MODEL_MAP[DEFAULT_MODEL])
        description = args["description"]
        system = f"You are a {args['subagent_type']} subagent. Your task: {description}"
        prompt = args["prompt"]

        if args.get("run_in_background"):
            task_id = ctx.tasks.launch(
                lambda: self.run_subagent(model, system, prompt),
                description=description,
            )
            return ToolResult.ok(f"Task started: {task_id}")

        return self.run_subagent(model, system, prompt)

    def task_output(self, ctx, args: Dict) -> ToolResult:
        timeout_ms = args.get("timeout")
        if timeout_ms is None:
            timeout_ms = self.poll_timeout_ms
        timeout_ms = min(max(float(timeout_ms), 0), self.max_poll_timeout_ms)

        try:
            record = ctx.tasks.poll(args["task_id"], block=bool(args.get("block")),
                                    timeout=timeout_ms / 1000.0)
        except NotFoundError as e:
            return ToolResult.from_exception(e)

        if record.status == TaskStatus.COMPLETED:
            return record.result
        return ToolResult.ok(f"Status: {record.status.value}")

    def handlers(self) -> Dict:
        return {
            ToolName.TASK: self.task,
            ToolName.TASK_OUTPUT: self.task_output,
        }

    def manifest(self) -> dict:
        return {
            "server": "srv_agent",
            "tools": [
                {
                    "name": ToolName.TASK.value,
                    "description": "Launch subagent for complex task",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "prompt": {"type": "string"},
                            "description": {"type": "string"},
                            "subagent_type": {"type": "string"},
                            "model": {"type": "string", "enum": list(MODEL_MAP)},
                            "run_in_background": {"type": "boolean"}
                        },
                        "required": ["prompt", "description", "subagent_type"]
                    }
                },
                {
                    "name": ToolName.TASK_OUTPUT.value,
                    "description": "Get output from background task",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "task_id": {"type": "string"},
                            "block": {"type": "boolean"},
                            "timeout": {"type": "number", "description": "Milliseconds (default 30000)"}
                        },
                        "required": ["task_id"]
                    }
                }
            ]
        }
