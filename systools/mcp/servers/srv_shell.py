"""Shell Server - foreground and background command execution"""
import os
import signal
import subprocess
from typing import Dict

from systools.config import Config
from systools.core.errors import NotFoundError, ToolTimeoutError
from systools.core.models import ToolResult
from systools.mcp.registry import ToolName
from systools.observability.logger import logger


def truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "\n[truncated]"
    return text


class ShellServer:
    def __init__(self, default_timeout: float = None, output_limit: int = None):
        self.default_timeout = default_timeout or Config.SHELL_TIMEOUT
        self.output_limit = output_limit or Config.OUTPUT_LIMIT

    def run_command(self, command: str, timeout: float = None) -> str:
        """Run command to completion; raises ToolTimeoutError after killing its process group"""
        timeout = float(self.default_timeout if timeout is None else timeout)
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout:g}")
        process = subprocess.Popen(
            command,
            shell=True,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
        try:
            output, _ = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            # a descendant outside the group may still hold stdout open
            process.wait()
            process.stdout.close()
            logger.warning("shell_timeout", command=command, timeout=timeout)
            raise ToolTimeoutError(f"Timeout after {timeout:g}s") from None

        return truncate(output.decode("utf-8", errors="replace"), self.output_limit)

    def bash(self, ctx, args: Dict) -> ToolResult:
        command = args["command"]
        if args.get("run_in_background"):
            record = ctx.processes.launch(command)
            return ToolResult.ok(
                f"Background shell started: {record.id} (pid: {record.pid}, log: {record.log_path})"
            )

        try:
            return ToolResult.ok(self.run_command(command, args.get("timeout")))
        except ToolTimeoutError as e:
            return ToolResult.from_exception(e)
        except ValueError as e:
            return ToolResult.error(str(e), kind="invalid_arguments")

    def kill_shell(self, ctx, args: Dict) -> ToolResult:
        try:
            return ToolResult.ok(ctx.processes.terminate(args["shell_id"]))
        except NotFoundError as e:
            return ToolResult.from_exception(e)

    def handlers(self) -> Dict:
        return {
            ToolName.BASH: self.bash,
            ToolName.KILL_SHELL: self.kill_shell,
        }

    def manifest(self) -> dict:
        return {
            "server": "srv_shell",
            "tools": [
                {
                    "name": ToolName.BASH.value,
                    "description": "Execute shell command",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "command": {"type": "string"},
                            "timeout": {"type": "number", "description": "Seconds (default 120)"},
                            "run_in_background": {"type": "boolean"}
                        },
                        "required": ["command"]
                    }
                },
                {
                    "name": ToolName.KILL_SHELL.value,
                    "description": "Kill background shell",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "shell_id": {"type": "string"}
                        },
                        "required": ["shell_id"]
                    }
                }
            ]
        }
