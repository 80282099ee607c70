"""Search Server - content search through ripgrep"""
import subprocess
from typing import Dict, List

from systools.config import Config
from systools.core.models import ToolResult
from systools.mcp.registry import ToolName
from systools.mcp.servers.srv_shell import truncate


class SearchServer:
    def __init__(self, rg_binary: str = "rg", timeout: float = None, output_limit: int = None):
        self.rg_binary = rg_binary
        self.timeout = timeout or Config.GREP_TIMEOUT
        self.output_limit = output_limit or Config.OUTPUT_LIMIT

    def build_command(self, args: Dict) -> List[str]:
        cmd = [self.rg_binary, "--regexp", args["pattern"]]
        if args.get("glob"):
            cmd += ["--glob", args["glob"]]
        if args.get("type"):
            cmd += ["--type", args["type"]]
        if args.get("-i"):
            cmd.append("-i")
        if args.get("-n") is not False:
            cmd.append("-n")
        for flag in ("-A", "-B", "-C"):
            if args.get(flag) is not None:
                cmd += [flag, str(int(args[flag]))]

        output_mode = args.get("output_mode") or "files_with_matches"
        if output_mode == "files_with_matches":
            cmd.append("-l")
        elif output_mode == "count":
            cmd.append("-c")

        cmd.append(args.get("path") or ".")
        return cmd

    def grep(self, ctx, args: Dict) -> ToolResult:
        cmd = self.build_command(args)
        try:
            completed = subprocess.run(cmd, capture_output=True, timeout=self.timeout)
        except FileNotFoundError:
            return ToolResult.error(f"ripgrep not found: {self.rg_binary}", kind="external_tool_not_found")
        except subprocess.TimeoutExpired:
            return ToolResult.error(f"Timeout after {self.timeout:g}s", kind="timeout")

        stdout = completed.stdout.decode("utf-8", errors="replace")
        stderr = completed.stderr.decode("utf-8", errors="replace")
        # rg exits 1 when nothing matched
        if completed.returncode == 1 and not stdout and not stderr:
            return ToolResult.ok("No matches")
        if completed.returncode > 1:
            return ToolResult.error(truncate(stderr or stdout, self.output_limit))
        return ToolResult.ok(truncate(stdout or stderr, self.output_limit))

    def handlers(self) -> Dict:
        return {ToolName.GREP: self.grep}

    def manifest(self) -> dict:
        return {
            "server": "srv_search",
            "tools": [{
                "name": ToolName.GREP.value,
                "description": "Search file contents with ripgrep",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "pattern": {"type": "string"},
                        "path": {"type": "string"},
                        "glob": {"type": "string"},
                        "type": {"type": "string"},
                        "output_mode": {"type": "string", "enum": ["content", "files_with_matches", "count"]},
                        "-i": {"type": "boolean"},
                        "-n": {"type": "boolean"},
                        "-A": {"type": "number"},
                        "-B": {"type": "number"},
                        "-C": {"type": "number"}
                    },
                    "required": ["pattern"]
                }
            }]
        }
