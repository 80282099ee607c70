"""FileSystem Server - Read, Write, Edit and Glob"""
import glob
import os
from pathlib import Path
from typing import Dict

from systools.core.models import ToolResult
from systools.mcp.registry import ToolName

DEFAULT_READ_LIMIT = 2000
MAX_GLOB_RESULTS = 200


class FileSystemServer:
    def read(self, ctx, args: Dict) -> ToolResult:
        """Return numbered lines starting after a 0-based line offset"""
        path = Path(args["file_path"]).expanduser().resolve()
        if not path.is_file():
            return ToolResult.error(f"Not found: {path}", kind="not_found")

        offset = int(args.get("offset") or 0)
        limit = int(args.get("limit") or DEFAULT_READ_LIMIT)
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            lines = f.readlines()

        selected = lines[offset:offset + limit]
        return ToolResult.ok("".join(
            f"{offset + i + 1}\t{line}" for i, line in enumerate(selected)
        ))

    def write(self, ctx, args: Dict) -> ToolResult:
        path = Path(args["file_path"]).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(args["content"], encoding="utf-8")
        return ToolResult.ok(f"Written: {path}")

    def edit(self, ctx, args: Dict) -> ToolResult:
        """Replace old_string once, or everywhere with replace_all"""
        path = Path(args["file_path"]).expanduser().resolve()
        if not path.is_file():
            return ToolResult.error(f"Not found: {path}", kind="not_found")

        old, new = args["old_string"], args["new_string"]
        if not old:
            return ToolResult.error("old_string must not be empty")
        content = path.read_text(encoding="utf-8")

        count = content.count(old)
        if count == 0:
            return ToolResult.error("String not found")
        replace_all = bool(args.get("replace_all"))
        if count > 1 and not replace_all:
            return ToolResult.error(
                f"Found {count} occurrences of old_string; use replace_all or add more context"
            )

        content = content.replace(old, new) if replace_all else content.replace(old, new, 1)
        path.write_text(content, encoding="utf-8")
        return ToolResult.ok(f"Edited: {path} ({count if replace_all else 1} replaced)")

    def glob(self, ctx, args: Dict) -> ToolResult:
        """Newest files first, capped at MAX_GLOB_RESULTS"""
        base = Path(args.get("path") or os.getcwd()).expanduser()
        matches = glob.glob(str(base / args["pattern"]), recursive=True)

        def sort_key(match):
            return -os.path.getmtime(match) if os.path.isfile(match) else 0

        results = sorted(matches, key=sort_key)[:MAX_GLOB_RESULTS]
        return ToolResult.ok("\n".join(results) if results else "No matches")

    def handlers(self) -> Dict:
        return {
            ToolName.READ: self.read,
            ToolName.WRITE: self.write,
            ToolName.EDIT: self.edit,
            ToolName.GLOB: self.glob,
        }

    def manifest(self) -> dict:
        return {
            "server": "srv_fs",
            "tools": [
                {
                    "name": ToolName.READ.value,
                    "description": "Read file contents",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "file_path": {"type": "string"},
                            "offset": {"type": "number"},
                            "limit": {"type": "number"}
                        },
                        "required": ["file_path"]
                    }
                },
                {
                    "name": ToolName.WRITE.value,
                    "description": "Write file contents",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "file_path": {"type": "string"},
                            "content": {"type": "string"}
                        },
                        "required": ["file_path", "content"]
                    }
                },
                {
                    "name": ToolName.EDIT.value,
                    "description": "Replace string in file",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "file_path": {"type": "string"},
                            "old_string": {"type": "string"},
                            "new_string": {"type": "string"},
                            "replace_all": {"type": "boolean"}
                        },
                        "required": ["file_path", "old_string", "new_string"]
                    }
                },
                {
                    "name": ToolName.GLOB.value,
                    "description": "Find files by pattern",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "pattern": {"type": "string"},
                            "path": {"type": "string"}
                        },
                        "required": ["pattern"]
                    }
                }
            ]
        }
