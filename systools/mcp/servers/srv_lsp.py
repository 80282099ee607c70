"""LSP Server - code intelligence through external language servers"""
from typing import Dict

from systools.core.errors import (
    ExternalToolNotFoundError,
    QueryError,
    ToolTimeoutError,
    UnsupportedLanguageError,
)
from systools.core.models import ToolResult
from systools.mcp.lsp_client import OPERATIONS, LanguageServerClient
from systools.mcp.registry import ToolName


class LanguageServer:
    def __init__(self, client: LanguageServerClient = None):
        self.client = client or LanguageServerClient()

    def lsp(self, ctx, args: Dict) -> ToolResult:
        try:
            text = self.client.query(
                args["operation"],
                args["filePath"],
                int(args["line"]),
                int(args["character"]),
            )
        except (UnsupportedLanguageError, ExternalToolNotFoundError,
                QueryError, ToolTimeoutError) as e:
            return ToolResult.from_exception(e)
        return ToolResult.ok(text)

    def handlers(self) -> Dict:
        return {ToolName.LSP: self.lsp}

    def manifest(self) -> dict:
        return {
            "server": "srv_lsp",
            "tools": [{
                "name": ToolName.LSP.value,
                "description": "Language server operations (1-indexed line and character)",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "operation": {"type": "string", "enum": list(OPERATIONS)},
                        "filePath": {"type": "string"},
                        "line": {"type": "integer"},
                        "character": {"type": "integer"}
                    },
                    "required": ["operation", "filePath", "line", "character"]
                }
            }]
        }
