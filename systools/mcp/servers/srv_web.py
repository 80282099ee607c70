"""Web Server - fetch a URL and extract readable text"""
import re
from typing import Dict

import requests

from systools.config import Config
from systools.core.models import ToolResult
from systools.mcp.registry import ToolName
from systools.mcp.servers.srv_shell import truncate

USER_AGENT = "sys-tools-mcp/1.0"
CONNECT_TIMEOUT = 10

_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def html_to_text(html: str) -> str:
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    return _SPACE_RE.sub(" ", text).strip()


class WebServer:
    def __init__(self, read_timeout: float = None, text_limit: int = None):
        self.read_timeout = read_timeout or Config.FETCH_TIMEOUT
        self.text_limit = text_limit or Config.FETCH_LIMIT

    def web_fetch(self, ctx, args: Dict) -> ToolResult:
        url = args["url"]
        try:
            response = requests.get(
                url,
                headers={"User-Agent": USER_AGENT},
                timeout=(CONNECT_TIMEOUT, self.read_timeout),
                allow_redirects=False,
            )
        except requests.RequestException as e:
            return ToolResult.error(f"Fetch failed: {e}")

        if response.is_redirect:
            return ToolResult.ok(f"Redirect to: {response.headers.get('location')}")
        if not response.ok:
            return ToolResult.error(f"HTTP {response.status_code}: {response.reason}")

        # requests assumes ISO-8859-1 for text/* without a charset
        if "charset" not in response.headers.get("content-type", "").lower():
            response.encoding = "utf-8"
        return ToolResult.ok(truncate(html_to_text(response.text), self.text_limit))

    def handlers(self) -> Dict:
        return {ToolName.WEB_FETCH: self.web_fetch}

    def manifest(self) -> dict:
        return {
            "server": "srv_web",
            "tools": [{
                "name": ToolName.WEB_FETCH.value,
                "description": "Fetch URL content",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "url": {"type": "string", "format": "uri"},
                        "prompt": {"type": "string"}
                    },
                    "required": ["url", "prompt"]
                }
            }]
        }
