from typing import Dict

from systools.mcp.registry import ToolRegistry
from systools.mcp.servers.srv_agent import AgentServer
from systools.mcp.servers.srv_fs import FileSystemServer
from systools.mcp.servers.srv_lsp import LanguageServer
from systools.mcp.servers.srv_search import SearchServer
from systools.mcp.servers.srv_session import SessionServer
from systools.mcp.servers.srv_shell import ShellServer
from systools.mcp.servers.srv_web import WebServer


def default_servers(**overrides) -> Dict:
    """
    Instantiate every tool server

    Args:
        overrides: server instances keyed like the defaults (e.g. srv_agent=AgentServer(...))
    """
    shell = overrides.get("srv_shell") or ShellServer()
    servers = {
        "srv_shell": shell,
        "srv_fs": FileSystemServer(),
        "srv_search": SearchServer(),
        "srv_agent": AgentServer(),
        "srv_session": SessionServer(shell=shell),
        "srv_web": WebServer(),
        "srv_lsp": LanguageServer(),
    }
    unknown = set(overrides) - set(servers)
    if unknown:
        raise ValueError(f"Unknown server: {', '.join(sorted(unknown))}")
    servers.update(overrides)
    return servers


def build_registry(**overrides) -> ToolRegistry:
    return ToolRegistry(default_servers(**overrides).values())
