"""Tool Registry - the fixed catalogue advertised by tools/list"""
import copy
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Optional


class ToolName(str, Enum):
    """Closed set of routable tools, in catalogue order"""
    BASH = "Bash"
    READ = "Read"
    WRITE = "Write"
    EDIT = "Edit"
    GLOB = "Glob"
    GREP = "Grep"
    TASK = "Task"
    TASK_OUTPUT = "TaskOutput"
    TODO_WRITE = "TodoWrite"
    ASK_USER_QUESTION = "AskUserQuestion"
    WEB_FETCH = "WebFetch"
    LSP = "LSP"
    KILL_SHELL = "KillShell"
    ENTER_PLAN_MODE = "EnterPlanMode"
    EXIT_PLAN_MODE = "ExitPlanMode"
    SKILL = "Skill"


# (ctx, arguments) -> ToolResult
Handler = Callable[[Any, Dict], Any]


class ToolRegistry:
    """Immutable name -> (descriptor, handler) table built once at startup.

    Every server contributes ``manifest()`` descriptors and ``handlers()``;
    construction fails unless each tool has exactly one of each.
    """

    def __init__(self, servers: Iterable, require_complete: bool = True):
        descriptors: Dict[ToolName, Dict] = {}
        handlers: Dict[ToolName, Handler] = {}

        for server in servers:
            manifest = server.manifest()
            for tool in manifest["tools"]:
                name = ToolName(tool["name"])
                if name in descriptors:
                    raise ValueError(f"Duplicate descriptor for {name.value} in {manifest['server']}")
                if not tool.get("inputSchema"):
                    raise ValueError(f"Tool {name.value} has no inputSchema")
                descriptors[name] = tool
            for name, handler in server.handlers().items():
                if name in handlers:
                    raise ValueError(f"Duplicate handler for {name.value} in {manifest['server']}")
                handlers[name] = handler

        if set(descriptors) != set(handlers):
            mismatched = sorted(n.value for n in set(descriptors) ^ set(handlers))
            raise ValueError(f"Descriptor/handler mismatch: {', '.join(mismatched)}")
        if require_complete and set(descriptors) != set(ToolName):
            missing = sorted(n.value for n in set(ToolName) - set(descriptors))
            raise ValueError(f"Missing tools: {', '.join(missing)}")

        ordered = [n for n in ToolName if n in descriptors]
        self._descriptors = MappingProxyType({n: descriptors[n] for n in ordered})
        self._handlers = MappingProxyType({n: handlers[n] for n in ordered})

    def __len__(self) -> int:
        return len(self._descriptors)

    def __contains__(self, name) -> bool:
        return self.lookup(name) is not None

    def lookup(self, name) -> Optional[ToolName]:
        try:
            tool = ToolName(name)
        except ValueError:
            return None
        return tool if tool in self._descriptors else None

    def descriptors(self) -> List[Dict]:
        """Copies, so callers cannot mutate the catalogue"""
        return [copy.deepcopy(d) for d in self._descriptors.values()]

    def handler(self, name: ToolName) -> Handler:
        return self._handlers[name]

    def missing_arguments(self, name: ToolName, arguments: Dict) -> List[str]:
        required = self._descriptors[name]["inputSchema"].get("required", [])
        return [key for key in required if arguments.get(key) is None]
