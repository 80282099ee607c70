"""Session Server - todos, user questions, plan mode and skills"""
import json
import shlex
import sys
import threading
from typing import Dict, List, Optional

from pydantic import ValidationError

from systools.config import Config
from systools.core.errors import ToolTimeoutError
from systools.core.models import Question, TodoItem, ToolResult
from systools.mcp.registry import ToolName
from systools.mcp.servers.srv_shell import ShellServer

TODO_ICONS = {"completed": "[x]", "in_progress": "[>]", "pending": "[ ]"}

SKILLS = {
    "commit": lambda skill_args: f"git add -A && git commit -m {shlex.quote(skill_args)}",
    "status": lambda skill_args: "git status",
}


def _option_label(option) -> str:
    return option if isinstance(option, str) else option.label


def resolve_answer(question: Question, answer: str) -> str:
    """Map numeric choices ("2", or "1,3" for multi-select) to option labels"""
    labels = [_option_label(o) for o in question.options]
    picks = [p.strip() for p in answer.split(",")] if question.multiSelect else [answer.strip()]
    if not labels or not all(p.isdigit() and 1 <= int(p) <= len(labels) for p in picks):
        return answer
    return ", ".join(labels[int(p) - 1] for p in picks)


class SessionServer:
    def __init__(self, shell: ShellServer = None, tty_path: str = None, prompt_stream=None):
        self.shell = shell or ShellServer()
        self.tty_path = tty_path or Config.TTY_PATH
        self.prompt_stream = prompt_stream
        self._prompt_lock = threading.Lock()

    def todo_write(self, ctx, args: Dict) -> ToolResult:
        try:
            todos = [TodoItem.model_validate(item) for item in args["todos"]]
        except ValidationError as e:
            return ToolResult.error(f"Invalid todos: {e}", kind="invalid_arguments")

        ctx.set_todos(todos)
        lines = [f"{TODO_ICONS[t.status]} {t.content}" for t in todos]
        return ToolResult.ok("Todos updated:\n" + "\n".join(lines))

    def ask_user_question(self, ctx, args: Dict) -> ToolResult:
        """Prompt on stderr and read answers from the terminal; stdin is the protocol"""
        try:
            questions = [Question.model_validate(q) for q in args["questions"]]
        except ValidationError as e:
            return ToolResult.error(f"Invalid questions: {e}", kind="invalid_arguments")

        try:
            tty = open(self.tty_path, "r", encoding="utf-8")
        except OSError as e:
            return ToolResult.error(f"No interactive terminal available ({self.tty_path}): {e.strerror}")

        out = self.prompt_stream or sys.stderr
        answers: Dict[str, Optional[str]] = {}
        with self._prompt_lock, tty:
            for i, question in enumerate(questions):
                out.write(f"\n{question.header}: {question.question}\n")
                for j, option in enumerate(question.options, 1):
                    out.write(f"  {j}) {_option_label(option)}\n")
                out.write("Choice: ")
                out.flush()
                line = tty.readline()
                answers[f"q{i}"] = resolve_answer(question, line.rstrip("\r\n")) if line else None

        return ToolResult.ok(json.dumps(answers))

    def enter_plan_mode(self, ctx, args: Dict) -> ToolResult:
        ctx.set_plan_mode(True)
        return ToolResult.ok("Plan mode enabled")

    def exit_plan_mode(self, ctx, args: Dict) -> ToolResult:
        ctx.set_plan_mode(False)
        return ToolResult.ok("Plan mode disabled")

    def skill(self, ctx, args: Dict) -> ToolResult:
        name = args["skill"]
        build = SKILLS.get(name)
        if build is None:
            return ToolResult.error(
                f"Unknown skill: {name}. Available: {', '.join(self.available_skills())}",
                kind="unknown_skill",
            )
        try:
            return ToolResult.ok(self.shell.run_command(build(args.get("args") or "")))
        except ToolTimeoutError as e:
            return ToolResult.from_exception(e)

    @staticmethod
    def available_skills() -> List[str]:
        return sorted(SKILLS)

    def handlers(self) -> Dict:
        return {
            ToolName.TODO_WRITE: self.todo_write,
            ToolName.ASK_USER_QUESTION: self.ask_user_question,
            ToolName.ENTER_PLAN_MODE: self.enter_plan_mode,
            ToolName.EXIT_PLAN_MODE: self.exit_plan_mode,
            ToolName.SKILL: self.skill,
        }

    def manifest(self) -> dict:
        return {
            "server": "srv_session",
            "tools": [
                {
                    "name": ToolName.TODO_WRITE.value,
                    "description": "Manage task list",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "todos": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "content": {"type": "string"},
                                        "status": {"type": "string", "enum": ["pending", "in_progress", "completed"]},
                                        "activeForm": {"type": "string"}
                                    },
                                    "required": ["content", "status", "activeForm"]
                                }
                            }
                        },
                        "required": ["todos"]
                    }
                },
                {
                    "name": ToolName.ASK_USER_QUESTION.value,
                    "description": "Ask user for input",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "questions": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "question": {"type": "string"},
                                        "header": {"type": "string"},
                                        "options": {"type": "array"},
                                        "multiSelect": {"type": "boolean"}
                                    },
                                    "required": ["question", "header", "options", "multiSelect"]
                                }
                            }
                        },
                        "required": ["questions"]
                    }
                },
                {
                    "name": ToolName.ENTER_PLAN_MODE.value,
                    "description": "Start planning mode",
                    "inputSchema": {"type": "object", "properties": {}}
                },
                {
                    "name": ToolName.EXIT_PLAN_MODE.value,
                    "description": "Finish planning mode",
                    "inputSchema": {"type": "object", "properties": {}}
                },
                {
                    "name": ToolName.SKILL.value,
                    "description": "Execute slash command skill",
                    "inputSchema": {
                        "type": "object",
                        "properties": {
                            "skill": {"type": "string", "enum": sorted(SKILLS)},
                            "args": {"type": "string"}
                        },
                        "required": ["skill"]
                    }
                }
            ]
        }
