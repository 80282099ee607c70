from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from systools.core.errors import SysToolsError


class ToolResult(BaseModel):
    """Outcome of a tool body: Ok(text) or Err(kind, message)"""
    model_config = ConfigDict(frozen=True)

    text: str
    is_error: bool = False
    kind: Optional[str] = None

    @classmethod
    def ok(cls, text) -> "ToolResult":
        return cls(text=text if isinstance(text, str) else str(text))

    @classmethod
    def error(cls, message: str, kind: str = "error") -> "ToolResult":
        return cls(text=message, is_error=True, kind=kind)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ToolResult":
        if isinstance(exc, SysToolsError):
            return cls.error(str(exc), kind=exc.kind)
        return cls.error(f"{type(exc).__name__}: {exc}", kind="internal")

    def to_content(self) -> Dict:
        """Fold into the tools/call response payload"""
        payload = {"content": [{"type": "text", "text": self.text}]}
        if self.is_error:
            payload["isError"] = True
        return payload


class TaskStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"


class BackgroundTaskRecord(BaseModel):
    id: str
    status: TaskStatus = TaskStatus.RUNNING
    result: Optional[ToolResult] = None
    description: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None


class BackgroundProcessRecord(BaseModel):
    id: str
    pid: int
    command: str
    log_path: str
    started_at: datetime
    exit_code: Optional[int] = None


class TodoItem(BaseModel):
    content: str = Field(min_length=1)
    status: Literal["pending", "in_progress", "completed"]
    activeForm: str = Field(min_length=1)


class QuestionOption(BaseModel):
    label: str
    description: Optional[str] = None


class Question(BaseModel):
    question: str
    header: str = ""
    options: List[Union[QuestionOption, str]] = []
    multiSelect: bool = False
