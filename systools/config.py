import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Config:
    """Configuration management using environment variables"""

    # Server identity
    SERVER_NAME = os.getenv("SYSTOOLS_SERVER_NAME", "sys-tools")
    SERVER_VERSION = "1.0.0"
    PROTOCOL_VERSION = "2024-11-05"
    LOG_LEVEL = os.getenv("SYSTOOLS_LOG_LEVEL", "INFO")

    # Shell execution
    SHELL_LOG_DIR = os.getenv("SYSTOOLS_SHELL_LOG_DIR", tempfile.gettempdir())
    SHELL_TIMEOUT = float(os.getenv("SYSTOOLS_SHELL_TIMEOUT", "120"))
    OUTPUT_LIMIT = int(os.getenv("SYSTOOLS_OUTPUT_LIMIT", "30000"))
    GREP_TIMEOUT = float(os.getenv("SYSTOOLS_GREP_TIMEOUT", "60"))

    # Web fetch
    FETCH_LIMIT = int(os.getenv("SYSTOOLS_FETCH_LIMIT", "20000"))
    FETCH_TIMEOUT = float(os.getenv("SYSTOOLS_FETCH_TIMEOUT", "30"))

    # Worker pools
    TASK_WORKERS = int(os.getenv("SYSTOOLS_TASK_WORKERS", "4"))
    REQUEST_WORKERS = int(os.getenv("SYSTOOLS_REQUEST_WORKERS", "8"))
    TASK_POLL_TIMEOUT_MS = int(os.getenv("SYSTOOLS_TASK_POLL_TIMEOUT_MS", "30000"))
    TASK_POLL_MAX_TIMEOUT_MS = int(os.getenv("SYSTOOLS_TASK_POLL_MAX_TIMEOUT_MS", "600000"))

    # Language servers
    LSP_TIMEOUT = float(os.getenv("SYSTOOLS_LSP_TIMEOUT", "30"))

    # Interactive prompts (stdin carries the protocol)
    TTY_PATH = os.getenv("SYSTOOLS_TTY_PATH", "/dev/tty")

    # Subagent delegation via Bedrock
    AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
    AWS_PROFILE = os.getenv("AWS_PROFILE", "default")
    SUBAGENT_MAX_TOKENS = int(os.getenv("SYSTOOLS_SUBAGENT_MAX_TOKENS", "8192"))

    @classmethod
    def ensure_directories(cls):
        """Create necessary directories"""
        Path(cls.SHELL_LOG_DIR).mkdir(parents=True, exist_ok=True)
