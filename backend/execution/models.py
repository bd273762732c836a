"""
Pydantic models for code execution
"""

from enum import Enum
from typing import Optional, Literal

from pydantic import BaseModel


class Language(str, Enum):
    """Languages the sandbox can materialize and run"""
    JAVASCRIPT = "javascript"
    PYTHON = "python"
    CLIKE = "clike"
    JAVA = "java"
    GO = "go"
    RUST = "rust"
    RUBY = "ruby"
    PHP = "php"
    SHELL = "shell"
    R = "r"


DEFAULT_LANGUAGE = Language.JAVASCRIPT


class ExecutionRequest(BaseModel):
    """Request to execute the shared document of a room"""
    sourceText: str
    languageId: Optional[str] = None
    roomToken: Optional[str] = None


class ExecutionResult(BaseModel):
    """Normalized outcome of one sandboxed run"""
    succeeded: bool
    standardOutput: str = ""
    standardError: str = ""
    producedAt: str
    status: Literal['success', 'error', 'timeout'] = 'success'
    language: Language = DEFAULT_LANGUAGE
    executionTime: float = 0  # milliseconds
