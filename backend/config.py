"""
Server configuration loaded from environment variables
"""
import os
from typing import List, Optional

from pydantic import BaseModel

from execution.sandbox import (
    DEFAULT_ARTIFACT_DIR,
    DEFAULT_MAX_OUTPUT_BYTES,
    DEFAULT_TIMEOUT_SECONDS,
)


def _split_origins(value: str) -> List[str]:
    return [origin.strip() for origin in value.split(',') if origin.strip()]


class Settings(BaseModel):
    port: int = 5000
    cors_origins: List[str] = ["http://localhost:3000"]

    execution_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    execution_max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    execution_artifact_dir: str = DEFAULT_ARTIFACT_DIR
    execution_python: Optional[str] = None

    claude_api_key: Optional[str] = None
    completion_model: str = "claude-sonnet-4-5"
    completion_fallback_model: Optional[str] = "claude-3-5-haiku-20241022"
    completion_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (call load_dotenv first)"""
        return cls(
            port=int(os.getenv("PORT", 5000)),
            cors_origins=_split_origins(os.getenv("CORS_ORIGINS", "http://localhost:3000")),
            execution_timeout_seconds=float(os.getenv("EXECUTION_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)),
            execution_max_output_bytes=int(os.getenv("EXECUTION_MAX_OUTPUT_BYTES", DEFAULT_MAX_OUTPUT_BYTES)),
            execution_artifact_dir=os.getenv("EXECUTION_ARTIFACT_DIR", DEFAULT_ARTIFACT_DIR),
            execution_python=os.getenv("EXECUTION_PYTHON") or None,
            claude_api_key=os.getenv("CLAUDE_API_KEY") or None,
            completion_model=os.getenv("COMPLETION_MODEL", "claude-sonnet-4-5"),
            completion_fallback_model=os.getenv("COMPLETION_FALLBACK_MODEL", "claude-3-5-haiku-20241022") or None,
            completion_timeout_seconds=float(os.getenv("COMPLETION_TIMEOUT_SECONDS", 5.0)),
        )
