"""
Main executor that routes a run request to its toolchain
"""

import logging
from typing import Optional

from .languages import get_language_spec
from .models import ExecutionRequest, ExecutionResult
from .sandbox import (
    DEFAULT_ARTIFACT_DIR,
    DEFAULT_MAX_OUTPUT_BYTES,
    DEFAULT_TIMEOUT_SECONDS,
    execute_with_sandbox,
)

logger = logging.getLogger(__name__)


class ExecutionSandbox:
    """Runs untrusted source text under a bounded child process"""

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        artifact_dir: str = DEFAULT_ARTIFACT_DIR,
        python_interpreter: Optional[str] = None
    ):
        self.timeout_seconds = timeout_seconds
        self.max_output_bytes = max_output_bytes
        self.artifact_dir = artifact_dir
        self.python_interpreter = python_interpreter

    async def execute(self, source_text: str, language_id: Optional[str]) -> ExecutionResult:
        """
        Execute code based on language

        Args:
            source_text: Program text
            language_id: Client-supplied language identifier; unknown values
                fall back to javascript

        Returns:
            ExecutionResult with captured output; never raises
        """
        spec = get_language_spec(language_id)
        logger.info(f"[Sandbox] Executing {spec.language.value} code ({len(source_text)} chars)")

        result = await execute_with_sandbox(
            source_text,
            spec,
            timeout_seconds=self.timeout_seconds,
            max_output_bytes=self.max_output_bytes,
            artifact_dir=self.artifact_dir,
            python_interpreter=self.python_interpreter,
        )

        logger.info(
            f"[Sandbox] {spec.language.value} finished: status={result.status}, "
            f"time={result.executionTime:.0f}ms"
        )
        return result

    async def execute_request(self, request: ExecutionRequest) -> ExecutionResult:
        return await self.execute(request.sourceText, request.languageId)
