"""
Sandboxed code execution for the shared document
"""

from .executor import ExecutionSandbox
from .models import ExecutionRequest, ExecutionResult, Language

__all__ = ['ExecutionSandbox', 'ExecutionRequest', 'ExecutionResult', 'Language']
