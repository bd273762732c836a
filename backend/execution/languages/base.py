"""
Language toolchain descriptors shared by interpreted and compiled languages
"""

import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..models import Language

# Python runtime used when none is configured
DEFAULT_PYTHON_INTERPRETER = sys.executable or 'python3'


@dataclass(frozen=True)
class LanguageSpec:
    """
    How to materialize and run one language.

    Command templates are argv tuples. Each element may reference
    {source}, {binary}, {workdir} and {python}, filled per invocation.
    """
    language: Language
    extension: str
    run_command: Tuple[str, ...]
    compile_command: Optional[Tuple[str, ...]] = None
    # Fixed source file name for toolchains that derive identity from it
    source_name: Optional[str] = None

    @property
    def is_compiled(self) -> bool:
        return self.compile_command is not None

    def source_filename(self, token: str) -> str:
        return self.source_name or f"code_{token}.{self.extension}"

    def build_commands(
        self,
        source: str,
        binary: str,
        workdir: str,
        python: Optional[str] = None
    ) -> List[List[str]]:
        """
        Fill the templates for one invocation

        Returns:
            Ordered list of argv lists: compile step (if any) then run step
        """
        values: Dict[str, str] = {
            "source": source,
            "binary": binary,
            "workdir": workdir,
            "python": python or DEFAULT_PYTHON_INTERPRETER,
        }
        commands = []
        if self.compile_command:
            commands.append([part.format(**values) for part in self.compile_command])
        commands.append([part.format(**values) for part in self.run_command])
        return commands
