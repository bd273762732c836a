"""
Interpreted languages: the source file is handed straight to the runtime
"""

from ..models import Language
from .base import LanguageSpec


INTERPRETED_LANGUAGES = {
    Language.JAVASCRIPT: LanguageSpec(
        language=Language.JAVASCRIPT,
        extension='js',
        run_command=('node', '{source}'),
    ),
    Language.PYTHON: LanguageSpec(
        language=Language.PYTHON,
        extension='py',
        run_command=('{python}', '{source}'),
    ),
    Language.GO: LanguageSpec(
        language=Language.GO,
        extension='go',
        # go run builds into its own cache and runs in one step
        run_command=('go', 'run', '{source}'),
    ),
    Language.RUBY: LanguageSpec(
        language=Language.RUBY,
        extension='rb',
        run_command=('ruby', '{source}'),
    ),
    Language.PHP: LanguageSpec(
        language=Language.PHP,
        extension='php',
        run_command=('php', '{source}'),
    ),
    Language.SHELL: LanguageSpec(
        language=Language.SHELL,
        extension='sh',
        run_command=('bash', '{source}'),
    ),
    Language.R: LanguageSpec(
        language=Language.R,
        extension='r',
        run_command=('Rscript', '{source}'),
    ),
}
