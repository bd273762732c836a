"""
Compiled languages: build into the run directory, then execute the product
"""

from ..models import Language
from .base import LanguageSpec


COMPILED_LANGUAGES = {
    Language.CLIKE: LanguageSpec(
        language=Language.CLIKE,
        extension='cpp',
        compile_command=('g++', '-std=c++17', '{source}', '-o', '{binary}'),
        run_command=('{binary}',),
    ),
    Language.JAVA: LanguageSpec(
        language=Language.JAVA,
        extension='java',
        # javac requires the public class to match the file name
        source_name='Main.java',
        compile_command=('javac', '-d', '{workdir}', '{source}'),
        run_command=('java', '-cp', '{workdir}', 'Main'),
    ),
    Language.RUST: LanguageSpec(
        language=Language.RUST,
        extension='rs',
        compile_command=('rustc', '{source}', '-o', '{binary}'),
        run_command=('{binary}',),
    ),
}
