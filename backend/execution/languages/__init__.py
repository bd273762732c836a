"""
Execution dispatch table: language identifier -> toolchain descriptor
"""

import logging
from typing import Dict, Optional

from ..models import DEFAULT_LANGUAGE, Language
from .base import DEFAULT_PYTHON_INTERPRETER, LanguageSpec
from .compiled import COMPILED_LANGUAGES
from .interpreted import INTERPRETED_LANGUAGES

logger = logging.getLogger(__name__)

LANGUAGE_SPECS: Dict[Language, LanguageSpec] = {**INTERPRETED_LANGUAGES, **COMPILED_LANGUAGES}

_missing = set(Language) - set(LANGUAGE_SPECS)
if _missing:
    raise RuntimeError(f"No toolchain registered for: {sorted(l.value for l in _missing)}")


def resolve_language(language_id: Optional[str]) -> Language:
    """
    Map a client-supplied identifier onto a supported language.
    Unknown or missing identifiers fall back to javascript.
    """
    try:
        return Language(language_id)
    except ValueError:
        logger.info(f"[Sandbox] Unknown language {language_id!r}, falling back to {DEFAULT_LANGUAGE.value}")
        return DEFAULT_LANGUAGE


def get_language_spec(language_id: Optional[str]) -> LanguageSpec:
    """Look up the toolchain descriptor for an identifier (with fallback)"""
    return LANGUAGE_SPECS[resolve_language(language_id)]


__all__ = ['DEFAULT_PYTHON_INTERPRETER', 'LANGUAGE_SPECS', 'LanguageSpec', 'resolve_language', 'get_language_spec']
