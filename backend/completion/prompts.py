"""
Prompt text for the completion provider
"""

CURSOR_MARKER = "|CURSOR|"

# languageId -> human readable name used in prompts
LANGUAGE_NAMES = {
    "javascript": "JavaScript",
    "python": "Python",
    "java": "Java",
    "clike": "C++",
    "go": "Go",
    "rust": "Rust",
    "php": "PHP",
    "ruby": "Ruby",
    "shell": "Bash",
    "r": "R",
}


def build_system_prompt(language_id: str) -> str:
    name = LANGUAGE_NAMES.get(language_id)
    if name is None:
        return (
            "You are a code autocomplete. Return only raw code, no formatting, "
            "no numbers, no explanations. Each line should be a valid completion."
        )
    return (
        f"You are a {name} autocomplete. Return only raw {name} code, no formatting, "
        "no numbers, no explanations. Each line should be a valid completion."
    )


def build_user_prompt(language_id: str, full_context: str, max_suggestions: int) -> str:
    name = LANGUAGE_NAMES.get(language_id, language_id)
    return (
        f"Complete this {name} code. The {CURSOR_MARKER} shows where to continue. "
        f"Return only the text that should be inserted at the cursor position:\n\n"
        f"{full_context}\n\n"
        f"Provide {max_suggestions} completions that continue from {CURSOR_MARKER}:"
    )


def build_fallback_prompt(full_context: str) -> str:
    return f"Complete this code:\n{full_context}"
