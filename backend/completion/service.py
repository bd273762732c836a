"""
AI code completion service

Asks the primary model for continuations at the cursor, retries once on a
secondary model, and falls back to a deterministic local suggestion set when
the provider is unavailable or returns nothing usable.
"""
import logging
import re
from typing import List, Optional

import anthropic
from anthropic import AsyncAnthropic

from .models import CompletionContext, CompletionOutcome, CompletionSuggestion
from .prompts import (
    CURSOR_MARKER,
    build_fallback_prompt,
    build_system_prompt,
    build_user_prompt,
)

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3
CONTEXT_LINES = 10

_PREFIX_PATTERN = re.compile(r'^(\d+[.)\s]|OPTION\s*\d*:?\s*|[•-]\s*)', re.IGNORECASE)
_CHATTER_PATTERN = re.compile(r'^(here|this|example|option|cursor)', re.IGNORECASE)


def prepare_context(code: str, language_id: str, line: int, column: int) -> CompletionContext:
    """Cut the code down to the lines before the cursor and mark the cursor"""
    lines = code.split('\n')
    current_line = lines[line] if 0 <= line < len(lines) else ''
    before_lines = lines[max(0, line - CONTEXT_LINES):line]
    before_cursor = current_line[:column]

    return CompletionContext(
        fullContext='\n'.join(before_lines + [before_cursor + CURSOR_MARKER]),
        currentLine=current_line,
        beforeCursor=before_cursor,
        cursorPosition=column,
        language=language_id,
    )


def parse_completion_response(response: str) -> List[str]:
    """
    Extract clean completion lines from a model reply

    Drops markdown fences, comment-style headers, numbering, option prefixes,
    cursor markers, enclosing quotes and conversational lead-ins.
    """
    suggestions = []
    for line in response.split('\n'):
        line = line.strip()
        if not line or '```' in line or line.startswith('#'):
            continue

        line = line.replace(CURSOR_MARKER, '')
        line = _PREFIX_PATTERN.sub('', line, count=1).strip()

        if len(line) >= 2 and line[0] == line[-1] and line[0] in ('"', "'"):
            line = line[1:-1]

        if line and not _CHATTER_PATTERN.match(line):
            suggestions.append(line.strip())

        if len(suggestions) >= MAX_SUGGESTIONS:
            break

    return suggestions


def basic_completions(code: str, line: int, column: int) -> List[CompletionSuggestion]:
    """Deterministic suggestions keyed on the text before the cursor"""
    lines = code.split('\n')
    current_line = lines[line] if 0 <= line < len(lines) else ''
    before_cursor = current_line[:column].strip()

    if before_cursor.endswith('console.'):
        options = ['log()', 'error()', 'warn()']
    elif 'function' in before_cursor:
        options = ['function name() {\n    // code here\n}']
    elif 'const' in before_cursor:
        options = ['const variable = value;']
    elif 'let' in before_cursor:
        options = ['let variable = value;']
    elif 'if' in before_cursor:
        options = ['if (condition) {\n    // code here\n}']
    elif 'for' in before_cursor:
        options = ['for (let i = 0; i < array.length; i++) {\n    // code here\n}']
    elif 'while' in before_cursor:
        options = ['while (condition) {\n    // code here\n}']
    elif 'def' in before_cursor:
        options = ['def function_name():\n    pass']
    elif 'class' in before_cursor:
        options = ['class ClassName:\n    def __init__(self):\n        pass']
    elif 'print' in before_cursor:
        options = ['print("")', 'print(variable)']
    elif len(before_cursor) >= 2:
        options = ['variable = value', 'function_name()', '// TODO: implement this']
    else:
        options = []

    return [
        CompletionSuggestion(text=option, displayText=f"💡 {option}", source="basic")
        for option in options[:MAX_SUGGESTIONS]
    ]


def _response_text(response) -> str:
    return ''.join(
        block.text for block in response.content
        if getattr(block, 'type', None) == 'text'
    )


class CompletionService:
    """Code completion backed by the Anthropic Messages API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-5",
        fallback_model: Optional[str] = "claude-3-5-haiku-20241022",
        timeout_seconds: float = 5.0,
        client: Optional[AsyncAnthropic] = None
    ):
        self.model = model
        self.fallback_model = fallback_model
        if client is not None:
            self.client = client
        elif api_key:
            self.client = AsyncAnthropic(api_key=api_key, timeout=timeout_seconds, max_retries=0)
        else:
            self.client = None
            logger.warning("[Completion] CLAUDE_API_KEY not set, serving basic completions only")

    async def get_code_completions(
        self,
        code: str,
        language_id: Optional[str],
        line: int,
        column: int,
        max_suggestions: int = MAX_SUGGESTIONS
    ) -> CompletionOutcome:
        """
        Get completions for the cursor position

        Args:
            code: Current document
            language_id: Editor language identifier
            line: Zero-based cursor line
            column: Zero-based cursor column
            max_suggestions: Upper bound on returned suggestions

        Returns:
            CompletionOutcome; provider failures yield basic suggestions with
            succeeded=False
        """
        language_id = language_id or "javascript"

        if self.client is None:
            return CompletionOutcome(suggestions=basic_completions(code, line, column))

        context = prepare_context(code, language_id, line, column)
        try:
            raw = await self._generate(context, max_suggestions)
        except Exception as e:
            logger.error(f"[Completion] Provider error for {language_id}: {e}")
            return CompletionOutcome(
                suggestions=basic_completions(code, line, column),
                succeeded=False,
                error=str(e),
            )

        return CompletionOutcome(suggestions=self.process_suggestions(raw, code, line, column))

    async def _generate(self, context: CompletionContext, max_suggestions: int) -> List[str]:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=100,
                temperature=0.1,
                system=build_system_prompt(context.language),
                messages=[{
                    "role": "user",
                    "content": build_user_prompt(context.language, context.fullContext, max_suggestions),
                }],
                stop_sequences=["```", "---"],
            )
        except anthropic.RateLimitError:
            raise
        except anthropic.APIError as e:
            if not self.fallback_model:
                raise
            logger.warning(f"[Completion] Primary model failed ({e}), trying {self.fallback_model}")
            return await self._try_fallback(context, max_suggestions)

        text = _response_text(response)
        logger.debug(f"[Completion] Raw response: {text!r}")
        return parse_completion_response(text)

    async def _try_fallback(self, context: CompletionContext, max_suggestions: int) -> List[str]:
        response = await self.client.messages.create(
            model=self.fallback_model,
            max_tokens=50,
            temperature=0.2,
            messages=[{"role": "user", "content": build_fallback_prompt(context.fullContext)}],
        )
        lines = [line.strip() for line in _response_text(response).split('\n')]
        return [line for line in lines if line][:max_suggestions]

    def process_suggestions(
        self,
        suggestions: List[str],
        original_code: str,
        line: int,
        column: int
    ) -> List[CompletionSuggestion]:
        """Drop empty or already-present suggestions; fall back when none remain"""
        processed = [
            CompletionSuggestion(text=suggestion, displayText=f"✨ {suggestion}", source="ai")
            for suggestion in suggestions
            if suggestion and suggestion.strip() and suggestion not in original_code
        ][:MAX_SUGGESTIONS]

        if not processed:
            return basic_completions(original_code, line, column)
        return processed
