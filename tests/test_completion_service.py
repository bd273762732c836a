from types import SimpleNamespace

import anthropic
import httpx
import pytest

from completion.prompts import CURSOR_MARKER
from completion.service import (
    CompletionService,
    basic_completions,
    parse_completion_response,
    prepare_context,
)

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def text_reply(text):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


class FakeMessages:
    """Replays scripted replies (or raises scripted errors) in order"""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return text_reply(reply)


def service_with(*replies):
    messages = FakeMessages(*replies)
    return CompletionService(client=SimpleNamespace(messages=messages)), messages


def test_parse_strips_formatting_and_chatter():
    raw = "\n".join([
        "```javascript",
        "1. console.log(x);",
        "# heading",
        "Here are some options:",
        "2) 'return y;'",
        f"total += 1{CURSOR_MARKER}",
        "never reached",
    ])
    assert parse_completion_response(raw) == ["console.log(x);", "return y;", "total += 1"]


def test_prepare_context_marks_cursor_and_limits_lines():
    code = "\n".join(f"line{i}" for i in range(20))
    context = prepare_context(code, "python", 15, 3)

    lines = context.fullContext.split("\n")
    assert len(lines) == 11
    assert lines[0] == "line5"
    assert lines[-1] == f"lin{CURSOR_MARKER}"
    assert context.beforeCursor == "lin"


@pytest.mark.parametrize("before,expected", [
    ("console.", ["log()", "error()", "warn()"]),
    ("def", ["def function_name():\n    pass"]),
    ("x", []),
])
def test_basic_completions(before, expected):
    suggestions = basic_completions(before, 0, len(before))
    assert [s.text for s in suggestions] == expected
    assert all(s.source == "basic" and s.displayText.startswith("💡") for s in suggestions)


@pytest.mark.asyncio
async def test_without_api_key_serves_basic_suggestions():
    service = CompletionService(api_key=None)
    outcome = await service.get_code_completions("console.", "javascript", 0, 8)

    assert outcome.succeeded
    assert [s.text for s in outcome.suggestions] == ["log()", "error()", "warn()"]


@pytest.mark.asyncio
async def test_model_suggestions_are_returned():
    service, messages = service_with("log(x)\nerror(x)")
    outcome = await service.get_code_completions("console.", "javascript", 0, 8)

    assert outcome.succeeded
    assert [s.text for s in outcome.suggestions] == ["log(x)", "error(x)"]
    assert all(s.source == "ai" for s in outcome.suggestions)
    assert messages.calls[0]["model"] == service.model


@pytest.mark.asyncio
async def test_provider_error_retries_on_fallback_model():
    service, messages = service_with(anthropic.APIConnectionError(request=REQUEST), "warn(x)")
    outcome = await service.get_code_completions("console.", "javascript", 0, 8)

    assert [s.text for s in outcome.suggestions] == ["warn(x)"]
    assert [call["model"] for call in messages.calls] == [service.model, service.fallback_model]


@pytest.mark.asyncio
async def test_rate_limit_skips_fallback():
    rate_limited = anthropic.RateLimitError(
        "rate limited",
        response=httpx.Response(429, request=REQUEST),
        body=None,
    )
    service, messages = service_with(rate_limited)
    outcome = await service.get_code_completions("console.", "javascript", 0, 8)

    assert not outcome.succeeded
    assert outcome.error
    assert [s.source for s in outcome.suggestions] == ["basic", "basic", "basic"]
    assert len(messages.calls) == 1


@pytest.mark.asyncio
async def test_both_models_failing_falls_back_to_basic():
    service, _ = service_with(
        anthropic.APIConnectionError(request=REQUEST),
        anthropic.APIConnectionError(request=REQUEST),
    )
    outcome = await service.get_code_completions("console.", "javascript", 0, 8)

    assert not outcome.succeeded
    assert [s.text for s in outcome.suggestions] == ["log()", "error()", "warn()"]


@pytest.mark.asyncio
async def test_suggestions_already_in_the_code_are_dropped():
    service, _ = service_with("console.")
    outcome = await service.get_code_completions("console.", "javascript", 0, 8)

    assert outcome.succeeded
    assert [s.source for s in outcome.suggestions] == ["basic", "basic", "basic"]
