"""
Pydantic models for code completion
"""

from typing import List, Literal, Optional

from pydantic import BaseModel


class CompletionSuggestion(BaseModel):
    text: str
    displayText: str
    source: Literal["ai", "basic"]


class CompletionOutcome(BaseModel):
    """What the completion service hands back to the relay"""
    suggestions: List[CompletionSuggestion] = []
    succeeded: bool = True
    error: Optional[str] = None


class CompletionResponse(BaseModel):
    """ai-completion-response payload"""
    requestId: int
    suggestions: List[CompletionSuggestion] = []
    succeeded: bool = True
    error: Optional[str] = None


class CompletionContext(BaseModel):
    """Code around the cursor, as sent to the provider"""
    fullContext: str
    currentLine: str
    beforeCursor: str
    cursorPosition: int
    language: str
