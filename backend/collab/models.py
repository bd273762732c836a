"""
Pydantic models for collaboration events
"""

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field


class Cursor(BaseModel):
    """Editor caret position"""
    line: int = Field(ge=0)
    column: int = Field(ge=0, validation_alias=AliasChoices("column", "ch"))


class Member(BaseModel):
    connectionId: str
    displayName: Optional[str] = None


class Envelope(BaseModel):
    """Wire frame wrapping every event"""
    event: str
    data: dict = {}


# Inbound payloads

class JoinPayload(BaseModel):
    roomToken: str = Field(min_length=1)
    displayName: str


class CodeChangePayload(BaseModel):
    roomToken: str = Field(min_length=1)
    code: str


class SyncCodePayload(BaseModel):
    targetConnectionId: str = Field(min_length=1)
    code: str


class CursorChangePayload(BaseModel):
    roomToken: str = Field(min_length=1)
    cursor: Cursor
    displayName: Optional[str] = None


class RunCodePayload(BaseModel):
    roomToken: str = Field(min_length=1)
    code: str
    languageId: Optional[str] = None


class CompletionRequestPayload(BaseModel):
    roomToken: Optional[str] = None
    code: str
    languageId: Optional[str] = None
    cursor: Cursor
    requestId: int


# Outbound notifications

class JoinedNotification(BaseModel):
    members: List[Member]
    displayName: str
    connectionId: str


class DisconnectedNotification(BaseModel):
    connectionId: str
    displayName: Optional[str] = None


class CursorNotification(BaseModel):
    connectionId: str
    cursor: Cursor
    displayName: Optional[str] = None
