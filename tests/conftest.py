"""Shared fixtures: in-memory sockets and stand-ins for the sandbox and provider."""

from datetime import datetime, timezone

import pytest

from collab.registry import RoomRegistry
from collab.relay import SyncRelay
from completion.models import CompletionOutcome, CompletionSuggestion
from execution.models import ExecutionResult
from websocket_manager import WebSocketManager


class FakeWebSocket:
    """Collects every frame the server sends to it."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.accepted = False
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket is closed")
        self.sent.append(message)

    def events(self, name=None):
        return [m for m in self.sent if name is None or m["event"] == name]

    def event_names(self):
        return [m["event"] for m in self.sent]


class FakeSandbox:
    def __init__(self):
        self.calls = []
        self.gate = None

    async def execute(self, source_text, language_id):
        self.calls.append((source_text, language_id))
        if self.gate is not None:
            await self.gate.wait()
        return ExecutionResult(
            succeeded=True,
            standardOutput=f"ran {len(source_text)} chars",
            producedAt=datetime.now(timezone.utc).isoformat(),
        )


class FakeCompletionService:
    def __init__(self):
        self.calls = []

    async def get_code_completions(self, code, language_id, line, column):
        self.calls.append((code, language_id, line, column))
        return CompletionOutcome(
            suggestions=[CompletionSuggestion(text="log()", displayText="✨ log()", source="ai")]
        )


@pytest.fixture
def manager():
    return WebSocketManager()


@pytest.fixture
def registry(manager):
    return RoomRegistry(manager)


@pytest.fixture
def sandbox():
    return FakeSandbox()


@pytest.fixture
def completion_service():
    return FakeCompletionService()


@pytest.fixture
def relay(manager, registry, sandbox, completion_service):
    return SyncRelay(manager, registry, sandbox, completion_service)


@pytest.fixture
def participant(relay):
    """Factory: open a connection and optionally join a room."""

    async def _open(room=None, name="alice", fail=False):
        websocket = FakeWebSocket(fail=fail)
        connection_id = await relay.manager.connect(websocket)
        session = await relay.open_connection(connection_id)
        if room is not None:
            await relay.handle_event(session, {
                "event": "join",
                "data": {"roomToken": room, "displayName": name},
            })
        return session, websocket

    return _open


@pytest.fixture
def artifact_dir(tmp_path):
    path = tmp_path / "artifacts"
    path.mkdir()
    return path
