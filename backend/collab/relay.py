"""
Synchronization relay

Drives each connection's state machine from its receive loop and forwards
events within a room: join announcements, edits and cursors to everyone but
the sender, snapshot unicasts to newcomers, and run results to the whole
room. The relay never stores document content.
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Dict, Set

from pydantic import ValidationError

from completion.models import CompletionResponse
from completion.service import CompletionService
from execution import ExecutionSandbox
from websocket_manager import WebSocketManager

from . import actions
from .models import (
    CodeChangePayload,
    CompletionRequestPayload,
    CursorChangePayload,
    CursorNotification,
    DisconnectedNotification,
    Envelope,
    JoinedNotification,
    JoinPayload,
    RunCodePayload,
    SyncCodePayload,
)
from .registry import RoomRegistry
from .session import ConnectionSession, SessionManager
from .state_machine import ConnectionState

logger = logging.getLogger(__name__)


class SyncRelay:
    """Protocol state machine for every connection of one server"""

    def __init__(
        self,
        manager: WebSocketManager,
        registry: RoomRegistry,
        sandbox: ExecutionSandbox,
        completion_service: CompletionService
    ):
        self.manager = manager
        self.registry = registry
        self.sandbox = sandbox
        self.completion_service = completion_service
        self.sessions = SessionManager()
        self._background_tasks: Set[asyncio.Task] = set()

        # event -> (payload model, handler)
        self._handlers: Dict[str, tuple] = {
            actions.JOIN: (JoinPayload, self.handle_join),
            actions.CODE_CHANGE: (CodeChangePayload, self.handle_code_change),
            actions.SYNC_CODE: (SyncCodePayload, self.handle_sync_code),
            actions.CURSOR_CHANGE: (CursorChangePayload, self.handle_cursor_change),
            actions.RUN_CODE: (RunCodePayload, self.handle_run_code),
            actions.AI_CODE_COMPLETION: (CompletionRequestPayload, self.handle_completion_request),
        }

    # Connection lifecycle

    async def open_connection(self, connection_id: str) -> ConnectionSession:
        """Create the session and tell the client its connection id"""
        session = self.sessions.create_session(connection_id)
        await self.manager.send_to(connection_id, actions.CONNECTED, {"connectionId": connection_id})
        return session

    async def handle_disconnect(self, session: ConnectionSession) -> None:
        """
        JOINED/UNJOINED -> DISCONNECTED

        Notifies every room the connection is subscribed to before the
        subscriptions are torn down, then forgets the participant.
        Dispatched executions keep running.
        """
        if not session.state_machine.transition_to(ConnectionState.DISCONNECTED):
            return

        connection_id = session.connection_id
        notification = DisconnectedNotification(
            connectionId=connection_id,
            displayName=self.registry.display_name_of(connection_id),
        ).model_dump()

        for room_token in self.manager.rooms_of(connection_id):
            await self.manager.broadcast(room_token, actions.DISCONNECTED, notification, exclude=connection_id)
            logger.info(f"[Relay] {connection_id} left room {room_token}")

        self.manager.disconnect(connection_id)
        self.registry.forget(connection_id)
        self.sessions.close_session(connection_id)

    # Dispatch

    async def handle_message(self, session: ConnectionSession, raw: str) -> None:
        """Decode one text frame and dispatch it; malformed frames are dropped"""
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            self._drop(session, f"invalid JSON ({e})")
            return
        await self.handle_event(session, message)

    async def handle_event(self, session: ConnectionSession, message: Any) -> None:
        session.touch()

        try:
            envelope = Envelope.model_validate(message)
        except ValidationError as e:
            self._drop(session, f"malformed envelope: {e.errors()}")
            return

        entry = self._handlers.get(envelope.event)
        if entry is None:
            self._drop(session, f"unknown event {envelope.event!r}")
            return

        if not session.state_machine.accepts(envelope.event):
            self._drop(session, f"{envelope.event} not allowed while {session.state.value}")
            return

        payload_model, handler = entry
        try:
            payload = payload_model.model_validate(envelope.data)
        except ValidationError as e:
            self._drop(session, f"invalid {envelope.event} payload: {e.errors()}")
            return

        await handler(session, payload)

    def _drop(self, session: ConnectionSession, reason: str) -> None:
        session.metrics["events_dropped"] += 1
        logger.warning(f"[Relay] Dropping event from {session.connection_id}: {reason}")

    # Handlers

    async def handle_join(self, session: ConnectionSession, payload: JoinPayload) -> None:
        connection_id = session.connection_id

        self.registry.record_join(connection_id, payload.displayName, payload.roomToken)
        self.manager.enter_room(connection_id, payload.roomToken)
        session.state_machine.transition_to(ConnectionState.JOINED, {"event": actions.JOIN})

        members = self.registry.members_of(payload.roomToken)
        notification = JoinedNotification(
            members=members,
            displayName=payload.displayName,
            connectionId=connection_id,
        ).model_dump()

        logger.info(
            f"[Relay] {payload.displayName!r} ({connection_id}) joined {payload.roomToken} "
            f"({len(members)} members)"
        )
        for member in members:
            await self.manager.send_to(member.connectionId, actions.JOINED, notification)

    async def handle_code_change(self, session: ConnectionSession, payload: CodeChangePayload) -> None:
        await self.manager.broadcast(
            payload.roomToken,
            actions.CODE_CHANGE,
            {"code": payload.code},
            exclude=session.connection_id,
        )

    async def handle_sync_code(self, session: ConnectionSession, payload: SyncCodePayload) -> None:
        delivered = await self.manager.send_to(payload.targetConnectionId, actions.CODE_CHANGE, {"code": payload.code})
        if not delivered:
            logger.info(f"[Relay] sync-code target {payload.targetConnectionId} is gone")

    async def handle_cursor_change(self, session: ConnectionSession, payload: CursorChangePayload) -> None:
        notification = CursorNotification(
            connectionId=session.connection_id,
            cursor=payload.cursor,
            displayName=payload.displayName or self.registry.display_name_of(session.connection_id),
        ).model_dump()
        await self.manager.broadcast(
            payload.roomToken,
            actions.CURSOR_CHANGE,
            notification,
            exclude=session.connection_id,
        )

    async def handle_run_code(self, session: ConnectionSession, payload: RunCodePayload) -> None:
        session.metrics["runs_requested"] += 1
        logger.info(f"[Relay] Run requested in {payload.roomToken} ({payload.languageId})")
        self._spawn(self._run_and_broadcast(payload))

    async def handle_completion_request(
        self,
        session: ConnectionSession,
        payload: CompletionRequestPayload
    ) -> None:
        session.metrics["completions_requested"] += 1
        self._spawn(self._complete_and_reply(session.connection_id, payload))

    # Background work

    async def _run_and_broadcast(self, payload: RunCodePayload) -> None:
        result = await self.sandbox.execute(payload.code, payload.languageId)
        # Everyone in the room sees the output, the requester included
        delivered = await self.manager.broadcast(
            payload.roomToken,
            actions.CODE_OUTPUT,
            {"result": result.model_dump(mode="json")},
        )
        logger.info(f"[Relay] code-output for {payload.roomToken} delivered to {delivered} members")

    async def _complete_and_reply(self, connection_id: str, payload: CompletionRequestPayload) -> None:
        outcome = await self.completion_service.get_code_completions(
            payload.code,
            payload.languageId,
            payload.cursor.line,
            payload.cursor.column,
        )
        response = CompletionResponse(
            requestId=payload.requestId,
            suggestions=outcome.suggestions,
            succeeded=outcome.succeeded,
            error=outcome.error,
        )
        await self.manager.send_to(connection_id, actions.AI_COMPLETION_RESPONSE, response.model_dump())

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.create_task(self._guard(coro))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _guard(self, coro: Awaitable[None]) -> None:
        try:
            await coro
        except Exception as e:
            logger.error(f"[Relay] Background task failed: {e}", exc_info=True)

    async def join_background_tasks(self) -> None:
        """Wait for in-flight runs and completions to finish"""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def pending_task_count(self) -> int:
        return len(self._background_tasks)
