"""
Python client for the collaboration protocol

Speaks the same JSON frames as the browser editor: joins a room, mirrors the
shared document locally, answers newcomers with a sync-code snapshot and
correlates completion responses by request id.
"""
import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

import websockets
from pydantic import ValidationError

from completion.correlator import CompletionCorrelator
from completion.models import CompletionResponse, CompletionSuggestion

from . import actions

logger = logging.getLogger(__name__)


class CollabClient:
    """One participant connected over a WebSocket"""

    def __init__(
        self,
        url: str,
        display_name: str,
        completion_timeout: float = 5.0,
        connect_timeout: float = 10.0
    ):
        self.url = url
        self.display_name = display_name
        self.connect_timeout = connect_timeout
        self.connection_id: Optional[str] = None
        self.room_token: Optional[str] = None
        self.code = ""
        self.members: List[dict] = []
        self.correlator = CompletionCorrelator(timeout_seconds=completion_timeout)

        self.messages_sent = 0
        self.messages_received = 0

        self._websocket = None
        self._receive_task: Optional[asyncio.Task] = None
        self._connected: Optional[asyncio.Event] = None
        self._handlers: Dict[str, List[Callable]] = defaultdict(list)

    async def connect(self) -> str:
        """Open the socket and wait for the server to assign a connection id"""
        self._connected = asyncio.Event()
        self._websocket = await websockets.connect(self.url)
        self._receive_task = asyncio.create_task(self._receive_loop())
        await asyncio.wait_for(self._connected.wait(), timeout=self.connect_timeout)
        logger.info(f"[Client] {self.display_name} connected as {self.connection_id}")
        return self.connection_id

    async def close(self) -> None:
        if self._websocket is not None:
            await self._websocket.close()
        if self._receive_task is not None:
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass

    def on(self, event: str, callback: Callable[[dict], Any]) -> None:
        """Register a callback(data) for a server event; coroutines are awaited"""
        self._handlers[event].append(callback)

    async def _emit(self, event: str, data: dict) -> None:
        await self._websocket.send(json.dumps({"event": event, "data": data}))
        self.messages_sent += 1

    # Protocol operations

    async def join(self, room_token: str) -> None:
        self.room_token = room_token
        await self._emit(actions.JOIN, {"roomToken": room_token, "displayName": self.display_name})

    async def change_code(self, code: str) -> None:
        self.code = code
        await self._emit(actions.CODE_CHANGE, {"roomToken": self.room_token, "code": code})

    async def sync_code(self, target_connection_id: str, code: Optional[str] = None) -> None:
        await self._emit(actions.SYNC_CODE, {
            "targetConnectionId": target_connection_id,
            "code": self.code if code is None else code,
        })

    async def move_cursor(self, line: int, column: int) -> None:
        await self._emit(actions.CURSOR_CHANGE, {
            "roomToken": self.room_token,
            "cursor": {"line": line, "column": column},
            "displayName": self.display_name,
        })

    async def run_code(self, language_id: str, code: Optional[str] = None) -> None:
        await self._emit(actions.RUN_CODE, {
            "roomToken": self.room_token,
            "code": self.code if code is None else code,
            "languageId": language_id,
        })

    async def request_completion(self, language_id: str, line: int, column: int) -> List[CompletionSuggestion]:
        """
        Ask for completions at a cursor position

        Returns:
            Suggestions, or an empty list on timeout or when a newer request
            superseded this one
        """
        request_id = self.correlator.next_request_id()
        self.correlator.expect(request_id)
        await self._emit(actions.AI_CODE_COMPLETION, {
            "roomToken": self.room_token,
            "code": self.code,
            "languageId": language_id,
            "cursor": {"line": line, "column": column},
            "requestId": request_id,
        })
        return await self.correlator.wait(request_id)

    # Inbound

    async def _receive_loop(self) -> None:
        try:
            async for message in self._websocket:
                if not isinstance(message, str):
                    continue
                try:
                    frame = json.loads(message)
                except json.JSONDecodeError as e:
                    logger.error(f"[Client] JSON decode error: {e}")
                    continue
                self.messages_received += 1
                await self._dispatch(frame.get("event"), frame.get("data") or {})
        except websockets.exceptions.ConnectionClosed:
            logger.info(f"[Client] Connection closed for {self.display_name}")

    async def _dispatch(self, event: str, data: dict) -> None:
        if event == actions.CONNECTED:
            self.connection_id = data.get("connectionId")
            self._connected.set()
        elif event == actions.JOINED:
            self.members = data.get("members", [])
            newcomer = data.get("connectionId")
            # Existing members push their snapshot to the newcomer
            if newcomer and newcomer != self.connection_id and self.code:
                await self.sync_code(newcomer)
        elif event == actions.CODE_CHANGE:
            self.code = data.get("code", "")
        elif event == actions.DISCONNECTED:
            gone = data.get("connectionId")
            self.members = [m for m in self.members if m.get("connectionId") != gone]
        elif event == actions.AI_COMPLETION_RESPONSE:
            try:
                self.correlator.resolve(CompletionResponse.model_validate(data))
            except ValidationError as e:
                logger.warning(f"[Client] Ignoring malformed completion response: {e.errors()}")

        for callback in self._handlers.get(event, []):
            try:
                result = callback(data)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"[Client] Error in {event} handler: {e}", exc_info=True)
