"""
WebSocket connection manager with room groups

Owns the live sockets, assigns connection ids and keeps the ordered set of
connections subscribed to each room token. Provides unicast and room
broadcast with optional sender exclusion.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketManager:
    """Manages WebSocket connections and their room subscriptions"""
    def __init__(self):
        # connection_id -> socket
        self.active_connections: Dict[str, WebSocket] = {}
        # room token -> connection ids in subscription order (dict as ordered set)
        self.rooms: Dict[str, Dict[str, None]] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Accept a socket and assign it a fresh connection id"""
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.active_connections[connection_id] = websocket
        logger.info(f"[WebSocket] Connected {connection_id} (total connections: {len(self.active_connections)})")
        return connection_id

    def disconnect(self, connection_id: str):
        """Forget a connection and drop all its room subscriptions"""
        for room_token in self.rooms_of(connection_id):
            self.leave_room(connection_id, room_token)
        self.active_connections.pop(connection_id, None)
        logger.info(f"[WebSocket] Disconnected {connection_id}")

    def enter_room(self, connection_id: str, room_token: str):
        self.rooms.setdefault(room_token, {})[connection_id] = None

    def leave_room(self, connection_id: str, room_token: str):
        members = self.rooms.get(room_token)
        if members is None:
            return
        members.pop(connection_id, None)
        if not members:
            del self.rooms[room_token]

    def rooms_of(self, connection_id: str) -> List[str]:
        """Room tokens the connection is subscribed to"""
        return [token for token, members in self.rooms.items() if connection_id in members]

    def members(self, room_token: str) -> List[str]:
        """Connection ids subscribed to a room, in subscription order"""
        return list(self.rooms.get(room_token, ()))

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self.active_connections

    async def send_to(self, connection_id: str, event: str, data: Dict[str, Any]) -> bool:
        """
        Send an event to exactly one connection

        Returns:
            True if the message was handed to the socket
        """
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            logger.debug(f"[WebSocket] Dropping {event} for unknown connection {connection_id}")
            return False

        try:
            await websocket.send_json({"event": event, "data": data})
            return True
        except Exception as e:
            # The receive loop of that connection runs the real cleanup
            logger.warning(f"[WebSocket] Failed to send {event} to {connection_id}: {e}")
            return False

    async def broadcast(
        self,
        room_token: str,
        event: str,
        data: Dict[str, Any],
        exclude: Optional[str] = None
    ) -> int:
        """
        Send an event to every member of a room

        Args:
            room_token: Target room
            event: Event name
            data: JSON-serializable payload
            exclude: Connection id to skip (the sender)

        Returns:
            Number of connections the message was delivered to
        """
        delivered = 0
        # Snapshot: membership may change while awaiting sends
        for connection_id in self.members(room_token):
            if connection_id == exclude:
                continue
            if await self.send_to(connection_id, event, data):
                delivered += 1
        return delivered

    def has_connections(self, room_token: str) -> bool:
        """Check if there are any subscribers for a room"""
        return bool(self.rooms.get(room_token))

    @property
    def connection_count(self) -> int:
        return len(self.active_connections)

    @property
    def room_count(self) -> int:
        return len(self.rooms)
