"""
Room registry: who is connected, under which name, in which room
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from websocket_manager import WebSocketManager

from .models import Member

logger = logging.getLogger(__name__)


@dataclass
class Participant:
    """Registry record for one joined connection"""
    connection_id: str
    display_name: str
    room_token: Optional[str] = None
    joined_at: datetime = field(default_factory=datetime.now)

    def to_member(self) -> Member:
        return Member(connectionId=self.connection_id, displayName=self.display_name)


class RoomRegistry:
    """
    Maps connection ids to participants.

    Room membership itself is the transport's group subscription, read from
    the WebSocketManager on demand; the registry only contributes names.
    """

    def __init__(self, manager: WebSocketManager):
        self._manager = manager
        self._participants: Dict[str, Participant] = {}

    def record_join(
        self,
        connection_id: str,
        display_name: str,
        room_token: Optional[str] = None
    ) -> Participant:
        """Insert or overwrite the participant record for a connection"""
        participant = Participant(
            connection_id=connection_id,
            display_name=display_name,
            room_token=room_token,
        )
        previous = self._participants.get(connection_id)
        self._participants[connection_id] = participant
        if previous is not None:
            logger.debug(
                f"[Registry] {connection_id} rejoined as {display_name!r} "
                f"(was {previous.display_name!r} in {previous.room_token!r})"
            )
        return participant

    def members_of(self, room_token: str) -> List[Member]:
        """Members of a room in subscription order; empty for unknown rooms"""
        return [
            Member(connectionId=connection_id, displayName=self.display_name_of(connection_id))
            for connection_id in self._manager.members(room_token)
        ]

    def forget(self, connection_id: str) -> None:
        """Remove a connection's record; unknown ids are ignored"""
        self._participants.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[Participant]:
        return self._participants.get(connection_id)

    def display_name_of(self, connection_id: str) -> Optional[str]:
        participant = self._participants.get(connection_id)
        return participant.display_name if participant else None

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._participants

    def __len__(self) -> int:
        return len(self._participants)
