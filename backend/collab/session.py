"""
Connection session bookkeeping
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from .state_machine import ConnectionState, ConnectionStateMachine

logger = logging.getLogger(__name__)


class ConnectionSession:
    """
    Per-connection relay state: protocol state plus activity counters.
    Participant identity lives in the RoomRegistry.
    """

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        self.state_machine = ConnectionStateMachine(connection_id)
        self.created_at = datetime.now()
        self.last_activity = datetime.now()

        self.metrics = {
            "events_received": 0,
            "events_dropped": 0,
            "joins": 0,
            "runs_requested": 0,
            "completions_requested": 0,
        }

        self.state_machine.on_transition(self._on_transition)

    def _on_transition(self, connection_id, old_state, new_state, metadata):
        if new_state == ConnectionState.JOINED and metadata.get("event") == "join":
            self.metrics["joins"] += 1

    def touch(self) -> None:
        self.last_activity = datetime.now()
        self.metrics["events_received"] += 1

    @property
    def state(self) -> ConnectionState:
        return self.state_machine.get_state()

    def is_active(self) -> bool:
        return self.state != ConnectionState.DISCONNECTED

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "state": self.state_machine.to_dict(),
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "metrics": self.metrics,
        }


class SessionManager:
    """Tracks the sessions of all live connections"""

    def __init__(self):
        self._sessions: Dict[str, ConnectionSession] = {}

    def create_session(self, connection_id: str) -> ConnectionSession:
        session = ConnectionSession(connection_id)
        self._sessions[connection_id] = session
        return session

    def get_session(self, connection_id: str) -> Optional[ConnectionSession]:
        return self._sessions.get(connection_id)

    def close_session(self, connection_id: str) -> None:
        session = self._sessions.pop(connection_id, None)
        if session:
            logger.info(
                f"[{connection_id}] Session metrics: "
                f"events={session.metrics['events_received']}, "
                f"dropped={session.metrics['events_dropped']}, "
                f"runs={session.metrics['runs_requested']}"
            )

    def get_active_sessions(self) -> List[ConnectionSession]:
        return [s for s in self._sessions.values() if s.is_active()]

    def get_session_count(self) -> int:
        return len(self._sessions)
