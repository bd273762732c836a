"""
Per-connection protocol state machine
"""
from enum import Enum
from typing import Callable, Dict, List, Optional
import logging
from datetime import datetime

from . import actions

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Relay states of one connection"""
    UNJOINED = "unjoined"
    JOINED = "joined"
    DISCONNECTED = "disconnected"


# Events a connection may send in each state
ALLOWED_EVENTS: Dict[ConnectionState, frozenset] = {
    ConnectionState.UNJOINED: frozenset({actions.JOIN, actions.AI_CODE_COMPLETION}),
    ConnectionState.JOINED: frozenset({
        actions.JOIN,
        actions.CODE_CHANGE,
        actions.SYNC_CODE,
        actions.CURSOR_CHANGE,
        actions.RUN_CODE,
        actions.AI_CODE_COMPLETION,
    }),
    ConnectionState.DISCONNECTED: frozenset(),
}


class ConnectionStateMachine:
    """
    Tracks UNJOINED -> JOINED -> DISCONNECTED for one connection

    Handlers of a single connection run one at a time from its receive loop,
    so transitions need no lock.
    """

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        self.state = ConnectionState.UNJOINED
        self.previous_state = ConnectionState.UNJOINED
        self.state_changed_at = datetime.now()
        self._transition_callbacks: List[Callable] = []

    def transition_to(self, new_state: ConnectionState, metadata: Optional[dict] = None) -> bool:
        """
        Transition to a new state

        Args:
            new_state: Target state
            metadata: Optional metadata passed to callbacks

        Returns:
            True if transition was successful
        """
        if not self._is_valid_transition(self.state, new_state):
            logger.warning(
                f"[{self.connection_id}] Invalid transition: "
                f"{self.state.value} -> {new_state.value}"
            )
            return False

        old_state = self.state
        self.previous_state = old_state
        self.state = new_state
        self.state_changed_at = datetime.now()

        if old_state != new_state:
            logger.debug(
                f"[{self.connection_id}] State transition: "
                f"{old_state.value} -> {new_state.value}"
            )

        for callback in self._transition_callbacks:
            try:
                callback(self.connection_id, old_state, new_state, metadata or {})
            except Exception as e:
                logger.error(f"[{self.connection_id}] Error in transition callback: {e}", exc_info=True)

        return True

    def _is_valid_transition(self, from_state: ConnectionState, to_state: ConnectionState) -> bool:
        """
        Valid transitions:
        - UNJOINED -> JOINED (join)
        - JOINED -> JOINED (edits, cursors, runs, rejoin)
        - UNJOINED -> DISCONNECTED (left before joining)
        - JOINED -> DISCONNECTED (transport disconnect)
        DISCONNECTED is terminal.
        """
        valid_transitions = {
            ConnectionState.UNJOINED: [ConnectionState.JOINED, ConnectionState.DISCONNECTED],
            ConnectionState.JOINED: [ConnectionState.JOINED, ConnectionState.DISCONNECTED],
            ConnectionState.DISCONNECTED: [],
        }
        return to_state in valid_transitions[from_state]

    def accepts(self, event: str) -> bool:
        """Whether an inbound event is allowed in the current state"""
        return event in ALLOWED_EVENTS[self.state]

    def on_transition(self, callback: Callable) -> None:
        """
        Register a callback for any state transition

        Args:
            callback: Callback function(connection_id, old_state, new_state, metadata)
        """
        self._transition_callbacks.append(callback)

    def get_state(self) -> ConnectionState:
        return self.state

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "state": self.state.value,
            "previous_state": self.previous_state.value,
            "state_changed_at": self.state_changed_at.isoformat(),
        }
