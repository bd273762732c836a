"""
Room synchronization relay for collaborative editing
"""
from .registry import Participant, RoomRegistry
from .relay import SyncRelay
from .session import ConnectionSession, SessionManager
from .state_machine import ConnectionState, ConnectionStateMachine

__all__ = [
    'Participant',
    'RoomRegistry',
    'SyncRelay',
    'ConnectionSession',
    'SessionManager',
    'ConnectionState',
    'ConnectionStateMachine',
]
