"""
Event names of the collaboration protocol

Frames are JSON text messages shaped {"event": <name>, "data": {...}}.
"""

# Client -> server
JOIN = "join"
CODE_CHANGE = "code-change"
SYNC_CODE = "sync-code"
CURSOR_CHANGE = "cursor-change"
RUN_CODE = "run-code"
AI_CODE_COMPLETION = "ai-code-completion"

# Server -> client
CONNECTED = "connected"
JOINED = "joined"
DISCONNECTED = "disconnected"
CODE_OUTPUT = "code-output"
AI_COMPLETION_RESPONSE = "ai-completion-response"
# CODE_CHANGE and CURSOR_CHANGE are also relayed back out under the same name
