from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging

from dotenv import load_dotenv

from collab import RoomRegistry, SyncRelay
from completion import CompletionService
from config import Settings
from execution import ExecutionSandbox
from models import HealthResponse
from websocket_manager import WebSocketManager

# Load environment variables
load_dotenv()

"""
FastAPI server for collaborative code editing
Room relay over WebSockets plus sandboxed execution of the shared document
"""

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(
    settings: Optional[Settings] = None,
    completion_service: Optional[CompletionService] = None,
    sandbox: Optional[ExecutionSandbox] = None
) -> FastAPI:
    """
    Composition root: one manager, registry, sandbox, completion service and
    relay per application instance
    """
    settings = settings or Settings.from_env()

    manager = WebSocketManager()
    registry = RoomRegistry(manager)
    sandbox = sandbox or ExecutionSandbox(
        timeout_seconds=settings.execution_timeout_seconds,
        max_output_bytes=settings.execution_max_output_bytes,
        artifact_dir=settings.execution_artifact_dir,
        python_interpreter=settings.execution_python,
    )
    completion_service = completion_service or CompletionService(
        api_key=settings.claude_api_key,
        model=settings.completion_model,
        fallback_model=settings.completion_fallback_model,
        timeout_seconds=settings.completion_timeout_seconds,
    )
    relay = SyncRelay(manager, registry, sandbox, completion_service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        pending = relay.pending_task_count()
        if pending:
            logger.info(f"Waiting for {pending} in-flight runs before shutdown")
        await relay.join_background_tasks()

    app = FastAPI(
        title="Coderoom",
        description="Real-time collaborative code editor with sandboxed execution",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.manager = manager
    app.state.registry = registry
    app.state.relay = relay

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """
        Health check endpoint
        Returns the service status and live connection counts
        """
        return HealthResponse(
            status="ok",
            version=VERSION,
            connections=manager.connection_count,
            rooms=manager.room_count,
        )

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return "<h1>Welcome to the code editor server</h1>"

    @app.websocket("/ws")
    async def websocket_collab(websocket: WebSocket):
        """
        WebSocket endpoint for one participant

        Frames are JSON text messages {"event": ..., "data": {...}}. The loop
        feeds them to the relay one at a time and runs the disconnect
        transition exactly once when the socket goes away.
        """
        connection_id = await manager.connect(websocket)
        logger.info(f"[WebSocket] Client {websocket.client} is {connection_id}")
        session = await relay.open_connection(connection_id)

        try:
            while True:
                message = await websocket.receive()

                if message.get("type") == "websocket.disconnect":
                    logger.info(f"[WebSocket] Client disconnected: {connection_id}")
                    break

                text = message.get("text")
                if text is None:
                    logger.warning(f"[WebSocket] Ignoring binary frame from {connection_id}")
                    continue

                try:
                    await relay.handle_message(session, text)
                except Exception as e:
                    # A failing event must not take the connection down
                    logger.error(f"[WebSocket] Error handling event from {connection_id}: {e}", exc_info=True)
        except WebSocketDisconnect:
            logger.info(f"[WebSocket] Disconnected: {connection_id}")
        except Exception as e:
            logger.error(f"[WebSocket] Error for {connection_id}: {e}", exc_info=True)
        finally:
            await relay.handle_disconnect(session)
            logger.info(f"[WebSocket] Cleanup complete for {connection_id}")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = app.state.settings.port

    logger.info(f"Starting collaboration server on port {port}")
    uvicorn.run(
        "main:app",  # Use string import path instead of app object
        host="0.0.0.0",
        port=port,
        ws="auto",
        log_level="info",
    )
