import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

from config import Settings
from execution import sandbox as sandbox_module
from execution.sandbox import CommandOutcome
from main import create_app


@pytest.fixture
def client(tmp_path):
    settings = Settings(
        claude_api_key=None,
        execution_artifact_dir=str(tmp_path / "artifacts"),
        execution_timeout_seconds=10,
    )
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def join(websocket, room, name):
    websocket.send_json({"event": "join", "data": {"roomToken": room, "displayName": name}})


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["connections"] == 0
    assert body["rooms"] == 0


def test_index(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "code editor" in response.text


def test_room_session_end_to_end(client):
    with client.websocket_connect("/ws") as alice:
        connected = alice.receive_json()
        assert connected["event"] == "connected"
        alice_id = connected["data"]["connectionId"]

        join(alice, "room-1", "alice")
        assert alice.receive_json()["data"]["members"] == [
            {"connectionId": alice_id, "displayName": "alice"}
        ]

        with client.websocket_connect("/ws") as bob:
            bob_id = bob.receive_json()["data"]["connectionId"]
            join(bob, "room-1", "bob")

            for socket in (alice, bob):
                joined = socket.receive_json()
                assert joined["event"] == "joined"
                assert [m["connectionId"] for m in joined["data"]["members"]] == [alice_id, bob_id]

            alice.send_json({"event": "code-change", "data": {"roomToken": "room-1", "code": "print(1+1)"}})
            assert bob.receive_json() == {"event": "code-change", "data": {"code": "print(1+1)"}}

            bob.send_json({
                "event": "run-code",
                "data": {"roomToken": "room-1", "code": "print(1+1)", "languageId": "python"},
            })
            for socket in (alice, bob):
                output = socket.receive_json()
                assert output["event"] == "code-output"
                assert output["data"]["result"]["succeeded"] is True
                assert output["data"]["result"]["standardOutput"].strip() == "2"

            assert client.get("/health").json()["connections"] == 2

        assert alice.receive_json() == {
            "event": "disconnected",
            "data": {"connectionId": bob_id, "displayName": "bob"},
        }


def test_completion_without_provider_key(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.send_json({
            "event": "ai-code-completion",
            "data": {
                "code": "console.",
                "languageId": "javascript",
                "cursor": {"line": 0, "ch": 8},
                "requestId": 1,
            },
        })
        reply = websocket.receive_json()

    assert reply["event"] == "ai-completion-response"
    assert reply["data"]["requestId"] == 1
    assert [s["text"] for s in reply["data"]["suggestions"]] == ["log()", "error()", "warn()"]


def test_malformed_frame_keeps_connection_open(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.send_text("{broken")
        join(websocket, "room-1", "alice")
        assert websocket.receive_json()["event"] == "joined"


@pytest.mark.asyncio
async def test_configured_interpreter_reaches_python_runs(tmp_path, monkeypatch):
    seen = []

    async def fake_run(argv, cwd, timeout_seconds, max_output_bytes):
        seen.append(argv)
        return CommandOutcome(returncode=0)

    monkeypatch.setattr(sandbox_module, "run_command", fake_run)
    app = create_app(Settings(
        execution_python="/opt/custom/python3",
        execution_artifact_dir=str(tmp_path / "artifacts"),
    ))

    await app.state.relay.sandbox.execute("print(1)", "python")

    assert seen[0][0] == "/opt/custom/python3"


def test_interpreter_is_read_from_dotenv(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("EXECUTION_PYTHON=/opt/custom/python3\n")
    monkeypatch.setenv("EXECUTION_PYTHON", "placeholder")
    monkeypatch.delenv("EXECUTION_PYTHON")

    load_dotenv(env_file)

    assert Settings.from_env().execution_python == "/opt/custom/python3"
