import asyncio
import json

import pytest

from collab.state_machine import ConnectionState


async def send(relay, session, event, **data):
    await relay.handle_event(session, {"event": event, "data": data})


@pytest.mark.asyncio
async def test_connection_is_told_its_id(participant):
    session, socket = await participant()

    assert socket.accepted
    assert socket.sent == [{"event": "connected", "data": {"connectionId": session.connection_id}}]
    assert session.state is ConnectionState.UNJOINED


@pytest.mark.asyncio
async def test_join_announces_full_member_list_to_everyone(participant, registry):
    alice, alice_socket = await participant("room-1", "alice")
    bob, bob_socket = await participant("room-1", "bob")

    expected = {
        "members": [
            {"connectionId": alice.connection_id, "displayName": "alice"},
            {"connectionId": bob.connection_id, "displayName": "bob"},
        ],
        "displayName": "bob",
        "connectionId": bob.connection_id,
    }
    assert alice_socket.events("joined")[-1]["data"] == expected
    assert bob_socket.events("joined") == [{"event": "joined", "data": expected}]
    assert bob.state is ConnectionState.JOINED
    assert len(registry.members_of("room-1")) == 2


@pytest.mark.asyncio
async def test_newcomer_receives_no_document_until_synced(relay, participant):
    alice, _ = await participant("room-1", "alice")
    await send(relay, alice, "code-change", roomToken="room-1", code="let x = 1;")
    bob, bob_socket = await participant("room-1", "bob")

    assert bob_socket.event_names() == ["connected", "joined"]

    await send(relay, alice, "sync-code", targetConnectionId=bob.connection_id, code="let x = 1;")
    assert bob_socket.events("code-change") == [{"event": "code-change", "data": {"code": "let x = 1;"}}]


@pytest.mark.asyncio
async def test_code_change_reaches_others_but_never_the_sender(relay, participant):
    alice, alice_socket = await participant("room-1", "alice")
    _, bob_socket = await participant("room-1", "bob")
    _, carol_socket = await participant("room-1", "carol")
    _, outsider_socket = await participant("room-2", "dave")

    await send(relay, alice, "code-change", roomToken="room-1", code="print(1)")

    assert alice_socket.events("code-change") == []
    assert outsider_socket.events("code-change") == []
    for socket in (bob_socket, carol_socket):
        assert socket.events("code-change") == [{"event": "code-change", "data": {"code": "print(1)"}}]


@pytest.mark.asyncio
async def test_sync_code_to_departed_target_is_ignored(relay, participant):
    alice, alice_socket = await participant("room-1", "alice")
    await send(relay, alice, "sync-code", targetConnectionId="gone", code="x")

    assert alice_socket.events("code-change") == []
    assert alice.metrics["events_dropped"] == 0


@pytest.mark.asyncio
async def test_cursor_change_is_tagged_with_sender(relay, participant):
    alice, alice_socket = await participant("room-1", "alice")
    _, bob_socket = await participant("room-1", "bob")

    await send(relay, alice, "cursor-change", roomToken="room-1", cursor={"line": 2, "ch": 5})

    assert alice_socket.events("cursor-change") == []
    assert bob_socket.events("cursor-change")[0]["data"] == {
        "connectionId": alice.connection_id,
        "cursor": {"line": 2, "column": 5},
        "displayName": "alice",
    }


@pytest.mark.asyncio
async def test_run_output_goes_to_the_whole_room(relay, participant, sandbox):
    alice, alice_socket = await participant("room-1", "alice")
    _, bob_socket = await participant("room-1", "bob")

    await send(relay, alice, "run-code", roomToken="room-1", code="print(1)", languageId="python")
    await relay.join_background_tasks()

    assert sandbox.calls == [("print(1)", "python")]
    for socket in (alice_socket, bob_socket):
        (output,) = socket.events("code-output")
        assert output["data"]["result"]["succeeded"] is True
        assert output["data"]["result"]["standardOutput"] == "ran 8 chars"


@pytest.mark.asyncio
async def test_run_does_not_block_the_relay(relay, participant, sandbox):
    sandbox.gate = asyncio.Event()
    alice, _ = await participant("room-1", "alice")
    _, bob_socket = await participant("room-1", "bob")

    await send(relay, alice, "run-code", roomToken="room-1", code="while True: pass")
    await send(relay, alice, "code-change", roomToken="room-1", code="fixed")

    assert bob_socket.events("code-change") == [{"event": "code-change", "data": {"code": "fixed"}}]
    assert relay.pending_task_count() == 1

    sandbox.gate.set()
    await relay.join_background_tasks()
    assert len(bob_socket.events("code-output")) == 1


@pytest.mark.asyncio
async def test_run_survives_requester_disconnect(relay, participant, sandbox):
    sandbox.gate = asyncio.Event()
    alice, alice_socket = await participant("room-1", "alice")
    _, bob_socket = await participant("room-1", "bob")

    await send(relay, alice, "run-code", roomToken="room-1", code="1")
    await relay.handle_disconnect(alice)
    sandbox.gate.set()
    await relay.join_background_tasks()

    assert alice_socket.events("code-output") == []
    assert len(bob_socket.events("code-output")) == 1


@pytest.mark.asyncio
async def test_disconnect_notifies_each_room_once(relay, participant, registry, manager):
    alice, _ = await participant("room-1", "alice")
    await send(relay, alice, "join", roomToken="room-2", displayName="alice")
    _, bob_socket = await participant("room-1", "bob")
    _, carol_socket = await participant("room-2", "carol")

    await relay.handle_disconnect(alice)
    await relay.handle_disconnect(alice)

    notification = {"connectionId": alice.connection_id, "displayName": "alice"}
    assert bob_socket.events("disconnected") == [{"event": "disconnected", "data": notification}]
    assert carol_socket.events("disconnected") == [{"event": "disconnected", "data": notification}]
    assert alice.connection_id not in registry
    assert alice.connection_id not in manager.members("room-1")
    assert manager.rooms_of(alice.connection_id) == []
    assert alice.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_disconnect_before_join_notifies_nobody(relay, participant):
    _, bob_socket = await participant("room-1", "bob")
    stranger, _ = await participant()

    await relay.handle_disconnect(stranger)

    assert bob_socket.events("disconnected") == []


@pytest.mark.asyncio
async def test_events_before_join_are_dropped(relay, participant):
    _, bob_socket = await participant("room-1", "bob")
    stranger, _ = await participant()

    await send(relay, stranger, "code-change", roomToken="room-1", code="rm -rf /")
    await send(relay, stranger, "run-code", roomToken="room-1", code="1")

    assert bob_socket.events("code-change") == []
    assert relay.pending_task_count() == 0
    assert stranger.metrics["events_dropped"] == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("message", [
    "not json at all",
    json.dumps(["code-change"]),
    json.dumps({"event": "code-change"}),
    json.dumps({"event": "code-change", "data": {"code": "x"}}),
    json.dumps({"event": "cursor-change", "data": {"roomToken": "room-1", "cursor": {"line": -1, "column": 0}}}),
    json.dumps({"event": "explode", "data": {}}),
])
async def test_malformed_messages_are_dropped(relay, participant, message):
    alice, _ = await participant("room-1", "alice")
    _, bob_socket = await participant("room-1", "bob")
    before = list(bob_socket.sent)

    await relay.handle_message(alice, message)

    assert bob_socket.sent == before
    assert alice.metrics["events_dropped"] == 1
    assert alice.state is ConnectionState.JOINED


@pytest.mark.asyncio
async def test_completion_reply_goes_only_to_requester(relay, participant, completion_service):
    alice, alice_socket = await participant("room-1", "alice")
    _, bob_socket = await participant("room-1", "bob")

    await send(
        relay, alice, "ai-code-completion",
        roomToken="room-1", code="console.", languageId="javascript",
        cursor={"line": 0, "column": 8}, requestId=7,
    )
    await relay.join_background_tasks()

    (reply,) = alice_socket.events("ai-completion-response")
    assert reply["data"]["requestId"] == 7
    assert reply["data"]["suggestions"][0]["text"] == "log()"
    assert bob_socket.events("ai-completion-response") == []
    assert completion_service.calls == [("console.", "javascript", 0, 8)]


@pytest.mark.asyncio
async def test_failed_send_does_not_stop_broadcast(relay, participant):
    alice, _ = await participant("room-1", "alice")
    await participant("room-1", "broken", fail=True)
    _, carol_socket = await participant("room-1", "carol")

    await send(relay, alice, "code-change", roomToken="room-1", code="x")

    assert carol_socket.events("code-change") == [{"event": "code-change", "data": {"code": "x"}}]
