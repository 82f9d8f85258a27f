import pytest
from pymongo.errors import ServerSelectionTimeoutError

from conftest import drain
from venture_chat.exceptions import PermissionDeniedError, TransientStoreError, ValidationError


@pytest.mark.asyncio
async def test_create_conversation_notifies_other_participants(chat_service, connect, users):
    x, y, z = connect(users["x"]), connect(users["y"]), connect(users["z"])

    summary = await chat_service.create_conversation(users["x"], [users["y"]])

    assert {p.id for p in summary.participants} == {users["x"], users["y"]}
    assert drain(x) == []
    assert drain(y) == [{"event": "new-conversation", "data": summary.to_wire()}]
    assert drain(z) == []


@pytest.mark.asyncio
async def test_scenario_create_send_list(chat_service, connect, users):
    y = connect(users["y"])
    summary = await chat_service.create_conversation(users["x"], [users["y"]])
    await chat_service._bus.join(y, summary.id)
    drain(y)

    message = await chat_service.send_message(summary.id, users["x"], "hello")

    frames = drain(y)
    assert frames[0] == {"event": "new-message", "data": message.to_wire()}
    assert frames[1] == {
        "event": "new-message-notification",
        "data": {"conversationId": summary.id, "message": message.to_wire()},
    }
    [listed] = await chat_service.list_conversations(users["y"])
    assert listed.unread_count == 1

    history = await chat_service.get_history(summary.id, users["y"])
    assert [(m.id, m.content, m.sender_id) for m in history] == [(message.id, "hello", users["x"])]


@pytest.mark.asyncio
async def test_sender_devices_in_room_get_message_but_no_notification(chat_service, connect, users):
    summary = await chat_service.create_conversation(users["x"], [users["y"]])
    x_phone, x_laptop = connect(users["x"]), connect(users["x"])
    await chat_service._bus.join(x_laptop, summary.id)

    await chat_service.send_message(summary.id, users["x"], "from phone")

    assert [f["event"] for f in drain(x_laptop)] == ["new-message"]
    assert drain(x_phone) == []


@pytest.mark.asyncio
async def test_failed_send_emits_nothing(chat_service, connect, users):
    summary = await chat_service.create_conversation(users["x"], [users["y"]])
    y = connect(users["y"])
    await chat_service._bus.join(y, summary.id)

    with pytest.raises(ValidationError):
        await chat_service.send_message(summary.id, users["x"], "x" * 5001)
    with pytest.raises(PermissionDeniedError):
        await chat_service.send_message(summary.id, users["z"], "hi")

    assert drain(y) == []
    assert await chat_service.get_history(summary.id, users["y"]) == []


@pytest.mark.asyncio
async def test_mark_read_publishes_once(chat_service, connect, users):
    summary = await chat_service.create_conversation(users["x"], [users["y"]])
    x = connect(users["x"])
    await chat_service._bus.join(x, summary.id)
    message = await chat_service.send_message(summary.id, users["x"], "hello")
    drain(x)

    assert await chat_service.mark_read([message.id], users["y"]) == 1
    assert await chat_service.mark_read([message.id], users["y"]) == 0

    assert drain(x) == [
        {
            "event": "messages-read",
            "data": {"conversationId": summary.id, "userId": users["y"], "messageIds": [message.id]},
        }
    ]
    [listed] = await chat_service.list_conversations(users["y"])
    assert listed.unread_count == 0


@pytest.mark.asyncio
async def test_typing_relayed_to_others_in_room(chat_service, connect, users):
    summary = await chat_service.create_conversation(users["x"], [users["y"]])
    x, y = connect(users["x"]), connect(users["y"])
    await chat_service._bus.join(x, summary.id)
    await chat_service._bus.join(y, summary.id)

    assert chat_service.typing(x, summary.id) == 1
    chat_service.stop_typing(x, summary.id)

    assert drain(x) == []
    assert [f["event"] for f in drain(y)] == ["user-typing", "user-stop-typing"]


@pytest.mark.asyncio
async def test_typing_requires_joined_room(chat_service, connect, users):
    summary = await chat_service.create_conversation(users["x"], [users["y"]])
    x = connect(users["x"])

    with pytest.raises(PermissionDeniedError):
        chat_service.typing(x, summary.id)


@pytest.mark.asyncio
async def test_broadcast_failure_does_not_fail_send(chat_service, users, monkeypatch):
    summary = await chat_service.create_conversation(users["x"], [users["y"]])

    def broken_publish(*args, **kwargs):
        raise RuntimeError("socket layer down")

    monkeypatch.setattr(chat_service._bus, "publish", broken_publish)

    message = await chat_service.send_message(summary.id, users["x"], "still stored")
    history = await chat_service.get_history(summary.id, users["x"])
    assert history[-1].id == message.id


@pytest.mark.asyncio
async def test_store_outage_surfaces_as_transient_error(chat_service, users, monkeypatch):
    summary = await chat_service.create_conversation(users["x"], [users["y"]])

    async def unreachable(*args, **kwargs):
        raise ServerSelectionTimeoutError("no primary")

    monkeypatch.setattr(chat_service._store._message_repo, "save_message", unreachable)

    with pytest.raises(TransientStoreError):
        await chat_service.send_message(summary.id, users["x"], "hello")


@pytest.mark.asyncio
async def test_new_conversation_announced_without_rereading_store(chat_service, connect, users, monkeypatch):
    y = connect(users["y"])

    async def unreachable(*args, **kwargs):
        raise ServerSelectionTimeoutError("no primary")

    monkeypatch.setattr(chat_service._store, "get_conversation_summary", unreachable)

    summary = await chat_service.create_conversation(users["x"], [users["y"]])

    assert drain(y) == [{"event": "new-conversation", "data": summary.to_wire()}]
