import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import seed_user
from venture_chat.main import create_app
from venture_chat.utils.security import create_access_token


@pytest.fixture
def client(db):
    with TestClient(create_app(database=db)) as client:
        yield client


@pytest.fixture
def people(client, db):
    ids = {
        "x": client.portal.call(seed_user, db, "ada@founders.io", "Ada", "entrepreneur"),
        "y": client.portal.call(seed_user, db, "ben@capital.vc", "Ben", "investor"),
        "z": client.portal.call(seed_user, db, "cy@capital.vc", "Cy", "investor"),
    }
    return {key: (user_id, create_access_token(user_id)) for key, user_id in ids.items()}


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.app.title == "venture-chat"


def test_requests_need_a_token(client):
    response = client.get("/conversations")
    assert response.status_code == 401
    assert response.json()["code"] == "auth_error"

    response = client.get("/conversations", headers=auth("not-a-jwt"))
    assert response.status_code == 401


def test_conversation_flow(client, people):
    (x, x_token), (y, y_token), (z, z_token) = people["x"], people["y"], people["z"]

    created = client.post("/conversations", json={"participantIds": [y]}, headers=auth(x_token))
    assert created.status_code == 201
    convo = created.json()
    assert {p["id"] for p in convo["participants"]} == {x, y}
    assert convo["lastMessage"] is None

    sent = client.post("/messages", json={"conversationId": convo["id"], "content": "hello"}, headers=auth(x_token))
    assert sent.status_code == 201
    message = sent.json()

    listed = client.get("/conversations", headers=auth(y_token)).json()["items"]
    assert [(c["id"], c["unreadCount"]) for c in listed] == [(convo["id"], 1)]
    assert listed[0]["lastMessage"]["id"] == message["id"]

    history = client.get(f"/conversations/{convo['id']}/messages", headers=auth(y_token)).json()["items"]
    assert [(m["id"], m["content"], m["senderId"]) for m in history] == [(message["id"], "hello", x)]

    read = client.patch("/messages/read", json={"messageIds": [message["id"]]}, headers=auth(y_token))
    assert read.json() == {"updated": 1}
    again = client.patch("/messages/read", json={"messageIds": [message["id"]]}, headers=auth(y_token))
    assert again.json() == {"updated": 0}
    detail = client.get(f"/conversations/{convo['id']}", headers=auth(y_token)).json()
    assert detail["unreadCount"] == 0

    outsider = client.get(f"/conversations/{convo['id']}/messages", headers=auth(z_token))
    assert outsider.status_code == 403
    assert outsider.json()["code"] == "permission_denied"


def test_error_statuses(client, people):
    (x, x_token), (y, _) = people["x"], people["y"]
    convo = client.post("/conversations", json={"participantIds": [y]}, headers=auth(x_token)).json()

    too_long = client.post(
        "/messages", json={"conversationId": convo["id"], "content": "x" * 5001}, headers=auth(x_token)
    )
    assert too_long.status_code == 422
    assert too_long.json()["code"] == "validation_error"
    assert client.get(f"/conversations/{convo['id']}/messages", headers=auth(x_token)).json()["items"] == []

    alone = client.post("/conversations", json={"participantIds": [x]}, headers=auth(x_token))
    assert alone.status_code == 422

    missing = client.get("/conversations/5f1d7f3c9d1e8a0012345678", headers=auth(x_token))
    assert missing.status_code == 404


def test_websocket_refuses_missing_token(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/messages/ws"):
            pass
    assert exc.value.code == 4401


def test_websocket_delivery(client, people):
    (x, x_token), (y, y_token) = people["x"], people["y"]

    with client.websocket_connect(f"/messages/ws?token={y_token}") as y_socket:
        hello = y_socket.receive_json()
        assert hello == {"event": "connected", "data": {"userId": y, "typingTimeout": 3}}

        convo = client.post("/conversations", json={"participantIds": [y]}, headers=auth(x_token)).json()
        assert y_socket.receive_json() == {"event": "new-conversation", "data": convo}

        y_socket.send_json({"event": "join-conversation", "data": convo["id"], "ref": "j1"})
        ack = y_socket.receive_json()
        assert ack["ref"] == "j1" and ack["data"]["ok"] is True

        with client.websocket_connect(f"/messages/ws?token={x_token}") as x_socket:
            x_socket.receive_json()
            x_socket.send_json({"event": "join-conversation", "data": convo["id"]})
            x_socket.receive_json()

            x_socket.send_json({"event": "typing", "data": {"conversationId": convo["id"], "userId": x}})
            assert y_socket.receive_json() == {
                "event": "user-typing",
                "data": {"conversationId": convo["id"], "userId": x},
            }
            x_socket.receive_json()

            x_socket.send_json(
                {"event": "send-message", "data": {"conversationId": convo["id"], "message": "hello"}, "ref": 7}
            )
            own_copy = x_socket.receive_json()
            ack = x_socket.receive_json()
            assert own_copy["event"] == "new-message"
            assert ack["ref"] == 7 and ack["data"]["result"] == own_copy["data"]

            received = y_socket.receive_json()
            assert received["event"] == "new-message"
            assert received["data"]["content"] == "hello"
            notification = y_socket.receive_json()
            assert notification == {
                "event": "new-message-notification",
                "data": {"conversationId": convo["id"], "message": received["data"]},
            }


def test_websocket_outsider_cannot_join(client, people):
    (x, x_token), (y, _), (z, z_token) = people["x"], people["y"], people["z"]
    convo = client.post("/conversations", json={"participantIds": [y]}, headers=auth(x_token)).json()

    with client.websocket_connect(f"/messages/ws?token={z_token}") as z_socket:
        z_socket.receive_json()
        z_socket.send_json({"event": "join-conversation", "data": convo["id"]})
        ack = z_socket.receive_json()

    assert ack["data"]["ok"] is False
    assert ack["data"]["error"]["code"] == "permission_denied"


def test_websocket_binary_frame_gets_error_ack(client, people):
    _, y_token = people["y"]

    with client.websocket_connect(f"/messages/ws?token={y_token}") as socket:
        socket.receive_json()
        socket.send_bytes(b"\x00\x01")
        ack = socket.receive_json()
        assert ack["data"]["ok"] is False
        assert ack["data"]["error"]["code"] == "validation_error"

        # the connection survives the bad frame
        socket.send_json({"event": "ping", "ref": "p"})
        assert socket.receive_json() == {"event": "pong", "data": None, "ref": "p"}


def test_websocket_refused_after_shutdown(client, people):
    _, y_token = people["y"]
    client.app.state.bus.shutdown()

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/messages/ws?token={y_token}") as socket:
            socket.receive_json()
    assert exc.value.code == 1013
