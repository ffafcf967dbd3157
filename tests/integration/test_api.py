"""HTTP and WebSocket flows against the real app with an in-memory UoW."""
from __future__ import annotations

import uuid

import jwt
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from inbox_service.api.deps import get_uow, get_uow_factory
from inbox_service.app import create_app
from inbox_service.config import settings
from inbox_service.infrastructure.ws import protocol
from tests.conftest import (
    OPERATOR_ID,
    OTHER_RECIPIENT_ID,
    RECIPIENT_ID,
    FakeUoW,
    fake_uow_factory,
    make_message,
)


def _make_token(sub: int = RECIPIENT_ID, kind: str = "user", roles: list | None = None) -> str:
    return jwt.encode(
        {"sub": str(sub), "kind": kind, "roles": roles or []},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def _auth(sub: int = RECIPIENT_ID, kind: str = "user") -> dict[str, str]:
    return {"Authorization": f"Bearer {_make_token(sub, kind)}"}


OPERATOR = {"sub": OPERATOR_ID, "kind": "operator"}


def _send_body(**overrides) -> dict:
    body = {
        "recipient_id": RECIPIENT_ID,
        "title": "Order Delivered Report",
        "body": "Your order #12345 was delivered.",
        "category": "Summary",
        "reference_ids": {"order_id": "12345"},
    }
    body.update(overrides)
    return body


@pytest.fixture
def app_with_uow():
    app = create_app()
    uow = FakeUoW()
    uow.recipients._active.update({RECIPIENT_ID, OTHER_RECIPIENT_ID})

    async def _override():
        yield uow

    app.dependency_overrides[get_uow] = _override
    app.dependency_overrides[get_uow_factory] = lambda: fake_uow_factory(uow)
    return app, uow


@pytest.fixture
def client(app_with_uow):
    app, _ = app_with_uow
    # One portal for HTTP and WebSocket calls so they share the app's event loop
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def uow(app_with_uow):
    _, uow = app_with_uow
    return uow


def _ws(client: TestClient, sub: int = RECIPIENT_ID, kind: str = "user"):
    return client.websocket_connect(f"/ws/inbox?token={_make_token(sub, kind)}")


def _join(ws, recipient_id: int = RECIPIENT_ID) -> dict:
    ws.send_json({"type": protocol.JOIN_ROOM, "data": {"recipient_id": recipient_id}})
    return ws.receive_json()


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "connections": 0, "rooms": 0}


def test_responses_carry_request_id(client):
    resp = client.get("/healthz", headers={"X-Request-ID": "abc123"})
    assert resp.headers["X-Request-ID"] == "abc123"


def test_operator_sends_message(client, uow):
    resp = client.post("/api/v1/operator/messages", json=_send_body(), headers=_auth(**OPERATOR))

    assert resp.status_code == 201
    data = resp.json()
    assert data["recipient_id"] == RECIPIENT_ID
    assert data["sender_id"] == OPERATOR_ID
    assert data["is_read"] is False
    assert data["read_at"] is None
    assert data["reference_ids"] == {"order_id": "12345"}
    assert uuid.UUID(data["id"]) in uow.messages._messages


def test_client_supplied_sender_is_ignored(client):
    resp = client.post(
        "/api/v1/operator/messages",
        json=_send_body(sender_id=999),
        headers=_auth(**OPERATOR),
    )
    assert resp.status_code == 201
    assert resp.json()["sender_id"] == OPERATOR_ID


def test_admin_tokens_are_operators(client):
    resp = client.post("/api/v1/operator/messages", json=_send_body(), headers=_auth(7, "admin"))
    assert resp.status_code == 201
    assert resp.json()["sender_id"] == 7


def test_user_cannot_send(client, uow):
    resp = client.post("/api/v1/operator/messages", json=_send_body(), headers=_auth())
    assert resp.status_code == 403
    assert uow.messages._messages == {}


@pytest.mark.parametrize(
    "overrides",
    [{"title": "   "}, {"body": ""}, {"category": "Urgent"}, {"title": "x" * 201}],
)
def test_invalid_send_is_422(client, uow, overrides):
    resp = client.post(
        "/api/v1/operator/messages", json=_send_body(**overrides), headers=_auth(**OPERATOR),
    )
    assert resp.status_code == 422
    assert uow.messages._messages == {}


def test_send_to_unknown_recipient_is_404(client):
    resp = client.post(
        "/api/v1/operator/messages", json=_send_body(recipient_id=999), headers=_auth(**OPERATOR),
    )
    assert resp.status_code == 404


def test_store_failure_is_retryable_503(client, uow):
    uow.messages_w.fail = True

    resp = client.post("/api/v1/operator/messages", json=_send_body(), headers=_auth(**OPERATOR))

    assert resp.status_code == 503
    assert resp.json()["retryable"] is True
    assert resp.headers["Retry-After"] == "1"


def test_offline_recipient_finds_message_in_inbox(client):
    client.post("/api/v1/operator/messages", json=_send_body(), headers=_auth(**OPERATOR))

    resp = client.get("/api/v1/inbox/messages", headers=_auth())

    assert resp.status_code == 200
    data = resp.json()
    assert [m["title"] for m in data["items"]] == ["Order Delivered Report"]
    assert data["unread_count"] == 1
    assert data["next_cursor"] is None


def test_inbox_only_shows_own_messages(client, uow):
    uow.messages.add(make_message(), make_message(recipient_id=OTHER_RECIPIENT_ID))

    resp = client.get("/api/v1/inbox/messages", headers=_auth(OTHER_RECIPIENT_ID))

    assert [m["recipient_id"] for m in resp.json()["items"]] == [OTHER_RECIPIENT_ID]


def test_inbox_rejects_unknown_category(client):
    resp = client.get("/api/v1/inbox/messages?category=Urgent", headers=_auth())
    assert resp.status_code == 422


def test_operator_lists_messages(client, uow):
    uow.messages.add(make_message(), make_message(recipient_id=OTHER_RECIPIENT_ID))

    resp = client.get(
        f"/api/v1/operator/messages?recipient_id={OTHER_RECIPIENT_ID}", headers=_auth(**OPERATOR),
    )

    assert resp.status_code == 200
    assert [m["recipient_id"] for m in resp.json()["items"]] == [OTHER_RECIPIENT_ID]


def test_mark_read_is_idempotent(client, uow):
    msg = make_message()
    uow.messages.add(msg)

    first = client.patch(f"/api/v1/inbox/messages/{msg.id}/read", headers=_auth())
    second = client.patch(f"/api/v1/inbox/messages/{msg.id}/read", headers=_auth())

    assert first.status_code == second.status_code == 200
    assert first.json()["is_read"] is True
    assert second.json()["read_at"] == first.json()["read_at"]


def test_mark_read_of_other_recipients_message_is_403(client, uow):
    msg = make_message(recipient_id=OTHER_RECIPIENT_ID)
    uow.messages.add(msg)

    resp = client.patch(f"/api/v1/inbox/messages/{msg.id}/read", headers=_auth())

    assert resp.status_code == 403
    assert uow.messages._messages[msg.id].read_at is None


def test_mark_read_unknown_message_is_404(client):
    resp = client.patch(f"/api/v1/inbox/messages/{uuid.uuid4()}/read", headers=_auth())
    assert resp.status_code == 404


def test_ws_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/inbox?token=garbage") as ws:
            ws.receive_json()
    assert exc_info.value.code == 4001


def test_ws_ping(client):
    with _ws(client) as ws:
        ws.send_json({"type": protocol.PING})
        assert ws.receive_json()["type"] == protocol.PONG


def test_ws_binary_frame_keeps_connection_and_room(client):
    with _ws(client) as ws:
        _join(ws)
        ws.send_bytes(b"\xff\xfe not json")
        event = ws.receive_json()
        ws.send_json({"type": protocol.PING})
        pong = ws.receive_json()

        client.post("/api/v1/operator/messages", json=_send_body(), headers=_auth(**OPERATOR))
        delivered = ws.receive_json()

    assert event["type"] == protocol.ERROR
    assert event["data"]["code"] == "invalid_payload"
    assert pong["type"] == protocol.PONG
    assert delivered["type"] == protocol.MESSAGE_RECEIVED


def test_ws_live_delivery_of_http_send(client):
    with _ws(client) as ws:
        joined = _join(ws)
        assert joined == {"type": protocol.ROOM_JOINED, "data": {"recipient_id": RECIPIENT_ID}}

        resp = client.post("/api/v1/operator/messages", json=_send_body(), headers=_auth(**OPERATOR))
        event = ws.receive_json()

    assert event["type"] == protocol.MESSAGE_RECEIVED
    assert event["data"]["message"]["id"] == resp.json()["id"]
    assert event["data"]["message"]["category"] == "Summary"


def test_ws_denied_join_is_silent(client):
    with _ws(client) as ws:
        ws.send_json({"type": protocol.JOIN_ROOM, "data": {"recipient_id": OTHER_RECIPIENT_ID}})
        ws.send_json({"type": protocol.PING})
        assert ws.receive_json()["type"] == protocol.PONG

        client.post(
            "/api/v1/operator/messages",
            json=_send_body(recipient_id=OTHER_RECIPIENT_ID),
            headers=_auth(**OPERATOR),
        )
        ws.send_json({"type": protocol.PING})
        assert ws.receive_json()["type"] == protocol.PONG


def test_ws_messages_for_other_recipients_are_not_delivered(client):
    with _ws(client) as ws:
        _join(ws)
        client.post(
            "/api/v1/operator/messages",
            json=_send_body(recipient_id=OTHER_RECIPIENT_ID, title="Not yours"),
            headers=_auth(**OPERATOR),
        )
        client.post("/api/v1/operator/messages", json=_send_body(title="Yours"), headers=_auth(**OPERATOR))

        event = ws.receive_json()

    assert event["data"]["message"]["title"] == "Yours"


def test_ws_send_acknowledges_sender_and_delivers(client):
    with _ws(client) as user_ws, _ws(client, **OPERATOR) as operator_ws:
        _join(user_ws)
        operator_ws.send_json({
            "type": protocol.SEND_MESSAGE,
            "data": _send_body(request_id="req-1", sender_id=999),
        })

        ack = operator_ws.receive_json()
        delivered = user_ws.receive_json()

    assert ack["type"] == protocol.MESSAGE_SENT
    assert ack["data"]["request_id"] == "req-1"
    assert delivered["type"] == protocol.MESSAGE_RECEIVED
    assert delivered["data"]["message"]["id"] == ack["data"]["message_id"]
    assert delivered["data"]["message"]["sender_id"] == OPERATOR_ID


def test_ws_send_validation_error(client, uow):
    with _ws(client, **OPERATOR) as ws:
        ws.send_json({
            "type": protocol.SEND_MESSAGE,
            "data": _send_body(body=" ", request_id="req-2"),
        })
        event = ws.receive_json()

    assert event["type"] == protocol.ERROR
    assert event["data"]["code"] == "validation_error"
    assert event["data"]["request_id"] == "req-2"
    assert event["data"]["retryable"] is False
    assert uow.messages._messages == {}


def test_ws_send_store_failure_is_retryable(client, uow):
    uow.messages_w.fail = True
    with _ws(client, **OPERATOR) as ws:
        ws.send_json({"type": protocol.SEND_MESSAGE, "data": _send_body(request_id="req-3")})
        event = ws.receive_json()

    assert event["data"]["code"] == "store_unavailable"
    assert event["data"]["retryable"] is True


def test_ws_send_by_user_is_silently_denied(client, uow):
    with _ws(client) as ws:
        ws.send_json({"type": protocol.SEND_MESSAGE, "data": _send_body()})
        ws.send_json({"type": protocol.PING})
        assert ws.receive_json()["type"] == protocol.PONG

    assert uow.messages._messages == {}


def test_ws_mark_read(client, uow):
    msg = make_message()
    uow.messages.add(msg)

    with _ws(client) as ws:
        ws.send_json({"type": protocol.MARK_READ, "data": {"message_id": str(msg.id)}})
        event = ws.receive_json()

    assert event["type"] == protocol.MESSAGE_READ
    assert event["data"]["message"]["is_read"] is True
    assert uow.messages._messages[msg.id].is_read is True


def test_ws_unknown_event_type(client):
    with _ws(client) as ws:
        ws.send_json({"type": "typing"})
        event = ws.receive_json()

    assert event["data"]["code"] == "unknown_type"


def test_ws_connection_counts_in_health(client):
    with _ws(client) as ws:
        _join(ws)
        health = client.get("/healthz").json()

    assert health["connections"] == 1
    assert health["rooms"] == 1


def test_ws_disconnect_releases_connection_and_room(client):
    with _ws(client) as ws:
        _join(ws)

    health = client.get("/healthz").json()

    assert health["connections"] == 0
    assert health["rooms"] == 0
