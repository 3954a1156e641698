import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import BORROWER_ID, OTHER_ID, OWNER_ID, create_access_token
from dependencies import get_db, get_email_sender, get_hub
from main import app
from services.broadcast import BroadcastHub


def auth(user_id):
    return {"Authorization": f"Bearer {create_access_token({'user_id': user_id})}"}


def ws_url(user_id):
    return f"/ws?token={create_access_token({'user_id': user_id})}"


@pytest.fixture
def client(db, email_sender):
    broadcast_hub = BroadcastHub()
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_hub] = lambda: broadcast_hub
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
async def book_id(make_book):
    return await make_book()


def test_requires_token(client, book_id):
    response = client.post(f"/api/transactions/request/{book_id}")
    assert response.status_code == 401

    response = client.post(f"/api/transactions/request/{book_id}", headers={"Authorization": "Bearer junk"})
    assert response.status_code == 401


def test_borrow_flow_over_http(client, book_id):
    response = client.post(f"/api/transactions/request/{book_id}", headers=auth(BORROWER_ID))
    assert response.status_code == 200
    assert response.json()["borrowRequestStatus"] == "pending"

    response = client.post(f"/api/transactions/approve/{book_id}", headers=auth(OWNER_ID))
    assert response.json()["borrowRequestStatus"] == "approved"

    response = client.post(f"/api/transactions/pickup/{book_id}", headers=auth(BORROWER_ID))
    body = response.json()
    assert body["borrowRequestStatus"] == "pickup_confirmed"
    assert body["borrowedByUserId"] == BORROWER_ID

    response = client.post(f"/api/transactions/return/{book_id}", headers=auth(OWNER_ID))
    body = response.json()
    assert body["borrowRequestStatus"] == "returned"
    assert body["borrowedByUserId"] is None
    assert body["isAvailable"] is True

    kpis = client.get("/api/kpis", headers=auth(OWNER_ID)).json()
    assert kpis["totalBooksBorrowed"] == 1
    assert kpis["totalBorrowsAndGiveaways"] == 1

    notifications = client.get("/api/notifications", headers=auth(BORROWER_ID)).json()
    assert sorted(n["type"] for n in notifications) == ["book_marked_returned", "borrow_request_approved"]


def test_mark_all_notifications_read_over_http(client, book_id):
    client.post(f"/api/transactions/request/{book_id}", headers=auth(BORROWER_ID))
    client.post(f"/api/transactions/cancel/{book_id}", headers=auth(BORROWER_ID))
    unread = client.get("/api/notifications?unread_only=true", headers=auth(OWNER_ID)).json()
    assert len(unread) == 2
    assert set(unread[0]) == {"id", "userId", "type", "message", "bookId", "relatedUserId", "timestamp", "isRead"}

    response = client.put("/api/notifications/read-all", headers=auth(OWNER_ID))

    assert response.status_code == 200
    assert response.json()["updated"] == 2
    assert client.get("/api/notifications?unread_only=true", headers=auth(OWNER_ID)).json() == []
    assert client.put("/api/notifications/read-all").status_code == 401


def test_error_statuses(client, book_id):
    assert client.post(f"/api/transactions/approve/{book_id}", headers=auth(OWNER_ID)).status_code == 409
    assert client.post(f"/api/transactions/request/{book_id}", headers=auth(OWNER_ID)).status_code == 403
    assert client.post("/api/transactions/request/not-an-id", headers=auth(BORROWER_ID)).status_code == 400
    response = client.post("/api/transactions/request/64a0000000000000000000ff", headers=auth(BORROWER_ID))
    assert response.status_code == 404
    assert response.json() == {"detail": "Book not found"}


@pytest.fixture
async def book_over_limit(make_book):
    for _ in range(5):
        await make_book(borrowRequestStatus="pending", requestedByUserId=BORROWER_ID)
    return await make_book()


def test_limit_exceeded_status(client, book_over_limit):
    response = client.post(f"/api/transactions/request/{book_over_limit}", headers=auth(BORROWER_ID))

    assert response.status_code == 429


def test_chat_flow_over_http(client):
    response = client.post("/api/chat/initiate", json={"otherUserId": BORROWER_ID}, headers=auth(OWNER_ID))
    assert response.status_code == 200
    session = response.json()
    assert session["unreadCounts"] == {OWNER_ID: 0, BORROWER_ID: 0}

    same = client.post("/api/chat/initiate", json={"otherUserId": OWNER_ID}, headers=auth(BORROWER_ID)).json()
    assert same["id"] == session["id"]

    response = client.post(
        f"/api/chat/sessions/{session['id']}/messages",
        json={"messageText": "hi"},
        headers=auth(OWNER_ID),
    )
    assert response.status_code == 200
    assert response.json()["receiverId"] == BORROWER_ID

    sessions = client.get("/api/chat/sessions", headers=auth(BORROWER_ID)).json()
    assert sessions[0]["unreadCounts"][BORROWER_ID] == 1
    assert sessions[0]["lastMessageText"] == "hi"

    messages = client.get(f"/api/chat/sessions/{session['id']}/messages", headers=auth(BORROWER_ID)).json()
    assert [m["messageText"] for m in messages] == ["hi"]

    sessions = client.get("/api/chat/sessions", headers=auth(BORROWER_ID)).json()
    assert sessions[0]["unreadCounts"][BORROWER_ID] == 0

    outsider = client.get(f"/api/chat/sessions/{session['id']}/messages", headers=auth(OTHER_ID))
    assert outsider.status_code == 403


def test_chat_validation_over_http(client):
    assert client.post("/api/chat/initiate", json={}, headers=auth(OWNER_ID)).status_code == 400

    session = client.post("/api/chat/initiate", json={"otherUserId": BORROWER_ID}, headers=auth(OWNER_ID)).json()
    response = client.post(
        f"/api/chat/sessions/{session['id']}/messages",
        json={"messageText": ""},
        headers=auth(OWNER_ID),
    )
    assert response.status_code == 400

    response = client.get("/api/chat/sessions/64a0000000000000000000ff/messages", headers=auth(OWNER_ID))
    assert response.status_code == 404


def test_socket_rejects_missing_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()


def test_socket_join_send_and_read(client):
    session = client.post("/api/chat/initiate", json={"otherUserId": BORROWER_ID}, headers=auth(OWNER_ID)).json()

    with client.websocket_connect(ws_url(OWNER_ID)) as owner_ws:
        owner_ws.send_json({"event": "join_session", "data": {"sessionId": session["id"]}})
        assert owner_ws.receive_json() == {"event": "session_joined", "data": {"sessionId": session["id"]}}

        owner_ws.send_json({
            "event": "send_message",
            "data": {"sessionId": session["id"], "messageText": "hello over the socket"},
        })
        echoed = owner_ws.receive_json()
        assert echoed["event"] == "new_message"
        assert echoed["data"]["messageText"] == "hello over the socket"
        assert echoed["data"]["senderName"] == "Asha Owner"

    sessions = client.get("/api/chat/sessions", headers=auth(BORROWER_ID)).json()
    assert sessions[0]["unreadCounts"][BORROWER_ID] == 1

    with client.websocket_connect(ws_url(BORROWER_ID)) as borrower_ws:
        borrower_ws.send_json({"event": "mark_chat_read", "data": session["id"]})
        # Events are handled in order, so the ack means the read was applied
        borrower_ws.send_json({"event": "join_session", "data": session["id"]})
        assert borrower_ws.receive_json()["event"] == "session_joined"

    sessions = client.get("/api/chat/sessions", headers=auth(BORROWER_ID)).json()
    assert sessions[0]["unreadCounts"][BORROWER_ID] == 0



def test_socket_reports_errors_without_closing(client):
    session = client.post("/api/chat/initiate", json={"otherUserId": BORROWER_ID}, headers=auth(OWNER_ID)).json()

    with client.websocket_connect(ws_url(OTHER_ID)) as websocket:
        websocket.send_json({"event": "join_session", "data": session["id"]})
        error = websocket.receive_json()
        assert error["event"] == "chat_error"
        assert error["data"]["message"] == "Not authorized to access this chat"

        websocket.send_text("not json")
        assert websocket.receive_json()["event"] == "chat_error"

        websocket.send_json({"event": "dance", "data": None})
        assert websocket.receive_json()["data"]["message"] == "Unknown event: dance"
