"""WebSocket protocol tests for /ws/chat."""

import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import customer_headers, seller_headers
from storefront_chat.routers.socket import CLOSE_FORBIDDEN, CLOSE_UNAUTHENTICATED
from storefront_chat.utils.security import create_access_token
from storefront_chat.utils.websocket_manager import registry


def _start_conversation(client, accounts, body="Hello there"):
    resp = client.post(
        "/api/chat/user/send",
        json={"productId": accounts.lamp_product, "message": body},
        headers=customer_headers(accounts.customer),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["conversation"]["id"]


class TestHandshake:

    def test_missing_token_closes_unauthenticated(self, client):
        with pytest.raises(WebSocketDisconnect) as excinfo:
            with client.websocket_connect("/ws/chat"):
                pass
        assert excinfo.value.code == CLOSE_UNAUTHENTICATED

    def test_inactive_account_closes_forbidden(self, client, accounts):
        with pytest.raises(WebSocketDisconnect) as excinfo:
            with client.websocket_connect("/ws/chat", headers=customer_headers(accounts.inactive_customer)):
                pass
        assert excinfo.value.code == CLOSE_FORBIDDEN

    def test_connected_event_and_personal_room(self, client, accounts):
        with client.websocket_connect("/ws/chat", headers=customer_headers(accounts.customer)) as ws:
            frame = ws.receive_json()
            assert frame == {"type": "socket:connected", "data": {"userId": accounts.customer}}
            assert len(registry.members(f"user:{accounts.customer}")) == 1
        assert registry.members(f"user:{accounts.customer}") == []

    def test_query_token_is_accepted(self, client, accounts):
        token = create_access_token(accounts.seller)
        with client.websocket_connect(f"/ws/chat?token={token}") as ws:
            assert ws.receive_json()["data"]["userId"] == accounts.seller


class TestFrames:

    def test_join_own_conversation_is_acked(self, client, accounts):
        conversation_id = _start_conversation(client, accounts)
        with client.websocket_connect("/ws/chat", headers=customer_headers(accounts.customer)) as ws:
            ws.receive_json()
            ws.send_json({"type": "chat:join", "data": {"conversationId": conversation_id}, "ref": "1"})
            assert ws.receive_json() == {"type": "chat:ack", "data": {"success": True}, "ref": "1"}
            assert len(registry.members(f"conversation:{conversation_id}")) == 1

            ws.send_json({"type": "chat:leave", "data": {"conversationId": conversation_id}, "ref": "2"})
            assert ws.receive_json()["data"] == {"success": True}
            assert registry.members(f"conversation:{conversation_id}") == []

    def test_join_foreign_conversation_fails(self, client, accounts):
        conversation_id = _start_conversation(client, accounts)
        with client.websocket_connect("/ws/chat", headers=customer_headers(accounts.other_customer)) as ws:
            ws.receive_json()
            ws.send_json({"type": "chat:join", "data": {"conversationId": conversation_id}, "ref": "7"})
            frame = ws.receive_json()
            assert frame["type"] == "chat:ack"
            assert frame["ref"] == "7"
            assert frame["data"]["success"] is False
            assert registry.members(f"conversation:{conversation_id}") == []

    def test_failures_without_ref_send_chat_error(self, client, accounts):
        with client.websocket_connect("/ws/chat", headers=customer_headers(accounts.customer)) as ws:
            ws.receive_json()

            ws.send_json({"type": "chat:join", "data": {"conversationId": "not-an-id"}})
            assert ws.receive_json()["type"] == "chat:error"

            ws.send_json({"type": "chat:leave", "data": {}})
            assert ws.receive_json() == {"type": "chat:error", "data": {"message": "Conversation id required"}}

            ws.send_json({"type": "chat:typing", "data": {}})
            assert ws.receive_json()["data"]["message"] == "Unsupported event: chat:typing"

            ws.send_text("{not json")
            assert ws.receive_json()["data"]["message"] == "Invalid payload"

            ws.send_json(["a", "list"])
            assert ws.receive_json()["data"]["message"] == "Invalid payload"

    def test_binary_frames_keep_the_socket_open(self, client, accounts):
        with client.websocket_connect("/ws/chat", headers=customer_headers(accounts.customer)) as ws:
            ws.receive_json()

            ws.send_bytes(b'{"type": "chat:leave", "data": {}}')
            assert ws.receive_json() == {"type": "chat:error", "data": {"message": "Conversation id required"}}

            ws.send_bytes(b"\xff\xfe")
            assert ws.receive_json() == {"type": "chat:error", "data": {"message": "Invalid payload"}}

            ws.send_json({"type": "chat:leave", "data": {"conversationId": "abc"}, "ref": "still-open"})
            assert ws.receive_json() == {"type": "chat:ack", "data": {"success": True}, "ref": "still-open"}
            assert len(registry.members(f"user:{accounts.customer}")) == 1


class TestDelivery:

    def test_http_send_reaches_joined_seller(self, client, accounts):
        conversation_id = _start_conversation(client, accounts, "first")
        with client.websocket_connect("/ws/chat", headers=seller_headers(accounts.seller)) as ws:
            ws.receive_json()
            ws.send_json({"type": "chat:join", "data": {"conversationId": conversation_id}, "ref": "j"})
            assert ws.receive_json()["data"]["success"] is True

            resp = client.post(
                "/api/chat/user/send",
                json={"conversationId": conversation_id, "message": "second"},
                headers=customer_headers(accounts.customer),
            )
            sent = resp.json()

            update = ws.receive_json()
            assert update["type"] == "chat:conversation"
            assert update["data"]["id"] == conversation_id
            assert update["data"]["lastMessage"]["body"] == "second"
            assert "unreadCount" not in update["data"]

            message = ws.receive_json()
            assert message["type"] == "chat:message"
            assert message["data"]["conversationId"] == conversation_id
            assert message["data"]["message"]["id"] == sent["message"]["id"]
            assert message["data"]["message"]["body"] == "second"

    def test_unjoined_participant_gets_only_summary(self, client, accounts):
        conversation_id = _start_conversation(client, accounts, "first")
        with client.websocket_connect("/ws/chat", headers=customer_headers(accounts.customer)) as ws:
            ws.receive_json()
            client.post(
                "/api/chat/seller/send",
                json={"conversationId": conversation_id, "message": "reply"},
                headers=seller_headers(accounts.seller),
            )
            update = ws.receive_json()
            assert update["type"] == "chat:conversation"
            assert update["data"]["lastMessage"]["senderRole"] == "seller"

            # nothing else queued: a probe frame is answered next
            ws.send_json({"type": "chat:leave", "data": {"conversationId": conversation_id}, "ref": "probe"})
            assert ws.receive_json()["ref"] == "probe"
