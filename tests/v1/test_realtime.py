# mypy: ignore-errors
"""Tests for the realtime socket endpoint."""

import pytest
from fastapi import WebSocketDisconnect, status

from murmur.core.security import create_access_token
from murmur.services.crypto import CryptoService

WS_PATH = "/api/v1/ws"


def _connect(client, headers):
    return client.websocket_connect(WS_PATH, headers=headers)


def _sync(ws) -> None:
    """Wait until every frame sent so far on ``ws`` has been handled."""
    ws.send_json({"event": "ping", "data": None})
    assert ws.receive_json() == {"event": "error", "data": "Unknown event: ping"}


def _join(ws, conversation_id) -> None:
    ws.send_json({"event": "joinChat", "data": conversation_id})
    _sync(ws)


def test_handshake_without_token_is_refused(client) -> None:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(WS_PATH):
            pass

    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION
    assert exc_info.value.reason == "Authentication error"


def test_handshake_with_unknown_user_is_refused(client) -> None:
    token = create_access_token("7" * 32)

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"{WS_PATH}?token={token}"):
            pass

    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION


def test_token_in_query_string(client, test_user) -> None:
    token = create_access_token(test_user.id)

    with client.websocket_connect(f"{WS_PATH}?token={token}") as ws:
        ws.send_text("not json")
        assert ws.receive_json() == {"event": "error", "data": "Malformed frame"}


def test_connection_marks_user_online(client, test_user, auth_token, other_auth_token) -> None:
    with _connect(client, auth_token) as ws:
        _sync(ws)
        profile = client.get(f"/api/v1/users/{test_user.id}", headers=other_auth_token).json()
        assert profile["data"]["isOnline"] is True

    profile = client.get(f"/api/v1/users/{test_user.id}", headers=other_auth_token).json()
    assert profile["data"]["isOnline"] is False


def test_presence_is_announced(client, test_user, other_user, auth_token, other_auth_token) -> None:
    with _connect(client, auth_token) as alice:
        with _connect(client, other_auth_token) as bob:
            assert alice.receive_json() == {
                "event": "userOnline",
                "data": {"userId": other_user.id},
            }
            # Neither socket hears about its own arrival.
            _sync(bob)
            _sync(alice)

        assert not client.app.state.presence.is_online(other_user.id)
        assert client.app.state.presence.is_online(test_user.id)


def test_room_fan_out(client, private_chat, test_user, other_user, auth_token, other_auth_token) -> None:
    with _connect(client, auth_token) as alice:
        with _connect(client, other_auth_token) as bob:
            assert alice.receive_json()["event"] == "userOnline"
            _join(alice, private_chat.id)
            _join(bob, private_chat.id)

            alice.send_json(
                {
                    "event": "sendMessage",
                    "data": {"conversationId": private_chat.id, "content": "hello bob"},
                }
            )
            for ws in (alice, bob):
                frame = ws.receive_json()
                assert frame["event"] == "message"
                assert frame["data"]["content"] == "hello bob"
                assert frame["data"]["senderId"] == test_user.id
            message_id = frame["data"]["id"]

            alice.send_json(
                {
                    "event": "typing",
                    "data": {"conversationId": private_chat.id, "isTyping": True},
                }
            )
            assert bob.receive_json() == {
                "event": "typing",
                "data": {
                    "userId": test_user.id,
                    "conversationId": private_chat.id,
                    "isTyping": True,
                },
            }
            # The typist never hears their own indicator.
            _sync(alice)

            bob.send_json({"event": "deleteMessage", "data": message_id})
            assert bob.receive_json() == {"event": "error", "data": "Access denied"}

            alice.send_json({"event": "deleteMessage", "data": message_id})
            for ws in (alice, bob):
                assert ws.receive_json() == {"event": "messageDeleted", "data": message_id}


def test_left_room_stops_delivery(client, private_chat, auth_token, other_auth_token) -> None:
    with _connect(client, auth_token) as alice:
        with _connect(client, other_auth_token) as bob:
            alice.receive_json()
            _join(alice, private_chat.id)
            _join(bob, private_chat.id)
            bob.send_json({"event": "leaveChat", "data": private_chat.id})
            _sync(bob)

            alice.send_json(
                {
                    "event": "sendMessage",
                    "data": {"conversationId": private_chat.id, "content": "anyone?"},
                }
            )
            assert alice.receive_json()["event"] == "message"
            # Bob's next frame answers his own ping, not the message.
            _sync(bob)


def test_outsider_cannot_join(client, private_chat, auth_token, third_auth_token) -> None:
    with _connect(client, auth_token) as alice:
        with _connect(client, third_auth_token) as mallory:
            alice.receive_json()
            _join(alice, private_chat.id)
            _join(mallory, private_chat.id)

            alice.send_json(
                {
                    "event": "sendMessage",
                    "data": {"conversationId": private_chat.id, "content": "private"},
                }
            )
            assert alice.receive_json()["event"] == "message"
            _sync(mallory)


def test_rest_send_reaches_socket(client, private_chat, test_user, other_user, auth_token, other_auth_token, rsa_keypair, other_rsa_keypair) -> None:
    envelope = CryptoService.encrypt_for_recipients(
        "via rest",
        {test_user.id: rsa_keypair[0], other_user.id: other_rsa_keypair[0]},
    )

    with _connect(client, other_auth_token) as bob:
        _join(bob, private_chat.id)

        response = client.post(
            "/api/v1/messages",
            json={
                "conversationId": private_chat.id,
                "content": envelope.ciphertext,
                "iv": envelope.iv,
                "wrappedKeys": envelope.wrapped_keys,
            },
            headers=auth_token,
        )
        assert response.status_code == status.HTTP_201_CREATED

        frame = bob.receive_json()
        assert frame["event"] == "message"
        assert frame["data"]["id"] == response.json()["data"]["id"]
        assert frame["data"]["encrypted"] is True


def test_new_chat_is_pushed_to_participants(client, test_user, other_user, auth_token, other_auth_token) -> None:
    with _connect(client, other_auth_token) as bob:
        _sync(bob)
        response = client.post(
            "/api/v1/conversations",
            json={"type": "private", "participants": [other_user.id]},
            headers=auth_token,
        )
        assert response.status_code == status.HTTP_201_CREATED

        frame = bob.receive_json()
        assert frame["event"] == "chatCreated"
        assert frame["data"]["id"] == response.json()["data"]["id"]


def test_deleted_chat_is_announced_to_room(client, group_chat, auth_token, other_auth_token) -> None:
    with _connect(client, other_auth_token) as bob:
        _join(bob, group_chat.id)

        response = client.delete(f"/api/v1/conversations/{group_chat.id}", headers=auth_token)
        assert response.status_code == status.HTTP_200_OK

        assert bob.receive_json() == {
            "event": "chatDeleted",
            "data": {"conversationId": group_chat.id},
        }
        assert client.app.state.presence.room_members(group_chat.id) == set()


def test_removed_participant_stops_receiving(client, group_chat, test_user, third_user, auth_token, third_auth_token) -> None:
    with _connect(client, auth_token) as alice:
        with _connect(client, third_auth_token) as carol:
            alice.receive_json()
            _join(alice, group_chat.id)
            _join(carol, group_chat.id)

            response = client.delete(
                f"/api/v1/conversations/{group_chat.id}/participants/{third_user.id}",
                headers=auth_token,
            )
            assert response.status_code == status.HTTP_200_OK
            for ws in (alice, carol):
                assert ws.receive_json()["event"] == "chatUpdated"

            alice.send_json(
                {
                    "event": "sendMessage",
                    "data": {"conversationId": group_chat.id, "content": "secret plan"},
                }
            )
            assert alice.receive_json()["data"]["content"] == "secret plan"
            # Carol's next frame answers her own ping, not the message.
            _sync(carol)
            presence = client.app.state.presence
            members = presence.room_members(group_chat.id)
            assert {presence.user_for(cid) for cid in members} == {test_user.id}
