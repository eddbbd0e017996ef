# mypy: ignore-errors
"""Tests for message-related endpoints."""

import pytest
from fastapi import status

from murmur.core.settings import settings
from murmur.services.crypto import CryptoService, Envelope
from murmur.services.messages import MessageService


@pytest.fixture
def envelope(test_user, other_user, rsa_keypair, other_rsa_keypair):
    """Encrypted payload for the private chat between the two keyed users."""
    return CryptoService.encrypt_for_recipients(
        "top secret",
        {test_user.id: rsa_keypair[0], other_user.id: other_rsa_keypair[0]},
    )


def _send(client, headers, conversation_id, envelope, **extra):
    return client.post(
        "/api/v1/messages",
        json={
            "conversationId": conversation_id,
            "content": envelope.ciphertext,
            "iv": envelope.iv,
            "wrappedKeys": envelope.wrapped_keys,
            **extra,
        },
        headers=headers,
    )


def test_send_encrypted_message(client, private_chat, test_user, other_user, auth_token, envelope, other_rsa_keypair) -> None:
    response = _send(client, auth_token, private_chat.id, envelope)

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()["data"]
    assert data["senderId"] == test_user.id
    assert data["encrypted"] is True
    assert data["content"] == envelope.ciphertext
    assert set(data["wrappedKeys"]) == {test_user.id, other_user.id}

    # The server stores ciphertext only; the recipient can still read it.
    received = CryptoService.decrypt(
        Envelope(data["content"], data["iv"], data["wrappedKeys"]),
        other_user.id,
        other_rsa_keypair[1],
    )
    assert received == "top secret"


def test_send_requires_envelope(client, private_chat, auth_token) -> None:
    response = client.post(
        "/api/v1/messages",
        json={"conversationId": private_chat.id, "content": "plaintext"},
        headers=auth_token,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {
        "success": False,
        "error": "Missing encryption data for end-to-end encryption",
    }


def test_send_as_outsider(client, private_chat, third_auth_token, envelope) -> None:
    response = _send(client, third_auth_token, private_chat.id, envelope)

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_send_rejects_blank_content(client, private_chat, auth_token, envelope) -> None:
    response = client.post(
        "/api/v1/messages",
        json={
            "conversationId": private_chat.id,
            "content": "   ",
            "iv": envelope.iv,
            "wrappedKeys": envelope.wrapped_keys,
        },
        headers=auth_token,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_history_is_paginated(client, db_session, private_chat, test_user, auth_token) -> None:
    service = MessageService(db_session)
    for index in range(3):
        service.send(test_user.id, private_chat.id, f"m{index}")

    response = client.get(f"/api/v1/messages/{private_chat.id}?limit=2", headers=auth_token)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert len(data["messages"]) == 2
    assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}


def test_history_rejects_oversized_limit(client, private_chat, auth_token) -> None:
    response = client.get(
        f"/api/v1/messages/{private_chat.id}?limit={settings.messages_page_size_max + 1}",
        headers=auth_token,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_history_requires_membership(client, private_chat, third_auth_token) -> None:
    response = client.get(f"/api/v1/messages/{private_chat.id}", headers=third_auth_token)

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_edit_message(client, db_session, private_chat, test_user, auth_token) -> None:
    message = MessageService(db_session).send(test_user.id, private_chat.id, "draft")

    response = client.put(
        f"/api/v1/messages/{message.id}", json={"content": "final"}, headers=auth_token
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["content"] == "final"
    assert data["isEdited"] is True


def test_edit_by_someone_else(client, db_session, private_chat, test_user, other_auth_token) -> None:
    message = MessageService(db_session).send(test_user.id, private_chat.id, "draft")

    response = client.put(
        f"/api/v1/messages/{message.id}", json={"content": "hijack"}, headers=other_auth_token
    )

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_delete_message(client, db_session, private_chat, test_user, auth_token) -> None:
    message = MessageService(db_session).send(test_user.id, private_chat.id, "oops")

    response = client.delete(f"/api/v1/messages/{message.id}", headers=auth_token)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True, "message": "Message deleted successfully"}

    history = client.get(f"/api/v1/messages/{private_chat.id}", headers=auth_token).json()
    assert history["data"]["messages"] == []

    again = client.delete(f"/api/v1/messages/{message.id}", headers=auth_token)
    assert again.status_code == status.HTTP_404_NOT_FOUND


def test_mark_as_read(client, db_session, private_chat, test_user, other_user, other_auth_token) -> None:
    message = MessageService(db_session).send(test_user.id, private_chat.id, "read me")

    first = client.post(
        f"/api/v1/messages/{message.id}/read",
        json={"conversationId": private_chat.id},
        headers=other_auth_token,
    )
    second = client.post(
        f"/api/v1/messages/{message.id}/read",
        json={"conversationId": private_chat.id},
        headers=other_auth_token,
    )

    assert first.status_code == status.HTTP_200_OK
    assert first.json()["data"]["userId"] == other_user.id
    assert second.json()["data"]["at"] == first.json()["data"]["at"]

    history = client.get(f"/api/v1/messages/{private_chat.id}", headers=other_auth_token).json()
    (stored,) = history["data"]["messages"]
    assert [r["userId"] for r in stored["readBy"]] == [other_user.id]


def test_reactions(client, db_session, private_chat, test_user, other_user, other_auth_token) -> None:
    message = MessageService(db_session).send(test_user.id, private_chat.id, "nice")

    added = client.post(
        f"/api/v1/messages/{message.id}/reactions",
        json={"emoji": "🔥"},
        headers=other_auth_token,
    )
    assert added.status_code == status.HTTP_200_OK
    assert [(r["userId"], r["emoji"]) for r in added.json()["data"]["reactions"]] == [
        (other_user.id, "🔥")
    ]

    removed = client.delete(
        f"/api/v1/messages/{message.id}/reactions/🔥",
        headers=other_auth_token,
    )
    assert removed.status_code == status.HTTP_200_OK
    assert removed.json()["data"]["reactions"] == []


def test_reaction_emoji_too_long(client, db_session, private_chat, test_user, auth_token) -> None:
    message = MessageService(db_session).send(test_user.id, private_chat.id, "nice")

    response = client.post(
        f"/api/v1/messages/{message.id}/reactions",
        json={"emoji": "x" * 11},
        headers=auth_token,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
