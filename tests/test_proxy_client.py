"""Tests for the client side of the edge proxy

Tests cover:
- Configuration and connection checks
- Local validation before any network call
- Request payload, session and origin headers
- Error mapping (timeout, proxy errors, invalid replies)
- Transcript capping, context window and persistence
"""

import httpx
import pytest

from qcm.services.proxy_client import ProxyClient
from qcm.shared.constants import QUESTION_CATEGORIES
from qcm.shared.enums import InteractionType, QuestionCategory, StorageKey
from qcm.shared.exceptions import (
    ConfigurationError,
    EmptyMessage,
    MessageTooLong,
    ProxyError,
    RequestTimeout,
)
from tests.fakes import CLIENT_ORIGIN


async def test_placeholder_url_is_rejected(local_store, http_client, proxy_stub):
    client = ProxyClient(
        "https://your-worker.your-subdomain.workers.dev", local_store, http_client=http_client
    )
    with pytest.raises(ConfigurationError):
        await client.init()
    assert proxy_stub.connection_tests == 0


async def test_init_checks_connection(proxy_client, proxy_stub):
    await proxy_client.init()
    assert proxy_client.is_initialized
    assert proxy_stub.connection_tests == 1


async def test_init_fails_when_proxy_unreachable(local_store):
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    client = ProxyClient(
        "https://proxy.test/", local_store, http_client=httpx.AsyncClient(transport=transport)
    )
    with pytest.raises(ProxyError) as exc_info:
        await client.init()
    assert exc_info.value.status_code == 503
    await client.aclose()


@pytest.mark.parametrize("message", ["", "   "])
async def test_empty_message_is_rejected_locally(proxy_client, proxy_stub, message):
    with pytest.raises(EmptyMessage):
        await proxy_client.send_message(message)
    assert proxy_stub.connection_tests == 0
    assert proxy_stub.requests == []


async def test_long_message_is_rejected_locally(proxy_client, proxy_stub):
    with pytest.raises(MessageTooLong) as exc_info:
        await proxy_client.send_message("x" * 501)
    assert "500" in str(exc_info.value)
    assert proxy_stub.connection_tests == 0
    assert proxy_stub.requests == []


async def test_send_message(proxy_client, proxy_stub, local_store):
    local_store.set_item(StorageKey.SESSION_ID, "qcm_1_abcdefghi")

    reply = await proxy_client.send_message("Pose une question", "demographie")

    payload = proxy_stub.requests[0]
    assert payload["message"] == "Pose une question"
    assert payload["category"] == "demographie"
    assert payload["sessionId"] == "qcm_1_abcdefghi"
    assert payload["conversationHistory"] == "user: Pose une question"
    assert proxy_stub.headers[0]["X-Session-ID"] == "qcm_1_abcdefghi"
    assert proxy_stub.headers[0]["Origin"] == CLIENT_ORIGIN

    assert reply.message == "Question 1 sur demographie ?"
    assert reply.category == "demographie"
    assert reply.suggested_questions == QUESTION_CATEGORIES[QuestionCategory.DEMOGRAPHIE][
        "questions"
    ][:3]

    roles = [entry.role for entry in proxy_client.conversation_history]
    assert roles == [InteractionType.USER, InteractionType.ASSISTANT]


async def test_session_header_defaults_to_unknown(proxy_client, proxy_stub):
    await proxy_client.send_message("Bonjour")
    assert proxy_stub.requests[0]["sessionId"] == "unknown"


async def test_timeout(proxy_client, proxy_stub):
    proxy_stub.queue(httpx.ReadTimeout("too slow"))
    with pytest.raises(RequestTimeout):
        await proxy_client.send_message("Bonjour")


async def test_network_error(proxy_client, proxy_stub):
    proxy_stub.queue(httpx.ConnectError("connection refused"))
    with pytest.raises(ProxyError):
        await proxy_client.send_message("Bonjour")


async def test_proxy_error_status(proxy_client, proxy_stub):
    proxy_stub.queue(
        httpx.Response(429, json={"error": "Rate limit exceeded. Please try again later."})
    )
    with pytest.raises(ProxyError) as exc_info:
        await proxy_client.send_message("Bonjour")
    assert exc_info.value.status_code == 429
    assert "Rate limit exceeded" in str(exc_info.value)


async def test_proxy_error_prefers_detail_message(proxy_client, proxy_stub):
    proxy_stub.queue(
        httpx.Response(500, json={"error": "Internal server error", "message": "Réessayez"})
    )
    with pytest.raises(ProxyError, match="Réessayez"):
        await proxy_client.send_message("Bonjour")


async def test_error_field_in_success_response(proxy_client, proxy_stub):
    proxy_stub.queue({"error": "quota"})
    with pytest.raises(ProxyError, match="quota"):
        await proxy_client.send_message("Bonjour")


async def test_reply_without_message(proxy_client, proxy_stub):
    proxy_stub.queue({"category": "usage"})
    with pytest.raises(ProxyError):
        await proxy_client.send_message("Bonjour")


async def test_failed_call_keeps_user_entry_only(proxy_client, proxy_stub):
    proxy_stub.queue(httpx.ReadTimeout("too slow"))
    with pytest.raises(RequestTimeout):
        await proxy_client.send_message("Bonjour")
    assert [e.role for e in proxy_client.conversation_history] == [InteractionType.USER]


async def test_transcript_is_capped_and_context_windowed(proxy_client, proxy_stub):
    for i in range(15):
        await proxy_client.send_message(f"message {i}")

    assert len(proxy_client.conversation_history) == 20
    assert proxy_client.conversation_history[-1].role == InteractionType.ASSISTANT

    context = proxy_stub.requests[-1]["conversationHistory"].split("\n")
    assert len(context) == 6
    assert context[-1] == "user: message 14"


async def test_transcript_survives_reload(proxy_client, local_store, http_client):
    await proxy_client.send_message("Bonjour", "usage")
    original = proxy_client.conversation_history

    reloaded = ProxyClient("https://proxy.test/", local_store, http_client=http_client)
    reloaded.load_conversation_history()

    assert len(reloaded.conversation_history) == len(original)
    for before, after in zip(original, reloaded.conversation_history):
        assert after.role == before.role
        assert after.message == before.message
        assert after.category == before.category
        assert after.timestamp == before.timestamp


async def test_corrupted_transcript_is_ignored(proxy_client, local_store):
    local_store.set_item(StorageKey.CONVERSATION_HISTORY, "{not json")
    proxy_client.load_conversation_history()
    assert proxy_client.conversation_history == []


async def test_malformed_transcript_entries_are_dropped(proxy_client, local_store):
    local_store.set_item(
        StorageKey.CONVERSATION_HISTORY,
        '[{"role": "user", "message": "ok"}, {"role": "robot"}]',
    )
    proxy_client.load_conversation_history()
    assert [e.message for e in proxy_client.conversation_history] == ["ok"]


async def test_clear_conversation_history(proxy_client, local_store):
    await proxy_client.send_message("Bonjour")
    proxy_client.clear_conversation_history()
    assert proxy_client.conversation_history == []
    assert local_store.get_item(StorageKey.CONVERSATION_HISTORY) is None


async def test_conversation_stats(proxy_client):
    proxy_client.add_to_history(InteractionType.USER, "abcd", "demographie")
    proxy_client.add_to_history(InteractionType.ASSISTANT, "Quel âge ?", "demographie")
    proxy_client.add_to_history(InteractionType.USER, "abcdefgh", "besoins")
    proxy_client.add_to_history(InteractionType.ASSISTANT, "Quel défi ?", "besoins")
    proxy_client.add_to_history(InteractionType.ASSISTANT, "Et encore ?", "besoins")

    stats = proxy_client.get_conversation_stats()

    assert stats.total_exchanges == 2
    assert stats.user_messages == 2
    assert stats.assistant_messages == 3
    assert set(stats.categories_covered) == {"demographie", "besoins"}
    assert stats.category_distribution == {"demographie": 1, "besoins": 2}
    assert stats.average_message_length == 6


async def test_suggestions_skip_asked_questions(proxy_client):
    asked = QUESTION_CATEGORIES[QuestionCategory.USAGE]["questions"][0]
    proxy_client.add_to_history(InteractionType.ASSISTANT, asked, "usage")

    suggestions = proxy_client.generate_suggested_questions("usage")

    assert asked not in suggestions
    assert len(suggestions) == 3
    assert proxy_client.generate_suggested_questions(None) == []
    assert proxy_client.generate_suggested_questions("inconnue") == []


async def test_missing_origin_is_refused_by_proxy(local_store, http_client):
    client = ProxyClient("https://proxy.test/", local_store, http_client=http_client)
    with pytest.raises(ProxyError) as exc_info:
        await client.init()
    assert exc_info.value.status_code == 403
