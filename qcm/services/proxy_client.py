import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

import httpx

from qcm.config import PLACEHOLDER_MARKER
from qcm.services.local_store import LocalStore
from qcm.shared.constants import (
    MAX_MESSAGE_LENGTH,
    MAX_SUGGESTED_QUESTIONS,
    PROXY_REQUEST_TIMEOUT_SECONDS,
    QUESTION_CATEGORIES,
)
from qcm.shared.enums import InteractionType, QuestionCategory, StorageKey
from qcm.shared.exceptions import (
    ConfigurationError,
    EmptyMessage,
    MessageTooLong,
    ProxyError,
    RequestTimeout,
)
from qcm.shared.schemas import AIReply, ConversationStats, TranscriptEntry
from qcm.shared.utils.history import (
    build_history_context,
    cap_transcript,
    deserialize_transcript,
    serialize_transcript,
)

logger = logging.getLogger(__name__)


class ProxyClient:
    """
    Talks to the edge proxy that holds the model credential. Each call sends
    one message plus a short context taken from the local transcript and
    returns one generated reply.
    """

    def __init__(
        self,
        worker_url: str,
        local_store: LocalStore,
        http_client: Optional[httpx.AsyncClient] = None,
        origin: Optional[str] = None,
        timeout: float = PROXY_REQUEST_TIMEOUT_SECONDS,
        max_message_length: int = MAX_MESSAGE_LENGTH,
    ):
        self.worker_url = worker_url
        self.origin = origin
        self.timeout = timeout
        self.max_message_length = max_message_length
        self.conversation_history: list[TranscriptEntry] = []
        self.is_initialized = False
        self._local_store = local_store
        self._http_client = http_client or httpx.AsyncClient()

    async def init(self) -> None:
        if not self.worker_url or PLACEHOLDER_MARKER in self.worker_url:
            raise ConfigurationError("URL du proxy IA non configurée")

        await self.test_connection()
        self.is_initialized = True
        self.load_conversation_history()
        logger.debug("Proxy client initialized.")

    async def test_connection(self) -> bool:
        try:
            response = await self._post(
                {"message": "test connection", "conversationHistory": ""}
            )
        except (httpx.HTTPError, RequestTimeout) as e:
            logger.error(f"Connection test to {self.worker_url} failed: {e}")
            raise ProxyError("Impossible de contacter le service IA") from e

        if not response.is_success:
            logger.error(f"Proxy unreachable: {response.status_code}")
            raise ProxyError(
                "Impossible de contacter le service IA", response.status_code
            )
        return True

    async def send_message(
        self, message: str, category: Optional[str] = None
    ) -> AIReply:
        """
        Sends `message` to the proxy and records both sides in the transcript.

        Raises:
            EmptyMessage, MessageTooLong: before any network activity.
            RequestTimeout: when the proxy does not answer in time.
            ProxyError: for any non-success answer from the proxy.
        """
        if not message or not message.strip():
            raise EmptyMessage("Message vide")
        if len(message) > self.max_message_length:
            raise MessageTooLong(self.max_message_length)

        if not self.is_initialized:
            await self.init()

        self.add_to_history(InteractionType.USER, message, category)

        payload = {
            "message": message,
            "conversationHistory": build_history_context(self.conversation_history),
            "category": category,
            "sessionId": self.get_session_id(),
        }
        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            logger.error(f"Error sending message to proxy: {e}")
            raise ProxyError(f"Erreur réseau: {e}") from e

        data = self._decode(response)
        if not response.is_success or data.get("error"):
            error_message = (
                data.get("message")
                or data.get("error")
                or f"Erreur réseau: {response.status_code}"
            )
            logger.error(f"Proxy returned {response.status_code}: {error_message}")
            raise ProxyError(error_message, response.status_code)

        reply_text = data.get("message")
        if not isinstance(reply_text, str) or not reply_text:
            raise ProxyError("Réponse invalide du service IA", response.status_code)

        reply_category = data.get("category")
        self.add_to_history(InteractionType.ASSISTANT, reply_text, reply_category)
        self.save_conversation_history()

        return AIReply(
            message=reply_text,
            category=reply_category,
            timestamp=data.get("timestamp") or datetime.now(timezone.utc),
            suggested_questions=self.generate_suggested_questions(reply_category),
        )

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {"X-Session-ID": self.get_session_id()}
        # The proxy only answers allow-listed origins.
        if self.origin:
            headers["Origin"] = self.origin
        try:
            return await self._http_client.post(
                self.worker_url,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeout(
                "Timeout: La requête a pris trop de temps"
            ) from e

    @staticmethod
    def _decode(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def add_to_history(
        self,
        role: InteractionType,
        message: str,
        category: Optional[str] = None,
    ) -> TranscriptEntry:
        entry = TranscriptEntry(role=role, message=message, category=category)
        self.conversation_history.append(entry)
        self.conversation_history = cap_transcript(self.conversation_history)
        return entry

    def generate_suggested_questions(self, category: Optional[str]) -> list[str]:
        """
        Up to three question hints of `category` the assistant has not
        already asked.
        """
        if category not in {c.value for c in QuestionCategory}:
            return []

        asked = {
            entry.message.lower()
            for entry in self.conversation_history
            if entry.role == InteractionType.ASSISTANT
        }
        candidates = QUESTION_CATEGORIES[QuestionCategory(category)]["questions"]
        return [q for q in candidates if q.lower() not in asked][
            :MAX_SUGGESTED_QUESTIONS
        ]

    def save_conversation_history(self) -> None:
        self._local_store.set_item(
            StorageKey.CONVERSATION_HISTORY,
            serialize_transcript(self.conversation_history),
        )

    def load_conversation_history(self) -> None:
        raw = self._local_store.get_item(StorageKey.CONVERSATION_HISTORY)
        try:
            self.conversation_history = deserialize_transcript(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Could not load conversation history: {e}")
            self.conversation_history = []
            return
        logger.debug(f"Conversation history loaded: {len(self.conversation_history)} entries")

    def clear_conversation_history(self) -> None:
        self.conversation_history = []
        self._local_store.remove_item(StorageKey.CONVERSATION_HISTORY)

    def get_session_id(self) -> str:
        return self._local_store.get_item(StorageKey.SESSION_ID) or "unknown"

    def get_conversation_stats(self) -> ConversationStats:
        user_messages = [
            e for e in self.conversation_history if e.role == InteractionType.USER
        ]
        assistant_messages = [
            e for e in self.conversation_history if e.role == InteractionType.ASSISTANT
        ]
        distribution = Counter(e.category for e in assistant_messages if e.category)

        average_length = 0.0
        if user_messages:
            average_length = sum(len(e.message) for e in user_messages) / len(
                user_messages
            )

        return ConversationStats(
            total_exchanges=min(len(user_messages), len(assistant_messages)),
            user_messages=len(user_messages),
            assistant_messages=len(assistant_messages),
            categories_covered=list(distribution),
            category_distribution=dict(distribution),
            average_message_length=average_length,
        )

    async def aclose(self) -> None:
        await self._http_client.aclose()
