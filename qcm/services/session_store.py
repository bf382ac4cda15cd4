import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from qcm.database.models import QcmResponse, QcmSession
from qcm.services.local_store import LocalStore
from qcm.shared.constants import MAX_QUESTIONS_PER_SESSION, SESSION_TIMEOUT_SECONDS
from qcm.shared.enums import StorageKey
from qcm.shared.exceptions import BackendError
from qcm.shared.schemas import QuestionAnswer, SessionRecord

logger = logging.getLogger(__name__)

SESSION_ID_ALPHABET = string.ascii_lowercase + string.digits

LOCAL_SESSION_KEYS = [
    StorageKey.SESSION_ID,
    StorageKey.USER_EMAIL,
    StorageKey.QUESTION_COUNT,
    StorageKey.CONVERSATION_HISTORY,
    StorageKey.CONSENT_GIVEN,
    StorageKey.SESSION_START_TIME,
]


class SessionStore:
    """
    Reads and writes the `qcm_sessions` and `qcm_responses` tables and keeps
    the current session's identity in the local store.

    Every database failure surfaces as `BackendError`; callers decide
    whether it is fatal.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        local_store: LocalStore,
        max_questions: int = MAX_QUESTIONS_PER_SESSION,
        session_timeout: float = SESSION_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory
        self._local_store = local_store
        self.max_questions = max_questions
        self.session_timeout = session_timeout
        self._clock = clock

    async def init(self) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise BackendError(f"Database unreachable: {e}") from e
        logger.debug("Session store initialized.")

    @property
    def session_id(self) -> Optional[str]:
        return self._local_store.get_item(StorageKey.SESSION_ID)

    def generate_session_id(self) -> str:
        suffix = "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(9))
        return f"qcm_{int(self._clock() * 1000)}_{suffix}"

    async def create_session(self, email: str, consent_given: bool = False) -> str:
        session_id = self.generate_session_id()
        record = QcmSession(
            session_id=session_id,
            email=email,
            consent_recontact=consent_given,
            created_at=datetime.now(timezone.utc),
            questions_count=0,
            is_completed=False,
        )
        try:
            async with self._session_factory() as db:
                db.add(record)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error creating session for {email}: {e}")
            raise BackendError(str(e)) from e

        self._local_store.set_item(StorageKey.SESSION_ID, session_id)
        self._local_store.set_item(StorageKey.USER_EMAIL, email)
        self._local_store.set_item(StorageKey.QUESTION_COUNT, 0)
        self._local_store.set_item(StorageKey.CONSENT_GIVEN, consent_given)
        self._local_store.set_item(StorageKey.SESSION_START_TIME, self._clock())

        logger.info(f"Session created: {session_id}")
        return session_id

    async def check_email_exists(self, email: str) -> Optional[SessionRecord]:
        """
        Returns the most recent session registered for `email`, or None.
        """
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(QcmSession)
                    .where(QcmSession.email == email)
                    .order_by(QcmSession.created_at.desc())
                    .limit(1)
                )
                session = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error checking email {email}: {e}")
            raise BackendError(str(e)) from e

        return SessionRecord.model_validate(session) if session else None

    async def save_question_answer(
        self, question: str, answer: str, category: Optional[str] = None
    ) -> int:
        """
        Appends a question/answer row to the current session and increments
        its question count, flagging the session completed once the count
        reaches the maximum. A completed session keeps its count.

        Returns:
            The session's question count after the update.
        """
        session_id = self.session_id
        if not session_id:
            raise BackendError("Session non trouvée")

        try:
            async with self._session_factory() as db:
                session = await db.get(QcmSession, session_id)
                if session is None:
                    raise BackendError(f"Session {session_id} not found")

                db.add(
                    QcmResponse(
                        session_id=session_id,
                        question=question,
                        answer=answer,
                        category=category,
                        created_at=datetime.now(timezone.utc),
                    )
                )

                if not session.is_completed:
                    new_count = min(session.questions_count + 1, self.max_questions)
                    session.questions_count = new_count
                    session.is_completed = new_count >= self.max_questions
                    session.updated_at = datetime.now(timezone.utc)

                questions_count = session.questions_count
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error saving answer for session {session_id}: {e}")
            raise BackendError(str(e)) from e

        self._local_store.set_item(StorageKey.QUESTION_COUNT, questions_count)
        logger.debug(f"Answer saved for session {session_id} ({questions_count})")
        return questions_count

    async def get_conversation_history(self) -> list[QuestionAnswer]:
        session_id = self.session_id
        if not session_id:
            return []

        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(QcmResponse)
                    .where(QcmResponse.session_id == session_id)
                    .order_by(QcmResponse.created_at.asc(), QcmResponse.id.asc())
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise BackendError(str(e)) from e

        return [QuestionAnswer.model_validate(row) for row in rows]

    async def complete_session(self, feedback: Optional[str] = None) -> bool:
        """
        Marks the current session completed, optionally attaching a
        feedback string. Returns False when there is no current session.
        """
        session_id = self.session_id
        if not session_id:
            return False

        try:
            async with self._session_factory() as db:
                session = await db.get(QcmSession, session_id)
                if session is None:
                    raise BackendError(f"Session {session_id} not found")
                session.is_completed = True
                session.completed_at = datetime.now(timezone.utc)
                if feedback:
                    session.final_feedback = feedback
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error completing session {session_id}: {e}")
            raise BackendError(str(e)) from e

        logger.info(f"Session completed: {session_id}")
        return True

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        try:
            async with self._session_factory() as db:
                session = await db.get(QcmSession, session_id)
        except SQLAlchemyError as e:
            logger.error(f"Error loading session {session_id}: {e}")
            raise BackendError(str(e)) from e

        return SessionRecord.model_validate(session) if session else None

    def is_session_valid(self) -> bool:
        session_id = self._local_store.get_item(StorageKey.SESSION_ID)
        start_time = self._local_store.get_item(StorageKey.SESSION_START_TIME)
        if not session_id or start_time is None:
            return False
        try:
            elapsed = self._clock() - float(start_time)
        except (TypeError, ValueError):
            return False
        return elapsed < self.session_timeout

    def clear_local_session(self) -> None:
        self._local_store.remove_items(LOCAL_SESSION_KEYS)
        logger.debug("Local session cleared.")
