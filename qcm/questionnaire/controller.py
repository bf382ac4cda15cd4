import asyncio
import logging
import random
import time
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from qcm.questionnaire.prompts import (
    DEFAULT_FIRST_NAME,
    MESSAGE_ALREADY_COMPLETED,
    MESSAGE_INVALID_EMAIL,
    MESSAGE_PERSONALIZED_WELCOME,
    MESSAGE_SESSION_NOT_ACTIVE,
    MESSAGE_SESSION_SUMMARY,
    MESSAGE_THANKS,
    PLACEHOLDER_SESSION_FINISHED,
    PLACEHOLDER_TECHNICAL_ERROR,
    PROMPT_FOLLOW_UP,
    PROMPT_NEXT_QUESTION,
    PROMPT_QUESTION_CONTEXT,
)
from qcm.questionnaire.state import QuestionnaireState
from qcm.services.local_store import LocalStore
from qcm.services.proxy_client import ProxyClient
from qcm.services.session_store import SessionStore
from qcm.shared.constants import (
    BESOINS_PRIORITY_LIMIT,
    DEFAULT_CATEGORY,
    DEMOGRAPHIE_PRIORITY_LIMIT,
    FOLLOW_UP_RESERVED_SLOTS,
    MAX_QUESTIONS_PER_SESSION,
    QUESTION_CATEGORIES,
)
from qcm.shared.enums import QuestionCategory, StorageKey
from qcm.shared.exceptions import (
    BackendError,
    DuplicateCompletedSession,
    InvalidEmail,
    QcmError,
    SessionNotActive,
)
from qcm.shared.prompts import (
    MESSAGE_EMERGENCY_STOP,
    MESSAGE_GENERIC_ERROR,
    MESSAGE_MAX_QUESTIONS_REACHED,
    MESSAGE_SESSION_EXPIRED,
    MESSAGE_SESSION_RESUMED,
)
from qcm.shared.schemas import SessionInfo
from qcm.shared.utils.validations import (
    is_short_response,
    is_vague_response,
    is_valid_email,
    needs_elaboration,
)

if TYPE_CHECKING:
    from qcm.questionnaire.ui import ChatUI

logger = logging.getLogger(__name__)


def choose_next_category(
    question_count: int,
    covered: Iterable[str],
    rng: random.Random,
) -> QuestionCategory:
    """
    Picks the category of the next question.

    Demographics come first (before question 3), then needs (before
    question 6); after that any category not covered yet is drawn at
    random. Once every category is covered, needs is asked again.
    """
    covered = {getattr(c, "value", c) for c in covered}

    if (
        question_count < DEMOGRAPHIE_PRIORITY_LIMIT
        and QuestionCategory.DEMOGRAPHIE.value not in covered
    ):
        return QuestionCategory.DEMOGRAPHIE

    if (
        question_count < BESOINS_PRIORITY_LIMIT
        and QuestionCategory.BESOINS.value not in covered
    ):
        return QuestionCategory.BESOINS

    remaining = [c for c in QuestionCategory if c.value not in covered]
    if remaining:
        return rng.choice(remaining)

    return DEFAULT_CATEGORY


class QuestionnaireController:
    """
    Drives one respondent through the fixed-length question loop: starts or
    resumes the session, asks the proxy for each question, records answers
    and decides between a follow-up and the next question.
    """

    def __init__(
        self,
        session_store: SessionStore,
        proxy_client: ProxyClient,
        ui: "ChatUI",
        local_store: LocalStore,
        max_questions: int = MAX_QUESTIONS_PER_SESSION,
        follow_up_reserved_slots: int = FOLLOW_UP_RESERVED_SLOTS,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._session_store = session_store
        self._proxy_client = proxy_client
        self._ui = ui
        self._local_store = local_store
        self.max_questions = max_questions
        self.follow_up_reserved_slots = follow_up_reserved_slots
        self._rng = rng or random.Random()
        self._clock = clock

        self.state = QuestionnaireState.NO_SESSION
        self.session_id: Optional[str] = None
        self.question_count = 0
        self.current_category: Optional[QuestionCategory] = None
        self.session_start_time: Optional[float] = None
        self._current_question: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.state == QuestionnaireState.ACTIVE

    async def init(self) -> None:
        await asyncio.gather(self._session_store.init(), self._proxy_client.init())
        if not await self.check_existing_session():
            self.state = QuestionnaireState.AWAITING_EMAIL
        logger.debug(f"Questionnaire controller initialized in state {self.state.value}")

    async def check_existing_session(self) -> bool:
        """
        Restores the session kept in the local store, if any. An expired
        session, or one the database no longer holds open, is cleared.
        """
        session_id = self._local_store.get_item(StorageKey.SESSION_ID)
        email = self._local_store.get_item(StorageKey.USER_EMAIL)
        if not session_id or not email:
            return False

        if not self._session_store.is_session_valid():
            logger.info(f"Local session {session_id} expired, clearing it.")
            await self.clear_session()
            self._ui.add_bot_message(MESSAGE_SESSION_EXPIRED)
            return False

        record = await self._session_store.get_session(session_id)
        if record is None or record.is_completed:
            logger.info(f"Local session {session_id} is closed, clearing it.")
            await self.clear_session()
            return False

        self.session_id = session_id
        self.question_count = int(self._local_store.get_item(StorageKey.QUESTION_COUNT, 0))
        self.session_start_time = float(
            self._local_store.get_item(StorageKey.SESSION_START_TIME)
        )
        self.state = QuestionnaireState.ACTIVE
        logger.info(f"Existing session found: {session_id}")
        return True

    async def start_session(self, email: str, consent_given: bool = False) -> str:
        """
        Starts the questionnaire for `email`, resuming its unfinished session
        if there is one.

        Raises:
            InvalidEmail: when `email` is not a valid address.
            DuplicateCompletedSession: when `email` already completed it.
            BackendError: when the database cannot be reached.
        """
        email = email.strip()
        if not is_valid_email(email):
            raise InvalidEmail(MESSAGE_INVALID_EMAIL)

        logger.info(f"Starting session for: {email}")
        existing_session = await self._session_store.check_email_exists(email)

        if existing_session and existing_session.is_completed:
            raise DuplicateCompletedSession(MESSAGE_ALREADY_COMPLETED)

        if existing_session:
            self.session_id = existing_session.session_id
            self.question_count = existing_session.questions_count
            self.session_start_time = self._clock()

            self._local_store.set_item(StorageKey.SESSION_ID, self.session_id)
            self._local_store.set_item(StorageKey.USER_EMAIL, email)
            self._local_store.set_item(StorageKey.QUESTION_COUNT, self.question_count)
            self._local_store.set_item(StorageKey.CONSENT_GIVEN, consent_given)
            self._local_store.set_item(StorageKey.SESSION_START_TIME, self.session_start_time)
            logger.info(f"Resuming existing session: {self.session_id}")
        else:
            self._proxy_client.clear_conversation_history()
            self.session_id = await self._session_store.create_session(email, consent_given)
            self.question_count = 0
            self.session_start_time = self._local_store.get_item(
                StorageKey.SESSION_START_TIME, self._clock()
            )

        self.state = QuestionnaireState.ACTIVE
        await self.start_conversation()
        return self.session_id

    async def start_conversation(self) -> None:
        self._ui.add_bot_message(self.get_personalized_welcome_message())
        await self.ask_next_question()

    async def resume_conversation(self) -> None:
        self._ui.add_bot_message(MESSAGE_SESSION_RESUMED)
        await self.ask_next_question()

    def get_personalized_welcome_message(self) -> str:
        email = self._local_store.get_item(StorageKey.USER_EMAIL)
        local_part = email.split("@")[0] if email else ""
        first_name = (
            local_part[:1].upper() + local_part[1:] if local_part else DEFAULT_FIRST_NAME
        )
        return MESSAGE_PERSONALIZED_WELCOME.format(first_name=first_name)

    def select_next_category(self) -> QuestionCategory:
        covered = self._proxy_client.get_conversation_stats().categories_covered
        return choose_next_category(self.question_count, covered, self._rng)

    def build_context_prompt(self, category: QuestionCategory) -> str:
        return PROMPT_QUESTION_CONTEXT.format(
            label=QUESTION_CATEGORIES[category]["name"],
            number=self.question_count + 1,
            max_questions=self.max_questions,
        )

    async def ask_next_question(self) -> None:
        if self.question_count >= self.max_questions:
            await self.complete_session()
            return

        category = self.select_next_category()
        self.current_category = category
        directive = PROMPT_NEXT_QUESTION.format(
            category=category.value, context=self.build_context_prompt(category)
        )

        try:
            reply = await self._proxy_client.send_message(directive, category.value)
        except QcmError as e:
            logger.error(f"Error generating question: {e}")
            self._ui.add_bot_message(MESSAGE_GENERIC_ERROR)
            return

        self._current_question = reply.message
        self._ui.add_bot_message(reply.message, reply.suggested_questions)

    async def process_answer(self, answer: str) -> None:
        """
        Records the respondent's answer to the current question and moves
        the questionnaire forward.

        Raises:
            SessionNotActive: when no session is running.
        """
        if not self.is_active:
            raise SessionNotActive(MESSAGE_SESSION_NOT_ACTIVE)

        if self.question_count >= self.max_questions:
            self._ui.add_bot_message(MESSAGE_MAX_QUESTIONS_REACHED)
            await self.complete_session()
            return

        await self._save_current_response(answer)

        self.question_count = min(self.question_count + 1, self.max_questions)
        self._local_store.set_item(StorageKey.QUESTION_COUNT, self.question_count)
        self._ui.update_progress(self.question_count, self.max_questions)

        if self.needs_follow_up(answer):
            await self.ask_follow_up_question(answer)
        else:
            await self.ask_next_question()

    async def _save_current_response(self, answer: str) -> None:
        question = self._current_question or self._ui.get_last_bot_message() or ""
        category = self.current_category.value if self.current_category else None
        try:
            await self._session_store.save_question_answer(question, answer, category)
            logger.debug(f"Answer saved ({category})")
        except BackendError as e:
            logger.error(f"Error saving answer, continuing: {e}")

    def needs_follow_up(self, answer: str) -> bool:
        """
        A short, vague or ambiguous answer earns a follow-up question in the
        same category, as long as enough question slots remain.
        """
        remaining = self.max_questions - self.question_count
        if remaining < self.follow_up_reserved_slots:
            return False
        return (
            is_short_response(answer)
            or is_vague_response(answer)
            or needs_elaboration(answer)
        )

    async def ask_follow_up_question(self, previous_answer: str) -> None:
        category = self.current_category or self.select_next_category()
        self.current_category = category
        prompt = PROMPT_FOLLOW_UP.format(answer=previous_answer, category=category.value)

        try:
            reply = await self._proxy_client.send_message(prompt, category.value)
        except QcmError as e:
            logger.warning(f"Follow-up question failed, asking the next one: {e}")
            await self.ask_next_question()
            return

        self._current_question = reply.message
        self._ui.add_bot_message(reply.message)

    async def complete_session(self) -> None:
        self.state = QuestionnaireState.COMPLETED
        stats = self._proxy_client.get_conversation_stats()
        self._ui.add_bot_message(
            MESSAGE_THANKS.format(
                count=self.question_count, categories=len(stats.categories_covered)
            )
        )

        try:
            await self._session_store.complete_session()
        except BackendError as e:
            logger.error(f"Error completing session {self.session_id}: {e}")

        self._ui.disable_input(PLACEHOLDER_SESSION_FINISHED)
        self._ui.add_bot_message(await self.build_session_summary())
        self._session_store.clear_local_session()
        logger.info(f"Session {self.session_id} completed")

    async def build_session_summary(self) -> str:
        """
        Summary shown at the end: answered questions and mean answer length
        come from the saved answers, falling back to the local transcript
        when the database cannot be read.
        """
        stats = self._proxy_client.get_conversation_stats()
        exchanges = stats.total_exchanges
        average_length = stats.average_message_length

        try:
            answers = await self._session_store.get_conversation_history()
        except BackendError as e:
            logger.warning(f"Could not load answers for summary: {e}")
            answers = []
        if answers:
            exchanges = len(answers)
            average_length = sum(len(a.answer) for a in answers) / len(answers)

        elapsed = self._clock() - self.session_start_time if self.session_start_time else 0
        return MESSAGE_SESSION_SUMMARY.format(
            exchanges=exchanges,
            categories=len(stats.categories_covered),
            minutes=round(elapsed / 60),
            average_length=round(average_length),
        )

    async def clear_session(self) -> None:
        self.state = QuestionnaireState.NO_SESSION
        self.session_id = None
        self.question_count = 0
        self.current_category = None
        self.session_start_time = None
        self._current_question = None

        self._session_store.clear_local_session()
        self._proxy_client.clear_conversation_history()
        self._ui.reset()
        logger.debug("Session cleared.")

    async def handle_emergency_stop(self, reason: str) -> None:
        """
        Best-effort shutdown after an unexpected failure: the session is
        closed with `reason` as feedback and input is disabled. Never raises.
        """
        logger.error(f"Emergency stop: {reason}")
        self.state = QuestionnaireState.COMPLETED

        if self.session_id:
            try:
                await self._session_store.complete_session(feedback=reason)
            except Exception as e:
                logger.error(f"Error closing session during emergency stop: {e}")

        try:
            self._session_store.clear_local_session()
        except Exception as e:
            logger.error(f"Error clearing local session during emergency stop: {e}")

        try:
            self._ui.add_bot_message(MESSAGE_EMERGENCY_STOP)
            self._ui.disable_input(PLACEHOLDER_TECHNICAL_ERROR)
        except Exception as e:
            logger.error(f"Error updating UI during emergency stop: {e}")

    def get_session_info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self.session_id,
            state=self.state.value,
            is_active=self.is_active,
            question_count=self.question_count,
            max_questions=self.max_questions,
            current_category=self.current_category.value if self.current_category else None,
            session_start_time=self.session_start_time,
            email=self._local_store.get_item(StorageKey.USER_EMAIL),
        )
