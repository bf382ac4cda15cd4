from enum import Enum


class InteractionType(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class QuestionCategory(str, Enum):
    DEMOGRAPHIE = "demographie"
    BESOINS = "besoins"
    USAGE = "usage"
    FEEDBACK = "feedback"


class StorageKey(str, Enum):
    """
    Names of the fields kept in the local store.
    """

    SESSION_ID = "qcm_session_id"
    USER_EMAIL = "qcm_user_email"
    QUESTION_COUNT = "qcm_question_count"
    CONVERSATION_HISTORY = "qcm_conversation"
    CONSENT_GIVEN = "qcm_consent"
    SESSION_START_TIME = "qcm_session_start"
    APP_STATE = "qcm_app_state"
