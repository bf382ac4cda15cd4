import enum


class QuestionnaireState(str, enum.Enum):
    """
    Defines the possible states of a respondent's questionnaire.
    """

    NO_SESSION = "NO_SESSION"
    AWAITING_EMAIL = "AWAITING_EMAIL"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
