from qcm.shared.enums import QuestionCategory

# Session limits
MAX_QUESTIONS_PER_SESSION = 10
MAX_MESSAGE_LENGTH = 500
SESSION_TIMEOUT_SECONDS = 30 * 60

# Transcript sizing
TRANSCRIPT_MAX_ENTRIES = 20
CONTEXT_WINDOW_ENTRIES = 6
MAX_SUGGESTED_QUESTIONS = 3

# AI proxy client
PROXY_REQUEST_TIMEOUT_SECONDS = 15.0

# Follow-up heuristics
SHORT_RESPONSE_THRESHOLD = 15
FOLLOW_UP_RESERVED_SLOTS = 2
VAGUE_RESPONSES = frozenset(
    ["oui", "non", "peut-être", "je ne sais pas", "normal", "bien", "ok"]
)
ELABORATION_KEYWORDS = frozenset(["autre", "différent", "dépend", "compliqué"])

# Category selection thresholds
DEMOGRAPHIE_PRIORITY_LIMIT = 3
BESOINS_PRIORITY_LIMIT = 6
DEFAULT_CATEGORY = QuestionCategory.BESOINS

# Bootstrap
MAX_INIT_ATTEMPTS = 3
INIT_RETRY_WAIT_SECONDS = 2.0
APP_VERSION = "1.0.0"

# Edge proxy
EDGE_MAX_MESSAGE_LENGTH = 1000
GEMINI_TEMPERATURE = 0.7
GEMINI_TOP_K = 40
GEMINI_TOP_P = 0.95
GEMINI_MAX_OUTPUT_TOKENS = 200
GEMINI_MAX_RETRIES = 3
INVALID_UNICODE_CLEANUP_REGEX = r"[\p{Cf}\p{Cn}\p{Co}\p{Cs}]"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-Session-ID",
    "Access-Control-Max-Age": "86400",
}

QUESTION_CATEGORIES = {
    QuestionCategory.DEMOGRAPHIE: {
        "name": "Informations démographiques",
        "questions": [
            "Quel est votre âge ?",
            "Dans quel secteur d'activité travaillez-vous ?",
            "Quelle est votre fonction/poste actuel ?",
            "Dans quelle région vous situez-vous ?",
            "Quelle est la taille de votre entreprise ?",
        ],
    },
    QuestionCategory.BESOINS: {
        "name": "Besoins et attentes",
        "questions": [
            "Quels sont vos principaux défis actuels ?",
            "Quelles solutions utilisez-vous actuellement ?",
            "Qu'est-ce qui vous frustre le plus dans vos outils actuels ?",
            "Quel serait votre outil idéal ?",
            "Quel budget seriez-vous prêt à consacrer à une solution ?",
        ],
    },
    QuestionCategory.USAGE: {
        "name": "Habitudes d'usage",
        "questions": [
            "À quelle fréquence utilisez-vous des outils similaires ?",
            "Préférez-vous les solutions cloud ou on-premise ?",
            "Travaillez-vous plutôt seul ou en équipe ?",
            "Quelles sont vos sources d'information privilégiées ?",
            "Comment découvrez-vous de nouveaux outils ?",
        ],
    },
    QuestionCategory.FEEDBACK: {
        "name": "Retours et suggestions",
        "questions": [
            "Qu'avez-vous pensé de cette expérience ?",
            "Quelles fonctionnalités aimeriez-vous voir ajoutées ?",
            "Recommanderiez-vous cet outil à un collègue ?",
            "Avez-vous des suggestions d'amélioration ?",
            "Souhaiteriez-vous être tenu informé de nos évolutions ?",
        ],
    },
}

# Ordered: the first category with a matching keyword wins.
CATEGORY_KEYWORDS = {
    QuestionCategory.DEMOGRAPHIE: [
        "âge", "secteur", "entreprise", "fonction", "poste", "région", "taille",
    ],
    QuestionCategory.BESOINS: [
        "besoin", "défi", "problème", "solution", "frustration", "idéal", "budget",
    ],
    QuestionCategory.USAGE: [
        "fréquence", "utilisez", "cloud", "équipe", "information", "découvrir",
    ],
    QuestionCategory.FEEDBACK: [
        "pensé", "expérience", "amélioration", "recommanderiez", "suggestion",
    ],
}
