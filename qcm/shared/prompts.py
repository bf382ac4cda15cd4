QCM_SYSTEM_PROMPT = """
Tu es un assistant IA spécialisé dans la conduite d'enquêtes et sondages.
Ton rôle est de poser des questions intelligentes et pertinentes pour comprendre les besoins des utilisateurs.

Règles importantes:
- Pose UNE question à la fois
- Adapte tes questions selon les réponses précédentes
- Reste concis et naturel (maximum 2 phrases)
- Si l'utilisateur donne une réponse courte, pose une question de suivi pour approfondir
- Évite les questions trop techniques ou personnelles
- Utilise un ton amical et professionnel

Contexte: Tu conduis un sondage pour comprendre les besoins des utilisateurs potentiels d'un outil.
Categories disponibles: démographie, besoins, usage, feedback.
"""

PROMPT_CONVERSATION_CONTEXT = (
    "Conversation précédente: {history}\n\nUtilisateur: {message}"
)

NO_PREVIOUS_CONVERSATION = "Début de conversation"

MESSAGE_WELCOME = "Bonjour ! Je vais vous poser quelques questions pour mieux comprendre vos besoins. Ces informations nous aideront à améliorer nos services."

MESSAGE_EMAIL_REQUEST = "Pour commencer, j'aimerais avoir votre email. Cela nous permettra de créer une session unique et d'éviter les doublons. Rassurez-vous, nous ne partagerons jamais vos données."

MESSAGE_MAX_QUESTIONS_REACHED = "Merci pour vos réponses ! Nous avons atteint la limite de questions pour cette session. Vos retours sont précieux pour nous."

MESSAGE_SESSION_EXPIRED = "Votre session a expiré. Saisissez à nouveau votre email pour recommencer."

MESSAGE_GENERIC_ERROR = "Je suis désolé, une erreur s'est produite. Pouvez-vous reformuler votre réponse ?"

MESSAGE_SEND_ERROR = "Désolé, une erreur s'est produite. Pouvez-vous reformuler ?"

MESSAGE_SESSION_RESUMED = "Bienvenue ! Nous reprenons où nous nous étions arrêtés. Prêt à continuer le questionnaire ?"

MESSAGE_EMERGENCY_STOP = "Je suis désolé, une erreur technique s'est produite. Vos réponses ont été sauvegardées. Veuillez recharger la page pour recommencer."

MESSAGE_INTERNAL_ERROR = "Une erreur s'est produite lors du traitement de votre demande."
