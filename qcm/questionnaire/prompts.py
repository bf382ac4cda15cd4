PROMPT_NEXT_QUESTION = 'Pose une question de la catégorie "{category}" en tenant compte du contexte précédent. {context}'

PROMPT_QUESTION_CONTEXT = "Catégorie: {label}. Question {number}/{max_questions}. Reste naturel et conversationnel."

PROMPT_FOLLOW_UP = "L'utilisateur a répondu: \"{answer}\". Pose une question de suivi courte pour approfondir cette réponse dans la catégorie {category}."

MESSAGE_PERSONALIZED_WELCOME = "Parfait {first_name} ! Je vais vous poser quelques questions pour mieux comprendre vos besoins. N'hésitez pas à détailler vos réponses, c'est très précieux pour nous. Commençons !"

DEFAULT_FIRST_NAME = "cher utilisateur"

MESSAGE_THANKS = "Merci beaucoup pour vos {count} réponses détaillées ! Nous avons couvert {categories} aspects importants. Vos retours sont précieux pour améliorer nos services. 🙏"

MESSAGE_SESSION_SUMMARY = """📊 Résumé de votre session :
• {exchanges} questions répondues
• {categories} catégories couvertes
• Durée : {minutes} minutes
• Moyenne : {average_length} caractères par réponse

Nous analyserons vos retours pour améliorer notre offre. À bientôt ! 👋"""

MESSAGE_ALREADY_COMPLETED = "Vous avez déjà complété ce questionnaire avec cet email."

MESSAGE_SESSION_NOT_ACTIVE = "Session non active"

PLACEHOLDER_SESSION_FINISHED = "Session terminée - Merci pour vos réponses !"

PLACEHOLDER_TECHNICAL_ERROR = "Erreur technique"

MESSAGE_INVALID_EMAIL = "Veuillez entrer un email valide"

LABEL_CONSENT = "J'accepte d'être recontacté(e) pour participer à de futures études"

LABEL_SUGGESTIONS = "Suggestions (tapez #1, #2... pour en choisir une) :"

MESSAGE_INIT_FAILED = "Impossible d'initialiser l'application après plusieurs tentatives : {error}"

MESSAGE_MISSING_CONFIGURATION = "Configuration manquante : {fields}"
