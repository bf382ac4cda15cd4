"""Tests for the terminal chat UI"""

from qcm.questionnaire.ui import ChatUI, Screen
from qcm.shared.enums import InteractionType
from qcm.shared.prompts import MESSAGE_EMAIL_REQUEST

DETAILED_ANSWER = "Nous utilisons surtout des tableurs partagés"


def output(console) -> str:
    return console.file.getvalue()


def test_email_form(chat_ui, console):
    chat_ui.show_email_form()
    assert chat_ui.screen == Screen.EMAIL
    assert chat_ui.get_last_bot_message() == MESSAGE_EMAIL_REQUEST
    assert "votre email" in output(console)


def test_bot_message_with_suggestions(chat_ui, console):
    chat_ui.add_bot_message("Quel est votre âge ?", ["Suggestion A", "Suggestion B"])
    text = output(console)
    assert "Quel est votre âge ?" in text
    assert "#1 Suggestion A" in text
    assert "#2 Suggestion B" in text
    assert chat_ui.suggestions == ["Suggestion A", "Suggestion B"]


def test_markup_in_messages_is_escaped(chat_ui, console):
    chat_ui.add_bot_message("[bold]pas du markup[/bold]")
    assert "[bold]pas du markup[/bold]" in output(console)


def test_last_bot_message_skips_user_messages(chat_ui):
    assert chat_ui.get_last_bot_message() is None
    chat_ui.add_bot_message("Question")
    chat_ui.add_user_message("Réponse")
    assert chat_ui.get_last_bot_message() == "Question"
    assert chat_ui.messages[-1] == (InteractionType.USER, "Réponse")


def test_progress(chat_ui, console):
    chat_ui.update_progress(3, 10)
    assert chat_ui.progress == 3
    assert "Question 3/10" in output(console)


def test_disable_input(chat_ui, console):
    chat_ui.disable_input("Session terminée")
    assert not chat_ui.input_enabled
    assert "Session terminée" in output(console)


def test_fatal_error(chat_ui, console):
    chat_ui.show_fatal_error("Configuration manquante : WORKER_URL")
    assert chat_ui.screen == Screen.FATAL
    assert not chat_ui.input_enabled
    assert "WORKER_URL" in output(console)


def test_connection_status_reports_changes_only(chat_ui, console):
    chat_ui.set_connection_status(True)
    assert output(console) == ""
    chat_ui.set_connection_status(False)
    assert "Connexion perdue" in output(console)
    assert not chat_ui.is_online


def test_reset(chat_ui):
    chat_ui.add_bot_message("Question", ["a"])
    chat_ui.disable_input("fin")
    chat_ui.update_progress(4, 10)

    chat_ui.reset()

    assert chat_ui.messages == []
    assert chat_ui.suggestions == []
    assert chat_ui.input_enabled
    assert chat_ui.progress == 0
    assert chat_ui.screen == Screen.EMAIL


async def test_invalid_email_submit(controller, chat_ui, console, session_store):
    assert not await chat_ui.handle_email_submit("pas un email")
    assert "email valide" in output(console)
    assert session_store.session_id is None
    assert chat_ui.screen == Screen.EMAIL


async def test_email_submit_opens_chat(controller, chat_ui, console):
    assert await chat_ui.handle_email_submit("  a@b.com ", consent=True)
    assert chat_ui.screen == Screen.CHAT
    assert controller.is_active
    assert "Question 0/10" in output(console)


async def test_duplicate_email_submit(controller, chat_ui, console, session_store):
    await session_store.create_session("a@b.com")
    await session_store.complete_session()
    session_store.clear_local_session()

    assert not await chat_ui.handle_email_submit("a@b.com")
    assert "déjà complété" in output(console)
    assert chat_ui.screen == Screen.EMAIL


async def test_send_message(controller, chat_ui, proxy_stub):
    await chat_ui.handle_email_submit("a@b.com")

    await chat_ui.handle_send_message(f"  {DETAILED_ANSWER}  ")

    assert (InteractionType.USER, DETAILED_ANSWER) in chat_ui.messages
    assert controller.question_count == 1
    assert chat_ui.progress == 1
    assert not chat_ui.is_typing
    assert len(proxy_stub.requests) == 2


async def test_long_message_is_rejected(controller, chat_ui, console, proxy_stub):
    await chat_ui.handle_email_submit("a@b.com")

    await chat_ui.handle_send_message("x" * 501)

    assert "Message trop long (max 500 caractères)" in output(console)
    assert controller.question_count == 0
    assert len(proxy_stub.requests) == 1


async def test_empty_or_disabled_input_is_ignored(controller, chat_ui, proxy_stub):
    await chat_ui.handle_email_submit("a@b.com")

    await chat_ui.handle_send_message("   ")
    chat_ui.disable_input()
    await chat_ui.handle_send_message(DETAILED_ANSWER)

    assert controller.question_count == 0
    assert len(proxy_stub.requests) == 1


async def test_send_without_session(controller, chat_ui, console):
    await chat_ui.handle_send_message(DETAILED_ANSWER)
    assert "Session non active" in output(console)


async def test_suggestion_click(controller, chat_ui, session_store):
    await chat_ui.handle_email_submit("a@b.com")
    suggestion = chat_ui.suggestions[0]

    await chat_ui.handle_suggestion_click(0)

    history = await session_store.get_conversation_history()
    assert history[0].answer == suggestion


async def test_unknown_suggestion(controller, chat_ui, console):
    await chat_ui.handle_email_submit("a@b.com")
    await chat_ui.handle_suggestion_click(7)
    assert "Suggestion #8 inconnue" in output(console)
    assert controller.question_count == 0


async def test_run_reads_email_then_answers(controller, chat_ui, session_store, monkeypatch):
    inputs = iter(["a@b.com", "#1", DETAILED_ANSWER, None])

    async def fake_prompt(label):
        return next(inputs)

    monkeypatch.setattr(chat_ui, "_prompt", fake_prompt)
    monkeypatch.setattr("qcm.questionnaire.ui.Confirm.ask", lambda *args, **kwargs: True)

    await chat_ui.run()

    assert controller.question_count == 2
    history = await session_store.get_conversation_history()
    assert history[1].answer == DETAILED_ANSWER


async def test_run_stops_when_input_disabled(controller, chat_ui, monkeypatch):
    prompts = []

    async def fake_prompt(label):
        prompts.append(label)
        return None

    monkeypatch.setattr(chat_ui, "_prompt", fake_prompt)
    chat_ui.screen = Screen.CHAT
    chat_ui.disable_input()

    await chat_ui.run()

    assert prompts == []


def test_custom_limits():
    ui = ChatUI(max_questions=5, max_message_length=20)
    assert ui.max_questions == 5
    assert ui.max_message_length == 20
