import asyncio
import enum
import logging
from typing import TYPE_CHECKING, Optional, Union

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.prompt import Confirm
from rich.status import Status

from qcm.questionnaire.prompts import (
    LABEL_CONSENT,
    LABEL_SUGGESTIONS,
    MESSAGE_INVALID_EMAIL,
)
from qcm.shared.constants import MAX_MESSAGE_LENGTH, MAX_QUESTIONS_PER_SESSION
from qcm.shared.enums import InteractionType
from qcm.shared.exceptions import MessageTooLong, QcmError, SessionNotActive
from qcm.shared.prompts import (
    MESSAGE_EMAIL_REQUEST,
    MESSAGE_SEND_ERROR,
    MESSAGE_WELCOME,
)
from qcm.shared.utils.validations import is_valid_email

if TYPE_CHECKING:
    from qcm.questionnaire.controller import QuestionnaireController

logger = logging.getLogger(__name__)


class Screen(str, enum.Enum):
    EMAIL = "email"
    CHAT = "chat"
    FATAL = "fatal"


class ChatUI:
    """
    Terminal chat window: email form, message log, suggestion hints and a
    progress bar. User actions are forwarded to the questionnaire controller.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        max_questions: int = MAX_QUESTIONS_PER_SESSION,
        max_message_length: int = MAX_MESSAGE_LENGTH,
    ):
        self.console = console or Console()
        self.max_questions = max_questions
        self.max_message_length = max_message_length
        self.controller: Optional["QuestionnaireController"] = None

        self.screen = Screen.EMAIL
        self.messages: list[tuple[InteractionType, str]] = []
        self.suggestions: list[str] = []
        self.input_enabled = True
        self.input_placeholder = ""
        self.is_typing = False
        self.is_online = True
        self.progress = 0
        self._status: Optional[Status] = None

    def bind(self, controller: "QuestionnaireController") -> None:
        self.controller = controller

    # Email form

    def show_email_form(self) -> None:
        self.screen = Screen.EMAIL
        self.console.rule("[bold]QCM[/bold]")
        self.add_bot_message(MESSAGE_WELCOME)
        self.add_bot_message(MESSAGE_EMAIL_REQUEST)

    def validate_email(self, email: str) -> bool:
        return is_valid_email(email.strip())

    def show_email_error(self, message: str) -> None:
        self.console.print(f"[red]{escape(message)}[/red]")

    async def handle_email_submit(self, email: str, consent: bool = False) -> bool:
        """
        Returns True once a session is running and the chat is shown.
        """
        email = email.strip()
        if not self.validate_email(email):
            self.show_email_error(MESSAGE_INVALID_EMAIL)
            return False

        self.show_typing_indicator()
        try:
            await self.controller.start_session(email, consent)
        except QcmError as e:
            logger.warning(f"Could not start session: {e}")
            self.show_email_error(str(e))
            return False
        finally:
            self.hide_typing_indicator()

        self.show_chat_interface()
        return True

    # Chat

    def show_chat_interface(self) -> None:
        self.screen = Screen.CHAT
        self.show_progress_bar()

    async def handle_send_message(self, text: str) -> None:
        message = text.strip()
        if not message or not self.input_enabled:
            return

        if len(message) > self.max_message_length:
            self.show_message_error(str(MessageTooLong(self.max_message_length)))
            return

        self.add_user_message(message)
        self.suggestions = []

        self.show_typing_indicator()
        try:
            await self.controller.process_answer(message)
        except SessionNotActive as e:
            self.show_message_error(str(e))
        except QcmError as e:
            logger.error(f"Error sending message: {e}")
            self.show_message_error(MESSAGE_SEND_ERROR)
        finally:
            self.hide_typing_indicator()

    async def handle_suggestion_click(self, choice: Union[int, str]) -> None:
        if isinstance(choice, int):
            if not 0 <= choice < len(self.suggestions):
                self.show_message_error(f"Suggestion #{choice + 1} inconnue")
                return
            choice = self.suggestions[choice]
        await self.handle_send_message(choice)

    def add_user_message(self, message: str) -> None:
        # Typed input is already on screen.
        self.messages.append((InteractionType.USER, message))

    def add_bot_message(
        self, message: str, suggested_questions: Optional[list[str]] = None
    ) -> None:
        self.messages.append((InteractionType.ASSISTANT, message))
        self.console.print(f"[bold cyan]QCM >[/bold cyan] {escape(message)}")

        self.suggestions = list(suggested_questions or [])
        if self.suggestions:
            self.console.print(f"[dim]{LABEL_SUGGESTIONS}[/dim]")
            for i, suggestion in enumerate(self.suggestions, start=1):
                self.console.print(f"  [dim]#{i}[/dim] {escape(suggestion)}")

    def get_last_bot_message(self) -> Optional[str]:
        for role, message in reversed(self.messages):
            if role == InteractionType.ASSISTANT:
                return message
        return None

    def show_typing_indicator(self) -> None:
        self.is_typing = True
        if self.console.is_terminal and self._status is None:
            self._status = self.console.status("[dim]L'assistant écrit...[/dim]")
            self._status.start()

    def hide_typing_indicator(self) -> None:
        self.is_typing = False
        if self._status is not None:
            self._status.stop()
            self._status = None

    def show_message_error(self, message: str) -> None:
        self.console.print(f"[yellow]{escape(message)}[/yellow]")

    def disable_input(self, placeholder: str = "") -> None:
        self.input_enabled = False
        self.input_placeholder = placeholder
        if placeholder:
            self.console.print(f"[dim]{escape(placeholder)}[/dim]")

    # Progress

    def show_progress_bar(self) -> None:
        self.update_progress(self.progress, self.max_questions)

    def update_progress(self, current: int, total: int) -> None:
        self.progress = current
        self.max_questions = total
        self.console.print(
            ProgressBar(total=total, completed=current, width=30),
            f"[dim]Question {current}/{total}[/dim]",
        )

    # Application level

    def show_fatal_error(self, message: str) -> None:
        self.screen = Screen.FATAL
        self.input_enabled = False
        self.hide_typing_indicator()
        self.console.print(
            Panel(escape(message), title="Erreur", border_style="red")
        )

    def set_connection_status(self, online: bool) -> None:
        if online != self.is_online:
            self.console.print(
                "[green]Connexion rétablie[/green]"
                if online
                else "[red]Connexion perdue[/red]"
            )
        self.is_online = online

    def reset(self) -> None:
        self.hide_typing_indicator()
        self.screen = Screen.EMAIL
        self.messages = []
        self.suggestions = []
        self.input_enabled = True
        self.input_placeholder = ""
        self.progress = 0

    async def _prompt(self, label: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self.console.input, f"[bold]{label}[/bold] ")
        except EOFError:
            return None

    async def run(self) -> None:
        """
        Reads user input until the session ends, input is closed or a fatal
        error is shown. `#n` sends the n-th suggestion.
        """
        while self.screen != Screen.FATAL:
            if self.screen == Screen.EMAIL:
                email = await self._prompt("Email :")
                if email is None:
                    break
                consent = await asyncio.to_thread(
                    Confirm.ask, LABEL_CONSENT, console=self.console, default=False
                )
                await self.handle_email_submit(email, consent)
                continue

            if not self.input_enabled:
                break

            text = await self._prompt("Vous :")
            if text is None:
                break

            text = text.strip()
            if text.startswith("#") and text[1:].isdigit():
                await self.handle_suggestion_click(int(text[1:]) - 1)
            else:
                await self.handle_send_message(text)
