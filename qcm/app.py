import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from rich.console import Console
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from qcm.config import Settings, settings
from qcm.database.db import AsyncSessionFactory, engine
from qcm.questionnaire.controller import QuestionnaireController
from qcm.questionnaire.prompts import MESSAGE_INIT_FAILED, MESSAGE_MISSING_CONFIGURATION
from qcm.questionnaire.ui import ChatUI
from qcm.services.local_store import LocalStore
from qcm.services.proxy_client import ProxyClient
from qcm.services.session_store import SessionStore
from qcm.shared.constants import (
    APP_VERSION,
    INIT_RETRY_WAIT_SECONDS,
    MAX_INIT_ATTEMPTS,
)
from qcm.shared.enums import StorageKey
from qcm.shared.exceptions import ConfigurationError, ProxyError, QcmError
from qcm.shared.utils.functions import configure_logging

logger = logging.getLogger(__name__)


class QcmApp:
    """
    Wires the survey client together: local store, database session store,
    proxy client, chat UI and questionnaire controller. Initialization is
    retried a few times before a fatal screen is shown.
    """

    def __init__(
        self,
        app_settings: Settings = settings,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionFactory,
        db_engine: AsyncEngine = engine,
        http_client: Optional[httpx.AsyncClient] = None,
        console: Optional[Console] = None,
        max_init_attempts: int = MAX_INIT_ATTEMPTS,
        init_retry_wait: float = INIT_RETRY_WAIT_SECONDS,
    ):
        self.settings = app_settings
        self.max_init_attempts = max_init_attempts
        self.init_retry_wait = init_retry_wait
        self.is_initialized = False
        self._db_engine = db_engine
        self._background_tasks: set[asyncio.Task] = set()

        self.local_store = LocalStore(app_settings.LOCAL_STORE_PATH)
        self.session_store = SessionStore(session_factory, self.local_store)
        self.proxy_client = ProxyClient(
            app_settings.WORKER_URL,
            self.local_store,
            http_client=http_client,
            origin=app_settings.CLIENT_ORIGIN,
        )
        self.ui = ChatUI(console=console)
        self.controller = QuestionnaireController(
            self.session_store, self.proxy_client, self.ui, self.local_store
        )
        self.ui.bind(self.controller)

    def validate_config(self) -> None:
        missing = self.settings.missing_client_fields()
        if missing:
            raise ConfigurationError(
                MESSAGE_MISSING_CONFIGURATION.format(fields=", ".join(missing))
            )

    async def _initialize_once(self) -> None:
        self.validate_config()
        await self.controller.init()

    async def init(self) -> bool:
        """
        Initializes every component, then shows either the resumed chat or
        the email form. Returns False when the fatal screen was shown.
        """
        logger.info(f"Initializing QCM application v{APP_VERSION}")
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_init_attempts),
                wait=wait_fixed(self.init_retry_wait),
                retry=retry_if_exception_type(QcmError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    await self._initialize_once()
        except QcmError as e:
            logger.error(f"Initialization failed after {self.max_init_attempts} attempts: {e}")
            if isinstance(e, ProxyError):
                self.ui.set_connection_status(False)
            self.ui.show_fatal_error(MESSAGE_INIT_FAILED.format(error=e))
            return False

        self.is_initialized = True
        self.ui.set_connection_status(True)

        if self.controller.is_active:
            self.ui.progress = self.controller.question_count
            self.ui.show_chat_interface()
            await self.controller.resume_conversation()
        else:
            self.ui.show_email_form()

        logger.info("QCM application initialized")
        return True

    async def handle_global_error(self, error: BaseException) -> None:
        logger.error(f"Unhandled error: {error}", exc_info=error)
        if self.controller.is_active:
            await self.controller.handle_emergency_stop(str(error))
        else:
            self.ui.show_fatal_error(str(error))

    def _handle_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        error = context.get("exception") or RuntimeError(context.get("message"))
        task = loop.create_task(self.handle_global_error(error))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def save_state(self) -> None:
        self.local_store.set_item(
            StorageKey.APP_STATE,
            {
                "session_info": self.controller.get_session_info().model_dump(),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    async def cleanup(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        await self.proxy_client.aclose()
        await self._db_engine.dispose()

    def get_app_info(self) -> dict[str, Any]:
        return {
            "version": APP_VERSION,
            "is_initialized": self.is_initialized,
            "session_info": self.controller.get_session_info().model_dump(),
            "worker_url": self.settings.WORKER_URL,
            "local_store_path": str(self.settings.LOCAL_STORE_PATH),
        }

    async def run(self) -> int:
        asyncio.get_running_loop().set_exception_handler(self._handle_loop_exception)
        try:
            if not await self.init():
                return 1
            try:
                await self.ui.run()
            except Exception as e:
                await self.handle_global_error(e)
                return 1
            return 0
        finally:
            self.save_state()
            await self.cleanup()


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    app = QcmApp()
    try:
        exit_code = asyncio.run(app.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
