import logging
from typing import Any, Awaitable, Callable

import regex
from google.genai import errors, types
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from qcm.shared.constants import GEMINI_MAX_RETRIES, INVALID_UNICODE_CLEANUP_REGEX

logger = logging.getLogger(__name__)


async def invoke_model_with_retries(
    model_call: Callable[..., Awaitable[types.GenerateContentResponse]],
    max_attempts: int = GEMINI_MAX_RETRIES,
    **kwargs: Any,
) -> types.GenerateContentResponse:
    """
    Calls the model, retrying on Gemini server errors (5xx) with exponential
    backoff. Client errors are raised immediately.

    Args:
        model_call: The SDK coroutine, e.g. `client.aio.models.generate_content`.
        max_attempts: Total attempts before the last error is re-raised.
        **kwargs: Forwarded to `model_call`.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(errors.ServerError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await model_call(**kwargs)


def get_response_text(response: types.GenerateContentResponse) -> str:
    """
    Extracts the reply text from a model response, stripped of surrounding
    whitespace and invisible or unassigned code points. Returns an empty
    string when the model produced no text (e.g. blocked by safety).
    """
    try:
        text = response.text
    except (ValueError, AttributeError) as e:
        logger.warning(f"Could not read text from model response: {e}")
        return ""
    if not text:
        return ""
    return regex.sub(INVALID_UNICODE_CLEANUP_REGEX, "", text).strip()


def configure_logging(log_level: str) -> str:
    log_level = log_level.upper()
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s:%(name)s: [%(funcName)s] - %(message)s",
    )

    # httpx logs at INFO level for requests, which is noisy for production.
    # We set it to WARNING to silence it, unless we are in DEBUG mode.
    if log_level != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    return log_level
