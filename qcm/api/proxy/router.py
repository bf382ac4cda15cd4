import json
import logging
from typing import Optional

import google.genai as genai
from fastapi import APIRouter, Request, Response
from google.genai import errors, types
from pydantic import ValidationError

from qcm.api.proxy.rate_limiter import FixedWindowRateLimiter
from qcm.shared.constants import (
    CORS_HEADERS,
    EDGE_MAX_MESSAGE_LENGTH,
    GEMINI_MAX_OUTPUT_TOKENS,
    GEMINI_TEMPERATURE,
    GEMINI_TOP_K,
    GEMINI_TOP_P,
)
from qcm.shared.exceptions import (
    InvalidRequest,
    MethodNotAllowed,
    OriginRejected,
    RateLimited,
    UpstreamError,
)
from qcm.shared.prompts import MESSAGE_INTERNAL_ERROR, QCM_SYSTEM_PROMPT
from qcm.shared.schemas import ProxyRequest, ProxyResponse
from qcm.shared.utils.functions import get_response_text, invoke_model_with_retries
from qcm.shared.utils.history import get_genai_contents
from qcm.shared.utils.validations import detect_question_category

router = APIRouter()
logger = logging.getLogger(__name__)

SAFETY_SETTINGS = [
    types.SafetySetting(
        category=category,
        threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    )
    for category in (
        types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
    )
]


def is_origin_allowed(origin: Optional[str], allowed_origins: list[str]) -> bool:
    if not origin:
        return False
    return any(allowed == "*" or origin == allowed for allowed in allowed_origins)


def get_client_ip(request: Request) -> str:
    """
    Client address as reported by the edge network, falling back to the
    socket peer.
    """
    forwarded = request.headers.get("CF-Connecting-IP")
    if forwarded:
        return forwarded.strip()
    return request.client.host if request.client else "unknown"


async def _read_proxy_request(request: Request) -> ProxyRequest:
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequest("Invalid JSON body")

    if not isinstance(data, dict):
        raise InvalidRequest("Invalid JSON body")

    message = data.get("message")
    if not message or not isinstance(message, str):
        raise InvalidRequest("Message is required and must be a string")

    if len(message) > EDGE_MAX_MESSAGE_LENGTH:
        raise InvalidRequest(
            f"Message too long. Maximum {EDGE_MAX_MESSAGE_LENGTH} characters."
        )

    try:
        return ProxyRequest.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Rejected malformed proxy request: {e}")
        raise InvalidRequest("Invalid request fields")


async def call_gemini(
    client: Optional[genai.Client], model: str, proxy_request: ProxyRequest
) -> ProxyResponse:
    """
    Forwards the message and its short context to Gemini with the survey
    system instruction, then tags the reply with a best-guess category.
    """
    if client is None:
        logger.error("GEMINI_API_KEY not configured")
        raise UpstreamError("Internal server error", MESSAGE_INTERNAL_ERROR)

    config = types.GenerateContentConfig(
        system_instruction=QCM_SYSTEM_PROMPT,
        temperature=GEMINI_TEMPERATURE,
        top_k=GEMINI_TOP_K,
        top_p=GEMINI_TOP_P,
        max_output_tokens=GEMINI_MAX_OUTPUT_TOKENS,
        safety_settings=SAFETY_SETTINGS,
    )

    try:
        response = await invoke_model_with_retries(
            client.aio.models.generate_content,
            model=model,
            contents=get_genai_contents(
                proxy_request.message, proxy_request.conversationHistory
            ),
            config=config,
        )
    except errors.APIError as e:
        logger.error(f"Gemini API Error: {e}")
        raise UpstreamError("Internal server error", MESSAGE_INTERNAL_ERROR)

    reply_text = get_response_text(response)
    if not reply_text:
        logger.error("Invalid response from Gemini API: no text candidate")
        raise UpstreamError("Internal server error", MESSAGE_INTERNAL_ERROR)

    return ProxyResponse(
        message=reply_text,
        category=detect_question_category(reply_text),
    )


@router.options("/")
async def preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@router.api_route("/", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def handle_proxy(request: Request):
    """
    Proxies one survey message to the model. Checks run in order: origin,
    rate limit, method, then body validation, so rejected requests never
    reach the upstream model.
    """
    settings = request.app.state.settings
    rate_limiter: FixedWindowRateLimiter = request.app.state.rate_limiter

    origin = request.headers.get("Origin")
    if not is_origin_allowed(origin, settings.ALLOWED_ORIGINS):
        logger.warning(f"Rejected request from origin: {origin}")
        raise OriginRejected("Origin not allowed")

    client_ip = get_client_ip(request)
    if not rate_limiter.is_allowed(client_ip):
        logger.warning(f"Rate limit exceeded for {client_ip}")
        raise RateLimited("Rate limit exceeded. Please try again later.")

    if request.method != "POST":
        raise MethodNotAllowed("Method not allowed")

    proxy_request = await _read_proxy_request(request)

    session_id = request.headers.get("X-Session-ID") or proxy_request.sessionId
    logger.info(
        f"Proxying message for session {session_id} (category: {proxy_request.category})"
    )

    proxy_response = await call_gemini(
        request.app.state.genai_client, settings.GEMINI_MODEL, proxy_request
    )

    return Response(
        content=proxy_response.model_dump_json(),
        media_type="application/json",
        headers=CORS_HEADERS,
    )
