import json
import logging
from typing import Any

from google.genai import types
from pydantic import ValidationError

from qcm.shared.constants import CONTEXT_WINDOW_ENTRIES, TRANSCRIPT_MAX_ENTRIES
from qcm.shared.prompts import NO_PREVIOUS_CONVERSATION, PROMPT_CONVERSATION_CONTEXT
from qcm.shared.schemas import TranscriptEntry

logger = logging.getLogger(__name__)


def cap_transcript(
    transcript: list[TranscriptEntry], max_entries: int = TRANSCRIPT_MAX_ENTRIES
) -> list[TranscriptEntry]:
    """Keeps only the most recent `max_entries` entries."""
    if len(transcript) > max_entries:
        return transcript[-max_entries:]
    return transcript


def build_history_context(
    transcript: list[TranscriptEntry], window: int = CONTEXT_WINDOW_ENTRIES
) -> str:
    """
    Renders the last `window` transcript entries as `role: message` lines,
    the context format the edge proxy forwards to the model.
    """
    return "\n".join(
        f"{entry.role.value}: {entry.message}" for entry in transcript[-window:]
    )


def serialize_transcript(transcript: list[TranscriptEntry]) -> str:
    return json.dumps([entry.model_dump(mode="json") for entry in transcript])


def deserialize_transcript(raw: Any) -> list[TranscriptEntry]:
    """
    Loads a transcript persisted by `serialize_transcript`. Accepts the JSON
    string or an already decoded list; malformed entries are dropped.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        raw = json.loads(raw)

    transcript = []
    for item in raw:
        try:
            transcript.append(TranscriptEntry.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Dropping malformed transcript entry {item!r}: {e}")
    return transcript


def get_genai_contents(message: str, conversation_history: str | None) -> list[types.Content]:
    """
    Builds the single user turn sent upstream: the short context supplied
    by the client followed by the new message.
    """
    text = PROMPT_CONVERSATION_CONTEXT.format(
        history=conversation_history or NO_PREVIOUS_CONVERSATION,
        message=message,
    )
    return [types.Content(role="user", parts=[types.Part(text=text)])]
