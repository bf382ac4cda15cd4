from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional

from qcm.shared.enums import InteractionType


class HealthResponse(BaseModel):
    status: str
    upstream: str


class TranscriptEntry(BaseModel):
    role: InteractionType
    message: str
    category: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ProxyRequest(BaseModel):
    message: str
    conversationHistory: Optional[str] = None
    category: Optional[str] = None
    sessionId: Optional[str] = None


class ProxyResponse(BaseModel):
    message: str
    category: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ErrorResponse(BaseModel):
    error: str
    message: Optional[str] = None


class AIReply(BaseModel):
    message: str
    category: Optional[str] = None
    timestamp: datetime
    suggested_questions: List[str] = []


class SessionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    questions_count: int
    is_completed: bool


class QuestionAnswer(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question: str
    answer: str
    category: Optional[str] = None
    created_at: datetime


class ConversationStats(BaseModel):
    total_exchanges: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    categories_covered: List[str] = []
    category_distribution: Dict[str, int] = {}
    average_message_length: float = 0.0


class SessionInfo(BaseModel):
    session_id: Optional[str] = None
    state: str
    is_active: bool
    question_count: int
    max_questions: int
    current_category: Optional[str] = None
    session_start_time: Optional[float] = None
    email: Optional[str] = None
