from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from .db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QcmSession(Base):
    """
    One respondent's questionnaire session, keyed by an opaque session id.
    """

    __tablename__ = "qcm_sessions"

    session_id = Column(String, primary_key=True, index=True)
    email = Column(String, nullable=False, index=True)
    consent_recontact = Column(Boolean, default=False, nullable=False)
    questions_count = Column(Integer, default=0, nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)
    final_feedback = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class QcmResponse(Base):
    """
    A question shown to the respondent and the raw answer given. Rows are
    only ever inserted.
    """

    __tablename__ = "qcm_responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        String, ForeignKey("qcm_sessions.session_id"), nullable=False, index=True
    )
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    category = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
