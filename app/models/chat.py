import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, JSON, String, Text
from app.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    content = Column(Text, nullable=False)
    role = Column(String(20), nullable=False)  # 'user' or 'assistant'
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    saved_to_vector = Column(Boolean, default=False, nullable=False)
    sources = Column(JSON, default=list)
    similarity_score = Column(Float, nullable=True)
