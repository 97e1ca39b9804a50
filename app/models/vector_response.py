from sqlalchemy import Column, DateTime, ForeignKey, JSON, String, Text
from app.database import Base
from app.models.chat import new_id, utcnow


class VectorResponse(Base):
    """A stored query/response exchange together with its embedding."""

    __tablename__ = "vector_responses"

    id = Column(String(36), primary_key=True, default=new_id)
    message_id = Column(String(36), ForeignKey("chat_messages.id"), nullable=True, index=True)
    query = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    embedding = Column(JSON, nullable=False)
    sources = Column(JSON, default=list)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)
