import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.chat import ChatMessage
from app.services import rag_service
from app.services.mcp_client import MCPClient, get_mcp_client
from app.services.vector_store import get_vector_store
from app.services.vector_stores.base import VectorStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["messages"])


class ChatMessageResponse(BaseModel):
    id: str
    content: str
    role: str
    timestamp: str
    savedToVector: bool
    sources: List[str]
    similarityScore: Optional[float] = None


class SendMessageRequest(BaseModel):
    content: Optional[str] = None
    saveToVector: bool = False
    userDecision: Optional[bool] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    maxTokens: Optional[int] = None


class VectorSaveRequest(BaseModel):
    saveToVector: bool


def serialize_message(message: ChatMessage) -> dict:
    return {
        "id": message.id,
        "content": message.content,
        "role": message.role,
        "timestamp": message.timestamp.isoformat(),
        "savedToVector": bool(message.saved_to_vector),
        "sources": list(message.sources or []),
        "similarityScore": message.similarity_score,
    }


@router.get("", response_model=List[ChatMessageResponse])
async def list_messages(limit: int = Query(50, ge=1), db: Session = Depends(get_db)):
    """Most recent messages, oldest first."""
    try:
        return [serialize_message(m) for m in rag_service.get_recent_messages(db, limit)]
    except Exception:
        logger.exception("Error fetching messages")
        raise HTTPException(status_code=500, detail="Failed to fetch messages")


@router.post("")
async def send_message(
    request: SendMessageRequest,
    db: Session = Depends(get_db),
    store: VectorStore = Depends(get_vector_store),
    mcp: MCPClient = Depends(get_mcp_client),
):
    """Send a user message and get the assistant's reply."""
    if not request.content or not request.content.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Content is required")

    try:
        turn = await rag_service.process_message(
            db,
            store,
            mcp,
            request.content,
            save_to_vector=request.saveToVector,
            user_decision=request.userDecision,
            model=request.model,
            temperature=request.temperature,
            max_tokens=request.maxTokens,
        )
    except Exception:
        logger.exception("Error processing message")
        raise HTTPException(status_code=500, detail="Failed to process message")

    return {
        "userMessage": serialize_message(turn.user_message),
        "assistantMessage": serialize_message(turn.assistant_message),
        "sources": turn.sources,
        "memoryDecision": turn.memory_decision.to_dict() if turn.memory_decision else None,
    }


@router.delete("")
async def clear_messages(db: Session = Depends(get_db)):
    """Delete the chat history. Stored exchanges are kept."""
    try:
        deleted = rag_service.clear_chat_history(db)
    except Exception:
        logger.exception("Error clearing messages")
        raise HTTPException(status_code=500, detail="Failed to clear messages")
    return {"message": "Chat history cleared", "deleted": deleted}


@router.patch("/{message_id}/vector-save", response_model=ChatMessageResponse)
async def update_vector_save(
    message_id: str,
    request: VectorSaveRequest,
    db: Session = Depends(get_db),
    store: VectorStore = Depends(get_vector_store),
):
    """Mark a message as saved (or no longer saved) to long-term memory."""
    try:
        message = await rag_service.set_vector_saved(db, store, message_id, request.saveToVector)
    except Exception:
        logger.exception("Error updating message %s", message_id)
        raise HTTPException(status_code=500, detail="Failed to update message")

    if not message:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return serialize_message(message)
