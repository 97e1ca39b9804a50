import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app import config
from app.models.chat import ChatMessage
from app.models.vector_response import VectorResponse
from app.services import llm_service, settings_service
from app.services.llm_service import PreviousExchange
from app.services.mcp_client import MCPClient
from app.services.memory_evaluator import AUTO_SAVE, SKIP, MemoryDecision, evaluate_memory_value
from app.services.vector_stores.base import VectorRecord, VectorStore
from app.utils.time_utils import time_ago

logger = logging.getLogger(__name__)


@dataclass
class ChatTurn:
    user_message: ChatMessage
    assistant_message: ChatMessage
    sources: List[Dict[str, Any]]
    memory_decision: Optional[MemoryDecision]


def resolve_save_decision(
    decision: MemoryDecision,
    save_to_vector: bool,
    user_decision: Optional[bool],
) -> bool:
    """An explicit user decision wins; otherwise follow the evaluator.

    ``prompt_user`` leaves the request's own ``saveToVector`` flag in charge
    until the user answers the suggestion.
    """
    if user_decision is not None:
        return bool(user_decision)
    if decision.action == AUTO_SAVE:
        return True
    if decision.action == SKIP:
        return False
    return bool(save_to_vector)


async def find_previous_exchanges(store: VectorStore, query: str) -> List[PreviousExchange]:
    """Earlier exchanges similar to ``query``; empty when anything fails."""
    try:
        query_embedding = await llm_service.get_embedding(query)
        matches = await store.search(
            query_embedding,
            threshold=config.CONTEXT_SIMILARITY_THRESHOLD,
            limit=config.CONTEXT_LIMIT,
        )
    except Exception as e:
        logger.warning("Similar exchange lookup failed, continuing without context: %s", e)
        return []

    return [PreviousExchange(query=m["query"], response=m["response"]) for m in matches]


async def store_exchange(
    db: Session,
    store: VectorStore,
    message_id: Optional[str],
    query: str,
    response: str,
    embedding: List[float],
    sources: List[str],
) -> VectorResponse:
    """Persist the exchange row, then push its vector to the store.

    The row only survives a successful store write, so a failed save can be
    retried by saving the message again.
    """
    vector_response = VectorResponse(
        message_id=message_id,
        query=query,
        response=response,
        embedding=embedding,
        sources=sources or [],
    )
    db.add(vector_response)
    db.commit()
    db.refresh(vector_response)

    try:
        await store.insert(
            VectorRecord(
                id=vector_response.id,
                query=query,
                response=response,
                embedding=embedding,
                sources=list(sources or []),
                timestamp=vector_response.timestamp.isoformat(),
            )
        )
    except Exception:
        db.rollback()
        db.delete(vector_response)
        db.commit()
        raise
    return vector_response


async def process_message(
    db: Session,
    store: VectorStore,
    mcp: MCPClient,
    content: str,
    save_to_vector: bool = False,
    user_decision: Optional[bool] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> ChatTurn:
    """Run one chat turn: retrieve, generate, evaluate, and maybe remember."""
    user_message = ChatMessage(content=content, role="user", saved_to_vector=False, sources=[])
    db.add(user_message)
    db.commit()
    db.refresh(user_message)

    mcp_response = await mcp.retrieve_context(content)
    previous = await find_previous_exchanges(store, content)

    options = settings_service.generation_options(
        settings_service.get_all_settings(),
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
    )
    ai_response = await llm_service.generate_chat_response(
        content,
        previous,
        mcp_response["context"],
        **options,
    )

    decision = await evaluate_memory_value(
        content,
        ai_response.content,
        mcp_response["context"],
        model=options["model"],
    )
    should_save = resolve_save_decision(decision, save_to_vector, user_decision)

    assistant_message = ChatMessage(
        content=ai_response.content,
        role="assistant",
        saved_to_vector=should_save,
        sources=ai_response.sources,
    )
    db.add(assistant_message)
    db.commit()
    db.refresh(assistant_message)

    if should_save:
        try:
            await store_exchange(
                db,
                store,
                assistant_message.id,
                content,
                ai_response.content,
                ai_response.embedding,
                ai_response.sources,
            )
        except Exception as e:
            db.rollback()
            logger.error("Error saving to vector database: %s", e)

    return ChatTurn(
        user_message=user_message,
        assistant_message=assistant_message,
        sources=mcp_response["sources"],
        memory_decision=decision if user_decision is None else None,
    )


def preceding_message(db: Session, message: ChatMessage) -> Optional[ChatMessage]:
    return db.query(ChatMessage).filter(
        ChatMessage.timestamp < message.timestamp
    ).order_by(
        ChatMessage.timestamp.desc()
    ).first()


async def set_vector_saved(
    db: Session,
    store: VectorStore,
    message_id: str,
    save: bool,
) -> Optional[ChatMessage]:
    """Flip the save flag and keep the vector store in step, best-effort.

    Returns None when the message does not exist.
    """
    message = db.query(ChatMessage).filter(ChatMessage.id == message_id).first()
    if not message:
        return None

    message.saved_to_vector = bool(save)
    db.commit()
    db.refresh(message)

    if save and message.role == "assistant":
        already_saved = db.query(VectorResponse).filter(VectorResponse.message_id == message.id).first()
        user_message = preceding_message(db, message)
        if already_saved is None and user_message is not None and user_message.role == "user":
            try:
                embedding = await llm_service.get_embedding(message.content)
                await store_exchange(
                    db,
                    store,
                    message.id,
                    user_message.content,
                    message.content,
                    embedding,
                    message.sources or [],
                )
            except Exception as e:
                db.rollback()
                logger.error("Error saving message %s to vector database: %s", message.id, e)

    elif not save:
        stored = db.query(VectorResponse).filter(VectorResponse.message_id == message.id).all()
        for vector_response in stored:
            try:
                await store.delete(vector_response.id)
            except Exception as e:
                logger.error("Error deleting vector %s: %s", vector_response.id, e)
            db.delete(vector_response)
        db.commit()

    return message


async def search_similar(store: VectorStore, query: str, threshold: float = 0.7, limit: int = 10) -> List[Dict[str, Any]]:
    query_embedding = await llm_service.get_embedding(query)
    return await store.search(query_embedding, threshold, limit)


async def clear_vector_database(db: Session, store: VectorStore) -> None:
    await store.clear()
    db.query(VectorResponse).delete()
    db.commit()


def clear_chat_history(db: Session) -> int:
    """Delete all chat messages; stored exchanges survive without their message link."""
    db.query(VectorResponse).update({VectorResponse.message_id: None})
    deleted = db.query(ChatMessage).delete()
    db.commit()
    return deleted


def get_recent_messages(db: Session, limit: int = 50) -> List[ChatMessage]:
    messages = db.query(ChatMessage).order_by(
        ChatMessage.timestamp.desc()
    ).limit(limit).all()
    # Oldest first for display
    messages.reverse()
    return messages


async def collection_stats(db: Session, store: VectorStore, now: Optional[datetime] = None) -> Dict[str, Any]:
    stats = dict(await store.stats())
    last = get_recent_messages(db, limit=1)
    stats["lastUpdated"] = time_ago(last[0].timestamp, now or datetime.now(timezone.utc)) if last else "Never"
    return stats
