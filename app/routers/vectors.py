import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.vector_response import VectorResponse
from app.services import llm_service, rag_service
from app.services.mcp_client import MCPClient, get_mcp_client
from app.services.vector_store import get_vector_store
from app.services.vector_stores.base import VectorStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["vectors"])


class SearchRequest(BaseModel):
    query: Optional[str] = None
    threshold: float = 0.7
    limit: int = 10


class SimilarResponseItem(BaseModel):
    id: str
    query: str
    response: str
    sources: List[str]
    similarity: float
    timestamp: str


class StoredExchange(BaseModel):
    id: str
    messageId: Optional[str] = None
    query: str
    response: str
    sources: List[str]
    timestamp: str


@router.post("/search-similar", response_model=List[SimilarResponseItem])
async def search_similar(request: SearchRequest, store: VectorStore = Depends(get_vector_store)):
    """Search stored exchanges similar to a free-text query."""
    if not request.query or not request.query.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Query is required")

    try:
        return await rag_service.search_similar(store, request.query, request.threshold, request.limit)
    except Exception:
        logger.exception("Error searching similar responses")
        raise HTTPException(status_code=500, detail="Failed to search similar responses")


@router.get("/vector-responses", response_model=List[StoredExchange])
async def list_vector_responses(db: Session = Depends(get_db)):
    """Stored exchanges, newest first."""
    rows = db.query(VectorResponse).order_by(VectorResponse.timestamp.desc()).all()
    return [
        {
            "id": row.id,
            "messageId": row.message_id,
            "query": row.query,
            "response": row.response,
            "sources": list(row.sources or []),
            "timestamp": row.timestamp.isoformat(),
        }
        for row in rows
    ]


@router.get("/status")
async def connection_status(
    store: VectorStore = Depends(get_vector_store),
    mcp: MCPClient = Depends(get_mcp_client),
):
    return {
        "vectorStore": bool(store.connected),
        "vectorStoreBackend": store.name,
        "mcp": bool(mcp.connected),
        "openai": await llm_service.check_connection(),
    }


@router.get("/stats")
async def database_stats(db: Session = Depends(get_db), store: VectorStore = Depends(get_vector_store)):
    try:
        return await rag_service.collection_stats(db, store)
    except Exception:
        logger.exception("Error fetching stats")
        raise HTTPException(status_code=500, detail="Failed to fetch stats")


@router.delete("/clear-database")
async def clear_database(db: Session = Depends(get_db), store: VectorStore = Depends(get_vector_store)):
    try:
        await rag_service.clear_vector_database(db, store)
    except Exception:
        logger.exception("Error clearing database")
        raise HTTPException(status_code=500, detail="Failed to clear database")
    return {"message": "Database cleared successfully"}
