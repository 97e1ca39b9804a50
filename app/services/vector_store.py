import logging
from typing import Optional

from app import config
from app.database import SessionLocal
from app.services.vector_stores.base import VectorStore
from app.services.vector_stores.memory import InMemoryVectorStore

logger = logging.getLogger(__name__)

BACKENDS = ("memory", "milvus", "qdrant", "pinecone", "pgvector")

_store: Optional[VectorStore] = None


def create_vector_store(backend: Optional[str] = None) -> VectorStore:
    """Build the backend named by ``VECTOR_STORE``."""
    backend = (backend or config.VECTOR_STORE).lower()

    if backend == "memory":
        return InMemoryVectorStore(session_factory=SessionLocal)
    if backend == "milvus":
        from app.services.vector_stores.milvus import MilvusVectorStore
        return MilvusVectorStore(fallback=InMemoryVectorStore(session_factory=SessionLocal))
    if backend == "qdrant":
        from app.services.vector_stores.qdrant import QdrantVectorStore
        return QdrantVectorStore()
    if backend == "pinecone":
        from app.services.vector_stores.pinecone import PineconeVectorStore
        return PineconeVectorStore()
    if backend == "pgvector":
        from app.services.vector_stores.pgvector import PgVectorStore
        return PgVectorStore(session_factory=SessionLocal)

    raise ValueError(f"Unknown VECTOR_STORE '{backend}', expected one of: {', '.join(BACKENDS)}")


def get_vector_store() -> VectorStore:
    global _store
    if _store is None:
        _store = create_vector_store()
    return _store


async def connect_vector_store() -> VectorStore:
    """Connect the configured store; a failed connection is logged, not raised."""
    store = get_vector_store()
    try:
        await store.connect()
    except Exception as e:
        logger.error("Vector store '%s' initialization error: %s", store.name, e)
    return store
