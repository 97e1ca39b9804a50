import logging
from typing import Any, Callable, Dict, List, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, MetaData, String, Table, Text, JSON, text
from sqlalchemy.orm import Session

from app import config
from app.services.vector_stores.base import VectorRecord, VectorStore

logger = logging.getLogger(__name__)

# Kept off Base.metadata so init_db() works on databases without the extension
metadata = MetaData()

response_vectors = Table(
    "response_vectors",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("query", Text, nullable=False),
    Column("response", Text, nullable=False),
    Column("embedding", Vector(config.EMBEDDING_DIM), nullable=False),
    Column("sources", JSON),
    Column("timestamp", String(50)),
)


def _vector_literal(embedding: List[float]) -> str:
    return "[" + ",".join(map(str, embedding)) + "]"


class PgVectorStore(VectorStore):
    """Vectors in Postgres, searched with the pgvector cosine distance operator."""

    name = "pgvector"

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self.connected = False

    async def connect(self) -> None:
        db = self._session_factory()
        try:
            db.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            db.commit()
            metadata.create_all(bind=db.get_bind(), tables=[response_vectors])
            self.connected = True
            logger.info("pgvector store ready")
        except Exception as e:
            db.rollback()
            logger.error("Failed to prepare pgvector store: %s", e)
            self.connected = False
            raise
        finally:
            db.close()

    async def insert(self, record: VectorRecord) -> None:
        db = self._session_factory()
        try:
            db.execute(response_vectors.delete().where(response_vectors.c.id == record.id))
            db.execute(
                response_vectors.insert().values(
                    id=record.id,
                    query=record.query,
                    response=record.response,
                    embedding=record.embedding,
                    sources=record.sources,
                    timestamp=record.timestamp,
                )
            )
            db.commit()
        finally:
            db.close()

    async def search(self, embedding: List[float], threshold: float = 0.7, limit: int = 10) -> List[Dict[str, Any]]:
        query = text("""
            SELECT id, query, response, sources, timestamp,
                   1 - (embedding <=> CAST(:embedding AS vector)) AS similarity
            FROM response_vectors
            WHERE 1 - (embedding <=> CAST(:embedding AS vector)) >= :threshold
            ORDER BY embedding <=> CAST(:embedding AS vector)
            LIMIT :limit
        """)

        db = self._session_factory()
        try:
            result = db.execute(
                query,
                {"embedding": _vector_literal(embedding), "threshold": threshold, "limit": limit},
            )
            return [
                {
                    "id": row.id,
                    "query": row.query,
                    "response": row.response,
                    "sources": row.sources or [],
                    "similarity": float(row.similarity),
                    "timestamp": row.timestamp or "",
                }
                for row in result
            ]
        finally:
            db.close()

    async def stats(self) -> Dict[str, Any]:
        db = self._session_factory()
        try:
            count = db.execute(text("SELECT COUNT(*) FROM response_vectors")).scalar() or 0
            size = db.execute(
                text("SELECT pg_size_pretty(pg_total_relation_size('response_vectors'))")
            ).scalar()
            return {"totalResponses": int(count), "collectionSize": size or "N/A"}
        finally:
            db.close()

    async def clear(self) -> None:
        db = self._session_factory()
        try:
            db.execute(response_vectors.delete())
            db.commit()
        finally:
            db.close()

    async def delete(self, vector_id: str) -> None:
        db = self._session_factory()
        try:
            db.execute(response_vectors.delete().where(response_vectors.c.id == vector_id))
            db.commit()
        finally:
            db.close()
