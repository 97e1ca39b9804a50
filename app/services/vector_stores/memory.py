import json
import logging
import math
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.services.vector_stores.base import VectorRecord, VectorStore, search_result

logger = logging.getLogger(__name__)


def cosine_similarity(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryVectorStore(VectorStore):
    """Linear cosine scan over vectors held in process memory.

    Rows already persisted in ``vector_responses`` are loaded on connect, so
    the store survives restarts as long as the relational database does.
    """

    name = "memory"

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory
        self.records: List[VectorRecord] = []
        self.connected = False

    async def connect(self) -> None:
        self.load_from_database()
        self.connected = True

    def load_from_database(self) -> None:
        if self._session_factory is None:
            return

        from app.models.vector_response import VectorResponse

        db = self._session_factory()
        try:
            rows = db.query(VectorResponse).all()
            self.records = [
                VectorRecord(
                    id=row.id,
                    query=row.query,
                    response=row.response,
                    embedding=list(row.embedding or []),
                    sources=list(row.sources or []),
                    timestamp=row.timestamp.isoformat() if row.timestamp else "",
                )
                for row in rows
            ]
            logger.info("Loaded %d vectors from database", len(self.records))
        except Exception as e:
            logger.error("Failed to load vectors from database: %s", e)
        finally:
            db.close()

    async def insert(self, record: VectorRecord) -> None:
        self.records = [r for r in self.records if r.id != record.id]
        self.records.append(record)

    async def search(self, embedding: List[float], threshold: float = 0.7, limit: int = 10) -> List[Dict[str, Any]]:
        scored = [(cosine_similarity(embedding, r.embedding), r) for r in self.records]
        matches = [(score, r) for score, r in scored if score >= threshold]
        matches.sort(key=lambda item: item[0], reverse=True)
        return [search_result(r, score) for score, r in matches[:limit]]

    async def stats(self) -> Dict[str, Any]:
        size = len(json.dumps([r.__dict__ for r in self.records]))
        return {
            "totalResponses": len(self.records),
            "collectionSize": f"{size / 1024:.1f} KB",
        }

    async def clear(self) -> None:
        self.records = []

    async def delete(self, vector_id: str) -> None:
        self.records = [r for r in self.records if r.id != vector_id]
