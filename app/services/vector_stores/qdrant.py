import logging
from typing import Any, Dict, List, Optional

from app import config
from app.services.vector_stores.base import RestVectorStore, VectorRecord, VectorStoreError

logger = logging.getLogger(__name__)

COLLECTION_NAME = "chat_responses"

NOT_CONNECTED = "Qdrant is not connected. Please ensure QDRANT_URL and QDRANT_API_KEY are configured."


class QdrantVectorStore(RestVectorStore):
    """Qdrant cloud through its REST API. Every operation requires a live connection."""

    name = "qdrant"

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        dimension: Optional[int] = None,
        transport=None,
    ):
        super().__init__(transport=transport)
        self.url = (config.QDRANT_URL if url is None else url).rstrip("/")
        self.api_key = config.QDRANT_API_KEY if api_key is None else api_key
        self.dimension = dimension or config.EMBEDDING_DIM

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.api_key:
            headers["api-key"] = self.api_key
        return headers

    def _require_connection(self) -> None:
        if not self.connected:
            raise VectorStoreError(NOT_CONNECTED)

    @property
    def _collection_url(self) -> str:
        return f"{self.url}/collections/{COLLECTION_NAME}"

    async def connect(self) -> None:
        if not self.url:
            raise VectorStoreError(
                "Qdrant URL and API key must be configured. "
                "Please set QDRANT_URL and QDRANT_API_KEY environment variables."
            )

        try:
            await self.ensure_collection()
            self.connected = True
            logger.info("Connected to Qdrant successfully")
        except Exception as e:
            logger.error("Failed to connect to Qdrant: %s", e)
            self.connected = False
            raise

    async def ensure_collection(self) -> None:
        body = await self._request("GET", f"{self.url}/collections")
        collections = body.get("result", {}).get("collections", [])
        if any(c.get("name") == COLLECTION_NAME for c in collections):
            return

        await self._request(
            "PUT",
            self._collection_url,
            json={"vectors": {"size": self.dimension, "distance": "Cosine"}},
        )
        logger.info("Created Qdrant collection: %s", COLLECTION_NAME)

    async def insert(self, record: VectorRecord) -> None:
        self._require_connection()
        await self._request(
            "PUT",
            f"{self._collection_url}/points",
            params={"wait": "true"},
            json={
                "points": [
                    {
                        "id": record.id,
                        "vector": record.embedding,
                        "payload": {
                            "query": record.query,
                            "response": record.response,
                            "sources": record.sources,
                            "timestamp": record.timestamp,
                        },
                    }
                ]
            },
        )

    async def search(self, embedding: List[float], threshold: float = 0.7, limit: int = 10) -> List[Dict[str, Any]]:
        self._require_connection()
        body = await self._request(
            "POST",
            f"{self._collection_url}/points/search",
            json={
                "vector": embedding,
                "limit": limit,
                "score_threshold": threshold,
                "with_payload": True,
            },
        )
        results = []
        for point in body.get("result", []):
            payload = point.get("payload") or {}
            results.append({
                "id": str(point.get("id")),
                "query": payload.get("query", ""),
                "response": payload.get("response", ""),
                "sources": payload.get("sources") or [],
                "similarity": point.get("score", 0.0),
                "timestamp": payload.get("timestamp", ""),
            })
        return results

    async def stats(self) -> Dict[str, Any]:
        self._require_connection()
        body = await self._request("GET", self._collection_url)
        return {
            "totalResponses": body.get("result", {}).get("points_count") or 0,
            "collectionSize": "N/A",
        }

    async def clear(self) -> None:
        self._require_connection()
        await self._request("DELETE", self._collection_url)
        await self.ensure_collection()

    async def delete(self, vector_id: str) -> None:
        self._require_connection()
        await self._request(
            "POST",
            f"{self._collection_url}/points/delete",
            params={"wait": "true"},
            json={"points": [vector_id]},
        )
        logger.info("Deleted vector with ID: %s", vector_id)
