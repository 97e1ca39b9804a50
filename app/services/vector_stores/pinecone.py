import asyncio
import logging
from typing import Any, Dict, List, Optional

from app import config
from app.services.vector_stores.base import RestVectorStore, VectorRecord, VectorStoreError

logger = logging.getLogger(__name__)

INDEX_NAME = "chat-responses"
API_VERSION = "2024-07"
MAX_RETRIES = 3
MAX_TOP_K = 50
READY_POLL_INTERVAL = 2.0
READY_POLL_ATTEMPTS = 60

NOT_CONNECTED = "Pinecone is not connected. Please ensure PINECONE_API_KEY is configured."


class PineconeVectorStore(RestVectorStore):
    """Pinecone serverless index through the control and data plane REST APIs."""

    name = "pinecone"

    def __init__(
        self,
        api_key: Optional[str] = None,
        controller_url: Optional[str] = None,
        dimension: Optional[int] = None,
        transport=None,
    ):
        super().__init__(transport=transport)
        self.api_key = config.PINECONE_API_KEY if api_key is None else api_key
        self.controller_url = (controller_url or config.PINECONE_CONTROLLER_URL).rstrip("/")
        self.dimension = dimension or config.EMBEDDING_DIM
        self.host: Optional[str] = None
        self.connection_retries = 0

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["Api-Key"] = self.api_key
        headers["X-Pinecone-API-Version"] = API_VERSION
        return headers

    @property
    def _data_url(self) -> str:
        host = self.host or ""
        return host if host.startswith("http") else f"https://{host}"

    def _check_dimension(self, embedding: List[float]) -> None:
        if not isinstance(embedding, list) or len(embedding) != self.dimension:
            got = len(embedding) if isinstance(embedding, list) else type(embedding).__name__
            raise ValueError(f"Invalid embedding dimension. Expected {self.dimension}, got {got}")

    async def connect(self) -> None:
        if not self.api_key:
            raise VectorStoreError(
                "Pinecone API key must be configured. Please set PINECONE_API_KEY environment variable."
            )

        self.connection_retries = 0
        while self.connection_retries < MAX_RETRIES:
            try:
                await self.ensure_index()
                self.connected = True
                self.connection_retries = 0
                logger.info("Connected to Pinecone successfully")
                return
            except Exception as e:
                self.connection_retries += 1
                logger.error(
                    "Failed to connect to Pinecone (attempt %d/%d): %s",
                    self.connection_retries, MAX_RETRIES, e,
                )
                if self.connection_retries >= MAX_RETRIES:
                    self.connected = False
                    raise VectorStoreError(f"Failed to connect to Pinecone after {MAX_RETRIES} attempts")
                await asyncio.sleep(2 ** self.connection_retries)

    async def ensure_index(self) -> None:
        body = await self._request("GET", f"{self.controller_url}/indexes")
        existing = [idx for idx in body.get("indexes") or [] if idx.get("name") == INDEX_NAME]

        if not existing:
            await self._request(
                "POST",
                f"{self.controller_url}/indexes",
                json={
                    "name": INDEX_NAME,
                    "dimension": self.dimension,
                    "metric": "cosine",
                    "spec": {"serverless": {"cloud": "aws", "region": "us-east-1"}},
                },
            )
            logger.info("Created Pinecone index: %s", INDEX_NAME)

        for _ in range(READY_POLL_ATTEMPTS):
            description = await self._request("GET", f"{self.controller_url}/indexes/{INDEX_NAME}")
            if (description.get("status") or {}).get("ready") is True:
                self.host = description.get("host")
                return
            logger.info("Waiting for Pinecone index to be ready...")
            await asyncio.sleep(READY_POLL_INTERVAL)

        raise VectorStoreError(f"Pinecone index {INDEX_NAME} did not become ready")

    async def insert(self, record: VectorRecord) -> None:
        if not self.connected:
            raise VectorStoreError(NOT_CONNECTED)
        self._check_dimension(record.embedding)

        # Pinecone caps metadata size per vector
        metadata = {
            "query": record.query[:1000],
            "response": record.response[:5000],
            "sources": list(record.sources or [])[:10],
            "timestamp": record.timestamp,
        }
        await self._request(
            "POST",
            f"{self._data_url}/vectors/upsert",
            json={"vectors": [{"id": record.id, "values": record.embedding, "metadata": metadata}]},
        )
        logger.info("Inserted vector with ID: %s", record.id)

    async def search(self, embedding: List[float], threshold: float = 0.7, limit: int = 10) -> List[Dict[str, Any]]:
        if not self.connected:
            logger.warning("Pinecone is not connected, returning empty results")
            return []
        self._check_dimension(embedding)

        try:
            body = await self._request(
                "POST",
                f"{self._data_url}/query",
                json={
                    "vector": embedding,
                    "topK": min(limit, MAX_TOP_K),
                    "includeMetadata": True,
                    "includeValues": False,
                },
            )
        except Exception as e:
            logger.error("Failed to search similar vectors in Pinecone: %s", e)
            return []

        results = []
        for match in body.get("matches") or []:
            metadata = match.get("metadata")
            score = match.get("score", 0.0)
            if not metadata or score < threshold:
                continue
            sources = metadata.get("sources")
            results.append({
                "id": match.get("id"),
                "query": metadata.get("query", ""),
                "response": metadata.get("response", ""),
                "sources": sources if isinstance(sources, list) else [],
                "similarity": round(score, 4),
                "timestamp": metadata.get("timestamp", ""),
            })
        results.sort(key=lambda r: r["similarity"], reverse=True)
        return results

    async def stats(self) -> Dict[str, Any]:
        if not self.connected:
            return {"totalResponses": 0, "collectionSize": "Disconnected"}

        try:
            body = await self._request("POST", f"{self._data_url}/describe_index_stats", json={})
        except Exception as e:
            logger.error("Failed to get Pinecone index stats: %s", e)
            return {"totalResponses": 0, "collectionSize": "Error"}

        count = body.get("totalVectorCount") or 0
        size_mb = round(count * self.dimension * 4 / (1024 * 1024))
        return {
            "totalResponses": count,
            "collectionSize": f"~{size_mb}MB" if size_mb > 0 else "<1MB",
        }

    async def clear(self) -> None:
        if not self.connected:
            raise VectorStoreError(NOT_CONNECTED)
        await self._request("POST", f"{self._data_url}/vectors/delete", json={"deleteAll": True})
        logger.info("Cleared all vectors from Pinecone index")

    async def delete(self, vector_id: str) -> None:
        if not self.connected:
            raise VectorStoreError(NOT_CONNECTED)
        await self._request("POST", f"{self._data_url}/vectors/delete", json={"ids": [vector_id]})
        logger.info("Deleted vector with ID: %s", vector_id)
