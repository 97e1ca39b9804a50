import json
import logging
from typing import Any, Dict, List, Optional

from app import config
from app.services.vector_stores.base import RestVectorStore, VectorRecord, VectorStoreError
from app.services.vector_stores.memory import InMemoryVectorStore

logger = logging.getLogger(__name__)

COLLECTION_NAME = "chat_responses"
OUTPUT_FIELDS = ["id", "query", "response", "sources", "timestamp"]


class MilvusVectorStore(RestVectorStore):
    """Milvus / Zilliz through the v2 REST API.

    Whenever Milvus is unconfigured or a call fails, the in-memory store
    takes over so saving and searching keep working.
    """

    name = "milvus"

    def __init__(
        self,
        address: Optional[str] = None,
        token: Optional[str] = None,
        fallback: Optional[InMemoryVectorStore] = None,
        dimension: Optional[int] = None,
        transport=None,
    ):
        super().__init__(transport=transport)
        self.address = (config.MILVUS_ADDRESS if address is None else address).rstrip("/")
        self.token = config.MILVUS_TOKEN if token is None else token
        self.dimension = dimension or config.EMBEDDING_DIM
        self.fallback = fallback or InMemoryVectorStore()

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _call(self, path: str, payload: Dict[str, Any]) -> Any:
        body = await self._request("POST", f"{self.address}/v2/vectordb{path}", json=payload)
        # Milvus reports failures with HTTP 200 and a non-zero code
        if body.get("code", 0) != 0:
            raise VectorStoreError(f"Milvus error {body.get('code')}: {body.get('message', '')}")
        return body.get("data")

    async def connect(self) -> None:
        await self.fallback.connect()

        if not self.address:
            logger.info("Milvus not configured, using in-memory vector storage")
            self.connected = False
            return

        try:
            await self.ensure_collection()
            self.connected = True
            logger.info("Connected to Milvus successfully")
        except Exception as e:
            logger.error("Failed to connect to Milvus: %s", e)
            logger.info("Using in-memory vector storage as fallback")
            self.connected = False

    async def ensure_collection(self) -> None:
        data = await self._call("/collections/has", {"collectionName": COLLECTION_NAME})
        if data and data.get("has"):
            return

        await self._call(
            "/collections/create",
            {
                "collectionName": COLLECTION_NAME,
                "schema": {
                    "autoId": False,
                    "fields": [
                        {"fieldName": "id", "dataType": "VarChar", "isPrimary": True, "elementTypeParams": {"max_length": 36}},
                        {"fieldName": "query", "dataType": "VarChar", "elementTypeParams": {"max_length": 2000}},
                        {"fieldName": "response", "dataType": "VarChar", "elementTypeParams": {"max_length": 5000}},
                        {"fieldName": "embedding", "dataType": "FloatVector", "elementTypeParams": {"dim": self.dimension}},
                        {"fieldName": "sources", "dataType": "VarChar", "elementTypeParams": {"max_length": 1000}},
                        {"fieldName": "timestamp", "dataType": "VarChar", "elementTypeParams": {"max_length": 50}},
                    ],
                },
                "indexParams": [
                    {"fieldName": "embedding", "indexName": "embedding_index", "metricType": "COSINE"},
                ],
            },
        )
        await self._call("/collections/load", {"collectionName": COLLECTION_NAME})
        logger.info("Created Milvus collection: %s", COLLECTION_NAME)

    async def insert(self, record: VectorRecord) -> None:
        if self.connected:
            try:
                await self._call(
                    "/entities/insert",
                    {
                        "collectionName": COLLECTION_NAME,
                        "data": [
                            {
                                "id": record.id,
                                "query": record.query,
                                "response": record.response,
                                "embedding": record.embedding,
                                "sources": json.dumps(record.sources),
                                "timestamp": record.timestamp,
                            }
                        ],
                    },
                )
                return
            except Exception as e:
                logger.error("Failed to insert vector to Milvus: %s", e)

        await self.fallback.insert(record)

    async def search(self, embedding: List[float], threshold: float = 0.7, limit: int = 10) -> List[Dict[str, Any]]:
        if self.connected:
            try:
                hits = await self._call(
                    "/entities/search",
                    {
                        "collectionName": COLLECTION_NAME,
                        "data": [embedding],
                        "annsField": "embedding",
                        "limit": limit,
                        "outputFields": OUTPUT_FIELDS,
                    },
                )
                results = [
                    {
                        "id": hit.get("id"),
                        "query": hit.get("query", ""),
                        "response": hit.get("response", ""),
                        "sources": json.loads(hit.get("sources") or "[]"),
                        "similarity": float(hit.get("distance", 0.0)),
                        "timestamp": hit.get("timestamp", ""),
                    }
                    for hit in hits or []
                ]
                results = [r for r in results if r["similarity"] >= threshold]
                results.sort(key=lambda r: r["similarity"], reverse=True)
                return results
            except Exception as e:
                logger.error("Failed to search similar vectors in Milvus: %s", e)

        return await self.fallback.search(embedding, threshold, limit)

    async def stats(self) -> Dict[str, Any]:
        if self.connected:
            try:
                data = await self._call("/collections/get_stats", {"collectionName": COLLECTION_NAME})
                return {
                    "totalResponses": int((data or {}).get("rowCount", 0)),
                    "collectionSize": "N/A",
                }
            except Exception as e:
                logger.error("Failed to get Milvus collection stats: %s", e)

        return await self.fallback.stats()

    async def clear(self) -> None:
        if self.connected:
            try:
                await self._call("/collections/drop", {"collectionName": COLLECTION_NAME})
                await self.ensure_collection()
            except Exception as e:
                logger.error("Failed to clear Milvus collection: %s", e)

        await self.fallback.clear()

    async def delete(self, vector_id: str) -> None:
        if self.connected:
            try:
                await self._call(
                    "/entities/delete",
                    {"collectionName": COLLECTION_NAME, "filter": f'id in ["{vector_id}"]'},
                )
            except Exception as e:
                logger.error("Failed to delete vector from Milvus: %s", e)

        await self.fallback.delete(vector_id)
