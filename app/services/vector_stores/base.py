from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

import httpx


@dataclass
class VectorRecord:
    id: str
    query: str
    response: str
    embedding: List[float]
    sources: List[str] = field(default_factory=list)
    timestamp: str = ""


def search_result(record: VectorRecord, similarity: float) -> Dict[str, Any]:
    return {
        "id": record.id,
        "query": record.query,
        "response": record.response,
        "sources": list(record.sources or []),
        "similarity": similarity,
        "timestamp": record.timestamp,
    }


class VectorStoreError(RuntimeError):
    """Raised when a backend cannot serve a request."""


class VectorStore(ABC):
    """Nearest-neighbour storage for past query/response exchanges."""

    name = "base"
    connected = False

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def insert(self, record: VectorRecord) -> None: ...

    @abstractmethod
    async def search(self, embedding: List[float], threshold: float = 0.7, limit: int = 10) -> List[Dict[str, Any]]:
        """Return matches with ``similarity >= threshold``, best first, at most ``limit``."""

    @abstractmethod
    async def stats(self) -> Dict[str, Any]:
        """Return ``{"totalResponses": int, "collectionSize": str}``."""

    @abstractmethod
    async def clear(self) -> None: ...

    @abstractmethod
    async def delete(self, vector_id: str) -> None: ...


class RestVectorStore(VectorStore):
    """Shared plumbing for backends reached over their REST API."""

    def __init__(self, transport=None, timeout: float = 30.0):
        self.transport = transport
        self.timeout = timeout
        self.connected = False

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _request(self, method: str, url: str, json: Any = None, params: Dict[str, Any] = None) -> Any:
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.request(
                method,
                url,
                headers=self._headers(),
                json=json,
                params=params,
                timeout=self.timeout,
            )
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()
