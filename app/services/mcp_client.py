import logging
from typing import Any, Dict, List, Optional

import httpx

from app import config

logger = logging.getLogger(__name__)


class MCPClient:
    """Client for the external context server (MCP).

    The server is optional: every call degrades to empty results when it is
    not configured or not reachable.
    """

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (config.MCP_SERVER_URL if base_url is None else base_url).rstrip("/")
        self.transport = transport
        self.connected = False

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(f"{self.base_url}{path}", json=payload, timeout=config.REQUEST_TIMEOUT)
            response.raise_for_status()
            return response.json()

    async def connect(self) -> None:
        if not self.base_url:
            logger.info("MCP server not configured, external context disabled")
            self.connected = False
            return

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(f"{self.base_url}/health", timeout=5.0)
                response.raise_for_status()
            self.connected = True
            logger.info("Connected to MCP server at %s", self.base_url)
        except Exception as e:
            logger.warning("Failed to connect to MCP server: %s", e)
            self.connected = False

    async def retrieve_context(self, query: str) -> Dict[str, Any]:
        """Return ``{"sources": [...], "context": str}`` for ``query``."""
        if not self.connected:
            return {"sources": [], "context": ""}

        try:
            data = await self._post("/retrieve", {"query": query, "max_results": 5})
            return {
                "sources": data.get("sources") or [],
                "context": data.get("context") or "",
            }
        except Exception as e:
            logger.error("Failed to retrieve context from MCP: %s", e)
            return {"sources": [], "context": ""}

    async def search_documents(self, query: str) -> List[Dict[str, Any]]:
        if not self.connected:
            return []

        try:
            data = await self._post("/search", {"query": query, "limit": 10})
            return data.get("documents") or []
        except Exception as e:
            logger.error("Failed to search MCP documents: %s", e)
            return []


_mcp_client: Optional[MCPClient] = None


def get_mcp_client() -> MCPClient:
    global _mcp_client
    if _mcp_client is None:
        _mcp_client = MCPClient()
    return _mcp_client
