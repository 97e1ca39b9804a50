import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from app import config

logger = logging.getLogger(__name__)

PREVIOUS_CONVERSATIONS_SOURCE = "Previous Conversations"

# Tests replace this with an httpx.MockTransport
transport: Optional[httpx.AsyncBaseTransport] = None


@dataclass
class PreviousExchange:
    query: str
    response: str


@dataclass
class ChatResponse:
    content: str
    sources: List[str] = field(default_factory=list)
    embedding: List[float] = field(default_factory=list)


def _headers() -> Dict[str, str]:
    if not config.OPENAI_API_KEY:
        raise ValueError("OPENAI_API_KEY environment variable is not set")

    if not config.OPENAI_BASE_URL:
        raise ValueError("OPENAI_BASE_URL environment variable is not set")

    return {
        "Authorization": f"Bearer {config.OPENAI_API_KEY}",
        "Content-Type": "application/json",
    }


async def _post(path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    headers = _headers()
    try:
        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.post(
                f"{config.OPENAI_BASE_URL}{path}",
                headers=headers,
                json=payload,
                timeout=config.REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            return response.json()
    except httpx.ConnectError as e:
        raise ConnectionError(
            f"Failed to connect to the LLM API at {config.OPENAI_BASE_URL}. "
            f"Please check your internet connection and verify the API URL is correct. "
            f"Error: {str(e)}"
        )
    except httpx.HTTPStatusError as e:
        raise ValueError(
            f"LLM API returned an error: {e.response.status_code} - {e.response.text}"
        )


async def get_embeddings(texts: List[str]) -> List[List[float]]:
    """Get embeddings for a list of texts."""
    data = await _post("/embeddings", {"model": config.EMBEDDING_MODEL, "input": texts})
    return [item["embedding"] for item in data["data"]]


async def get_embedding(text: str) -> List[float]:
    """Get embedding for a single text."""
    embeddings = await get_embeddings([text])
    return embeddings[0]


async def complete(
    messages: List[Dict[str, str]],
    *,
    model: str,
    temperature: float = 1.0,
    max_tokens: int = 2048,
) -> str:
    """Single non-streaming chat completion, returns the reply text."""
    data = await _post(
        "/chat/completions",
        {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        },
    )
    choices = data.get("choices") or []
    if not choices:
        raise ValueError("LLM API returned no choices")
    return choices[0].get("message", {}).get("content") or ""


def build_messages(
    query: str,
    system_prompt: str,
    previous: List[PreviousExchange],
    context: str = "",
) -> List[Dict[str, str]]:
    """System prompt, then each earlier exchange as a user/assistant pair, then the query."""
    messages = [{"role": "system", "content": system_prompt}]
    for exchange in previous:
        messages.append({"role": "user", "content": exchange.query})
        messages.append({"role": "assistant", "content": exchange.response})

    if context:
        content = f"""Context from external sources:
{context}

Question: {query}"""
    else:
        content = query
    messages.append({"role": "user", "content": content})
    return messages


async def generate_chat_response(
    query: str,
    previous: Optional[List[PreviousExchange]] = None,
    context: str = "",
    *,
    model: Optional[str],
    temperature: Optional[float],
    max_tokens: Optional[int],
    system_prompt: Optional[str],
) -> ChatResponse:
    """Generate a reply to ``query`` and embed it.

    ``previous`` are earlier exchanges judged similar to the query; they are
    replayed as conversation turns ahead of the new message.
    """
    previous = previous or []

    if temperature is None:
        raise ValueError("Temperature parameter is required")
    if not model:
        raise ValueError("Model parameter is required")
    if not max_tokens:
        raise ValueError("MaxTokens parameter is required")
    if not system_prompt:
        raise ValueError("System prompt not configured in database")

    messages = build_messages(query, system_prompt, previous, context)
    content = await complete(messages, model=model, temperature=temperature, max_tokens=max_tokens)
    embedding = await get_embedding(content)

    return ChatResponse(
        content=content,
        sources=[PREVIOUS_CONVERSATIONS_SOURCE] if previous else [],
        embedding=embedding,
    )


async def check_connection() -> bool:
    """Return True when the API answers an authenticated model listing."""
    try:
        headers = _headers()
        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.get(
                f"{config.OPENAI_BASE_URL}/models",
                headers=headers,
                timeout=10.0,
            )
            response.raise_for_status()
        return True
    except Exception as e:
        logger.warning("LLM API connection check failed: %s", e)
        return False
