"""HTTP client helpers for interacting with a local Ollama instance."""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)


async def stream_generate(
    prompt: str,
    *,
    model: str | None = None,
    options: Optional[Dict[str, Any]] = None,
    client: httpx.AsyncClient | None = None,
) -> AsyncIterator[Dict[str, Any]]:
    """Stream response chunks from Ollama's generate endpoint."""

    payload: Dict[str, Any] = {
        "model": model or settings.OLLAMA_MODEL,
        "prompt": prompt,
        "stream": True,
    }
    if options:
        payload["options"] = options

    async def _stream(http: httpx.AsyncClient) -> AsyncIterator[Dict[str, Any]]:
        async with http.stream("POST", "/api/generate", json=payload) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("Skipping undecodable Ollama line: %r", line[:200])

    if client is not None:
        async for chunk in _stream(client):
            yield chunk
        return

    async with httpx.AsyncClient(base_url=settings.OLLAMA_HOST, timeout=settings.OLLAMA_TIMEOUT) as owned:
        async for chunk in _stream(owned):
            yield chunk


async def complete(
    prompt: str,
    *,
    max_length: int | None = None,
    model: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Return the full generated text, bounded to ``max_length`` tokens when given."""

    options = {"num_predict": max_length} if max_length else None
    tokens: list[str] = []
    async for chunk in stream_generate(prompt, model=model, options=options, client=client):
        token = chunk.get("response") or chunk.get("token")
        if token:
            tokens.append(token)
        if chunk.get("done"):
            break
    return "".join(tokens)


class OllamaGenerator:
    def __init__(self, *, model: str | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.model = model
        self.client = client

    async def generate(self, prompt: str | None, max_length: int) -> str:
        return await complete(
            prompt or "",
            max_length=max_length,
            model=self.model,
            client=self.client,
        )
