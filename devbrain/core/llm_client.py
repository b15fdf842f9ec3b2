# devbrain/core/llm_client.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from ..settings import Settings, settings as default_settings
from .errors import CompletionError

logger = logging.getLogger("devbrain.llm")


@runtime_checkable
class CompletionClient(Protocol):
    async def complete(self, prompt: str) -> str: ...


class HttpCompletionClient:
    """
    Completion client for an Ollama-style router (`POST /generate`).
    Retries 5xx/transport errors with exponential backoff; 4xx fail fast.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        retries: Optional[int] = None,
        backoff: Optional[float] = None,
        timeout: Optional[float] = None,
        cfg: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        cfg = cfg or default_settings
        self.base_url = (base_url or cfg.llm_base_url).rstrip("/")
        self.model = model or cfg.llm_model
        self.retries = cfg.llm_retries if retries is None else retries
        self.backoff = cfg.llm_backoff_sec if backoff is None else backoff
        t = cfg.llm_timeout_sec if timeout is None else timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(t),
            headers={"content-type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def complete(self, prompt: str) -> str:
        payload: Dict[str, Any] = {"model": self.model, "prompt": prompt, "stream": False, "options": {}}
        data = await self._post_json("/generate", payload)
        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise CompletionError("completion backend returned no 'response' text")
        return text

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        for attempt in range(self.retries + 1):
            try:
                r = await self._client.post(url, json=payload)
                if 200 <= r.status_code < 300:
                    return r.json()
                if 400 <= r.status_code < 500:
                    raise CompletionError(f"client error {r.status_code}: {r.text[:200]}")
                raise httpx.HTTPStatusError(
                    f"server error {r.status_code}", request=r.request, response=r
                )
            except (httpx.HTTPError, ValueError) as e:
                if attempt < self.retries:
                    delay = self.backoff * (2 ** attempt)
                    logger.warning("LLM POST %s failed (attempt=%d): %s; retry in %.2fs", path, attempt + 1, e, delay)
                    await asyncio.sleep(delay)
                    continue
                raise CompletionError(f"completion request failed after {attempt + 1} attempts: {e}") from e
        raise CompletionError("unreachable")  # pragma: no cover


async def guarded_complete(
    client: CompletionClient,
    prompt: str,
    *,
    timeout: float,
    trace_id: str,
    purpose: str = "completion",
) -> Optional[str]:
    """
    Run one completion with a hard timeout.

    Returns None on timeout or failure (logged with the trace id); the caller
    falls back to the best draft it already has. Cancellation propagates.
    """
    try:
        text = await asyncio.wait_for(client.complete(prompt), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("[%s] %s timed out after %.1fs", trace_id, purpose, timeout)
        return None
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error("[%s] %s failed: %s", trace_id, purpose, e)
        return None
    if not isinstance(text, str) or not text.strip():
        logger.warning("[%s] %s returned empty text", trace_id, purpose)
        return None
    return text
