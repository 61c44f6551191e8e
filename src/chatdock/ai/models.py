"""Model identifiers offered when the user has not configured one."""

from __future__ import annotations

import asyncio
import logging
from typing import List

from openai import AsyncOpenAI, OpenAIError

__all__ = ["BUILTIN_MODELS", "ModelCatalog", "derive_base_url"]

LOGGER = logging.getLogger(__name__)

BUILTIN_MODELS: tuple[str, ...] = (
    "gpt-3.5-turbo",
    "gpt-4",
    "gpt-4-turbo",
    "gpt-4o",
    "claude-3-opus-20240229",
    "claude-3-sonnet-20240229",
    "claude-3-haiku-20240307",
)
_COMPLETIONS_SUFFIX = "/chat/completions"


def derive_base_url(api_url: str) -> str:
    """Turn a chat-completions URL into the API base URL the SDK expects."""

    url = (api_url or "").strip().rstrip("/")
    if url.endswith(_COMPLETIONS_SUFFIX):
        url = url[: -len(_COMPLETIONS_SUFFIX)]
    return url


class ModelCatalog:
    """Lists models served by the configured endpoint, falling back to a built-in list."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        *,
        client: AsyncOpenAI | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._timeout = timeout
        self._client = client
        self._models_cache: List[str] | None = None
        self._models_lock = asyncio.Lock()

    async def list_models(self, *, force_refresh: bool = False) -> List[str]:
        if self._models_cache is not None and not force_refresh:
            return list(self._models_cache)

        async with self._models_lock:
            if self._models_cache is not None and not force_refresh:
                return list(self._models_cache)
            try:
                response = await self._get_client().models.list()
            except OpenAIError as exc:
                LOGGER.info("Model listing unavailable (%s); using built-in model list", exc)
                return list(BUILTIN_MODELS)
            models = sorted(item.id for item in response.data if getattr(item, "id", None))
            if not models:
                return list(BUILTIN_MODELS)
            self._models_cache = models
            return list(models)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=derive_base_url(self._api_url) or None,
                timeout=self._timeout,
                max_retries=0,
            )
        return self._client
