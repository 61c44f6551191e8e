"""HTTP client for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, Dict, List

import httpx

from ..services.host import HostEnvironment
from ..services.settings import SettingsStore
from .connection import ConnectionResolver, ConnectionSettings
from .errors import (
    ApiError,
    AuthFailedError,
    CompletionError,
    EndpointOrModelNotFoundError,
    NetworkUnreachableError,
    RateLimitedError,
    StreamInterruptedError,
    UnknownCompletionError,
)
from .stream_decoder import StreamDecoder

__all__ = ["CompletionClient", "FragmentCallback"]

LOGGER = logging.getLogger(__name__)

FragmentCallback = Callable[[str], None]


class CompletionClient:
    """Sends one system + user message pair and returns the assistant reply.

    Every request re-resolves the connection settings, so edits made through the
    settings commands apply to the next request without rebuilding the client.
    Failures surface as :class:`~chatdock.ai.errors.CompletionError` subclasses and
    are never retried.
    """

    def __init__(
        self,
        settings_store: SettingsStore,
        host: HostEnvironment,
        *,
        http_client: httpx.AsyncClient | None = None,
        resolver: ConnectionResolver | None = None,
    ) -> None:
        self._settings_store = settings_store
        self._host = host
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._resolver = resolver or ConnectionResolver(settings_store, host)

    @property
    def resolver(self) -> ConnectionResolver:
        return self._resolver

    async def send_request(
        self,
        system_prompt: str,
        user_content: str,
        on_fragment: FragmentCallback | None = None,
    ) -> str:
        """Return the full completion text.

        With ``on_fragment`` the response is streamed and the callback runs for
        every fragment, in order, before the next chunk is read.
        """

        if on_fragment is None:
            return await self.complete(system_prompt, user_content)

        parts: List[str] = []
        async with aclosing(self.stream(system_prompt, user_content)) as fragments:
            async for fragment in fragments:
                parts.append(fragment)
                on_fragment(fragment)
        return "".join(parts)

    async def stream(self, system_prompt: str, user_content: str) -> AsyncIterator[str]:
        """Yield content fragments of a streamed completion as they arrive."""

        decoder = StreamDecoder()
        api_url: str | None = None
        try:
            connection = await self._resolver.resolve()
            api_url = connection.api_url
            payload = self.build_payload(connection, system_prompt, user_content, stream=True)
            LOGGER.debug("Starting streamed chat completion via %s", connection.model)
            async with self._get_http_client().stream(
                "POST",
                connection.api_url,
                json=payload,
                headers=self._build_headers(connection),
                timeout=connection.request_timeout,
            ) as response:
                if response.is_error:
                    await self._raise_for_status(response)
                try:
                    async for fragment in decoder.decode(response.aiter_text()):
                        yield fragment
                except httpx.TransportError as exc:
                    raise StreamInterruptedError(str(exc) or type(exc).__name__) from exc
        except CompletionError:
            raise
        except httpx.TransportError as exc:
            LOGGER.warning("No response from %s: %s", api_url, exc)
            raise NetworkUnreachableError() from exc
        except Exception as exc:
            LOGGER.exception("Streamed completion failed")
            raise UnknownCompletionError(str(exc) or type(exc).__name__) from exc

        LOGGER.debug(
            "Streamed completion finished (%s, %d fragment(s), %d undecodable line(s))",
            decoder.outcome.value,
            decoder.fragments_emitted,
            decoder.parse_errors,
        )

    async def complete(self, system_prompt: str, user_content: str) -> str:
        """Run a non-streaming completion and return its message content."""

        api_url: str | None = None
        try:
            connection = await self._resolver.resolve()
            api_url = connection.api_url
            payload = self.build_payload(connection, system_prompt, user_content, stream=False)
            LOGGER.debug("Starting chat completion via %s", connection.model)
            response = await self._get_http_client().post(
                connection.api_url,
                json=payload,
                headers=self._build_headers(connection),
                timeout=connection.request_timeout,
            )
            if response.is_error:
                await self._raise_for_status(response)
            return _message_content(response)
        except CompletionError:
            raise
        except httpx.TransportError as exc:
            LOGGER.warning("No response from %s: %s", api_url, exc)
            raise NetworkUnreachableError() from exc
        except Exception as exc:
            LOGGER.exception("Chat completion failed")
            raise UnknownCompletionError(str(exc) or type(exc).__name__) from exc

    def build_payload(
        self,
        connection: ConnectionSettings,
        system_prompt: str,
        user_content: str,
        *,
        stream: bool,
    ) -> Dict[str, Any]:
        return {
            "model": connection.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "temperature": connection.temperature,
            "max_tokens": connection.max_tokens,
            "stream": stream,
        }

    async def reset_api_key(self) -> None:
        self._resolver.reset_api_key()

    async def aclose(self) -> None:
        """Close the HTTP client when this instance created it."""

        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
            self._owns_http_client = True
        return self._http_client

    @staticmethod
    def _build_headers(connection: ConnectionSettings) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {connection.api_key}",
        }

    async def _raise_for_status(self, response: httpx.Response) -> None:
        await response.aread()
        status = response.status_code
        LOGGER.warning("Completion endpoint answered HTTP %s", status)
        if status == 401:
            await self._resolver.offer_credential_replacement()
            raise AuthFailedError()
        if status == 429:
            raise RateLimitedError()
        if status == 404:
            raise EndpointOrModelNotFoundError(_server_message(response))
        raise ApiError(status, _error_detail(response))


def _response_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _message_content(response: httpx.Response) -> str:
    try:
        content = response.json()["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise UnknownCompletionError(f"unexpected response body: {response.text[:200]}") from exc
    return content if isinstance(content, str) else ""


def _server_message(response: httpx.Response) -> str | None:
    data = _response_json(response)
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return None


def _error_detail(response: httpx.Response) -> str:
    message = _server_message(response)
    if message:
        return message
    data = _response_json(response)
    if data is not None:
        return json.dumps(data)
    return response.text or response.reason_phrase
