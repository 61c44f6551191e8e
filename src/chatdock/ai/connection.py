"""Resolution of the API key, endpoint URL and model before each request.

Missing values are requested from the user through the host; declined endpoint
and model prompts fall back to persisted defaults, a declined API key prompt is
fatal for the request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

import httpx

from ..services.host import HostEnvironment, MessageLevel
from ..services.settings import DEFAULT_API_URL, DEFAULT_MODEL, Settings, SettingsStore, redact_secret
from .errors import MissingCredentialError
from .models import ModelCatalog

__all__ = [
    "ConnectionResolver",
    "ConnectionSettings",
    "looks_like_api_key",
    "validate_api_key_input",
    "validate_api_url_input",
]

LOGGER = logging.getLogger(__name__)

API_KEY_PREFIX = "sk-"
MIN_API_KEY_LENGTH = 10
TYPICAL_API_KEY_LENGTH = 30
RESET_KEY_ACTION = "Reset key"
CONTINUE_ACTION = "Continue"
CHANGE_KEY_ACTION = "Change key"

CatalogFactory = Callable[[str, str], ModelCatalog]


@dataclass(slots=True, frozen=True)
class ConnectionSettings:
    """Everything a single completion request needs to reach the endpoint."""

    api_url: str
    api_key: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 1000
    request_timeout: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConnectionSettings":
        return cls(
            api_url=settings.api_url,
            api_key=settings.api_key,
            model=settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            request_timeout=settings.request_timeout,
        )


def looks_like_api_key(api_key: str) -> bool:
    """Cheap shape check; a miss only triggers a warning."""

    return len(api_key.strip()) >= MIN_API_KEY_LENGTH and api_key.startswith(API_KEY_PREFIX)


def validate_api_key_input(value: str) -> str | None:
    if not value:
        return "The API key must not be empty"
    if not value.startswith(API_KEY_PREFIX):
        return f'OpenAI API keys usually start with "{API_KEY_PREFIX}"'
    if len(value) < TYPICAL_API_KEY_LENGTH:
        return f"OpenAI API keys usually have at least {TYPICAL_API_KEY_LENGTH} characters"
    return None


def validate_api_url_input(value: str) -> str | None:
    if not value:
        return "The URL must not be empty"
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, TypeError):
        return "Enter a valid URL"
    if url.scheme not in ("http", "https") or not url.host:
        return "Enter a valid URL"
    return None


class ConnectionResolver:
    """Fills configuration gaps interactively and persists what the user chose."""

    def __init__(
        self,
        settings_store: SettingsStore,
        host: HostEnvironment,
        *,
        catalog_factory: CatalogFactory | None = None,
    ) -> None:
        self._store = settings_store
        self._host = host
        self._catalog_factory = catalog_factory or ModelCatalog
        self._catalog: ModelCatalog | None = None
        self._catalog_key: tuple[str, str] | None = None

    async def resolve(self) -> ConnectionSettings:
        """Return complete connection settings or raise :class:`MissingCredentialError`."""

        settings = self._store.load()

        api_key = settings.api_key
        if not api_key:
            api_key = await self.prompt_for_api_key()
            if not api_key:
                raise MissingCredentialError()

        if not looks_like_api_key(api_key):
            choice = await self._host.ask(
                MessageLevel.ERROR,
                f'The API key looks invalid. OpenAI API keys usually start with "{API_KEY_PREFIX}" '
                f"and have at least {TYPICAL_API_KEY_LENGTH} characters.",
                RESET_KEY_ACTION,
                CONTINUE_ACTION,
            )
            if choice == RESET_KEY_ACTION:
                api_key = await self.prompt_for_api_key()
                if not api_key:
                    raise MissingCredentialError()

        api_url = settings.api_url
        if not api_url:
            api_url = await self.prompt_for_api_url()
            if not api_url:
                api_url = DEFAULT_API_URL
                self._store.update(api_url=api_url)
                self._host.notify(MessageLevel.INFO, f"Using the default API URL: {api_url}")

        model = settings.model
        if not model:
            model = await self.prompt_for_model(api_url=api_url, api_key=api_key)
            if not model:
                model = DEFAULT_MODEL
                self._store.update(model=model)
                self._host.notify(MessageLevel.INFO, f"Using the default model: {model}")

        LOGGER.debug("Resolved connection: url=%s model=%s key=%s", api_url, model, redact_secret(api_key))
        return ConnectionSettings(
            api_url=api_url,
            api_key=api_key,
            model=model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            request_timeout=settings.request_timeout,
        )

    async def prompt_for_api_key(self) -> str | None:
        api_key = await self._host.input_box(
            prompt=f'Enter your OpenAI API key (starts with "{API_KEY_PREFIX}")',
            placeholder=f"{API_KEY_PREFIX}...",
            password=True,
            validate=validate_api_key_input,
        )
        if api_key:
            self._store.update(api_key=api_key)
            self._host.notify(MessageLevel.INFO, "API key saved")
        return api_key or None

    async def prompt_for_api_url(self, *, current: str | None = None) -> str | None:
        api_url = await self._host.input_box(
            prompt="Enter the chat completions API URL",
            value=current or DEFAULT_API_URL,
            placeholder=DEFAULT_API_URL,
            validate=validate_api_url_input,
        )
        if api_url:
            self._store.update(api_url=api_url)
            self._host.notify(MessageLevel.INFO, "API URL saved")
        return api_url or None

    async def prompt_for_model(self, *, api_url: str | None = None, api_key: str | None = None) -> str | None:
        settings = self._store.load()
        catalog = await self._catalog_for(api_url or settings.api_url or DEFAULT_API_URL, api_key or settings.api_key)
        models = await catalog.list_models()
        model = await self._host.quick_pick(models, placeholder="Select a model")
        if model:
            self._store.update(model=model)
            self._host.notify(MessageLevel.INFO, f"Model {model} saved")
        return model or None

    async def offer_credential_replacement(self) -> bool:
        """Called after a 401; returns True when the user entered a new key."""

        choice = await self._host.ask(
            MessageLevel.ERROR,
            "Invalid API key. Check your key at https://platform.openai.com/account/api-keys.",
            CHANGE_KEY_ACTION,
        )
        if choice != CHANGE_KEY_ACTION:
            return False
        return bool(await self.prompt_for_api_key())

    def reset_api_key(self) -> None:
        self._store.update(api_key="")
        env_name = self._store.env_override_for("api_key")
        if env_name:
            self._host.notify(
                MessageLevel.WARNING,
                f"Stored API key removed, but {env_name} is set and will still be used",
            )
            return
        self._host.notify(MessageLevel.INFO, "API key reset")

    async def aclose(self) -> None:
        """Release the model catalog's HTTP resources."""

        catalog, self._catalog, self._catalog_key = self._catalog, None, None
        if catalog is not None:
            await catalog.aclose()

    async def _catalog_for(self, api_url: str, api_key: str) -> ModelCatalog:
        # One catalog per endpoint and key; the listing cache lives on it.
        key = (api_url, api_key)
        if self._catalog is not None and self._catalog_key == key:
            return self._catalog
        await self.aclose()
        self._catalog = self._catalog_factory(api_url, api_key)
        self._catalog_key = key
        return self._catalog
