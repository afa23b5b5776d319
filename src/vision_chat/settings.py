"""Persisted user settings, read fresh at request-build time."""

from __future__ import annotations

import logging
from typing import Any

from . import storage as keys
from .models import Settings
from .storage import KeyValueStorage

LOGGER = logging.getLogger(__name__)

MIN_API_KEY_LENGTH = 10


class SettingsStore:
    """Read and write the credential, model, system prompt and provider."""

    def __init__(self, storage: KeyValueStorage, api_config: dict[str, Any]) -> None:
        self.storage = storage
        self.endpoints: dict[str, str] = dict(api_config.get("endpoints", {}))
        self.default_models: dict[str, str] = dict(api_config.get("default_models", {}))
        self.default_provider = str(api_config.get("provider", "groq"))
        self.default_system_prompt = str(api_config.get("default_system_prompt", ""))

    def _provider(self) -> str:
        stored = self.storage.get(keys.PROVIDER)
        if isinstance(stored, str) and stored.strip():
            candidate = stored.strip().lower()
            if candidate in self.endpoints:
                return candidate
            LOGGER.warning(
                "settings.unknown_provider",
                extra={"event": "settings.unknown_provider", "provider": candidate},
            )
        return self.default_provider

    def load(self) -> Settings:
        """Return the current settings snapshot."""
        provider = self._provider()

        api_key = self.storage.get(keys.API_KEY, "")
        model = self.storage.get(keys.MODEL, "")
        if not isinstance(model, str) or not model.strip():
            model = self.default_models.get(provider, "")

        system_prompt = self.storage.get(keys.SYSTEM_PROMPT)
        if not isinstance(system_prompt, str):
            system_prompt = self.default_system_prompt

        return Settings(
            api_key=api_key.strip() if isinstance(api_key, str) else "",
            model=model.strip(),
            system_prompt=system_prompt.strip(),
            provider=provider,
            endpoint=self.endpoints.get(provider, ""),
        )

    def save_api_key(self, api_key: str) -> str | None:
        """Persist the API key.

        Returns a warning when the key looks suspiciously short; the key is
        stored regardless. Raises ``ValueError`` for a blank key.
        """
        normalized = api_key.strip()
        if not normalized:
            raise ValueError("Please enter an API key.")
        self.storage.set(keys.API_KEY, normalized)
        if len(normalized) < MIN_API_KEY_LENGTH:
            return "API key seems too short. Please verify it's correct."
        return None

    def save_model(self, model: str) -> None:
        self.storage.set(keys.MODEL, model.strip())

    def save_system_prompt(self, system_prompt: str) -> None:
        self.storage.set(keys.SYSTEM_PROMPT, system_prompt.strip())

    def save_provider(self, provider: str) -> None:
        normalized = provider.strip().lower()
        if normalized not in self.endpoints:
            raise ValueError(f"Unknown provider {provider!r}.")
        self.storage.set(keys.PROVIDER, normalized)
