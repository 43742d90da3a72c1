"""Credential lookup for provider and search APIs.

This module hides where API keys live. Keys are looked up by provider
display name ("OpenAI", "Groq", "RapidAPI", ...). A missing key is returned
as an empty string and never validated here; the provider call fails later
with an authentication error.
"""

import os
import re
from abc import ABC, abstractmethod

from dotenv import load_dotenv


class SecretStore(ABC):
    """Abstract secret store keyed by provider display name."""

    @abstractmethod
    def get_api_key(self, provider: str) -> str:
        """Return the API key for a provider, or "" when unset."""


class InMemorySecretStore(SecretStore):
    """Secret store backed by a dict (settings screen, tests)."""

    def __init__(self, keys: dict[str, str] | None = None):
        self._keys: dict[str, str] = dict(keys or {})

    def set_api_key(self, provider: str, key: str) -> None:
        """Store or replace the key for a provider."""
        self._keys[provider] = key

    def get_api_key(self, provider: str) -> str:
        return self._keys.get(provider, "")


class EnvSecretStore(SecretStore):
    """Secret store reading ``<PROVIDER>_API_KEY`` environment variables.

    Environment variables:
        OPENAI_API_KEY, GROQ_API_KEY, GOOGLE_API_KEY, ANTHROPIC_API_KEY,
        MISTRAL_API_KEY, RAPIDAPI_KEY
    """

    # Names that do not follow the <PROVIDER>_API_KEY convention
    _OVERRIDES = {
        "RapidAPI": "RAPIDAPI_KEY",
    }

    def __init__(self, dotenv_path: str | None = None, load_env_file: bool = True):
        if load_env_file:
            load_dotenv(dotenv_path)

    @classmethod
    def env_var_for(cls, provider: str) -> str:
        """Get the environment variable name holding a provider's key."""
        if provider in cls._OVERRIDES:
            return cls._OVERRIDES[provider]
        slug = re.sub(r"[^A-Za-z0-9]+", "_", provider).strip("_").upper()
        return f"{slug}_API_KEY"

    def get_api_key(self, provider: str) -> str:
        return os.getenv(self.env_var_for(provider), "")
