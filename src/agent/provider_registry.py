"""ModelRegistry: per-provider model clients, resolved into capability handles.

Created at startup; holds one client per configured provider. The gateway
resolves a ModelHandle per request (provider id + optional model override)
and hands it to the orchestrator. Provider discovery stops here: a handle is
all the orchestrator ever sees.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.agent.model_client import ModelClient


@dataclass(frozen=True)
class ModelHandle:
    """An already-resolved model capability: client plus model id."""

    provider: str
    model: str
    client: ModelClient
    enabled: bool = True


@dataclass
class ProviderEntry:
    name: str
    client: ModelClient
    model: str  # provider default model
    enabled: bool = True


class ModelRegistry:
    """Registry of per-provider model clients."""

    def __init__(self, default_provider: str) -> None:
        self._providers: dict[str, ProviderEntry] = {}
        self._default = default_provider

    def register(
        self, name: str, client: ModelClient, model: str, *, enabled: bool = True
    ) -> None:
        self._providers[name] = ProviderEntry(
            name=name, client=client, model=model, enabled=enabled,
        )

    def set_enabled(self, name: str, enabled: bool) -> None:
        self._entry(name).enabled = enabled

    def resolve(self, provider: str | None = None, model: str | None = None) -> ModelHandle:
        """Handle for provider (default if None) and model (provider default if None).

        Raises KeyError if the provider is not registered. A disabled provider
        still resolves; the handle carries enabled=False and the orchestrator
        refuses it.
        """
        entry = self._entry(provider or self._default)
        return ModelHandle(
            provider=entry.name,
            model=model or entry.model,
            client=entry.client,
            enabled=entry.enabled,
        )

    @property
    def default_name(self) -> str:
        return self._default

    def available_providers(self) -> list[str]:
        return list(self._providers.keys())

    def status(self) -> list[dict[str, object]]:
        """Provider list for the providerStatus topic."""
        return [
            {
                "id": e.name,
                "model": e.model,
                "enabled": e.enabled,
                "default": e.name == self._default,
            }
            for e in sorted(self._providers.values(), key=lambda e: e.name)
        ]

    def _entry(self, name: str) -> ProviderEntry:
        if name not in self._providers:
            msg = f"Provider '{name}' not registered or not configured"
            raise KeyError(msg)
        return self._providers[name]
