"""Provider registry.

Built-in providers come first; third-party packages can add or replace
providers through the `url_risk.providers` entry-point group. The configured
source list then picks which ones run, and in what order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from importlib import metadata
from typing import TYPE_CHECKING

from .base import Provider
from .builtins import builtin_providers

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "url_risk.providers"


def entrypoint_providers(group: str = ENTRY_POINT_GROUP) -> list[Provider]:
    """Instantiate providers advertised by installed packages.

    An entry point may name a Provider instance or a zero-argument factory.
    Broken plugins are logged and skipped.
    """
    found: list[Provider] = []
    for ep in metadata.entry_points(group=group):
        try:
            target = ep.load()
            provider = target() if callable(target) else target
        except Exception as e:  # noqa: BLE001
            logger.warning("Skipping provider plugin %s: %s", ep.name, e)
            continue
        if not isinstance(provider, Provider):
            logger.warning("Plugin %s is not a Provider (got %s)", ep.name, type(provider).__name__)
            continue
        found.append(provider)
    return found


class Registry:
    """Name -> Provider map; later registrations replace earlier ones."""

    def __init__(self, providers: Iterable[Provider] = ()):
        self._by_name: dict[str, Provider] = {}
        for provider in providers:
            self.register(provider)

    @classmethod
    def from_settings(cls, settings: "Settings", *, plugins: bool = True) -> "Registry":
        registry = cls(builtin_providers(settings).values())
        if plugins:
            for provider in entrypoint_providers():
                if provider.name in registry:
                    logger.info("Plugin provider %s replaces the built-in one", provider.name)
                registry.register(provider)
        return registry

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[Provider]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def register(self, provider: Provider) -> None:
        self._by_name[provider.name] = provider

    def get(self, name: str) -> Provider:
        return self._by_name[name]

    def names(self) -> list[str]:
        return sorted(self._by_name)

    def select(self, names: Iterable[str] | None = None) -> list[Provider]:
        """Available providers for `names`, in that order; unknown names are logged and skipped."""
        chosen: list[Provider] = []
        for name in self.names() if names is None else names:
            provider = self._by_name.get(name)
            if provider is None:
                logger.warning("Unknown source %r ignored (known: %s)", name, ", ".join(self.names()))
            elif provider.is_available():
                chosen.append(provider)
            else:
                logger.info("Source %s is not available here, skipped", name)
        return chosen
