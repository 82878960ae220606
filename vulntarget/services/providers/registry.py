"""Lookup table from provider name to provider instance."""
from typing import Dict, Iterable, List, Optional

from vulntarget.core.config import VTConfig
from vulntarget.core.errors import ProviderNotFoundError
from vulntarget.core.state_store import DeploymentLedger
from vulntarget.services.providers.base import Provider


class ProviderRegistry:
    """Static mapping of provider names to instances, built at startup."""

    def __init__(self, providers: Optional[Iterable[Provider]] = None):
        self._providers: Dict[str, Provider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: Provider) -> None:
        self._providers[provider.name] = provider

    def get_provider(self, name: str) -> Optional[Provider]:
        """Return the provider registered under ``name`` or None."""
        return self._providers.get(name)

    def require(self, name: str) -> Provider:
        """Like get_provider, but raises ProviderNotFoundError for unknown names."""
        provider = self.get_provider(name)
        if provider is None:
            raise ProviderNotFoundError(name)
        return provider

    def names(self) -> List[str]:
        return sorted(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)


def build_default_registry(config: VTConfig, ledger: DeploymentLedger) -> ProviderRegistry:
    """Create the registry with every built-in provider."""
    from vulntarget.services.docker_compose.provider import DockerComposeProvider

    return ProviderRegistry([DockerComposeProvider(config=config, ledger=ledger)])
