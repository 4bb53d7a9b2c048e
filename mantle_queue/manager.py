import logging
from typing import Dict, List, Optional, Union

from .errors import ConfigurationError
from .provider import Provider

log = logging.getLogger(__name__)


class QueueManager:
    """
    Registry of named connections. Providers may be registered as instances
    or as classes/factories taking the application; the latter are built on
    first use.
    """

    def __init__(self, app):
        self.app = app
        self._providers: Dict[str, Union[Provider, type]] = {}
        self._connections: Dict[str, Provider] = {}

    def add_provider(self, name: str, provider):
        if isinstance(provider, type) and not issubclass(provider, Provider):
            raise ConfigurationError(
                f"Provider does not implement Provider contract: [{provider.__name__}]"
            )
        if not isinstance(provider, (Provider, type)) and not callable(provider):
            raise ConfigurationError(
                f"Provider does not implement Provider contract: [{type(provider).__name__}]"
            )
        self._providers[name] = provider
        self._connections.pop(name, None)
        return self

    def get_provider(self, name: Optional[str] = None) -> Provider:
        name = name or self.get_default_driver()
        if name not in self._connections:
            self._connections[name] = self._resolve(name)
        return self._connections[name]

    def get_default_driver(self) -> Optional[str]:
        return self.app.config.get("default")

    def providers(self) -> List[str]:
        return sorted(self._providers)

    def _resolve(self, name: Optional[str]) -> Provider:
        if name not in self._providers:
            raise ConfigurationError(f"No provider found for [{name}].")

        provider = self._providers[name]
        if not isinstance(provider, Provider):
            log.debug("building provider %s", name)
            provider = provider(self.app)

        if not isinstance(provider, Provider):
            raise ConfigurationError(
                f"Unknown provider instance resolved for [{name}]: {type(provider).__name__}"
            )
        return provider
