"""
Plugin registry — chain id -> plugin factory, instances cached per process.
"""
from typing import Callable
from shared.chains.base import ChainPlugin
import structlog

logger = structlog.get_logger()

PluginFactory = Callable[[], ChainPlugin]


class PluginNotFound(LookupError):
    def __init__(self, chain: str):
        super().__init__(f"Plugin {chain} not found")
        self.chain = chain


class PluginRegistry:
    def __init__(self):
        self._factories: dict[str, PluginFactory] = {}
        self._instances: dict[str, ChainPlugin] = {}

    def register(self, chain: str, factory: PluginFactory) -> None:
        """Register (or replace) the factory for a chain. Last writer wins."""
        logger.info("plugin_registered", chain=chain)
        self._factories[chain] = factory
        self._instances.pop(chain, None)

    def get(self, chain: str) -> ChainPlugin:
        plugin = self._instances.get(chain)
        if plugin is not None:
            return plugin
        factory = self._factories.get(chain)
        if factory is None:
            raise PluginNotFound(chain)
        plugin = factory()
        self._instances[chain] = plugin
        return plugin

    def has(self, chain: str) -> bool:
        return chain in self._factories

    @property
    def chains(self) -> list[str]:
        return sorted(self._factories)

    def initialize(self) -> None:
        """Register the built-in on-chain plugins. Safe to call more than once."""
        # Imported here so the SDK stacks load only when the registry is populated
        from shared.chains.injective import InjectivePlugin
        from shared.chains.aptos import AptosPlugin
        from shared.chains.sonic import SonicPlugin

        self.register("injective", InjectivePlugin)
        self.register("aptos", AptosPlugin)
        self.register("sonic", SonicPlugin)
        logger.info("plugins_initialized", chains=self.chains)
