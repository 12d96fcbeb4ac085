"""Plugin registry: auto-discovers and registers all LanguagePlugin subclasses."""

import importlib
import pkgutil
from pathlib import Path
from typing import TYPE_CHECKING

from vulnfeed.core.logging import get_logger

if TYPE_CHECKING:
    from vulnfeed.plugins.base import LanguagePlugin

logger = get_logger(__name__)


class PluginRegistry:
    """Registry holding one instance of every discovered language plugin.

    Usage:
        registry = PluginRegistry()
        registry.discover()
        python = registry.get("python")
    """

    def __init__(self) -> None:
        self._plugins: dict[str, "LanguagePlugin"] = {}
        self._discovered = False

    def discover(self, package: str = "vulnfeed.plugins") -> None:
        """Scan the plugins package and register all concrete LanguagePlugin subclasses."""
        from vulnfeed.plugins.base import LanguagePlugin  # avoid circular import

        plugins_path = Path(__file__).parent.parent / "plugins"

        found: dict[str, LanguagePlugin] = {}
        for module_info in pkgutil.iter_modules([str(plugins_path)]):
            if module_info.name == "base":
                continue  # skip the abstract base

            full_name = f"{package}.{module_info.name}"
            try:
                mod = importlib.import_module(full_name)
            except Exception as exc:
                logger.warning("Failed to import plugin file", name=full_name, error=str(exc))
                continue

            for attr_name in dir(mod):
                obj = getattr(mod, attr_name)
                if (
                    isinstance(obj, type)
                    and issubclass(obj, LanguagePlugin)
                    and obj is not LanguagePlugin
                    and obj.__module__ == full_name
                    and not getattr(obj, "__abstractmethods__", None)
                ):
                    slug = obj.metadata.id
                    if slug in found:
                        logger.warning(
                            "Duplicate plugin id, skipping",
                            id=slug,
                            existing=type(found[slug]).__name__,
                            new=obj.__name__,
                        )
                        continue
                    found[slug] = obj()
                    logger.debug("Registered plugin", id=slug, cls=obj.__name__)

        ordered = sorted(found.values(), key=lambda p: (p.metadata.order, p.metadata.id))
        self._plugins = {p.metadata.id: p for p in ordered}
        self._discovered = True
        logger.info("Plugin discovery complete", count=len(self._plugins))

    def get(self, plugin_id: str) -> "LanguagePlugin | None":
        return self._plugins.get(plugin_id)

    def all(self) -> list["LanguagePlugin"]:
        """Plugins in their declared order."""
        return list(self._plugins.values())

    def ids(self) -> list[str]:
        return list(self._plugins.keys())

    def for_file(self, path: str) -> list["LanguagePlugin"]:
        """Plugins claiming *path* by extension (case-insensitive)."""
        lowered = path.lower()
        return [
            p for p in self._plugins.values()
            if any(lowered.endswith(ext.lower()) for ext in p.metadata.extensions)
        ]

    def is_source_file(self, path: str) -> bool:
        return bool(self.for_file(path))

    @property
    def is_discovered(self) -> bool:
        return self._discovered


# Global singleton
_registry: PluginRegistry | None = None


def get_registry() -> PluginRegistry:
    global _registry
    if _registry is None:
        _registry = PluginRegistry()
        _registry.discover()
    return _registry
