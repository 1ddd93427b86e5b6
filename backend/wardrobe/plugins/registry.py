from __future__ import annotations

import importlib
import pkgutil

from wardrobe.plugins.base import BackgroundRemoverPlugin

PluginBase = BackgroundRemoverPlugin

_registry: dict[str, dict[str, PluginBase]] = {
    "segmenter": {},
}


def register(plugin_type: str, plugin: PluginBase) -> None:
    if plugin_type not in _registry:
        raise ValueError(f"Unknown plugin type: {plugin_type}")
    _registry[plugin_type][plugin.name] = plugin


def get(plugin_type: str, name: str) -> PluginBase | None:
    return _registry.get(plugin_type, {}).get(name)


def get_all(plugin_type: str) -> dict[str, PluginBase]:
    return _registry.get(plugin_type, {})


def discover() -> None:
    """Auto-discover and register plugins from wardrobe.plugins subpackages."""
    import wardrobe.plugins.segmenters as segmenters_pkg

    for _importer, modname, _ispkg in pkgutil.iter_modules(segmenters_pkg.__path__):
        module = importlib.import_module(f"wardrobe.plugins.segmenters.{modname}")
        if hasattr(module, "register_plugin"):
            module.register_plugin()
