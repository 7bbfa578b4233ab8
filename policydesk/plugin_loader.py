"""Plugin discovery and loading for the dispatcher."""

from __future__ import annotations

import importlib.util
import sys
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

import structlog

from .plugin_base import DispatchPlugin, PluginContext

if TYPE_CHECKING:
    from .dispatcher import Dispatcher

logger = structlog.get_logger("policydesk.plugins")


class PluginLoader:
    """Discovers and loads dispatcher plugins from a directory.

    Each plugin lives in ``<plugins_dir>/<name>/plugin.py`` and defines
    one ``DispatchPlugin`` subclass. Loaded plugins keep discovery
    order (sorted by directory name), which becomes their hook order
    once installed.
    """

    def __init__(self, plugins_dir: Path, settings: Optional[dict] = None):
        self.plugins_dir = plugins_dir
        self._settings = settings or {}
        self.plugins: List[DispatchPlugin] = []

    def discover_and_load(self) -> None:
        """Scan plugins_dir for plugin.py files and load them."""
        if not self.plugins_dir.is_dir():
            logger.info("plugin_loader_no_dir", path=str(self.plugins_dir))
            return

        # Add plugins_dir to sys.path so plugins can import each other
        plugins_str = str(self.plugins_dir)
        if plugins_str not in sys.path:
            sys.path.append(plugins_str)

        # Plugin allowlist: if configured, only load listed plugins
        allowlist = self._settings.get("plugin_allowlist")
        if allowlist is not None and not isinstance(allowlist, list):
            logger.error("plugin_allowlist_invalid_type", type=type(allowlist).__name__)
            allowlist = None

        for plugin_dir in sorted(self.plugins_dir.iterdir()):
            if not plugin_dir.is_dir():
                continue
            plugin_file = plugin_dir / "plugin.py"
            if not plugin_file.is_file():
                continue

            plugin_name = plugin_dir.name

            if allowlist is not None and plugin_name not in allowlist:
                logger.warning(
                    "plugin_blocked_not_in_allowlist",
                    plugin=plugin_name,
                    allowlist=allowlist,
                )
                continue

            try:
                self._load_plugin(plugin_name, plugin_file)
            except Exception as e:
                logger.error(
                    "plugin_load_failed",
                    plugin=plugin_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        logger.info("plugin_loader_complete", plugins_loaded=len(self.plugins))

    def _load_plugin(self, plugin_name: str, plugin_file: Path) -> None:
        """Load a single plugin from its plugin.py file."""
        plugin_config = self._settings.get("plugins", {}).get(plugin_name, {})
        if isinstance(plugin_config, dict) and plugin_config.get("enabled") is False:
            logger.info("plugin_skipped_disabled", plugin=plugin_name)
            return

        module_name = f"{plugin_name}.plugin"
        spec = importlib.util.spec_from_file_location(module_name, plugin_file)
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        spec.loader.exec_module(module)

        plugin_cls = None
        for attr in module.__dict__.values():
            if (
                isinstance(attr, type)
                and issubclass(attr, DispatchPlugin)
                and attr is not DispatchPlugin
                and attr.__module__ == module_name
            ):
                plugin_cls = attr
                break

        if plugin_cls is None:
            logger.warning("plugin_no_class_found", plugin=plugin_name)
            return

        ctx = PluginContext(plugin_name=plugin_name, settings=self._settings)
        plugin = plugin_cls(ctx)
        self.plugins.append(plugin)

        logger.info("plugin_loaded", plugin=plugin_name, version=plugin.version)

    def install_all(self, dispatcher: "Dispatcher") -> None:
        """Attach every loaded plugin to ``dispatcher`` in load order."""
        for plugin in self.plugins:
            dispatcher.use(plugin)
