"""Plugin base class and types for dispatcher hooks."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any, Optional

import structlog

if TYPE_CHECKING:
    from .dispatcher import Dispatcher
    from .models import DispatchContext, DispatchResult


class PluginContext:
    """Interface exposed to plugins for reading their configuration.

    Plugins receive this in their constructor. Only the plugin's own
    ``plugins.<name>`` section of settings.yaml is visible.
    """

    def __init__(self, plugin_name: str, settings: Optional[dict] = None):
        self.plugin_name = plugin_name
        settings = settings or {}
        self._plugin_settings = settings.get("plugins", {}).get(plugin_name, {}) or {}
        self.logger = structlog.get_logger("policydesk.plugins").bind(
            plugin=plugin_name
        )

    def get_config(self, key: str, default: Any = None) -> Any:
        """Read a value from plugins.<plugin_name>.<key> in settings.yaml."""
        return self._plugin_settings.get(key, default)

    def get_env(self, key: str) -> Optional[str]:
        """Read an environment variable."""
        return os.environ.get(key)

    @property
    def enabled(self) -> bool:
        """Whether this plugin is enabled in config (default True)."""
        return self._plugin_settings.get("enabled", True)


class DispatchPlugin:
    """Base class for dispatcher plugins.

    Subclass this and override the hooks you need. Hooks run in plugin
    registration order; a hook that raises is logged and skipped, it
    never aborts the dispatch. Place third-party plugins in
    plugins/<name>/plugin.py.
    """

    name: str = ""
    description: str = ""
    version: str = "1.0.0"

    def __init__(self, ctx: Optional[PluginContext] = None):
        self.ctx = ctx or PluginContext(self.name or type(self).__name__)

    def install(self, dispatcher: "Dispatcher") -> None:
        """Called once when the plugin is attached to a dispatcher."""
        pass

    async def on_before_process(self, ctx: "DispatchContext") -> None:
        """Called before recognition. May mutate ``ctx``."""
        pass

    async def on_after_process(
        self, ctx: "DispatchContext", result: "DispatchResult"
    ) -> None:
        """Called after the dispatch outcome is known."""
        pass

    @property
    def display_name(self) -> str:
        return self.name or type(self).__name__
