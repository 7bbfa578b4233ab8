"""Tests for plugin discovery, allowlist and installation."""

from pathlib import Path

import pytest

from policydesk.dispatcher import Dispatcher
from policydesk.plugin_loader import PluginLoader

PLUGIN_SOURCE = (
    "from policydesk.plugin_base import DispatchPlugin\n"
    "class {cls}(DispatchPlugin):\n"
    "    name = '{name}'\n"
    "    version = '2.0'\n"
    "    async def on_before_process(self, ctx):\n"
    "        ctx.metadata.setdefault('seen', []).append('{name}')\n"
)


def _write_plugin(root: Path, dirname: str, cls: str = "TestPlugin") -> None:
    plugin_dir = root / dirname
    plugin_dir.mkdir()
    (plugin_dir / "plugin.py").write_text(PLUGIN_SOURCE.format(cls=cls, name=dirname))


def test_plugin_allowlist_blocks_unlisted_plugin(tmp_path):
    """Plugins not in allowlist should be skipped."""
    _write_plugin(tmp_path, "evil_plugin")
    loader = PluginLoader(tmp_path, {"plugin_allowlist": ["safe_plugin"]})
    loader.discover_and_load()
    assert loader.plugins == []


def test_plugin_allowlist_allows_listed_plugin(tmp_path):
    _write_plugin(tmp_path, "safe_plugin_a")
    loader = PluginLoader(tmp_path, {"plugin_allowlist": ["safe_plugin_a"]})
    loader.discover_and_load()
    assert [p.name for p in loader.plugins] == ["safe_plugin_a"]
    assert loader.plugins[0].version == "2.0"


def test_disabled_plugin_is_skipped(tmp_path):
    _write_plugin(tmp_path, "quiet_plugin")
    loader = PluginLoader(tmp_path, {"plugins": {"quiet_plugin": {"enabled": False}}})
    loader.discover_and_load()
    assert loader.plugins == []


def test_broken_plugin_does_not_stop_others(tmp_path):
    broken = tmp_path / "aaa_broken"
    broken.mkdir()
    (broken / "plugin.py").write_text("raise ImportError('missing dependency')\n")
    _write_plugin(tmp_path, "bbb_working")

    loader = PluginLoader(tmp_path)
    loader.discover_and_load()
    assert [p.name for p in loader.plugins] == ["bbb_working"]


def test_missing_dir_loads_nothing(tmp_path):
    loader = PluginLoader(tmp_path / "absent")
    loader.discover_and_load()
    assert loader.plugins == []


def test_plugin_settings_are_scoped(tmp_path):
    _write_plugin(tmp_path, "scoped_plugin")
    settings = {"plugins": {"scoped_plugin": {"level": 3}, "other": {"level": 9}}}
    loader = PluginLoader(tmp_path, settings)
    loader.discover_and_load()
    assert loader.plugins[0].ctx.get_config("level") == 3


@pytest.mark.asyncio
async def test_install_all_preserves_discovery_order(tmp_path):
    _write_plugin(tmp_path, "order_b", "PluginB")
    _write_plugin(tmp_path, "order_a", "PluginA")
    loader = PluginLoader(tmp_path)
    loader.discover_and_load()

    dispatcher = Dispatcher()
    loader.install_all(dispatcher)
    result_ctx_seen = []

    async def capture(ctx, result):
        result_ctx_seen.extend(ctx.metadata["seen"])

    class Tail:
        on_after_process = staticmethod(capture)

    dispatcher.use(Tail())
    await dispatcher.handle_text("/help")
    assert result_ctx_seen == ["order_a", "order_b"]
