"""Main entry point for policydesk.

Runs an interactive line session against a fully wired dispatcher:
each input line is dispatched as a chat message and the resulting
artifact is printed as JSON. Lines starting with ``:`` are session
commands (``:undo``, ``:redo``, ``:history``, ``:stats``, ``:quit``).

Key functions:
    build_dispatcher: Wire config, handlers and plugins into a Dispatcher.
    main: Async entry point -- sets up logging, config and the session.
    run: Synchronous wrapper that calls asyncio.run(main()).
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Optional, TextIO

import structlog

from .config import Config
from .dispatcher import Dispatcher
from .handlers import build_default_registry
from .logging_config import setup_logging
from .models import DispatchResult, HistoryEntry
from .plugin_base import PluginContext
from .plugin_loader import PluginLoader
from .plugins import AuditLogPlugin, InputSanitizerPlugin

BUILTIN_PLUGINS = {
    "sanitizer": InputSanitizerPlugin,
    "audit": AuditLogPlugin,
}

PROMPT = "policydesk> "


def build_dispatcher(config: Config) -> Dispatcher:
    """Create a dispatcher from ``config``.

    Built-in plugins are installed first, in ``builtin_plugins`` order,
    then any plugins discovered in ``plugins_dir``.

    Raises:
        ConfigurationError: Dispatcher options or the rules file are invalid.
    """
    logger = structlog.get_logger("policydesk.config")
    options = config.dispatcher_options()
    registry = build_default_registry(options, config.rules_file)
    dispatcher = Dispatcher(registry=registry, options=options)

    for name in config.builtin_plugins:
        plugin_cls = BUILTIN_PLUGINS.get(name)
        if plugin_cls is None:
            logger.warning("builtin_plugin_unknown", plugin=name)
            continue
        plugin = plugin_cls(PluginContext(name, config.settings))
        if plugin.ctx.enabled:
            dispatcher.use(plugin)

    loader = PluginLoader(config.plugins_dir, config.settings)
    loader.discover_and_load()
    loader.install_all(dispatcher)
    return dispatcher


def render_result(result: DispatchResult) -> str:
    if not result.success:
        return f"error [{result.error_code}]: {result.error}"
    body = result.artifact.model_dump(mode="json") if result.artifact else None
    suffix = " (cached)" if result.from_cache else ""
    return json.dumps(body, ensure_ascii=False, indent=2) + suffix


def _render_entry(entry: Optional[HistoryEntry]) -> str:
    if entry is None:
        return "(nothing there)"
    return f"{entry.id}  {entry.intent.type.value}  success={entry.result.success}"


def session_command(dispatcher: Dispatcher, line: str) -> Optional[str]:
    """Run a ``:command``. Returns the text to print, or None to quit."""
    command = line.strip()[1:].lower()
    if command in ("quit", "exit", "q"):
        return None
    if command == "undo":
        return _render_entry(dispatcher.undo())
    if command == "redo":
        return _render_entry(dispatcher.redo())
    if command == "history":
        entries = dispatcher.history.recent(10)
        return "\n".join(_render_entry(e) for e in entries) or "(empty)"
    if command == "stats":
        return dispatcher.cache_stats().model_dump_json(indent=2)
    return f"unknown command :{command}"


async def session(
    dispatcher: Dispatcher,
    stdin: TextIO = sys.stdin,
    stdout: TextIO = sys.stdout,
) -> None:
    """Read lines from ``stdin`` until EOF or ``:quit``."""
    while True:
        stdout.write(PROMPT)
        stdout.flush()
        line = await asyncio.to_thread(stdin.readline)
        if not line:
            break
        line = line.strip()
        if not line:
            continue
        if line.startswith(":"):
            output = session_command(dispatcher, line)
            if output is None:
                break
        else:
            output = render_result(await dispatcher.handle_text(line))
        stdout.write(output + "\n")


async def main():
    """Main async entry point."""
    setup_logging()
    logger = structlog.get_logger("policydesk.dispatch")

    config_dir = os.environ.get("POLICYDESK_CONFIG_DIR")
    config = Config(Path(config_dir) if config_dir else None)
    config.validate()
    setup_logging(config)

    dispatcher = build_dispatcher(config)
    logger.info(
        "policydesk_started",
        handlers=sorted(t.value for t in dispatcher.registry.intent_types),
        plugins=[getattr(p, "display_name", type(p).__name__) for p in dispatcher.plugins],
    )
    try:
        await session(dispatcher)
    finally:
        logger.info("policydesk_stopped", **dispatcher.cache_stats().model_dump())


def run():
    """Synchronous entry point for the ``policydesk`` console script."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
