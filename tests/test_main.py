"""Tests for dispatcher wiring and the interactive session."""

import io
import json

import pytest

from policydesk.config import Config
from policydesk.main import build_dispatcher, render_result, session, session_command
from policydesk.models import DispatchResult
from policydesk.plugins import AuditLogPlugin, InputSanitizerPlugin


@pytest.fixture
def config(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "settings.yaml").write_text(
        "dispatcher:\n"
        "  max_cache_size: 7\n"
        "plugins_dir: " + str(tmp_path / "plugins") + "\n"
        "plugins:\n"
        "  audit:\n"
        "    enabled: false\n",
        encoding="utf-8",
    )
    return Config(config_dir)


def test_build_dispatcher(config):
    dispatcher = build_dispatcher(config)
    assert dispatcher.cache.max_size == 7
    assert len(dispatcher.registry) == 5
    kinds = [type(p) for p in dispatcher.plugins]
    assert InputSanitizerPlugin in kinds
    assert AuditLogPlugin not in kinds


def test_render_failure():
    result = DispatchResult(success=False, error="nope", error_code="validation_error")
    assert render_result(result) == "error [validation_error]: nope"


@pytest.mark.asyncio
async def test_session_round_trip(config):
    dispatcher = build_dispatcher(config)
    stdin = io.StringIO("/price enterprise mau=1000 fixed=6000 variable=1\n:stats\n:quit\n/help\n")
    stdout = io.StringIO()

    await session(dispatcher, stdin=stdin, stdout=stdout)

    output = stdout.getvalue()
    assert '"recommended_price": 10' in output
    assert '"max_size": 7' in output
    # nothing after :quit is dispatched
    assert dispatcher.history.size() == 1


@pytest.mark.asyncio
async def test_session_undo_and_history(config):
    dispatcher = build_dispatcher(config)
    await dispatcher.handle_text("/help")
    await dispatcher.handle_text("/export pdf")

    assert "help" in session_command(dispatcher, ":undo")
    assert "export" in session_command(dispatcher, ":redo")
    history = session_command(dispatcher, ":history").splitlines()
    assert len(history) == 2
    assert session_command(dispatcher, ":quit") is None
    assert session_command(dispatcher, ":dance").startswith("unknown command")


@pytest.mark.asyncio
async def test_cached_result_is_marked(config):
    dispatcher = build_dispatcher(config)
    await dispatcher.handle_text("/help")
    rendered = render_result(await dispatcher.handle_text("/help"))
    assert rendered.endswith("(cached)")
    body = json.loads(rendered[: -len(" (cached)")])
    assert body["type"] == "help"
