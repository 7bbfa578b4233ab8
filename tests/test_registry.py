"""Tests for HandlerRegistry."""

from structlog.testing import capture_logs

from policydesk.models import HandlerResult, IntentType
from policydesk.registry import BaseHandler, HandlerRegistry


class StubHandler(BaseHandler):
    def __init__(self, name):
        self.name = name

    async def execute(self, params, ctx):
        return HandlerResult()


def test_get_missing_returns_none():
    registry = HandlerRegistry()
    assert registry.get(IntentType.PRICING) is None
    assert registry.get("not-a-type") is None
    assert registry.has("pricing") is False


def test_register_accepts_string_type():
    registry = HandlerRegistry()
    handler = StubHandler("a")
    registry.register("analyze", handler)
    assert registry.get(IntentType.ANALYZE) is handler
    assert registry.intent_types == frozenset({IntentType.ANALYZE})


def test_register_overwrites_and_logs_conflict():
    registry = HandlerRegistry()
    first, second = StubHandler("first"), StubHandler("second")
    registry.register(IntentType.EXPORT, first)
    with capture_logs() as logs:
        registry.register(IntentType.EXPORT, second)
    assert registry.get(IntentType.EXPORT) is second
    assert len(registry) == 1
    assert logs[0]["event"] == "handler_conflict"
    assert logs[0]["previous"] == "first"


def test_unregister():
    registry = HandlerRegistry()
    registry.register(IntentType.HELP, StubHandler("h"))
    assert registry.unregister(IntentType.HELP) is True
    assert registry.unregister(IntentType.HELP) is False
    assert len(registry) == 0


def test_default_validate_accepts_anything():
    assert StubHandler("x").validate({}) is True
    assert StubHandler("").display_name == "StubHandler"
