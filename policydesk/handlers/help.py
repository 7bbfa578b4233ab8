"""Usage help for the ``help`` intent."""

from __future__ import annotations

from typing import Any, Dict

from ..models import Artifact, HandlerResult, IntentType
from ..registry import BaseHandler, HandlerRegistry

USAGE = {
    IntentType.ANALYZE: '/analyze "<text>" [company:<name>] [category:all|content|data|risk] [--strict]',
    IntentType.REVIEW: "/review report:<id> [action:list|add|resolve|update] [filter:<type>] [status:<status>]",
    IntentType.PRICING: "/price [saas|one-time|hybrid] [consumer|smb|enterprise] mau=<n> fixed=<n> variable=<n>",
    IntentType.EXPORT: "/export pdf|docx|pptx [template:<name>] [filename:<name>]",
    IntentType.HELP: "/help",
}


class HelpHandler(BaseHandler):
    """Lists the commands the registry can currently serve."""

    name = "help"
    version = "1.0.0"

    def __init__(self, registry: HandlerRegistry):
        self.registry = registry

    async def execute(self, params: Dict[str, Any], ctx) -> HandlerResult:
        available = [t for t in IntentType if t in self.registry.intent_types]
        commands = [
            {"intent": t.value, "usage": USAGE.get(t, "")} for t in available
        ]
        return HandlerResult(
            artifact=Artifact(
                id="help",
                type="help",
                data={"commands": commands},
            )
        )
