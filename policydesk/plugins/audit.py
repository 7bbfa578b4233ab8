"""Post-process hook that logs one audit event per dispatch."""

from __future__ import annotations

from ..models import Channel, DispatchContext, DispatchResult
from ..plugin_base import DispatchPlugin


class AuditLogPlugin(DispatchPlugin):
    name = "audit"
    description = "Structured audit trail of every dispatch"

    def __init__(self, ctx=None):
        super().__init__(ctx)
        self.events = 0

    async def on_after_process(
        self, ctx: DispatchContext, result: DispatchResult
    ) -> None:
        self.events += 1
        self.ctx.logger.info(
            "dispatch_audit",
            user_id=ctx.user.id,
            channel=Channel(ctx.channel).value,
            intent=result.intent.type.value if result.intent else None,
            success=result.success,
            from_cache=result.from_cache,
            error_code=result.error_code,
            artifact_id=result.artifact.id if result.artifact else None,
            duration_ms=round(result.duration_ms, 3),
        )
