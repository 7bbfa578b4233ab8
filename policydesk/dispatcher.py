"""Message dispatcher: recognition, caching, handler routing, history.

Key classes:
    Dispatcher: Single entry point ``handle()`` plus per-intent request
        builders (``analyze``, ``review``, ``price``, ``export``).

Pipeline for one ``handle()`` call, in order:

    1. pre-process hooks, in plugin registration order
    2. intent recognition
    3. cache lookup on ``channel/intent/canonical-params``
    4. handler lookup (miss -> ``handler_not_found``)
    5. validate + execute (errors -> ``validation_error`` /
       ``handler_execution_error``)
    6. history record (every outcome, cache hits included)
    7. post-process hooks (every outcome, cache hits included)
    8. cache store of a freshly produced artifact
    9. return the result with its duration

``handle()`` never raises. All collaborators are injected; a
dispatcher owns nothing global, so hosts that serve several sessions
concurrently from threads should give each session its own instance.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from .builders import AnalyzeRequest, ExportRequest, PricingRequest, ReviewRequest
from .cache import SmartCache
from .exceptions import (
    ConfigurationError,
    HandlerExecutionError,
    HandlerNotFoundError,
    ValidationError,
)
from .history import HistoryLog
from .models import (
    Artifact,
    Channel,
    DispatchContext,
    DispatcherOptions,
    DispatchResult,
    ExportFormat,
    HandlerResult,
    HistoryEntry,
    Intent,
    IntentType,
    CacheStats,
    PricingParams,
    UserInfo,
)
from .recognizer import IntentRecognizer
from .registry import BaseHandler, HandlerRegistry

logger = structlog.get_logger("policydesk.dispatch")

DEFAULT_USER = UserInfo(id="default", name="User")

# Options that can change after construction without resizing state
_RUNTIME_OPTIONS = frozenset({"strict_mode", "enable_history", "default_channel"})


def cache_key(channel: Union[Channel, str], intent: Intent) -> str:
    """``<channel>/<intent type>/<canonical JSON of params>``."""
    return f"{Channel(channel).value}/{intent.type.value}/{intent.canonical_params()}"


class Dispatcher:
    """Routes messages to intent handlers with caching and history.

    Args:
        registry: Handler registry. Defaults to an empty one.
        options: Dispatcher options. Defaults to ``DispatcherOptions()``.
        recognizer: Intent recognizer.
        cache: Artifact cache. Defaults to a ``SmartCache`` sized from
            ``options``.
        history: History log. Defaults to a ``HistoryLog`` sized from
            ``options``.
        plugins: Hook plugins, installed in the given order.
        clock: Time source in seconds for duration measurement.
    """

    def __init__(
        self,
        registry: Optional[HandlerRegistry] = None,
        options: Optional[DispatcherOptions] = None,
        recognizer: Optional[IntentRecognizer] = None,
        cache: Optional[SmartCache[Artifact]] = None,
        history: Optional[HistoryLog] = None,
        plugins: Iterable[Any] = (),
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.options = options if options is not None else DispatcherOptions()
        self.registry = registry if registry is not None else HandlerRegistry()
        self.recognizer = recognizer if recognizer is not None else IntentRecognizer()
        self.cache: SmartCache[Artifact] = (
            cache
            if cache is not None
            else SmartCache(max_size=self.options.max_cache_size, ttl_ms=self.options.ttl_ms)
        )
        self.history = (
            history
            if history is not None
            else HistoryLog(max_size=self.options.max_history_size)
        )
        self._clock = clock
        self._plugins: List[Any] = []
        for plugin in plugins:
            self.use(plugin)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def use(self, plugin: Any) -> "Dispatcher":
        """Install a hook plugin; its hooks run after those already installed.

        A plugin whose ``install()`` raises is logged and not added.
        """
        name = getattr(plugin, "display_name", None) or type(plugin).__name__
        install = getattr(plugin, "install", None)
        if install is not None:
            try:
                install(self)
            except Exception as e:
                logger.error("plugin_install_failed", plugin=name, error=str(e))
                return self
        self._plugins.append(plugin)
        logger.info("plugin_installed", plugin=name, position=len(self._plugins))
        return self

    @property
    def plugins(self) -> List[Any]:
        return list(self._plugins)

    def register_handler(
        self, intent_type: Union[IntentType, str], handler: BaseHandler
    ) -> "Dispatcher":
        self.registry.register(intent_type, handler)
        return self

    def configure(self, **changes: Any) -> "Dispatcher":
        """Change runtime options (strict_mode, enable_history, default_channel).

        Raises:
            ConfigurationError: An unknown or non-runtime option was
                given, or a value failed validation.
        """
        unsupported = set(changes) - _RUNTIME_OPTIONS
        if unsupported:
            raise ConfigurationError(
                "Option cannot be changed after construction",
                setting_name=", ".join(sorted(unsupported)),
            )
        try:
            validated = DispatcherOptions.model_validate(
                {**self.options.model_dump(), **changes}
            )
        except PydanticValidationError as e:
            raise ConfigurationError(str(e)) from e
        strict_changed = validated.strict_mode != self.options.strict_mode
        # Handlers built from the same options object see the change
        for name in changes:
            setattr(self.options, name, getattr(validated, name))
        # strict_mode is not part of the cache key
        if strict_changed:
            self.cache.clear()
        logger.info("dispatcher_configured", **{k: str(v) for k, v in changes.items()})
        return self

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle(self, ctx: DispatchContext) -> DispatchResult:
        """Process one message. Never raises; check ``result.success``."""
        start = self._clock()

        await self._run_before_hooks(ctx)

        intent: Optional[Intent] = None
        channel: Optional[Channel] = None
        key: Optional[str] = None
        fresh: Optional[Artifact] = None
        try:
            intent = self.recognizer.recognize(ctx.message)
            channel = Channel(ctx.channel)
            key = cache_key(channel, intent)

            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("dispatch_cache_hit", intent=intent.type.value, key=key)
                result = DispatchResult(
                    success=True,
                    artifact=cached.model_copy(deep=True),
                    from_cache=True,
                    intent=intent,
                )
            else:
                result = await self._execute(intent, ctx)
                if result.success and result.artifact is not None:
                    fresh = result.artifact.model_copy(deep=True)
        except Exception as e:
            logger.error(
                "dispatch_internal_error",
                error=str(e),
                error_type=type(e).__name__,
            )
            result = DispatchResult(
                success=False,
                error=str(e) or type(e).__name__,
                error_code="internal_error",
                intent=intent,
            )

        result.duration_ms = self._elapsed_ms(start)

        if self.options.enable_history and intent is not None:
            channel_name = (channel or ctx.channel).value
            self.history.record(
                intent=intent,
                result=result.model_copy(deep=True),
                duration_ms=result.duration_ms,
                metadata={
                    "channel": channel_name,
                    "user_id": ctx.user.id,
                },
            )

        await self._run_after_hooks(ctx, result)

        if fresh is not None and key is not None:
            self.cache.set(key, fresh)

        result.duration_ms = self._elapsed_ms(start)
        logger.info(
            "dispatch_complete",
            intent=intent.type.value if intent else None,
            success=result.success,
            from_cache=result.from_cache,
            error_code=result.error_code,
            duration_ms=round(result.duration_ms, 3),
        )
        return result

    async def handle_text(
        self,
        message: str,
        user: Optional[UserInfo] = None,
        channel: Optional[Union[Channel, str]] = None,
        **context: Any,
    ) -> DispatchResult:
        """Build a ``DispatchContext`` around ``message`` and handle it.

        ``channel`` defaults to ``options.default_channel``.
        """
        ctx = DispatchContext(
            user=user or DEFAULT_USER,
            message=message,
            channel=channel or self.options.default_channel,
            **context,
        )
        return await self.handle(ctx)

    async def _execute(self, intent: Intent, ctx: DispatchContext) -> DispatchResult:
        handler = self.registry.get(intent.type)
        if handler is None:
            err = HandlerNotFoundError(intent.type.value)
            logger.warning("handler_not_found", intent=intent.type.value)
            return self._failure(intent, err.message, err.error_code)

        name = getattr(handler, "display_name", type(handler).__name__)
        params: Dict[str, Any] = dict(intent.params)

        try:
            valid = handler.validate(params)
            if not valid:
                err = ValidationError(
                    f"Invalid parameters for '{intent.type.value}'",
                    handler=name,
                )
                logger.warning(
                    "handler_validation_failed",
                    intent=intent.type.value,
                    handler=name,
                    params=sorted(params),
                )
                return self._failure(intent, err.message, err.error_code)

            raw = await handler.execute(params, ctx)
            handler_result = _coerce_handler_result(raw)
        except Exception as e:
            err = HandlerExecutionError(
                str(e) or type(e).__name__, handler=name, cause=e
            )
            logger.error(
                "handler_execution_failed",
                intent=intent.type.value,
                handler=name,
                error=err.message,
                error_type=type(e).__name__,
            )
            return self._failure(intent, err.message, err.error_code)

        return DispatchResult(
            success=True, artifact=handler_result.artifact, intent=intent
        )

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def _run_before_hooks(self, ctx: DispatchContext) -> None:
        for plugin in self._plugins:
            hook = getattr(plugin, "on_before_process", None)
            if hook is None:
                continue
            try:
                await hook(ctx)
            except Exception as e:
                logger.error(
                    "plugin_hook_failed",
                    plugin=getattr(plugin, "display_name", type(plugin).__name__),
                    hook="on_before_process",
                    error=str(e),
                )

    async def _run_after_hooks(
        self, ctx: DispatchContext, result: DispatchResult
    ) -> None:
        for plugin in self._plugins:
            hook = getattr(plugin, "on_after_process", None)
            if hook is None:
                continue
            try:
                await hook(ctx, result)
            except Exception as e:
                logger.error(
                    "plugin_hook_failed",
                    plugin=getattr(plugin, "display_name", type(plugin).__name__),
                    hook="on_after_process",
                    error=str(e),
                )

    # ------------------------------------------------------------------
    # Request builders
    # ------------------------------------------------------------------

    def analyze(self, content: str) -> AnalyzeRequest:
        """Start a compliance analysis request for ``content``."""
        return AnalyzeRequest(dispatcher=self, content=content)

    def review(self, report_id: str) -> ReviewRequest:
        """Start a review-comments request for ``report_id``."""
        return ReviewRequest(dispatcher=self, report_id=report_id)

    def price(self, params: Union[PricingParams, Dict[str, Any]]) -> PricingRequest:
        """Start a pricing request.

        Raises:
            ValidationError: ``params`` is malformed or carries no user
                count (``monthly_active_users`` or ``amount``).
        """
        try:
            model = PricingParams.model_validate(params)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid pricing parameters: {e}") from e
        if model.monthly_active_users is None and model.amount is None:
            raise ValidationError(
                "Pricing needs monthly_active_users", field="monthly_active_users"
            )
        return PricingRequest(dispatcher=self, params=model)

    def export(self, format: Union[ExportFormat, str]) -> ExportRequest:
        """Start an export request.

        Raises:
            ValidationError: ``format`` is not pdf, docx or pptx.
        """
        try:
            fmt = format if isinstance(format, ExportFormat) else ExportFormat(format.lower())
        except (ValueError, AttributeError) as e:
            raise ValidationError(f"Unsupported export format: {format}", field="format") from e
        return ExportRequest(dispatcher=self, format=fmt)

    # ------------------------------------------------------------------
    # Passthroughs
    # ------------------------------------------------------------------

    def undo(self) -> Optional[HistoryEntry]:
        return self.history.undo()

    def redo(self) -> Optional[HistoryEntry]:
        return self.history.redo()

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _elapsed_ms(self, start: float) -> float:
        return max(0.0, (self._clock() - start) * 1000.0)

    @staticmethod
    def _failure(intent: Intent, message: str, code: str) -> DispatchResult:
        return DispatchResult(
            success=False, error=message, error_code=code, intent=intent
        )


def _coerce_handler_result(raw: Any) -> HandlerResult:
    if raw is None:
        return HandlerResult()
    if isinstance(raw, HandlerResult):
        return raw
    if isinstance(raw, dict):
        return HandlerResult.model_validate(raw)
    raise TypeError(
        f"Handler returned {type(raw).__name__}, expected HandlerResult or dict"
    )
