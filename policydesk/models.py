"""Pydantic models for the dispatch core.

Defines the inbound dispatch context, the recognized intent and its
per-type parameter views, handler and dispatch results, history
records, cache statistics, and the dispatcher options.

Enums:
    Channel, IntentType, ProductType, TargetUser, ExportFormat

Parameter views (``Intent.typed_params()``):
    AnalyzeParams, ReviewParams, PricingParams, ExportParams,
    HelpParams, UnknownParams
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Channel(str, Enum):
    """Chat transport a message arrived on."""
    SLACK = "slack"
    DISCORD = "discord"
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"
    IMESSAGE = "imessage"


class IntentType(str, Enum):
    """Intent families, in classification order."""
    ANALYZE = "analyze"
    REVIEW = "review"
    PRICING = "pricing"
    EXPORT = "export"
    HELP = "help"
    UNKNOWN = "unknown"


class ProductType(str, Enum):
    SAAS = "saas"
    ONE_TIME = "one-time"
    HYBRID = "hybrid"


class TargetUser(str, Enum):
    CONSUMER = "consumer"
    SMB = "smb"
    ENTERPRISE = "enterprise"


class ExportFormat(str, Enum):
    PDF = "pdf"
    DOCX = "docx"
    PPTX = "pptx"


# ---------------------------------------------------------------------------
# Dispatch input
# ---------------------------------------------------------------------------

class UserInfo(BaseModel):
    """The person who sent the message."""

    id: str = Field(..., description="Transport-level user id")
    name: str = ""
    roles: List[str] = Field(default_factory=list)


class ArtifactReference(BaseModel):
    """Pointer to an artifact produced earlier in the conversation."""

    id: str
    type: str
    created_at: datetime = Field(default_factory=datetime.now)


class DispatchContext(BaseModel):
    """Everything the dispatcher knows about one incoming message.

    Mutable: pre-process hooks may rewrite ``message`` or add
    ``metadata`` before recognition runs. Assignments are validated,
    so a hook cannot leave an unknown channel behind.
    """

    model_config = ConfigDict(validate_assignment=True)

    user: UserInfo
    message: str
    channel: Channel = Channel.SLACK
    timestamp: datetime = Field(default_factory=datetime.now)
    artifacts: List[ArtifactReference] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Intent parameter views
# ---------------------------------------------------------------------------

class _Params(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AnalyzeParams(_Params):
    content: Optional[str] = None
    company: Optional[str] = None
    category: Optional[str] = None
    strict: bool = False


class ReviewParams(_Params):
    report_id: Optional[str] = None
    action: str = "list"
    filter: Optional[str] = None
    status: Optional[str] = None
    comment_id: Optional[str] = None
    comment_type: Optional[str] = None
    content: Optional[str] = None


class PricingParams(_Params):
    """Inputs for a pricing calculation.

    Also used directly by ``Dispatcher.price()``. ``amount`` is the
    bare number pulled from free text; the handler treats it as the
    monthly active user count when ``monthly_active_users`` is absent.
    """

    product_type: ProductType = ProductType.SAAS
    target_user: TargetUser = TargetUser.SMB
    monthly_active_users: Optional[int] = Field(default=None, ge=0)
    fixed_cost: float = Field(default=0.0, ge=0.0)
    variable_cost: float = Field(default=0.0, ge=0.0)
    amount: Optional[int] = None


class ExportParams(_Params):
    format: Optional[ExportFormat] = None
    template: Optional[str] = None
    filename: Optional[str] = None


class HelpParams(_Params):
    pass


class UnknownParams(_Params):
    raw: str = ""


PARAM_MODELS: Dict[IntentType, Type[BaseModel]] = {
    IntentType.ANALYZE: AnalyzeParams,
    IntentType.REVIEW: ReviewParams,
    IntentType.PRICING: PricingParams,
    IntentType.EXPORT: ExportParams,
    IntentType.HELP: HelpParams,
    IntentType.UNKNOWN: UnknownParams,
}


class Intent(BaseModel):
    """Structured classification of one message."""

    type: IntentType
    params: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(..., ge=0.0, le=1.0)

    def typed_params(self) -> BaseModel:
        """Return the params as the model for this intent type.

        Fields the recognizer could not extract fall back to the
        model defaults.
        """
        return PARAM_MODELS[self.type].model_validate(self.params)

    def canonical_params(self) -> str:
        """Deterministic JSON rendering of ``params`` (sorted keys)."""
        return json.dumps(
            self.params,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=str,
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class Artifact(BaseModel):
    """Opaque, cacheable payload produced by a handler."""

    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


class HandlerResult(BaseModel):
    """What a handler returns from ``execute()``."""

    artifact: Optional[Artifact] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DispatchResult(BaseModel):
    """Outcome of one ``Dispatcher.handle()`` call.

    Callers must check ``success`` before reading ``artifact``.
    """

    success: bool
    artifact: Optional[Artifact] = None
    from_cache: bool = False
    duration_ms: float = 0.0
    error: Optional[str] = None
    error_code: Optional[str] = None
    intent: Optional[Intent] = None


class HistoryEntry(BaseModel):
    """One recorded dispatch. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    id: str
    intent: Intent
    result: DispatchResult
    timestamp: datetime = Field(default_factory=datetime.now)
    duration_ms: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class HistorySnapshot(BaseModel):
    """Serializable copy of a history log and its cursor."""

    entries: List[HistoryEntry] = Field(default_factory=list)
    cursor: int = -1

    @model_validator(mode="after")
    def _cursor_in_range(self) -> "HistorySnapshot":
        if not -1 <= self.cursor <= len(self.entries) - 1:
            raise ValueError(
                f"cursor {self.cursor} outside [-1, {len(self.entries) - 1}]"
            )
        return self


class CacheStats(BaseModel):
    size: int
    max_size: int
    hit_rate: float = Field(..., ge=0.0, le=1.0)
    approx_memory_bytes: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

class DispatcherOptions(BaseModel):
    """Recognized dispatcher options.

    ``strict_mode`` is read by handlers only; it never changes routing.
    """

    strict_mode: bool = False
    max_cache_size: int = Field(default=100, ge=1)
    enable_history: bool = True
    default_channel: Channel = Channel.SLACK
    ttl_ms: int = Field(default=5 * 60 * 1000, ge=1)
    max_history_size: int = Field(default=100, ge=1)
