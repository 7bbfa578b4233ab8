"""Immutable per-intent request values.

``Dispatcher.analyze()``, ``.review()``, ``.price()`` and ``.export()``
return one of these. Every ``with_*`` call returns a new value and
leaves the original untouched, so a partially built request can be
shared or reused:

    base = dispatcher.analyze(text).with_company("Acme")
    quick = await base.execute()
    thorough = await base.strict().with_category("data").execute()

``execute()`` renders the request as its canonical slash command and
sends it through ``Dispatcher.handle()``, so builder calls and typed
messages share one code path and one cache.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional, Union

from .models import (
    Channel,
    DispatchResult,
    ExportFormat,
    PricingParams,
    ProductType,
    TargetUser,
    UserInfo,
)

if TYPE_CHECKING:
    from .dispatcher import Dispatcher

ANALYZE_CATEGORIES = ("all", "content", "data", "risk")
REVIEW_ACTIONS = ("list", "add", "resolve", "update")


def _quote(text: str) -> str:
    cleaned = text.replace('"', "'").replace("“", "'").replace("”", "'")
    return f'"{cleaned}"'


def _marker(name: str, value: str) -> str:
    value = value.replace('"', "'")
    if not value or any(ch.isspace() for ch in value):
        return f'{name}:"{value}"'
    return f"{name}:{value}"


def _number(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    # plain digits; the recognizer does not read exponents
    return format(Decimal(repr(number)), "f")


@dataclass(frozen=True)
class _Request:
    dispatcher: "Dispatcher" = field(repr=False, compare=False)

    def to_message(self) -> str:
        raise NotImplementedError

    async def execute(
        self,
        user: Optional[UserInfo] = None,
        channel: Optional[Union[Channel, str]] = None,
    ) -> DispatchResult:
        """Send the request through the dispatcher."""
        return await self.dispatcher.handle_text(
            self.to_message(), user=user, channel=channel
        )


@dataclass(frozen=True)
class AnalyzeRequest(_Request):
    content: str = ""
    company: Optional[str] = None
    category: Optional[str] = None
    strict_mode: bool = False

    def with_company(self, company: str) -> "AnalyzeRequest":
        return replace(self, company=company)

    def with_category(self, category: str) -> "AnalyzeRequest":
        if category not in ANALYZE_CATEGORIES:
            raise ValueError(
                f"category must be one of {', '.join(ANALYZE_CATEGORIES)}"
            )
        return replace(self, category=category)

    def strict(self) -> "AnalyzeRequest":
        return replace(self, strict_mode=True)

    def to_message(self) -> str:
        parts: List[str] = ["/analyze", _quote(self.content)]
        if self.company:
            parts.append(_marker("company", self.company))
        if self.category:
            parts.append(f"category:{self.category}")
        if self.strict_mode:
            parts.append("--strict")
        return " ".join(parts)


@dataclass(frozen=True)
class ReviewRequest(_Request):
    report_id: str = ""
    action: str = "list"
    filter: Optional[str] = None
    status: Optional[str] = None
    comment_id: Optional[str] = None
    comment_type: Optional[str] = None
    content: Optional[str] = None

    def with_filter(self, filter: str) -> "ReviewRequest":
        return replace(self, filter=filter)

    def with_status(self, status: str) -> "ReviewRequest":
        return replace(self, status=status)

    def with_action(self, action: str) -> "ReviewRequest":
        if action not in REVIEW_ACTIONS:
            raise ValueError(f"action must be one of {', '.join(REVIEW_ACTIONS)}")
        return replace(self, action=action)

    def add_comment(self, content: str, comment_type: str = "general") -> "ReviewRequest":
        return replace(self, action="add", content=content, comment_type=comment_type)

    def resolve_comment(self, comment_id: str) -> "ReviewRequest":
        return replace(self, action="resolve", comment_id=comment_id)

    def update_comment(self, comment_id: str, content: str) -> "ReviewRequest":
        return replace(self, action="update", comment_id=comment_id, content=content)

    def to_message(self) -> str:
        parts: List[str] = ["/review", _marker("report", self.report_id)]
        if self.action != "list":
            parts.append(f"action:{self.action}")
        for name, value in (
            ("filter", self.filter),
            ("status", self.status),
            ("comment", self.comment_id),
            ("type", self.comment_type),
        ):
            if value:
                parts.append(_marker(name, value))
        if self.content:
            parts.append(_quote(self.content))
        return " ".join(parts)


@dataclass(frozen=True)
class PricingRequest(_Request):
    params: PricingParams = field(default_factory=PricingParams)

    def with_product_type(self, product_type: Union[ProductType, str]) -> "PricingRequest":
        return self._update(product_type=ProductType(product_type))

    def with_target_user(self, target_user: Union[TargetUser, str]) -> "PricingRequest":
        return self._update(target_user=TargetUser(target_user))

    def with_users(self, monthly_active_users: int) -> "PricingRequest":
        return self._update(monthly_active_users=monthly_active_users)

    def with_costs(self, fixed_cost: float, variable_cost: float) -> "PricingRequest":
        return self._update(fixed_cost=fixed_cost, variable_cost=variable_cost)

    def _update(self, **changes) -> "PricingRequest":
        updated = PricingParams.model_validate({**self.params.model_dump(), **changes})
        return replace(self, params=updated)

    def to_message(self) -> str:
        p = self.params
        users = p.monthly_active_users if p.monthly_active_users is not None else p.amount
        parts: List[str] = [
            "/price",
            ProductType(p.product_type).value,
            TargetUser(p.target_user).value,
        ]
        if users is not None:
            parts.append(f"mau={users}")
        parts.append(f"fixed={_number(p.fixed_cost)}")
        parts.append(f"variable={_number(p.variable_cost)}")
        return " ".join(parts)


@dataclass(frozen=True)
class ExportRequest(_Request):
    format: ExportFormat = ExportFormat.PDF
    template: Optional[str] = None
    filename: Optional[str] = None

    def with_template(self, template: str) -> "ExportRequest":
        return replace(self, template=template)

    def with_filename(self, filename: str) -> "ExportRequest":
        return replace(self, filename=filename)

    def to_message(self) -> str:
        parts: List[str] = ["/export", ExportFormat(self.format).value]
        if self.template:
            parts.append(_marker("template", self.template))
        if self.filename:
            parts.append(_marker("filename", self.filename))
        return " ".join(parts)
