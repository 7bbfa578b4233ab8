"""Pricing calculator for the ``pricing`` intent."""

from __future__ import annotations

import math
import uuid
from datetime import datetime
from typing import Any, Dict

import structlog
from pydantic import ValidationError as PydanticValidationError

from ..models import Artifact, HandlerResult, PricingParams, TargetUser
from ..registry import BaseHandler

logger = structlog.get_logger("policydesk.handlers")

# Target gross margin per segment
MARGINS = {
    TargetUser.CONSUMER: 0.3,
    TargetUser.SMB: 0.5,
    TargetUser.ENTERPRISE: 0.7,
}

MIN_PRICE_FACTOR = 1.1
MAX_PRICE_FACTOR = 2.0

# (name, price factor vs. recommended, feature score)
COMPETITORS = (
    ("Competitor A", 0.9, 8),
    ("Competitor B", 1.1, 9),
    ("Competitor C", 1.0, 7),
)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _percent(part: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return round(part / total * 100, 1)


def monthly_users(p: PricingParams) -> int:
    """MAU, falling back to the bare number found in the message."""
    if p.monthly_active_users is not None:
        return p.monthly_active_users
    return p.amount or 0


def calculate(p: PricingParams) -> Dict[str, Any]:
    """Compute recommended, minimum and maximum per-user prices.

    Raises:
        ValueError: The user count is not positive.
    """
    mau = monthly_users(p)
    if mau <= 0:
        raise ValueError("monthly_active_users must be positive")

    variable_total = p.variable_cost * mau
    total_cost = p.fixed_cost + variable_total
    cost_per_user = total_cost / mau
    margin = MARGINS[TargetUser(p.target_user)]

    recommended = cost_per_user / margin
    minimum = cost_per_user * MIN_PRICE_FACTOR
    maximum = recommended * MAX_PRICE_FACTOR

    return {
        "product_type": p.product_type.value,
        "target_user": p.target_user.value,
        "monthly_active_users": mau,
        "cost_per_user": round(cost_per_user, 4),
        "margin": margin,
        "recommended_price": round_half_up(recommended),
        "min_price": round_half_up(minimum),
        "max_price": round_half_up(maximum),
        "cost_breakdown": {
            "fixed": {
                "amount": p.fixed_cost,
                "percent": _percent(p.fixed_cost, total_cost),
                "items": ["servers", "engineering", "operations"],
            },
            "variable": {
                "amount": variable_total,
                "percent": _percent(variable_total, total_cost),
                "items": ["API calls", "storage", "support"],
            },
        },
        "competitor_comparison": [
            {"name": name, "price": round(recommended * factor, 2), "features": features}
            for name, factor, features in COMPETITORS
        ],
    }


class PricingHandler(BaseHandler):
    """Handles ``pricing``. Needs a positive MAU (``mau=`` or a bare number)."""

    name = "pricing"
    version = "1.0.0"

    def validate(self, params: Dict[str, Any]) -> bool:
        try:
            p = PricingParams.model_validate(params)
        except PydanticValidationError:
            return False
        return monthly_users(p) > 0

    async def execute(self, params: Dict[str, Any], ctx) -> HandlerResult:
        p = PricingParams.model_validate(params)
        data = calculate(p)
        data["calculated_at"] = datetime.now().isoformat()
        logger.info(
            "pricing_calculated",
            target_user=data["target_user"],
            mau=data["monthly_active_users"],
            recommended=data["recommended_price"],
        )
        return HandlerResult(
            artifact=Artifact(
                id=f"pricing-{uuid.uuid4().hex[:12]}",
                type="pricing-analysis",
                data=data,
            )
        )
