"""Rule-based compliance analysis for the ``analyze`` intent.

Scans message content against a table of compliance rules and reports
violations, a 0-100 risk score, remediation suggestions and the
regulations worth consulting.

Rules are matched as plain substrings. In strict mode (dispatcher
option or ``--strict`` on the message) matching is case-insensitive,
so ``Scraped`` and ``scraped`` both hit.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ConfigurationError
from ..models import AnalyzeParams, Artifact, DispatcherOptions, HandlerResult
from ..registry import BaseHandler

logger = structlog.get_logger("policydesk.handlers")

SEVERITY_SCORES = {"low": 10, "medium": 30, "high": 60, "critical": 100}
CATEGORIES = ("all", "content", "data", "risk")
MAX_POLICIES = 10

DEFAULT_POLICIES = ("《征信业管理条例》2026修订版", "《个人信息保护法》")

SUGGESTIONS = {
    "DATA_SOURCE_VIOLATION": "确认数据来源的合法性授权",
    "PRIVACY_VIOLATION": "补充个人信息保护措施",
    "CONTENT_MISMATCH": "核实内容准确性，引用官方数据源",
    "COPYRIGHT_VIOLATION": "获取内容使用授权",
    "MISSING_DISCLAIMER": "添加必要的免责声明",
}


class ComplianceRule(BaseModel):
    code: str
    pattern: str = Field(..., min_length=1)
    description: str = ""
    law: str = ""
    severity: str = Field(default="medium", pattern="^(low|medium|high|critical)$")
    category: str = Field(default="content", pattern="^(content|data|risk)$")


class Violation(BaseModel):
    code: str
    description: str
    law: str
    severity: str


DEFAULT_RULES: List[ComplianceRule] = [
    ComplianceRule(
        code="DATA_SOURCE_VIOLATION", pattern="爬取",
        description="使用未经授权爬取的数据", law="征信业管理条例",
        severity="high", category="data",
    ),
    ComplianceRule(
        code="DATA_SOURCE_VIOLATION", pattern="scraped",
        description="Relies on scraped third-party data", law="征信业管理条例",
        severity="high", category="data",
    ),
    ComplianceRule(
        code="PRIVACY_VIOLATION", pattern="身份证号",
        description="披露个人身份证号码", law="个人信息保护法",
        severity="critical", category="data",
    ),
    ComplianceRule(
        code="PRIVACY_VIOLATION", pattern="phone number",
        description="Exposes personal phone numbers", law="个人信息保护法",
        severity="high", category="data",
    ),
    ComplianceRule(
        code="CONTENT_MISMATCH", pattern="保证收益",
        description="承诺收益，与事实不符", law="广告法",
        severity="medium", category="content",
    ),
    ComplianceRule(
        code="CONTENT_MISMATCH", pattern="guaranteed return",
        description="Promises guaranteed returns", law="广告法",
        severity="medium", category="content",
    ),
    ComplianceRule(
        code="COPYRIGHT_VIOLATION", pattern="转载",
        description="转载内容未注明授权", law="著作权法",
        severity="medium", category="content",
    ),
    ComplianceRule(
        code="MISSING_DISCLAIMER", pattern="投资建议",
        description="提供投资建议但未附免责声明", law="证券法",
        severity="low", category="risk",
    ),
    ComplianceRule(
        code="MISSING_DISCLAIMER", pattern="investment advice",
        description="Investment advice without a disclaimer", law="证券法",
        severity="low", category="risk",
    ),
]


def load_rules(path: Path) -> List[ComplianceRule]:
    """Load extra rules from a YAML file with a top-level ``rules`` list.

    Raises:
        ConfigurationError: The file is unreadable or a rule is malformed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Cannot read compliance rules: {e}", setting_name="rules_file"
        ) from e

    entries = raw.get("rules", []) if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        raise ConfigurationError(
            "Compliance rules file must hold a list of rules",
            setting_name="rules_file",
        )
    try:
        rules = [ComplianceRule.model_validate(entry) for entry in entries]
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid compliance rule: {e}", setting_name="rules_file"
        ) from e
    logger.info("compliance_rules_loaded", path=str(path), count=len(rules))
    return rules


def risk_score(violations: List[Violation]) -> int:
    return min(100, sum(SEVERITY_SCORES.get(v.severity, 0) for v in violations))


def risk_level(score: int) -> str:
    if score < 20:
        return "low"
    if score < 50:
        return "medium"
    if score < 80:
        return "high"
    return "critical"


def suggestions_for(violations: List[Violation]) -> List[str]:
    seen: Dict[str, None] = {}
    for v in violations:
        seen.setdefault(SUGGESTIONS.get(v.code) or f"根据《{v.law}》进行调整", None)
    return list(seen)


def relevant_policies(violations: List[Violation]) -> List[str]:
    seen: Dict[str, None] = dict.fromkeys(DEFAULT_POLICIES)
    for v in violations:
        if v.law:
            seen.setdefault(f"《{v.law}》", None)
    return list(seen)[:MAX_POLICIES]


class ComplianceHandler(BaseHandler):
    """Handles ``analyze``.

    Args:
        options: Shared dispatcher options; ``strict_mode`` is read on
            every call.
        extra_rules: Rules appended to the built-in table.
    """

    name = "compliance"
    version = "1.0.0"

    def __init__(
        self,
        options: Optional[DispatcherOptions] = None,
        extra_rules: Optional[List[ComplianceRule]] = None,
    ):
        self.options = options if options is not None else DispatcherOptions()
        self.rules: List[ComplianceRule] = DEFAULT_RULES + list(extra_rules or [])

    def validate(self, params: Dict[str, Any]) -> bool:
        content = params.get("content")
        if not isinstance(content, str) or not content.strip():
            return False
        return params.get("category", "all") in CATEGORIES

    def rules_for(self, category: str) -> List[ComplianceRule]:
        if category == "all":
            return list(self.rules)
        return [r for r in self.rules if r.category == category]

    def detect(self, content: str, category: str, strict: bool) -> List[Violation]:
        haystack = content.lower() if strict else content
        violations = []
        for rule in self.rules_for(category):
            needle = rule.pattern.lower() if strict else rule.pattern
            if needle in haystack:
                violations.append(
                    Violation(
                        code=rule.code,
                        description=rule.description,
                        law=rule.law,
                        severity=rule.severity,
                    )
                )
        return violations

    async def execute(self, params: Dict[str, Any], ctx) -> HandlerResult:
        p = AnalyzeParams.model_validate(params)
        category = p.category or "all"
        strict = p.strict or self.options.strict_mode

        violations = self.detect(p.content or "", category, strict)
        score = risk_score(violations)

        logger.info(
            "compliance_analyzed",
            company=p.company,
            category=category,
            strict=strict,
            violations=len(violations),
            risk_score=score,
        )
        artifact = Artifact(
            id=f"analysis-{uuid.uuid4().hex[:12]}",
            type="compliance-report",
            data={
                "company": p.company,
                "category": category,
                "strict": strict,
                "risk_score": score,
                "risk_level": risk_level(score),
                "violations": [v.model_dump() for v in violations],
                "suggestions": suggestions_for(violations),
                "relevant_policies": relevant_policies(violations),
                "analyzed_at": datetime.now().isoformat(),
            },
        )
        return HandlerResult(artifact=artifact, metadata={"rules_checked": len(self.rules_for(category))})
