"""Keyword/pattern intent recognizer.

Maps raw message text to an ``Intent``. Classification walks a fixed,
ordered pattern table and the first matching entry wins. The table has
two tiers, each in intent declaration order (analyze, review, pricing,
export, help):

1. explicit slash commands (``/analyze``, ``/review``, ...), so a
   command is never re-routed by a keyword inside its arguments;
2. free-text keywords, English and Chinese.

Nothing matching yields ``unknown`` with the raw message as its only
parameter.

Parameter extraction is per intent type and best-effort: a field that
cannot be found is simply left out of ``params``; extraction never
raises. Marker values (``company:Acme``) may be double-quoted to carry
spaces (``company:"Acme Corp"``).
"""

import random
import re
from typing import Any, Dict, List, Optional, Pattern, Tuple

import structlog

from .models import Intent, IntentType

logger = structlog.get_logger("policydesk.dispatch")

UNKNOWN_CONFIDENCE = 0.5
BASE_CONFIDENCE = 0.85
CONFIDENCE_JITTER = 0.1


def _compile(*patterns: str) -> List[Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# Tier 1: explicit commands
_COMMAND_TABLE: List[Tuple[IntentType, List[Pattern]]] = [
    (IntentType.ANALYZE, _compile(r"^/analy[sz]e\b")),
    (IntentType.REVIEW, _compile(r"^/review\b")),
    (IntentType.PRICING, _compile(r"^/pric(?:e|ing)\b")),
    (IntentType.EXPORT, _compile(r"^/export\b")),
    (IntentType.HELP, _compile(r"^/help\b")),
]

# Tier 2: free-text keywords
_KEYWORD_TABLE: List[Tuple[IntentType, List[Pattern]]] = [
    (IntentType.ANALYZE, _compile(
        r"\banaly[sz]e\b", r"分析|检测|审查",
        r"\b(?:compliance|compliant|polic(?:y|ies))\b", r"合规|政策",
        r"\b(?:check|inspect|audit)\b", r"看看|检查",
    )),
    (IntentType.REVIEW, _compile(
        r"\b(?:comments?|feedback)\b", r"评论|反馈",
        r"\b(?:pending|unread)\b", r"待处理|待阅",
        r"\b(?:issues?|opinions?)\b", r"问题|意见",
    )),
    (IntentType.PRICING, _compile(
        r"\bpric(?:e|es|ing)\b", r"定价|价格",
        r"\b(?:costs?|fees?)\b", r"成本|费用",
        r"\bhow much\b", r"多少钱",
    )),
    (IntentType.EXPORT, _compile(
        r"\b(?:export|download)\b", r"导出|下载",
        r"\b(?:generate|create)\b", r"生成|创建",
        r"\b(?:pdf|docx|pptx)\b",
    )),
    (IntentType.HELP, _compile(
        r"\bhelp\b", r"帮助|说明",
        r"\bhow (?:do|to|can)\b", r"怎么用|如何",
    )),
]

PATTERN_TABLE: List[Tuple[IntentType, List[Pattern]]] = _COMMAND_TABLE + _KEYWORD_TABLE

_COMMAND_PREFIX = re.compile(r"^/\w+\s*")
_QUOTED = re.compile(r"[\"“]([^\"”]*)[\"”]")
_FLAG_STRICT = re.compile(r"(?:^|\s)--strict\b", re.IGNORECASE)
_FIRST_INT = re.compile(r"(\d+)")
_NUMBER = r"(\d+(?:\.\d+)?)"

_CATEGORIES = ("all", "content", "data", "risk")
_REVIEW_ACTIONS = ("list", "add", "resolve", "update")
_PRODUCT_TYPES = ("saas", "one-time", "hybrid")
_TARGET_USERS = ("consumer", "smb", "enterprise")
_EXPORT_FORMATS = ("pdf", "docx", "pptx")


def _marker_pattern(*names: str) -> Pattern:
    # CJK text has no word spacing, so only ASCII names need a boundary
    alternatives = "|".join(
        rf"(?<![\w-]){re.escape(n)}" if n.isascii() else re.escape(n)
        for n in names
    )
    return re.compile(
        rf"(?:{alternatives})\s*[:：]\s*(?:\"([^\"]*)\"|(\S+))",
        re.IGNORECASE,
    )


def _take_marker(text: str, *names: str) -> Tuple[Optional[str], str]:
    """Pull ``name:value`` out of ``text``.

    Returns:
        (value or None, text with the marker removed)
    """
    match = _marker_pattern(*names).search(text)
    if not match:
        return None, text
    value = match.group(1) if match.group(1) is not None else match.group(2)
    remaining = (text[: match.start()] + " " + text[match.end():]).strip()
    value = value.strip()
    return (value or None), remaining


def _take_quoted(text: str) -> Tuple[Optional[str], str]:
    """Pull the first free-standing quoted span out of ``text``.

    Quoted marker values (``company:"Acme Corp"``) are skipped. An empty
    span yields ``""``, which is not the same as no quotes at all.
    """
    for match in _QUOTED.finditer(text):
        if text[: match.start()].rstrip().endswith((":", "：")):
            continue
        remaining = (text[: match.start()] + " " + text[match.end():]).strip()
        return match.group(1).strip(), remaining
    return None, text


def _take_flag(text: str, pattern: Pattern) -> Tuple[bool, str]:
    match = pattern.search(text)
    if not match:
        return False, text
    return True, (text[: match.start()] + " " + text[match.end():]).strip()


def _find_choice(text: str, choices: Tuple[str, ...]) -> Optional[str]:
    for choice in choices:
        if re.search(rf"(?<![\w-]){re.escape(choice)}(?![\w-])", text, re.IGNORECASE):
            return choice
    return None


def _to_number(raw: str) -> Any:
    return float(raw) if "." in raw else int(raw)


def _strip_command(text: str, command_tier_matched: bool) -> str:
    if command_tier_matched:
        return _COMMAND_PREFIX.sub("", text, count=1).strip()
    return text


class IntentRecognizer:
    """Pure message -> Intent classifier.

    The only nondeterminism is the confidence jitter on a match
    (``0.85 + U(0, 0.1)``); pass a seeded ``random.Random`` to pin it.

    Args:
        rng: Random source for the confidence jitter.
        table: Override the pattern table (ordered).
        command_entries: How many leading entries of ``table`` are
            slash commands. Ignored when ``table`` is not given.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        table: Optional[List[Tuple[IntentType, List[Pattern]]]] = None,
        command_entries: int = 0,
    ):
        self._rng = rng or random.Random()
        if table is None:
            self._table = PATTERN_TABLE
            self._command_entries = len(_COMMAND_TABLE)
        else:
            self._table = table
            self._command_entries = command_entries

    def classify(self, message: str) -> Tuple[IntentType, bool]:
        """Return (intent type, matched-as-slash-command)."""
        normalized = message.strip().lower()
        for index, (intent_type, patterns) in enumerate(self._table):
            for pattern in patterns:
                if pattern.search(normalized):
                    return intent_type, index < self._command_entries
        return IntentType.UNKNOWN, False

    def recognize(self, message: str) -> Intent:
        """Classify ``message`` and extract its parameters."""
        intent_type, is_command = self.classify(message)
        if intent_type is IntentType.UNKNOWN:
            return Intent(
                type=IntentType.UNKNOWN,
                params={"raw": message},
                confidence=UNKNOWN_CONFIDENCE,
            )

        params = extract_params(message, intent_type, is_command)
        confidence = BASE_CONFIDENCE + self._rng.random() * CONFIDENCE_JITTER
        logger.debug(
            "intent_recognized",
            intent=intent_type.value,
            command=is_command,
            params=sorted(params),
        )
        return Intent(type=intent_type, params=params, confidence=confidence)


def extract_params(
    message: str, intent_type: IntentType, is_command: bool = False
) -> Dict[str, Any]:
    """Best-effort parameter extraction for a classified message."""
    text = message.strip()
    extractor = _EXTRACTORS.get(intent_type)
    if extractor is None:
        return {}
    return extractor(text, is_command)


def _extract_analyze(text: str, is_command: bool) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    content, text = _take_quoted(text)

    company, text = _take_marker(text, "company", "公司")
    if company:
        params["company"] = company
    category, text = _take_marker(text, "category")
    if category and category.lower() in _CATEGORIES:
        params["category"] = category.lower()
    strict, text = _take_flag(text, _FLAG_STRICT)
    if strict:
        params["strict"] = True

    if content is None and is_command:
        content = _strip_command(text, is_command) or None
    if content:
        params["content"] = content
    return params


def _extract_review(text: str, is_command: bool) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    content, text = _take_quoted(text)
    if content:
        params["content"] = content

    for key, names in (
        ("report_id", ("report", "报告")),
        ("action", ("action",)),
        ("filter", ("filter",)),
        ("status", ("status",)),
        ("comment_id", ("comment",)),
        ("comment_type", ("type",)),
    ):
        value, text = _take_marker(text, *names)
        if value:
            params[key] = value

    action = params.get("action")
    if action is not None:
        if action.lower() in _REVIEW_ACTIONS:
            params["action"] = action.lower()
        else:
            del params["action"]

    if "report_id" not in params and is_command:
        rest = _strip_command(text, is_command).split()
        if rest:
            params["report_id"] = rest[0]
    return params


def _extract_pricing(text: str, is_command: bool) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    first = _FIRST_INT.search(text)
    if first:
        params["amount"] = int(first.group(1))

    product_type = _find_choice(text, _PRODUCT_TYPES)
    if product_type:
        params["product_type"] = product_type
    target_user = _find_choice(text, _TARGET_USERS)
    if target_user:
        params["target_user"] = target_user

    for key, name in (
        ("monthly_active_users", "mau"),
        ("fixed_cost", "fixed"),
        ("variable_cost", "variable"),
    ):
        match = re.search(rf"\b{name}\s*=\s*{_NUMBER}", text, re.IGNORECASE)
        if match:
            params[key] = _to_number(match.group(1))
    if isinstance(params.get("monthly_active_users"), float):
        params["monthly_active_users"] = int(params["monthly_active_users"])
    return params


def _extract_export(text: str, is_command: bool) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    template, text = _take_marker(text, "template")
    if template:
        params["template"] = template
    filename, text = _take_marker(text, "filename")
    if filename:
        params["filename"] = filename

    for fmt in _EXPORT_FORMATS:
        if re.search(rf"\b{fmt}\b", text, re.IGNORECASE):
            params["format"] = fmt
            break
    return params


def _extract_help(text: str, is_command: bool) -> Dict[str, Any]:
    return {}


_EXTRACTORS = {
    IntentType.ANALYZE: _extract_analyze,
    IntentType.REVIEW: _extract_review,
    IntentType.PRICING: _extract_pricing,
    IntentType.EXPORT: _extract_export,
    IntentType.HELP: _extract_help,
}


def recognize(message: str, rng: Optional[random.Random] = None) -> Intent:
    """Recognize ``message`` with a fresh ``IntentRecognizer``."""
    return IntentRecognizer(rng=rng).recognize(message)
