"""Logging setup for the dispatcher core and the line session.

Every module logs through ``structlog.get_logger("policydesk.<subsystem>")``.
Events are rendered by one ``ProcessorFormatter`` so structlog events and
plain stdlib records share a format. Output goes to stderr, which keeps
stdout free for session replies. With a config, events are also written
to a single rotating ``policydesk.log``.

Per-subsystem levels narrow what a subsystem emits, e.g.
``{"cache": "DEBUG"}`` to trace evictions without the rest of the noise.
"""

import logging
import logging.handlers
import re
import sys
from typing import Any, Dict, List, Optional

import structlog

SUBSYSTEMS = ("dispatch", "cache", "history", "handlers", "plugins", "config")
LOGGER_PREFIX = "policydesk"
LOG_FILE = "policydesk.log"

_REDACTED = "***REDACTED***"

_SECRET_PATTERNS = [
    re.compile(r"xox[abpors]-[a-zA-Z0-9-]{10,}"),
    re.compile(r"sk-[a-zA-Z0-9_-]{20,}"),
    re.compile(r"Bearer\s+[a-zA-Z0-9_./-]{20,}"),
    re.compile(r"(?i)\b(api[_-]?key|token|secret)=\S+"),
]

# 18-digit resident ID numbers and 11-digit mobile numbers keep their tail
_PERSONAL_PATTERNS = [
    re.compile(r"\b\d{17}[\dXx]\b"),
    re.compile(r"\b1[3-9]\d{9}\b"),
]


def _mask(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(_REDACTED, text)
    for pattern in _PERSONAL_PATTERNS:
        text = pattern.sub(lambda m: "..." + m.group(0)[-4:], text)
    return text


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return _mask(value)
    if isinstance(value, dict):
        return {k: _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v) for v in value)
    return value


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor masking tokens and personal numbers.

    Messages routinely carry the text under analysis, which may hold ID
    or phone numbers; those are cut to their last 4 characters. Nested
    containers are walked to any depth.
    """
    return {key: _scrub(value) for key, value in event_dict.items()}


def _shared_processors() -> List[Any]:
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        sanitize_secrets,
    ]


def _level(name: Optional[str], default: int) -> int:
    if not name:
        return default
    value = logging.getLevelName(str(name).upper())
    return value if isinstance(value, int) else default


def setup_logging(config=None) -> None:
    """Route policydesk logging to stderr and, with a config, a log file.

    Safe to call twice: ``main()`` calls it once before the config is
    read and again afterwards.
    """
    level = _level(getattr(config, "logging_level", None), logging.INFO)
    subsystem_levels = getattr(config, "logging_subsystem_levels", None) or {}

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config is not None:
        log_dir = config.log_dir
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"policydesk: logging to stderr only, {log_dir}: {e}\n")
        else:
            handlers.append(logging.handlers.RotatingFileHandler(
                log_dir / LOG_FILE,
                maxBytes=config.logging_max_file_size_mb * 1024 * 1024,
                backupCount=config.logging_backup_count,
                encoding="utf-8",
            ))

    base = logging.getLogger(LOGGER_PREFIX)
    for handler in base.handlers:
        handler.close()
    base.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        base.addHandler(handler)
    base.setLevel(level)
    base.propagate = False

    for subsystem in SUBSYSTEMS:
        logging.getLogger(f"{LOGGER_PREFIX}.{subsystem}").setLevel(
            _level(subsystem_levels.get(subsystem), level)
        )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
