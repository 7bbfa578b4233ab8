"""Built-in intent handlers.

``build_default_registry()`` wires one handler per intent type.
"""

from pathlib import Path
from typing import Optional

from ..models import DispatcherOptions, IntentType
from ..registry import HandlerRegistry
from .compliance import ComplianceHandler, ComplianceRule, load_rules
from .export import ExportHandler
from .help import HelpHandler
from .pricing import PricingHandler
from .review import ReviewHandler


def build_default_registry(
    options: Optional[DispatcherOptions] = None,
    rules_file: Optional[Path] = None,
) -> HandlerRegistry:
    """Registry with every built-in handler.

    Args:
        options: Options shared with the dispatcher (read for
            ``strict_mode``).
        rules_file: Optional YAML file of extra compliance rules.

    Raises:
        ConfigurationError: ``rules_file`` is unreadable or malformed.
    """
    extra_rules = load_rules(Path(rules_file)) if rules_file else None
    registry = HandlerRegistry()
    registry.register(IntentType.ANALYZE, ComplianceHandler(options, extra_rules))
    registry.register(IntentType.REVIEW, ReviewHandler())
    registry.register(IntentType.PRICING, PricingHandler())
    registry.register(IntentType.EXPORT, ExportHandler())
    registry.register(IntentType.HELP, HelpHandler(registry))
    return registry


__all__ = [
    "ComplianceHandler",
    "ComplianceRule",
    "ExportHandler",
    "HelpHandler",
    "PricingHandler",
    "ReviewHandler",
    "build_default_registry",
    "load_rules",
]
