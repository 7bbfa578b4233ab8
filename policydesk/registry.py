"""Handler contract and the intent-type -> handler registry.

Key classes:
    BaseHandler: ABC every intent handler implements.
    HandlerRegistry: Maps intent types to handler instances.

A registry lookup miss returns None rather than raising; the
dispatcher turns it into a structured ``handler_not_found`` result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional, Union

import structlog

from .models import HandlerResult, IntentType

if TYPE_CHECKING:
    from .models import DispatchContext

logger = structlog.get_logger("policydesk.handlers")


class BaseHandler(ABC):
    """Abstract base class for intent handlers.

    Subclasses implement ``execute()`` to turn intent params into an
    artifact. ``validate()`` is optional; the default accepts anything.
    """

    name: str = ""
    version: str = "1.0.0"

    @abstractmethod
    async def execute(
        self, params: Dict[str, Any], ctx: "DispatchContext"
    ) -> Union[HandlerResult, Dict[str, Any]]:
        """Produce a result for ``params``.

        May return a ``HandlerResult`` or a plain dict of the same
        shape (``{"artifact": ..., "metadata": ...}``). Exceptions are
        caught by the dispatcher and reported as execution failures.
        """
        ...

    def validate(self, params: Dict[str, Any]) -> bool:
        """Return False to reject ``params`` before ``execute()`` runs."""
        return True

    @property
    def display_name(self) -> str:
        return self.name or type(self).__name__


class HandlerRegistry:
    """Maps intent types to handlers.

    ``register()`` overwrites any previous handler for the same type,
    logging the conflict.
    """

    def __init__(self):
        self._handlers: Dict[IntentType, BaseHandler] = {}

    def register(
        self, intent_type: Union[IntentType, str], handler: BaseHandler
    ) -> None:
        """Register ``handler`` for ``intent_type``.

        Args:
            intent_type: Intent type (enum or its string value).
            handler: Handler instance.
        """
        intent_type = IntentType(intent_type)
        previous = self._handlers.get(intent_type)
        if previous is not None and previous is not handler:
            logger.warning(
                "handler_conflict",
                intent=intent_type.value,
                previous=previous.display_name,
                handler=handler.display_name,
            )
        self._handlers[intent_type] = handler

    def unregister(self, intent_type: Union[IntentType, str]) -> bool:
        """Remove the handler for ``intent_type``. True if one was removed."""
        return self._handlers.pop(IntentType(intent_type), None) is not None

    def get(self, intent_type: Union[IntentType, str]) -> Optional[BaseHandler]:
        """Look up the handler for an intent type; None if not registered."""
        try:
            return self._handlers.get(IntentType(intent_type))
        except ValueError:
            return None

    def has(self, intent_type: Union[IntentType, str]) -> bool:
        return self.get(intent_type) is not None

    def handlers(self) -> List[BaseHandler]:
        return list(self._handlers.values())

    @property
    def intent_types(self) -> FrozenSet[IntentType]:
        """All intent types with a registered handler."""
        return frozenset(self._handlers.keys())

    def __len__(self) -> int:
        return len(self._handlers)
