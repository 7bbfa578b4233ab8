"""Pre-process hook that cleans inbound message text."""

from __future__ import annotations

import unicodedata

from ..models import DispatchContext
from ..plugin_base import DispatchPlugin

DEFAULT_MAX_LENGTH = 10000

_BIDI_CHARS = set("\u202a\u202b\u202c\u202d\u202e\u2066\u2067\u2068\u2069")


def sanitize_message(text: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Strip control characters and enforce a length limit."""
    # Remove all control characters except newline, tab, carriage return
    text = "".join(
        ch for ch in text
        if ch in ("\n", "\r", "\t") or not unicodedata.category(ch).startswith("C")
    )
    text = "".join(ch for ch in text if ch not in _BIDI_CHARS)
    if len(text) > max_length:
        text = text[:max_length]
    return text


class InputSanitizerPlugin(DispatchPlugin):
    """Rewrites ``ctx.message`` before recognition.

    Config (``plugins.sanitizer`` in settings.yaml):
        max_length: Longest message passed on (default 10000).
    """

    name = "sanitizer"
    description = "Strips control characters and truncates long messages"

    @property
    def max_length(self) -> int:
        return int(self.ctx.get_config("max_length", DEFAULT_MAX_LENGTH))

    async def on_before_process(self, ctx: DispatchContext) -> None:
        cleaned = sanitize_message(ctx.message, self.max_length)
        if cleaned != ctx.message:
            self.ctx.logger.info(
                "message_sanitized",
                original_length=len(ctx.message),
                length=len(cleaned),
            )
            ctx.message = cleaned
