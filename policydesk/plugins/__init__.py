"""Built-in dispatcher plugins."""

from .audit import AuditLogPlugin
from .sanitizer import InputSanitizerPlugin, sanitize_message

__all__ = ["AuditLogPlugin", "InputSanitizerPlugin", "sanitize_message"]
