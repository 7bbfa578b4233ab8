"""Export descriptors for the ``export`` intent.

No document is rendered here. The handler resolves format, template
and file name into a descriptor that the host's exporter acts on.
"""

from __future__ import annotations

import time
import uuid
from pathlib import PurePosixPath
from typing import Any, Dict, Optional

import structlog

from ..exceptions import ValidationError
from ..models import Artifact, ExportFormat, ExportParams, HandlerResult
from ..registry import BaseHandler

logger = structlog.get_logger("policydesk.handlers")

TEMPLATES = ("compliance-report", "risk-analysis", "policy-summary", "executive-brief")
DEFAULT_TEMPLATE = "compliance-report"
EXPORT_ROOT = "/exports"

MIME_TYPES = {
    ExportFormat.PDF: "application/pdf",
    ExportFormat.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ExportFormat.PPTX: "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}


def safe_filename(filename: Optional[str]) -> bool:
    """True if ``filename`` names a file directly under ``EXPORT_ROOT``.

    Rejects separators, ``..`` and hidden names; an absent filename is fine.
    """
    if filename is None:
        return True
    if not filename or "\\" in filename or filename.startswith("."):
        return False
    return PurePosixPath(filename).name == filename


class ExportHandler(BaseHandler):
    name = "export"
    version = "1.0.0"

    def validate(self, params: Dict[str, Any]) -> bool:
        fmt = params.get("format")
        if fmt is None:
            return False
        try:
            ExportFormat(fmt)
        except ValueError:
            return False
        if params.get("template", DEFAULT_TEMPLATE) not in TEMPLATES:
            return False
        return safe_filename(params.get("filename"))

    async def execute(self, params: Dict[str, Any], ctx) -> HandlerResult:
        p = ExportParams.model_validate(params)
        fmt = ExportFormat(p.format)
        if not safe_filename(p.filename):
            raise ValidationError(f"Unsafe export filename: {p.filename}", field="filename")
        stem = p.filename or f"export-{int(time.time() * 1000)}"
        # "q3.pdf" with format pdf should not become "q3.pdf.pdf"
        if stem.lower().endswith(f".{fmt.value}"):
            stem = stem[: -len(fmt.value) - 1]
        filename = f"{stem}.{fmt.value}"

        logger.info("export_prepared", format=fmt.value, filename=filename)
        return HandlerResult(
            artifact=Artifact(
                id=f"export-{uuid.uuid4().hex[:12]}",
                type="export",
                data={
                    "format": fmt.value,
                    "template": p.template or DEFAULT_TEMPLATE,
                    "filename": filename,
                    "path": f"{EXPORT_ROOT}/{filename}",
                    "mime_type": MIME_TYPES[fmt],
                },
            )
        )
