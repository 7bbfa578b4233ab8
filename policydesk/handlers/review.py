"""Review comments on reports (``review`` intent).

Comments live in memory, keyed by report id. Persistence belongs to
the host; a restart starts with an empty store.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from ..exceptions import ValidationError
from ..models import Artifact, HandlerResult, ReviewParams
from ..registry import BaseHandler

logger = structlog.get_logger("policydesk.handlers")

ACTIONS = ("list", "add", "resolve", "update")
PENDING = "pending"
RESOLVED = "resolved"


class ReviewHandler(BaseHandler):
    """Handles ``review``: list, add, resolve and update comments."""

    name = "review"
    version = "1.0.0"

    def __init__(self):
        self._comments: Dict[str, List[Dict[str, Any]]] = {}

    def validate(self, params: Dict[str, Any]) -> bool:
        action = params.get("action", "list")
        if action in ("list", "add") and not params.get("report_id"):
            return False
        if action in ("resolve", "update") and not params.get("comment_id"):
            return False
        if action in ("add", "update") and not params.get("content"):
            return False
        return True

    async def execute(self, params: Dict[str, Any], ctx) -> HandlerResult:
        p = ReviewParams.model_validate(params)
        if p.action == "list":
            data = self.list_comments(p.report_id, p.filter, p.status)
        elif p.action == "add":
            author = ctx.user.id if ctx is not None else None
            data = self.add_comment(p.report_id, p.comment_type, p.content, author)
        elif p.action == "resolve":
            data = self.resolve_comment(p.comment_id)
        elif p.action == "update":
            data = self.update_comment(p.comment_id, p.content)
        else:
            raise ValidationError(f"Unknown review action: {p.action}", field="action")

        return HandlerResult(
            artifact=Artifact(
                id=f"review-{uuid.uuid4().hex[:12]}",
                type="review-comments",
                data={"action": p.action, "report_id": p.report_id, **data},
            )
        )

    def list_comments(
        self,
        report_id: str,
        comment_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Comments for ``report_id`` plus counts over the whole report.

        ``comment_type`` (the ``filter`` param) and ``status`` narrow
        the returned list; ``all`` disables a filter.
        """
        comments = self._comments.get(report_id, [])
        selected = [
            dict(c)
            for c in comments
            if comment_type in (None, "all") or c["type"] == comment_type
            if status in (None, "all") or c["status"] == status
        ]
        pending = sum(1 for c in comments if c["status"] == PENDING)
        return {
            "comments": selected,
            "stats": {
                "total": len(comments),
                "pending": pending,
                "reviewed": len(comments) - pending,
            },
        }

    def add_comment(
        self,
        report_id: str,
        comment_type: Optional[str],
        content: str,
        author: Optional[str] = None,
    ) -> Dict[str, Any]:
        now = datetime.now().isoformat()
        comment = {
            "id": f"c-{uuid.uuid4().hex[:8]}",
            "report_id": report_id,
            "type": comment_type or "general",
            "content": content,
            "author": author,
            "status": PENDING,
            "created_at": now,
            "updated_at": now,
        }
        self._comments.setdefault(report_id, []).append(comment)
        logger.info("review_comment_added", report_id=report_id, comment_id=comment["id"])
        return {"success": True, "comment_id": comment["id"]}

    def resolve_comment(self, comment_id: str) -> Dict[str, Any]:
        comment = self._find(comment_id)
        comment["status"] = RESOLVED
        comment["updated_at"] = datetime.now().isoformat()
        logger.info("review_comment_resolved", comment_id=comment_id)
        return {"success": True, "comment_id": comment_id}

    def update_comment(self, comment_id: str, content: str) -> Dict[str, Any]:
        comment = self._find(comment_id)
        comment["content"] = content
        comment["updated_at"] = datetime.now().isoformat()
        logger.info("review_comment_updated", comment_id=comment_id)
        return {"success": True, "comment_id": comment_id}

    def _find(self, comment_id: str) -> Dict[str, Any]:
        for comments in self._comments.values():
            for comment in comments:
                if comment["id"] == comment_id:
                    return comment
        raise ValidationError(f"Unknown comment: {comment_id}", field="comment_id")
