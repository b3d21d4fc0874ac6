"""User notifications raised when a job completes or fails."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    GENERATION_COMPLETE = "GENERATION_COMPLETE"
    GENERATION_FAILED = "GENERATION_FAILED"


class Notification(BaseModel):
    notification_id: str = Field(default_factory=lambda: f"ntf_{uuid.uuid4().hex[:16]}")
    user_id: str = ""
    type: NotificationType
    title: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def quality_label(score: int) -> str:
    if score >= 80:
        return "高品質"
    if score >= 60:
        return "標準"
    return "要確認"


def completed_notification(
    *,
    user_id: str,
    job_id: str,
    article_id: str,
    article_title: str,
    score: int,
    warnings: list[str],
    tokens_used: int,
) -> Notification:
    label = quality_label(score)
    return Notification(
        user_id=user_id,
        type=NotificationType.GENERATION_COMPLETE,
        title="Article generated",
        message=f"「{article_title}」 is ready (quality score {score}/100, {label})",
        metadata={
            "job_id": job_id,
            "article_id": article_id,
            "quality_score": score,
            "quality_label": label,
            "quality_warnings": warnings,
            "tokens_used": tokens_used,
        },
    )


def failed_notification(*, user_id: str, job_id: str, keyword: str, error: str) -> Notification:
    return Notification(
        user_id=user_id,
        type=NotificationType.GENERATION_FAILED,
        title="Article generation failed",
        message=f"Generating 「{keyword or 'unknown'}」 failed: {error}",
        metadata={"job_id": job_id},
    )


class NotificationSink(Protocol):
    def notify(self, notification: Notification) -> None: ...


class InMemoryNotificationSink:
    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)


class FileNotificationSink:
    """Appends notifications as JSON lines to ``<notifications_dir>/notifications.jsonl``."""

    def __init__(self, notifications_dir: Path):
        self._dir = Path(notifications_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._path = self._dir / "notifications.jsonl"
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def notify(self, notification: Notification) -> None:
        line = json.dumps(notification.model_dump(mode="json"), ensure_ascii=False)
        with self._lock, open(self._path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
        logger.info("Notified user %s: %s", notification.user_id or "-", notification.type.value)

    def read_all(self, user_id: str | None = None) -> list[Notification]:
        if not self._path.exists():
            return []
        with open(self._path, encoding="utf-8") as f:
            items = [Notification.model_validate_json(line) for line in f if line.strip()]
        if user_id is not None:
            items = [n for n in items if n.user_id == user_id]
        return items
