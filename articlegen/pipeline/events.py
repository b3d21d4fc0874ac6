"""Follow-up events emitted when a pipeline completes."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from articlegen.content.placeholders import ImagePlaceholder

logger = logging.getLogger(__name__)

IMAGE_GENERATION_REQUESTED = "article/images.requested"


class ImageGenerationRequest(BaseModel):
    """Hand-off to the external image generation worker."""

    article_id: str
    job_id: str
    image_placeholders: list[ImagePlaceholder] = Field(default_factory=list)
    article_title: str = ""
    category_name: str = ""
    brand_tone: str = ""


class EventSink(Protocol):
    def emit(self, request: ImageGenerationRequest) -> None: ...


class InMemoryEventSink:
    """Collects events in a list."""

    def __init__(self) -> None:
        self.events: list[ImageGenerationRequest] = []

    def emit(self, request: ImageGenerationRequest) -> None:
        self.events.append(request)


class FileEventSink:
    """Appends events as JSON lines to ``<events_dir>/image_requests.jsonl``."""

    def __init__(self, events_dir: Path):
        self._dir = Path(events_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._path = self._dir / "image_requests.jsonl"
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def emit(self, request: ImageGenerationRequest) -> None:
        line = json.dumps(
            {
                "name": IMAGE_GENERATION_REQUESTED,
                "emitted_at": datetime.now(timezone.utc).isoformat(),
                "data": request.model_dump(mode="json"),
            },
            ensure_ascii=False,
        )
        with self._lock, open(self._path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
        logger.info(
            "Queued image generation for article %s (%d placeholder(s))",
            request.article_id, len(request.image_placeholders),
        )

    def read_all(self) -> list[ImageGenerationRequest]:
        if not self._path.exists():
            return []
        with open(self._path, encoding="utf-8") as f:
            return [
                ImageGenerationRequest.model_validate(json.loads(line)["data"])
                for line in f
                if line.strip()
            ]
