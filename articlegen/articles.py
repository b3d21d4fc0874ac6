"""Article drafts produced by completed pipelines, with a file-based store."""

from __future__ import annotations

import json
import logging
import re
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArticleDraft(BaseModel):
    article_id: str = ""
    job_id: str = ""
    title: str = ""
    slug: str = ""
    html: str = ""
    meta_title: str = ""
    meta_description: str = ""
    status: str = "draft"
    needs_review: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


class ArticleSink(Protocol):
    def save(self, draft: ArticleDraft) -> ArticleDraft: ...
    def get(self, article_id: str) -> ArticleDraft | None: ...


def slugify(text: str) -> str:
    """Lowercase ASCII slug. Non-ASCII titles fall back to ``article``."""
    slug = _SLUG_STRIP_RE.sub("-", (text or "").lower()).strip("-")
    return slug[:80].rstrip("-") or "article"


def new_article_id() -> str:
    return f"art_{uuid.uuid4().hex[:16]}"


class FileArticleSink:
    """Persist drafts as JSON under ``<articles_dir>``; slugs are kept unique."""

    def __init__(self, articles_dir: Path):
        self._dir = Path(articles_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._slug_index_path = self._dir / "slugs.json"
        self._lock = threading.Lock()

    def _load_slugs(self) -> dict[str, str]:
        """Maps slug -> article_id."""
        if self._slug_index_path.exists():
            with open(self._slug_index_path, encoding="utf-8") as f:
                return json.load(f)
        return {}

    def _path(self, article_id: str) -> Path:
        return self._dir / f"{article_id}.json"

    def save(self, draft: ArticleDraft) -> ArticleDraft:
        with self._lock:
            slugs = self._load_slugs()
            article_id = draft.article_id or new_article_id()
            slug = slugify(draft.slug or draft.title)
            while slugs.get(slug, article_id) != article_id:
                slug = f"{slugify(draft.slug or draft.title)}-{uuid.uuid4().hex[:6]}"
            saved = draft.model_copy(update={"article_id": article_id, "slug": slug})
            slugs[slug] = article_id
            with open(self._path(article_id), "w", encoding="utf-8") as f:
                json.dump(saved.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
            with open(self._slug_index_path, "w", encoding="utf-8") as f:
                json.dump(slugs, f, indent=2)
        logger.info("Saved article draft %s (slug=%s)", article_id, slug)
        return saved

    def get(self, article_id: str) -> ArticleDraft | None:
        path = self._path(article_id)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return ArticleDraft.model_validate(json.load(f))
