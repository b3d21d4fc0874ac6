"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
from typing import Any, Callable, Union

import pytest

from articlegen.articles import FileArticleSink
from articlegen.config import Settings
from articlegen.jobs.store import FileJobStore
from articlegen.llm.base import ChatCompletion, ProviderError
from articlegen.pipeline.events import InMemoryEventSink
from articlegen.pipeline.notifications import InMemoryNotificationSink
from articlegen.pipeline.orchestrator import PipelineOrchestrator
from articlegen.pipeline.stages import StageExecutor

KEYWORD = "朝ヨガ 効果"

BROKEN_TABLE = (
    '<table style="x"><th style="y"><tr><th>時間帯</th><th>効果</th></tr></th>'
    "<tr><td>朝</td><td>代謝が上がる</td></tr></table>"
)


def make_article_html(
    *,
    h2_count: int = 6,
    paragraph_chars: int = 9000,
    placeholders: int = 3,
    table: str = BROKEN_TABLE,
) -> str:
    """Article body that passes every quality check unless told otherwise."""
    parts = []
    for i in range(placeholders):
        position = "hero" if i == 0 else f"section_{i}"
        parts.append(
            f'<!-- IMAGE_PLACEHOLDER: position="{position}" '
            f'context="朝の光の中でヨガをする女性 {i}" alt_hint="朝ヨガのポーズ {i}" -->'
        )
    per_section = max(1, paragraph_chars // max(1, h2_count))
    for i in range(h2_count):
        parts.append(f"<h2>見出し{i + 1}</h2>")
        parts.append(f'<p style="color:#333">{"あ" * per_section}</p>')
    if table:
        parts.append(table)
    parts.append("<h2>よくある質問</h2><p>FAQ本文</p>")
    parts.append('<div class="cta-banner">無料体験レッスンのお申し込み</div>')
    return "\n".join(parts)


def stage_payloads(html: str | None = None) -> dict[str, dict[str, Any]]:
    """One valid model response per stage, keyed by stage name."""
    html = html or make_article_html()
    return {
        "keyword_analysis": {
            "primary_keyword": KEYWORD,
            "search_intent": "朝ヨガの効果を知りたい",
            "related_keywords": ["朝ヨガ 痩せる", "朝ヨガ 時間"],
            "people_also_ask": ["朝ヨガは何分やればいい？"],
        },
        "structure": {
            "title": "朝ヨガの効果とは？",
            "slug": "morning-yoga-benefits",
            "outline": [{"heading": f"見出し{i}", "points": ["要点"]} for i in range(1, 7)],
            "faq": ["朝ヨガは空腹でやるべき？"],
        },
        "draft": {"html": html},
        "seo": {
            "metaTitle": "朝ヨガの効果｜専門家が解説",
            "metaDescription": "朝ヨガの効果を専門家が解説します。",
            "keywords": ["朝ヨガ"],
        },
        "proofreading": {"html": html, "changes": ["表記ゆれを修正"]},
    }


Response = Union[str, ProviderError, Callable[[str, str], str]]


class FakeProvider:
    """Scripted LLM: returns queued responses in order and records every call."""

    def __init__(self, responses: list[Response] | None = None, total_tokens: int | None = 100):
        self.responses: list[Response] = list(responses or [])
        self.calls: list[dict[str, Any]] = []
        self.total_tokens = total_tokens

    def queue(self, *responses: Response) -> None:
        self.responses.extend(responses)

    def queue_json(self, *payloads: dict[str, Any]) -> None:
        self.responses.extend(json.dumps(p, ensure_ascii=False) for p in payloads)

    def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> ChatCompletion:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if not self.responses:
            raise AssertionError("FakeProvider ran out of scripted responses")
        response = self.responses.pop(0)
        if isinstance(response, ProviderError):
            raise response
        if callable(response):
            response = response(system_prompt, user_prompt)
        return ChatCompletion(text=response, total_tokens=self.total_tokens)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        articlegen_data_dir=str(tmp_path / "data"),
        openrouter_api_key="test-key",
        articlegen_model=None,
        articlegen_database_url=None,
        articlegen_site_domain="yoga.example.com",
        articlegen_quality_review_threshold=60,
    )


@pytest.fixture
def store(tmp_path) -> FileJobStore:
    return FileJobStore(tmp_path / "data")


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def events() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def articles(tmp_path) -> FileArticleSink:
    return FileArticleSink(tmp_path / "data" / "articles")


@pytest.fixture
def notifications() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def executor(provider, settings) -> StageExecutor:
    return StageExecutor(provider, settings)


@pytest.fixture
def orchestrator(store, executor, events, articles, settings, notifications) -> PipelineOrchestrator:
    return PipelineOrchestrator(store, executor, events, articles, settings, notifications)


@pytest.fixture
def job_context() -> dict[str, Any]:
    return {
        "keyword": KEYWORD,
        "category": {"id": "cat_1", "name": "ヨガの効果"},
        "author": {
            "id": "auth_1",
            "name": "山田 花子",
            "role": "ヨガインストラクター",
            "specialties": ["朝ヨガ", "ハタヨガ"],
            "avoidWords": ["絶対"],
        },
        "brand": {"id": "brand_1", "name": "Yoga Studio", "domain": "yoga.example.com", "tone": "やさしい"},
        "knowledge_items": [{"id": "k1", "title": "朝ヨガで変わった生徒", "type": "episode", "content": "..."}],
        "conversion_goal": "無料体験レッスンへの申し込み",
    }
