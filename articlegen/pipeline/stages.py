"""Stage executor: prompt assembly, one model call, validation and HTML post-processing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, FileSystemLoader

from articlegen.audit.quality import QualityReport, score_article
from articlegen.config import Settings
from articlegen.content.repair import clean_generated_html, find_unrepaired_tables, repair_tables
from articlegen.llm import LLMProvider, get_provider
from articlegen.llm.gateway import ErrorCode, ModelCallConfig, call_model
from articlegen.schemas.context import JobContext
from articlegen.schemas.stage_outputs import HTML_STAGES, StageShapeError, validate_stage_output

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

STAGE_ORDER: tuple[str, ...] = ("keyword_analysis", "structure", "draft", "seo", "proofreading")

STAGE_LABELS = {
    "keyword_analysis": "Analysing search intent",
    "structure": "Planning the outline",
    "draft": "Writing the draft",
    "seo": "Optimising for search",
    "proofreading": "Proofreading",
}


@dataclass(frozen=True)
class StageProfile:
    model: str
    max_tokens: int
    temperature: float


@dataclass(frozen=True)
class StageDefinition:
    name: str
    ordinal: int
    profile: StageProfile
    system_prompt: str
    template: str


@dataclass
class StageResult:
    ok: bool
    output: dict[str, Any] | None = None
    error_code: ErrorCode | None = None
    error: str | None = None
    raw_excerpt: str | None = None
    tokens_used: int | None = None
    quality: QualityReport | None = None
    unrepaired_tables: list[str] = field(default_factory=list)

    @classmethod
    def failure(
        cls,
        code: ErrorCode,
        error: str,
        *,
        raw_excerpt: str | None = None,
        tokens_used: int | None = None,
    ) -> StageResult:
        return cls(
            ok=False, error_code=code, error=error, raw_excerpt=raw_excerpt, tokens_used=tokens_used
        )


def load_stage_definitions(path: Path | None = None) -> dict[str, StageDefinition]:
    """Read stage profiles and system prompts from ``stages.yaml``."""
    path = path or PROMPTS_DIR / "stages.yaml"
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    common = (data.get("common_rules") or "").strip()
    stages = data.get("stages") or {}

    definitions: dict[str, StageDefinition] = {}
    for ordinal, name in enumerate(STAGE_ORDER):
        entry = stages.get(name)
        if not entry:
            raise ValueError(f"{path}: no definition for stage '{name}'")
        system_prompt = "\n\n".join(p for p in (common, (entry.get("system_prompt") or "").strip()) if p)
        definitions[name] = StageDefinition(
            name=name,
            ordinal=ordinal,
            profile=StageProfile(
                model=str(entry["model"]),
                max_tokens=int(entry.get("max_tokens", 4000)),
                temperature=float(entry.get("temperature", 0.7)),
            ),
            system_prompt=system_prompt,
            template=entry.get("template", f"{name}.j2"),
        )
    return definitions


def _render_prompt(template_name: str, **kwargs: Any) -> str:
    env = Environment(loader=FileSystemLoader(str(PROMPTS_DIR)))
    return env.get_template(template_name).render(**kwargs)


class StageExecutor:
    """Runs one named stage against the model and returns a ``StageResult``.

    Never raises for model-side problems: gateway, parse and shape failures
    come back as failed results. HTML-bearing stages are cleaned, repaired
    and scored before the output is accepted.
    """

    def __init__(
        self,
        provider: LLMProvider,
        settings: Settings,
        definitions: dict[str, StageDefinition] | None = None,
    ):
        self._provider = provider
        self._settings = settings
        self._definitions = definitions or load_stage_definitions()

    @property
    def stage_names(self) -> tuple[str, ...]:
        return STAGE_ORDER

    def build_prompts(
        self, stage_name: str, context: JobContext, prior_outputs: dict[str, dict[str, Any]]
    ) -> tuple[str, str]:
        definition = self._definitions[stage_name]
        user_prompt = _render_prompt(
            definition.template,
            context=context.model_dump(),
            outputs=prior_outputs,
            site_domain=self._settings.articlegen_site_domain,
        )
        return definition.system_prompt, user_prompt

    def model_config_for(self, stage_name: str) -> ModelCallConfig:
        profile = self._definitions[stage_name].profile
        return ModelCallConfig(
            model=self._settings.articlegen_model or profile.model,
            max_tokens=profile.max_tokens,
            temperature=profile.temperature,
        )

    def execute(
        self, stage_name: str, context: JobContext, prior_outputs: dict[str, dict[str, Any]]
    ) -> StageResult:
        system_prompt, user_prompt = self.build_prompts(stage_name, context, prior_outputs)
        config = self.model_config_for(stage_name)
        logger.info("Stage %s: calling %s", stage_name, config.model)

        result = call_model(self._provider, system_prompt, user_prompt, config)
        if not result.ok:
            return StageResult.failure(
                result.error_code or ErrorCode.GATEWAY_ERROR,
                result.error or "Model call failed",
                raw_excerpt=result.raw_excerpt,
                tokens_used=result.tokens_used,
            )

        try:
            validated = validate_stage_output(stage_name, result.data)
        except StageShapeError as e:
            logger.warning("Stage %s: shape error, missing %s", stage_name, e.missing_fields)
            return StageResult.failure(ErrorCode.SHAPE_ERROR, str(e), tokens_used=result.tokens_used)

        output = validated.model_dump()
        if stage_name not in HTML_STAGES:
            return StageResult(ok=True, output=output, tokens_used=result.tokens_used)
        return self._finish_html_stage(stage_name, output, prior_outputs, result.tokens_used)

    def _finish_html_stage(
        self,
        stage_name: str,
        output: dict[str, Any],
        prior_outputs: dict[str, dict[str, Any]],
        tokens_used: int | None,
    ) -> StageResult:
        raw_html = output.get("html")
        if not raw_html and stage_name == "seo":
            # SEO may keep the draft body as-is
            raw_html = prior_outputs.get("draft", {}).get("html", "")

        html = repair_tables(clean_generated_html(raw_html or ""))
        if not html:
            return StageResult.failure(
                ErrorCode.SHAPE_ERROR,
                f"{stage_name} output validation failed: html is empty after cleanup",
                tokens_used=tokens_used,
            )
        output["html"] = html

        unrepaired = find_unrepaired_tables(html)
        if unrepaired:
            logger.warning("Stage %s: %d table(s) could not be repaired", stage_name, len(unrepaired))

        seo = output if stage_name == "seo" else prior_outputs.get("seo", {})
        quality = score_article(html, seo.get("meta_title"), seo.get("meta_description"))
        logger.info(
            "Stage %s: quality %d/100 (%d issue(s))",
            stage_name, quality.clamped_score, len(quality.issues),
        )
        return StageResult(
            ok=True,
            output=output,
            tokens_used=tokens_used,
            quality=quality,
            unrepaired_tables=unrepaired,
        )


def build_executor(settings: Settings) -> StageExecutor:
    """Executor wired to the provider named in settings."""
    provider = get_provider(
        settings.articlegen_llm_provider,
        api_key=settings.llm_api_key,
        base_url=settings.articlegen_base_url,
        timeout=settings.articlegen_request_timeout,
    )
    return StageExecutor(provider, settings)
