"""Pydantic schemas for job context and stage outputs."""

from articlegen.schemas.context import (
    AuthorInfo,
    BrandInfo,
    CategoryInfo,
    JobContext,
    KnowledgeItem,
)
from articlegen.schemas.stage_outputs import (
    HTML_STAGES,
    DraftOutput,
    KeywordAnalysisOutput,
    OutlineSection,
    ProofreadOutput,
    SeoOutput,
    StageOutput,
    StageShapeError,
    StructureOutput,
    load_stage_output,
    validate_stage_output,
)

__all__ = [
    "AuthorInfo",
    "BrandInfo",
    "CategoryInfo",
    "DraftOutput",
    "HTML_STAGES",
    "JobContext",
    "KeywordAnalysisOutput",
    "KnowledgeItem",
    "OutlineSection",
    "ProofreadOutput",
    "SeoOutput",
    "StageOutput",
    "StageShapeError",
    "StructureOutput",
    "load_stage_output",
    "validate_stage_output",
]
