"""Tagged stage output models.

Every stage returns untyped JSON from the model. ``validate_stage_output``
turns it into one of the models below (discriminated by ``stage``) or raises
``StageShapeError`` naming every missing or empty required field. Both
snake_case and camelCase keys are accepted.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    model_validator,
)


class StageShapeError(ValueError):
    """Parsed JSON is missing fields the stage requires."""

    def __init__(self, stage: str, missing_fields: list[str], message: str | None = None):
        self.stage = stage
        self.missing_fields = missing_fields
        super().__init__(
            message or f"{stage} output validation failed: missing {', '.join(missing_fields)}"
        )


class _StageOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


# ---------------------------------------------------------------------------
# keyword_analysis
# ---------------------------------------------------------------------------

class KeywordAnalysisOutput(_StageOutput):
    stage: Literal["keyword_analysis"] = "keyword_analysis"
    primary_keyword: str = Field(
        min_length=1, validation_alias=AliasChoices("primary_keyword", "primaryKeyword")
    )
    search_intent: str = Field(
        min_length=1, validation_alias=AliasChoices("search_intent", "searchIntent")
    )
    related_keywords: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("related_keywords", "relatedKeywords"),
    )
    people_also_ask: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("people_also_ask", "peopleAlsoAsk"),
    )
    target_reader: str = Field(
        default="", validation_alias=AliasChoices("target_reader", "targetReader")
    )


# ---------------------------------------------------------------------------
# structure
# ---------------------------------------------------------------------------

class OutlineSection(BaseModel):
    heading: str = Field(min_length=1, validation_alias=AliasChoices("heading", "h2", "title"))
    points: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("points", "h3", "subheadings")
    )

    @model_validator(mode="before")
    @classmethod
    def _from_plain_heading(cls, value: Any) -> Any:
        # Models sometimes return the outline as a bare list of headings
        if isinstance(value, str):
            return {"heading": value}
        return value


class StructureOutput(_StageOutput):
    stage: Literal["structure"] = "structure"
    title: str = Field(min_length=1)
    slug: str = ""
    outline: list[OutlineSection] = Field(min_length=1)
    faq: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# draft / seo / proofreading (HTML-bearing)
# ---------------------------------------------------------------------------

class DraftOutput(_StageOutput):
    stage: Literal["draft"] = "draft"
    html: str = Field(min_length=1)


class SeoOutput(_StageOutput):
    stage: Literal["seo"] = "seo"
    meta_title: str = Field(
        min_length=1, validation_alias=AliasChoices("meta_title", "metaTitle")
    )
    meta_description: str = Field(
        min_length=1, validation_alias=AliasChoices("meta_description", "metaDescription")
    )
    # Omitted when the model keeps the draft's HTML unchanged
    html: str | None = None
    slug: str = ""
    keywords: list[str] = Field(default_factory=list)


class ProofreadOutput(_StageOutput):
    stage: Literal["proofreading"] = "proofreading"
    html: str = Field(min_length=1)
    changes: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("changes", "changes_made", "changesMade")
    )


StageOutput = Annotated[
    Union[KeywordAnalysisOutput, StructureOutput, DraftOutput, SeoOutput, ProofreadOutput],
    Field(discriminator="stage"),
]

_stage_output_adapter: TypeAdapter[StageOutput] = TypeAdapter(StageOutput)

STAGE_OUTPUT_MODELS: dict[str, type[_StageOutput]] = {
    "keyword_analysis": KeywordAnalysisOutput,
    "structure": StructureOutput,
    "draft": DraftOutput,
    "seo": SeoOutput,
    "proofreading": ProofreadOutput,
}

HTML_STAGES = frozenset({"draft", "seo", "proofreading"})


def _error_paths(exc: ValidationError) -> list[str]:
    paths: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"]) or "output"
        if loc not in paths:
            paths.append(loc)
    return paths


def validate_stage_output(stage: str, data: Any) -> _StageOutput:
    """Convert gateway JSON into the stage's tagged output model."""
    model = STAGE_OUTPUT_MODELS.get(stage)
    if model is None:
        raise KeyError(f"Unknown stage: {stage}")
    if not isinstance(data, dict):
        raise StageShapeError(stage, ["output"], f"{stage} returned {type(data).__name__}, expected object")
    payload = {k: v for k, v in data.items() if k != "stage"}
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise StageShapeError(stage, _error_paths(e)) from e


def load_stage_output(stored: dict[str, Any]) -> _StageOutput:
    """Rebuild a stage output previously persisted with ``model_dump()``."""
    return _stage_output_adapter.validate_python(stored)
