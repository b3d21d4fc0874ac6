"""Job context: everything a stage prompt may reference besides prior outputs."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CategoryInfo(BaseModel):
    id: str = ""
    name: str = ""
    description: str = ""


class AuthorInfo(BaseModel):
    """Supervising author whose voice and credentials the article carries."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    name: str = ""
    role: str = ""
    profile: str = ""
    specialties: list[str] = Field(default_factory=list)
    writing_style: str = Field(
        default="professional",
        validation_alias=AliasChoices("writing_style", "writingStyle"),
    )
    signature_phrases: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("signature_phrases", "signaturePhrases"),
    )
    avoid_words: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("avoid_words", "avoidWords"),
    )


class BrandInfo(BaseModel):
    id: str = ""
    name: str = ""
    domain: str = ""
    tone: str = ""


class KnowledgeItem(BaseModel):
    """One entry from the author's knowledge bank (episodes, facts, case notes)."""

    id: str = ""
    title: str = ""
    type: str = ""
    content: str = ""


class JobContext(BaseModel):
    """Persisted on the job at creation; rendered into every stage prompt."""

    model_config = ConfigDict(populate_by_name=True)

    keyword: str
    category: CategoryInfo = Field(default_factory=CategoryInfo)
    author: AuthorInfo = Field(default_factory=AuthorInfo)
    brand: BrandInfo = Field(default_factory=BrandInfo)
    knowledge_items: list[KnowledgeItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices("knowledge_items", "knowledgeItems", "info_bank"),
    )
    conversion_goal: str | None = Field(
        default=None,
        validation_alias=AliasChoices("conversion_goal", "conversionGoal"),
    )
