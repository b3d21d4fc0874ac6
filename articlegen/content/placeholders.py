"""Image placeholder markers embedded in generated HTML.

Wire format (an HTML comment, round-trips exactly)::

    <!-- IMAGE_PLACEHOLDER: position="hero" context="..." alt_hint="..." -->
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, field_validator

PLACEHOLDER_RE = re.compile(
    r'<!-- IMAGE_PLACEHOLDER: position="([^"]+)" context="([^"]+)" alt_hint="([^"]+)" -->'
)


class ImagePlaceholder(BaseModel):
    """Where an image goes and what it should show."""

    model_config = ConfigDict(frozen=True)

    position: str
    context: str
    alt_hint: str

    @field_validator("position", "context", "alt_hint")
    @classmethod
    def _representable(cls, value: str) -> str:
        if not value:
            raise ValueError("placeholder attributes must be non-empty")
        if '"' in value or "-->" in value:
            raise ValueError('placeholder attributes cannot contain \'"\' or \'-->\'')
        return value

    def render(self) -> str:
        return (
            f'<!-- IMAGE_PLACEHOLDER: position="{self.position}" '
            f'context="{self.context}" alt_hint="{self.alt_hint}" -->'
        )


def extract_placeholders(html: str) -> list[ImagePlaceholder]:
    """All placeholders in document order."""
    return [
        ImagePlaceholder(position=m.group(1), context=m.group(2), alt_hint=m.group(3))
        for m in PLACEHOLDER_RE.finditer(html or "")
    ]


def count_placeholders(html: str) -> int:
    return len(PLACEHOLDER_RE.findall(html or ""))
