"""HTML post-processing: table repair, cleanup and image placeholders."""

from articlegen.content.placeholders import (
    ImagePlaceholder,
    count_placeholders,
    extract_placeholders,
)
from articlegen.content.repair import (
    clean_generated_html,
    find_unrepaired_tables,
    repair_tables,
)

__all__ = [
    "ImagePlaceholder",
    "clean_generated_html",
    "count_placeholders",
    "extract_placeholders",
    "find_unrepaired_tables",
    "repair_tables",
]
