"""Keyword-to-article pipeline: stage executor, orchestrator and follow-up events."""

from articlegen.pipeline.events import (
    EventSink,
    FileEventSink,
    ImageGenerationRequest,
    InMemoryEventSink,
)
from articlegen.pipeline.orchestrator import PipelineOrchestrator, build_orchestrator
from articlegen.pipeline.stages import (
    STAGE_ORDER,
    StageExecutor,
    StageProfile,
    StageResult,
    build_executor,
    load_stage_definitions,
)

__all__ = [
    "EventSink",
    "FileEventSink",
    "ImageGenerationRequest",
    "InMemoryEventSink",
    "PipelineOrchestrator",
    "STAGE_ORDER",
    "StageExecutor",
    "StageProfile",
    "StageResult",
    "build_executor",
    "build_orchestrator",
    "load_stage_definitions",
]
