"""Workflow pipeline: orchestrator, self-healing, and chunking."""

from legacy_bridge.pipeline.models import (
    BatchOutcome,
    OrchestratorConfig,
    StageContext,
    StageResult,
    WorkflowOutcome,
    WorkflowStatus,
    WorkflowType,
)
from legacy_bridge.pipeline.orchestrator import WorkflowOrchestrator, calculate_confidence

__all__ = [
    "BatchOutcome",
    "OrchestratorConfig",
    "StageContext",
    "StageResult",
    "WorkflowOrchestrator",
    "WorkflowOutcome",
    "WorkflowStatus",
    "WorkflowType",
    "calculate_confidence",
]
