"""Workflow, stage, and orchestrator configuration models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from legacy_bridge.config import settings
from legacy_bridge.errors import ErrorKind

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

ANALYZE = "analyze"
TRANSFORM = "transform"
VALIDATE = "validate"
EXPLAIN = "explain"

STAGE_ORDER: tuple[str, ...] = (ANALYZE, TRANSFORM, VALIDATE, EXPLAIN)
MANDATORY_STAGES: frozenset[str] = frozenset({ANALYZE, TRANSFORM})

DEFAULT_STAGE_WEIGHTS: dict[str, float] = {
    ANALYZE: 0.3,
    TRANSFORM: 0.4,
    VALIDATE: 0.2,
    EXPLAIN: 0.1,
}


class WorkflowType(str, Enum):
    FULL_MODERNIZATION = "full_modernization"
    ANALYZE_ONLY = "analyze_only"
    TRANSFORM_ONLY = "transform_only"
    VALIDATE_ONLY = "validate_only"
    EXPLAIN_ONLY = "explain_only"

    @classmethod
    def parse(cls, value: str | WorkflowType) -> WorkflowType:
        """Resolve a type name; unknown names mean a full modernization."""
        try:
            return cls(value)
        except ValueError:
            return cls.FULL_MODERNIZATION

    @property
    def single_stage(self) -> str | None:
        """The only stage a ``*_only`` workflow runs, or None for the full pipeline."""
        return {
            WorkflowType.ANALYZE_ONLY: ANALYZE,
            WorkflowType.TRANSFORM_ONLY: TRANSFORM,
            WorkflowType.VALIDATE_ONLY: VALIDATE,
            WorkflowType.EXPLAIN_ONLY: EXPLAIN,
        }.get(self)


class WorkflowStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not WorkflowStatus.RUNNING


@dataclass
class StageResult:
    """What a stage hands back to the orchestrator.

    Attributes:
        success: Whether the stage produced usable output.
        data: The structured output (stage-specific dict).
        confidence: Estimated reliability in [0, 1]; None if not scored.
        error: Human-readable failure message.
        error_kind: Failure category used to choose a healing strategy.
        input: The input the stage ran with, kept so a healing retry can
            replay or simplify it.
        attempt: The attempt number that produced this result.
    """

    success: bool
    data: dict[str, Any] | None = None
    confidence: float | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    input: dict[str, Any] | None = None
    attempt: int = 1
    healed: bool = False

    @classmethod
    def ok(cls, data: dict[str, Any], confidence: float, **kwargs: Any) -> StageResult:
        return cls(success=True, data=data, confidence=confidence, **kwargs)

    @classmethod
    def failed(cls, error: str, kind: ErrorKind | None = None, **kwargs: Any) -> StageResult:
        return cls(success=False, error=error, error_kind=kind, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "confidence": self.confidence,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "attempt": self.attempt,
            "healed": self.healed,
        }


@dataclass
class StageContext:
    """Per-invocation context passed alongside a stage's input.

    ``options`` carries caller workflow options (target language, audience,
    etc.); ``memory_context`` carries what the memory store returned for the
    workflow's input.
    """

    workflow_id: str
    conversation_id: str
    attempt: int = 1
    max_retries: int = 3
    retry_base_delay: float = 1.0
    on_progress: Callable[[str, str], Awaitable[None] | None] | None = None
    options: dict[str, Any] = field(default_factory=dict)
    memory_context: dict[str, Any] | None = None
    healing: bool = False


@dataclass
class WorkflowRecord:
    """Entry in the orchestrator's active-workflow table."""

    id: str
    type: WorkflowType
    status: WorkflowStatus = WorkflowStatus.RUNNING
    start_time: str = ""
    end_time: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    results: dict[str, StageResult] = field(default_factory=dict)
    error: str | None = None
    task: asyncio.Task | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.start_time:
            self.start_time = datetime.now(UTC).isoformat()

    def finish(self, status: WorkflowStatus, error: str | None = None) -> bool:
        """Move to a terminal status. Returns False if already terminal."""
        if self.status.is_terminal:
            return False
        self.status = status
        self.end_time = datetime.now(UTC).isoformat()
        self.error = error
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "context": {k: v for k, v in self.context.items() if not callable(v)},
            "results": {name: result.to_dict() for name, result in self.results.items()},
            "error": self.error,
        }


@dataclass
class WorkflowOutcome:
    """Result returned to the caller of ``execute_workflow``.

    Partial progress is always present in ``results``, including on failure.
    """

    workflow_id: str
    workflow_type: WorkflowType
    success: bool
    status: WorkflowStatus
    results: dict[str, StageResult] = field(default_factory=dict)
    confidence: float = 0.0
    error: str | None = None
    failed_at_stage: str | None = None
    duration_seconds: float = 0.0

    @property
    def stages_completed(self) -> int:
        return sum(1 for result in self.results.values() if result.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "workflow_type": self.workflow_type.value,
            "success": self.success,
            "status": self.status.value,
            "results": {name: result.to_dict() for name, result in self.results.items()},
            "confidence": self.confidence,
            "error": self.error,
            "failed_at_stage": self.failed_at_stage,
            "stages_completed": self.stages_completed,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class BatchOutcome:
    batch_id: str
    results: list[WorkflowOutcome]

    @property
    def summary(self) -> dict[str, Any]:
        total = len(self.results)
        successful = sum(1 for r in self.results if r.success)
        return {
            "total": total,
            "successful": successful,
            "failed": total - successful,
            "success_rate": successful / total if total else 0.0,
        }


class OrchestratorConfig(BaseModel):
    """Runtime options for ``WorkflowOrchestrator``; seeded from settings."""

    enable_parallel_processing: bool = True
    enable_self_healing: bool = True
    confidence_threshold: float = Field(default_factory=lambda: settings.confidence_threshold)
    max_retries: int = Field(default_factory=lambda: settings.max_retry_attempts, ge=1)
    enable_validation: bool = True
    enable_explanation: bool = True
    interrupt_on_cancel: bool = False
    retry_base_delay: float = Field(default_factory=lambda: settings.retry_base_delay_seconds, ge=0)
    retention_seconds: float = Field(
        default_factory=lambda: settings.workflow_retention_seconds, ge=0
    )
    batch_parallel_limit: int = Field(default_factory=lambda: settings.batch_parallel_limit, ge=1)
    batch_delay: float = Field(default_factory=lambda: settings.batch_delay_seconds, ge=0)
    stage_weights: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_STAGE_WEIGHTS))

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("stage_weights")
    @classmethod
    def _weights_non_negative(cls, value: dict[str, float]) -> dict[str, float]:
        for stage, weight in value.items():
            if weight < 0:
                msg = f"Stage weight for '{stage}' must be non-negative, got {weight}"
                raise ValueError(msg)
        return value


def make_workflow_id() -> str:
    """Generate a new workflow ID."""
    return f"workflow_{uuid.uuid4().hex[:12]}"
