"""WorkflowOrchestrator — runs analyze → transform → validate → explain.

Each workflow runs its stages strictly one after another; separate workflows
may run concurrently on the same event loop. Every workflow gets a record in
the active-workflow table, which is purged ``retention_seconds`` after the
workflow reaches a terminal status.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
import uuid
from typing import TYPE_CHECKING, Any

from legacy_bridge.memory.repository import InMemoryRepository
from legacy_bridge.pipeline.healing import SelfHealer
from legacy_bridge.pipeline.models import (
    ANALYZE,
    DEFAULT_STAGE_WEIGHTS,
    EXPLAIN,
    MANDATORY_STAGES,
    TRANSFORM,
    VALIDATE,
    BatchOutcome,
    OrchestratorConfig,
    StageContext,
    StageResult,
    WorkflowOutcome,
    WorkflowRecord,
    WorkflowStatus,
    WorkflowType,
    make_workflow_id,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence

    from legacy_bridge.llm.embeddings import Embedder
    from legacy_bridge.memory.repository import Repository
    from legacy_bridge.memory.store import MemoryStore
    from legacy_bridge.stages.base import Stage

logger = logging.getLogger(__name__)

LOW_VALIDATION_SCORE = 70
MAX_QUERY_CHARS = 8000


def calculate_confidence(
    results: Mapping[str, StageResult],
    weights: Mapping[str, float] | None = None,
) -> float:
    """Weighted mean of stage confidences, renormalized over stages present.

    Stages without a confidence (or without a weight) do not count. Returns
    0.0 when nothing contributes.
    """
    weights = DEFAULT_STAGE_WEIGHTS if weights is None else weights
    weighted_sum = 0.0
    total_weight = 0.0
    for name, result in results.items():
        if result.confidence is None:
            continue
        weight = weights.get(name, 0.0)
        weighted_sum += result.confidence * weight
        total_weight += weight
    if total_weight == 0:
        return 0.0
    return weighted_sum / total_weight


class WorkflowOrchestrator:
    """Drives stages through a workflow with retries, healing, and monitoring.

    Args:
        stages: Stage implementations keyed by stage name (``analyze``,
            ``transform``, ``validate``, ``explain``).
        memory: Memory store for context lookup and result recording.
        embedder: Embedding collaborator; memory integration is skipped
            without it.
        config: Runtime options (defaults seeded from settings).
        healer: Self-healing strategy runner.
    """

    def __init__(
        self,
        stages: Mapping[str, Stage],
        memory: MemoryStore | None = None,
        embedder: Embedder | None = None,
        config: OrchestratorConfig | None = None,
        healer: SelfHealer | None = None,
    ) -> None:
        self._stages = dict(stages)
        self._memory = memory
        self._embedder = embedder
        self.config = OrchestratorConfig() if config is None else config
        self._healer = SelfHealer() if healer is None else healer
        self._workflows: Repository[WorkflowRecord] = InMemoryRepository()
        self._purge_handles: dict[str, asyncio.TimerHandle] = {}

    # -- Execution ---------------------------------------------------------------

    async def execute_workflow(
        self,
        workflow_input: dict[str, Any] | str,
        workflow_type: str | WorkflowType = WorkflowType.FULL_MODERNIZATION,
        *,
        conversation_id: str | None = None,
        on_progress: Callable[[str, str], Awaitable[None] | None] | None = None,
        **options: Any,
    ) -> WorkflowOutcome:
        """Run one workflow to a terminal status. Never raises on stage failure.

        ``options`` are the caller's workflow options (``target_language``,
        ``target_framework``, ``modernization_style``, ``security_level``,
        ``explanation_type``, ``target_audience``, ``include_code``,
        ``include_metrics``). Partial results are kept in the outcome when
        the workflow fails or is cancelled.
        """
        wf_type = WorkflowType.parse(workflow_type)
        if wf_type.value != getattr(workflow_type, "value", workflow_type):
            logger.warning("Unknown workflow type %r, running %s", workflow_type, wf_type.value)
        if isinstance(workflow_input, str):
            workflow_input = {"code": workflow_input}

        workflow_id = make_workflow_id()
        record = WorkflowRecord(
            id=workflow_id,
            type=wf_type,
            context={"conversation_id": conversation_id or workflow_id, **options},
            task=asyncio.current_task(),
        )
        self._workflows.put(workflow_id, record)
        context = StageContext(
            workflow_id=workflow_id,
            conversation_id=conversation_id or workflow_id,
            max_retries=self.config.max_retries,
            retry_base_delay=self.config.retry_base_delay,
            on_progress=on_progress,
            options=options,
        )

        logger.info("Workflow %s started (%s)", workflow_id, wf_type.value)
        t0 = time.monotonic()
        failed_at: str | None = None
        error: str | None = None
        try:
            context.memory_context = await self._load_memory_context(workflow_input, context)
            failed_at, error = await self._run_stages(record, wf_type, workflow_input, context)
            if record.status is WorkflowStatus.CANCELLED and self.config.interrupt_on_cancel:
                # Deliver a task cancel still pending from cancel_workflow.
                await asyncio.sleep(0)
        except asyncio.CancelledError:
            if record.status is not WorkflowStatus.CANCELLED or not self.config.interrupt_on_cancel:
                record.finish(WorkflowStatus.CANCELLED, "Workflow task cancelled")
                self._schedule_purge(workflow_id)
                raise
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
            logger.info("Workflow %s interrupted by cancellation", workflow_id)
        except Exception as exc:
            logger.exception("Workflow %s raised", workflow_id)
            error = str(exc) or type(exc).__name__

        outcome = self._finish(record, failed_at, error, time.monotonic() - t0)
        self._schedule_purge(workflow_id)
        return outcome

    async def _run_stages(
        self,
        record: WorkflowRecord,
        wf_type: WorkflowType,
        workflow_input: dict[str, Any],
        context: StageContext,
    ) -> tuple[str | None, str | None]:
        """Run the workflow's stages. Returns ``(failed_at_stage, error)``."""
        for name in self._plan(wf_type):
            if record.status is WorkflowStatus.CANCELLED:
                logger.info("Workflow %s cancelled before %s", record.id, name)
                return None, None

            stage = self._stages.get(name)
            if stage is None:
                return name, f"No stage registered for '{name}'"

            if wf_type.single_stage:
                stage_input = workflow_input
            else:
                stage_input = self._stage_input(
                    name, workflow_input, record.results, context.options
                )

            await self._notify(context, name, "started")
            result = await stage.execute(stage_input, context)

            if (
                not result.success
                and name in MANDATORY_STAGES
                and self.config.enable_self_healing
                and record.status is WorkflowStatus.RUNNING
            ):
                result = await self._healer.heal(
                    name, stage, result.input or stage_input, result, context
                )

            if record.status is WorkflowStatus.CANCELLED:
                logger.info("Workflow %s cancelled; discarding %s result", record.id, name)
                return None, None

            record.results[name] = result
            await self._notify(context, name, "completed")

            if not result.success:
                logger.warning("Workflow %s failed at %s: %s", record.id, name, result.error)
                return name, f"{name} failed: {result.error}"

            if name == VALIDATE:
                self._check_validation_score(record.id, result)
            await self._remember_output(name, result, context)
        return None, None

    def _plan(self, wf_type: WorkflowType) -> list[str]:
        if wf_type.single_stage:
            return [wf_type.single_stage]
        plan = [ANALYZE, TRANSFORM]
        if self.config.enable_validation:
            plan.append(VALIDATE)
        if self.config.enable_explanation:
            plan.append(EXPLAIN)
        return plan

    @staticmethod
    def _stage_input(
        name: str,
        workflow_input: dict[str, Any],
        results: Mapping[str, StageResult],
        options: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Build a stage's input from the workflow input and earlier outputs."""
        target_language = options.get("target_language") or "Java"
        analysis = results[ANALYZE].data if ANALYZE in results else None
        transformation = results[TRANSFORM].data if TRANSFORM in results else None
        validation = results[VALIDATE].data if VALIDATE in results else None

        match name:
            case "analyze":
                return workflow_input
            case "transform":
                return {
                    "analysis_result": analysis,
                    "target_language": target_language,
                    "target_framework": options.get("target_framework"),
                    "modernization_style": options.get("modernization_style") or "gradual",
                    "original_code": workflow_input.get("code"),
                }
            case "validate":
                modernized = transformation or {}
                return {
                    "modernized_code": modernized.get("converted_code", modernized),
                    "original_analysis": analysis,
                    "target_language": target_language,
                    "security_level": options.get("security_level") or "standard",
                }
            case "explain":
                return {
                    "data": {
                        "analysis": analysis,
                        "transformation": transformation,
                        "validation": validation,
                    },
                    "explanation_type": options.get("explanation_type") or "technical",
                    "target_audience": options.get("target_audience") or "developers",
                    "include_code": options.get("include_code", True) is not False,
                    "include_metrics": options.get("include_metrics", True) is not False,
                }
        msg = f"Unknown stage: {name}"
        raise ValueError(msg)

    def _finish(
        self,
        record: WorkflowRecord,
        failed_at: str | None,
        error: str | None,
        duration: float,
    ) -> WorkflowOutcome:
        if error is None:
            record.finish(WorkflowStatus.COMPLETED)
        else:
            record.finish(WorkflowStatus.FAILED, error)

        success = record.status is WorkflowStatus.COMPLETED
        confidence = (
            calculate_confidence(record.results, self.config.stage_weights) if success else 0.0
        )
        outcome = WorkflowOutcome(
            workflow_id=record.id,
            workflow_type=record.type,
            success=success,
            status=record.status,
            results=dict(record.results),
            confidence=confidence,
            error=record.error,
            failed_at_stage=failed_at if record.status is WorkflowStatus.FAILED else None,
            duration_seconds=duration,
        )

        logger.info(
            "Workflow %s %s in %.2fs (%d stage(s), confidence %.2f)",
            record.id,
            record.status.value,
            duration,
            outcome.stages_completed,
            confidence,
        )
        if success and confidence < self.config.confidence_threshold:
            logger.warning(
                "Workflow %s confidence %.2f is below threshold %.2f",
                record.id,
                confidence,
                self.config.confidence_threshold,
            )
        return outcome

    @staticmethod
    def _check_validation_score(workflow_id: str, result: StageResult) -> None:
        score = ((result.data or {}).get("validation") or {}).get("overall_score")
        if isinstance(score, int | float) and score < LOW_VALIDATION_SCORE:
            logger.warning("Workflow %s validation concerns: score %s/100", workflow_id, score)

    @staticmethod
    async def _notify(context: StageContext, stage_name: str, status: str) -> None:
        if context.on_progress is None:
            return
        try:
            ret = context.on_progress(stage_name, status)
            if inspect.isawaitable(ret):
                await ret
        except Exception:
            logger.exception("Progress callback failed for %s (%s)", stage_name, status)

    # -- Memory ------------------------------------------------------------------

    async def _load_memory_context(
        self, workflow_input: dict[str, Any], context: StageContext
    ) -> dict[str, Any] | None:
        if self._memory is None or self._embedder is None:
            return None
        query = workflow_input.get("code") or json.dumps(workflow_input, default=str)
        language = context.options.get("target_language")
        try:
            embedding = await self._embedder.embed(str(query)[:MAX_QUERY_CHARS])
            return await self._memory.get_relevant_context(
                context.conversation_id,
                embedding,
                language=language.lower() if isinstance(language, str) else None,
            )
        except Exception:
            logger.exception("Memory context lookup failed for %s", context.workflow_id)
            return None

    async def _remember_output(
        self, stage_name: str, result: StageResult, context: StageContext
    ) -> None:
        if self._memory is None or self._embedder is None:
            return
        content = json.dumps(result.data, default=str)
        try:
            embedding = await self._embedder.embed(content[:MAX_QUERY_CHARS])
            await self._memory.store_conversation_turn(
                context.conversation_id,
                f"{context.workflow_id}:{stage_name}",
                content,
                embedding,
                role="assistant",
            )
        except Exception:
            logger.exception("Failed to record %s output for %s", stage_name, context.workflow_id)

    # -- Batch -------------------------------------------------------------------

    async def execute_batch_workflow(
        self,
        inputs: Sequence[dict[str, Any] | str],
        workflow_type: str | WorkflowType = WorkflowType.FULL_MODERNIZATION,
        **options: Any,
    ) -> BatchOutcome:
        """Run one workflow per input and collect every outcome.

        Small batches (``<= batch_parallel_limit``) run concurrently when
        parallel processing is enabled; larger ones run one at a time with
        ``batch_delay`` seconds between items.
        """
        batch_id = f"batch_{uuid.uuid4().hex[:12]}"
        total = len(inputs)
        parallel = (
            self.config.enable_parallel_processing and total <= self.config.batch_parallel_limit
        )
        logger.info(
            "Batch %s started: %d item(s), %s",
            batch_id,
            total,
            "concurrent" if parallel else "sequential",
        )

        outcomes: list[WorkflowOutcome] = []
        if parallel:
            settled = await asyncio.gather(
                *(self.execute_workflow(item, workflow_type, **options) for item in inputs),
                return_exceptions=True,
            )
            for item in settled:
                if isinstance(item, BaseException):
                    if not isinstance(item, Exception):
                        raise item
                    logger.error("Batch %s item raised: %s", batch_id, item)
                    outcomes.append(self._errored_outcome(workflow_type, item))
                else:
                    outcomes.append(item)
        else:
            for index, item in enumerate(inputs):
                if index:
                    await asyncio.sleep(self.config.batch_delay)
                outcomes.append(await self.execute_workflow(item, workflow_type, **options))

        batch = BatchOutcome(batch_id=batch_id, results=outcomes)
        logger.info("Batch %s finished: %s", batch_id, batch.summary)
        return batch

    @staticmethod
    def _errored_outcome(workflow_type: str | WorkflowType, exc: Exception) -> WorkflowOutcome:
        return WorkflowOutcome(
            workflow_id="",
            workflow_type=WorkflowType.parse(workflow_type),
            success=False,
            status=WorkflowStatus.FAILED,
            error=str(exc) or type(exc).__name__,
        )

    # -- Monitoring --------------------------------------------------------------

    def get_workflow_status(self, workflow_id: str) -> dict[str, Any] | None:
        record = self._workflows.get(workflow_id)
        return record.to_dict() if record else None

    def list_active_workflows(self) -> list[dict[str, Any]]:
        """Every record still in the table, terminal ones included until purged."""
        return [record.to_dict() for record in self._workflows.values()]

    def cancel_workflow(self, workflow_id: str) -> bool:
        """Mark a running workflow cancelled. Returns False if not running.

        The in-flight stage still completes and its result is discarded. With
        ``interrupt_on_cancel`` the workflow's task is cancelled as well.
        """
        record = self._workflows.get(workflow_id)
        if record is None or record.status is not WorkflowStatus.RUNNING:
            return False
        record.finish(WorkflowStatus.CANCELLED, "Workflow cancelled")
        logger.info("Workflow %s cancelled", workflow_id)
        self._schedule_purge(workflow_id)
        if self.config.interrupt_on_cancel and record.task is not None and not record.task.done():
            record.task.cancel()
        return True

    def get_config(self) -> dict[str, Any]:
        return self.config.model_dump()

    def update_config(self, **changes: Any) -> dict[str, Any]:
        """Apply a partial config update.

        Raises:
            ValueError: An option name is unknown.
            pydantic.ValidationError: A value is out of range.
        """
        unknown = set(changes) - set(OrchestratorConfig.model_fields)
        if unknown:
            msg = f"Unknown config option(s): {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        self.config = OrchestratorConfig.model_validate({**self.config.model_dump(), **changes})
        logger.info("Orchestrator config updated: %s", changes)
        return self.get_config()

    # -- Retention ---------------------------------------------------------------

    def _schedule_purge(self, workflow_id: str) -> None:
        previous = self._purge_handles.pop(workflow_id, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._purge_handles[workflow_id] = loop.call_later(
            self.config.retention_seconds, self._purge, workflow_id
        )

    def _purge(self, workflow_id: str) -> None:
        self._purge_handles.pop(workflow_id, None)
        if self._workflows.delete(workflow_id):
            logger.debug("Workflow %s purged", workflow_id)

    def shutdown(self) -> None:
        """Cancel pending purge timers. Records stay in the table."""
        for handle in self._purge_handles.values():
            handle.cancel()
        self._purge_handles.clear()
        logger.info("Orchestrator shut down (%d workflow record(s))", len(self._workflows))

