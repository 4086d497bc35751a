"""
DocFlow - Workflow Manager

This module provides the WorkflowManager, the entry point of the orchestration
core. It turns user instructions into workflow plans, drives them through the
scheduler, records failures, notifies users and gates retries.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import uuid4

from docflow.orchestration.classifier import InstructionClassifier
from docflow.orchestration.dag import build_step_graph
from docflow.orchestration.errors import (
    InvalidWorkflowStateError,
    RetryRejectedError,
    StepExecutionError,
    StepNotFoundError,
    WaveExecutionError,
    WorkflowCancelledError,
    WorkflowNotFoundError,
    is_retryable_error,
)
from docflow.orchestration.events import EventEmitter
from docflow.orchestration.gateway import TaskGateway
from docflow.orchestration.notifications import LoggingNotifier, Notifier
from docflow.orchestration.polling import PollingConfig
from docflow.orchestration.scheduler import WorkflowScheduler
from docflow.orchestration.state import WorkflowStateStore
from docflow.orchestration.templates import WorkflowPlanBuilder
from docflow.orchestration.types import (
    NotificationKind,
    RetryPolicy,
    UserInstruction,
    WorkflowError,
    WorkflowEvent,
    WorkflowEventType,
    WorkflowPlan,
    WorkflowStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Manager Configuration
# =============================================================================


@dataclass
class WorkflowManagerConfig:
    """Configuration for the workflow manager."""

    # Retry limits
    max_workflow_retries: int = 3
    max_step_retries: int = 3
    default_step_retry: RetryPolicy = field(default_factory=RetryPolicy)

    # Cleanup
    cleanup_max_age_ms: int = 3600000  # 1 hour

    # Task polling
    polling: PollingConfig = field(default_factory=PollingConfig)

    # Event settings
    emit_events: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> WorkflowManagerConfig:
        """Create from dictionary representation (camelCase keys)."""
        defaults = cls()
        return cls(
            max_workflow_retries=data.get("maxWorkflowRetries", defaults.max_workflow_retries),
            max_step_retries=data.get("maxStepRetries", defaults.max_step_retries),
            default_step_retry=(
                RetryPolicy.from_dict(data["defaultStepRetry"])
                if data.get("defaultStepRetry")
                else defaults.default_step_retry
            ),
            cleanup_max_age_ms=data.get("cleanupMaxAgeMs", defaults.cleanup_max_age_ms),
            polling=(
                PollingConfig.from_dict(data["polling"])
                if data.get("polling")
                else defaults.polling
            ),
            emit_events=data.get("emitEvents", defaults.emit_events),
        )


# =============================================================================
# Workflow Manager
# =============================================================================


class WorkflowManager:
    """
    Creates, runs and tracks workflow plans.

    One manager is constructed at process start and shared by whatever
    receives user instructions. All state lives in its WorkflowStateStore.

    Example:
        manager = WorkflowManager(gateway=InMemoryTaskGateway(handlers))
        workflow_id = await manager.process_user_instruction(instruction)
        plan = await manager.wait_for_workflow(workflow_id)
    """

    def __init__(
        self,
        gateway: TaskGateway,
        notifier: Optional[Notifier] = None,
        store: Optional[WorkflowStateStore] = None,
        config: Optional[WorkflowManagerConfig] = None,
        emitter: Optional[EventEmitter] = None,
        classifier: Optional[InstructionClassifier] = None,
        builder: Optional[WorkflowPlanBuilder] = None,
    ):
        """
        Initialize the manager.

        Args:
            gateway: Task execution gateway
            notifier: User notifier (defaults to logging only)
            store: Workflow state store
            config: Manager configuration
            emitter: Event emitter for workflow and step events
            classifier: Instruction classifier
            builder: Plan builder holding the workflow templates
        """
        self.gateway = gateway
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.store = store or WorkflowStateStore()
        self.config = config or WorkflowManagerConfig()
        self.emitter = emitter or EventEmitter()
        self.classifier = classifier or InstructionClassifier()
        self.builder = builder or WorkflowPlanBuilder()

        self.scheduler = WorkflowScheduler(
            gateway=gateway,
            polling=self.config.polling,
            emitter=self.emitter if self.config.emit_events else None,
        )
        self._tasks: Dict[str, asyncio.Task] = {}

    # -------------------------------------------------------------------------
    # Creation and execution
    # -------------------------------------------------------------------------

    def create_workflow_plan(self, instruction: UserInstruction) -> WorkflowPlan:
        """
        Classify an instruction, build its plan and register it.

        Raises:
            UnknownTemplateError: If the classified template is not registered
        """
        template_id = self.classifier.classify(instruction)
        plan = self.builder.build(template_id, instruction)
        self.store.register(plan, instruction)
        logger.info(
            f"Created workflow {plan.id} ({template_id.value}, {len(plan.steps)} steps) "
            f"for document {instruction.document_id}"
        )
        return plan

    async def process_user_instruction(self, instruction: UserInstruction) -> str:
        """
        Create a workflow for an instruction and start it in the background.

        Returns:
            The workflow ID; execution continues after this returns
        """
        plan = self.create_workflow_plan(instruction)
        self._tasks[plan.id] = asyncio.create_task(self._execute_in_background(plan))
        return plan.id

    async def execute_workflow(self, workflow_id: str) -> WorkflowPlan:
        """
        Run a pending workflow to completion or failure.

        Failures are recorded on the plan, not raised.

        Raises:
            WorkflowNotFoundError: If the workflow is unknown
            InvalidWorkflowStateError: If the workflow is not pending
        """
        plan = self._require_plan(workflow_id)
        if plan.status != WorkflowStatus.PENDING:
            raise InvalidWorkflowStateError(workflow_id, plan.status.value, "execute")
        await self._run_workflow(plan)
        return plan

    async def wait_for_workflow(
        self,
        workflow_id: str,
        timeout_ms: Optional[int] = None,
    ) -> WorkflowPlan:
        """
        Wait until a workflow started by process_user_instruction is done.

        Raises:
            WorkflowNotFoundError: If the workflow is unknown
            asyncio.TimeoutError: If it is still running after ``timeout_ms``
        """
        plan = self._require_plan(workflow_id)
        task = self._tasks.get(workflow_id)
        if task is not None:
            timeout = timeout_ms / 1000.0 if timeout_ms else None
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return plan

    async def _execute_in_background(self, plan: WorkflowPlan) -> None:
        try:
            if plan.status != WorkflowStatus.PENDING:
                logger.info(f"Workflow {plan.id} left pending before it started, skipping")
                return
            await self._run_workflow(plan)
        finally:
            self._tasks.pop(plan.id, None)

    async def _run_workflow(self, plan: WorkflowPlan) -> None:
        plan.status = WorkflowStatus.PROCESSING
        logger.info(f"Workflow {plan.id} started")
        await self._emit(WorkflowEvent(
            type=WorkflowEventType.WORKFLOW_STARTED,
            workflow_id=plan.id,
            data={"total_steps": len(plan.steps)},
        ))
        await self._drive(plan)

    async def _drive(self, plan: WorkflowPlan) -> None:
        """Run the scheduler on a processing plan and settle its outcome."""
        run_marker = plan.retry_count
        try:
            await self.scheduler.execute_workflow_steps(plan)
        except WorkflowCancelledError:
            logger.info(f"Workflow {plan.id} run {run_marker} stopped after cancellation")
            return
        except Exception as e:
            if plan.status != WorkflowStatus.PROCESSING or plan.retry_count != run_marker:
                logger.info(f"Workflow {plan.id} run {run_marker} superseded, dropping error: {e}")
                return
            await self._fail_workflow(plan, e)
            return

        plan.status = WorkflowStatus.COMPLETED
        plan.completed_at = utcnow()
        logger.info(f"Workflow {plan.id} completed ({len(plan.results)} results)")

        await self._emit(WorkflowEvent(
            type=WorkflowEventType.WORKFLOW_COMPLETED,
            workflow_id=plan.id,
            data={"completed_steps": len(plan.results)},
        ))
        await self._notify(plan, NotificationKind.COMPLETE, {
            "completedSteps": len(plan.results),
            "totalSteps": len(plan.steps),
            "results": list(plan.results.keys()),
        })

    async def _fail_workflow(self, plan: WorkflowPlan, error: Exception) -> None:
        recorded = self._record_failure(plan, error)
        plan.status = WorkflowStatus.FAILED

        failed_steps = [e.step_id for e in recorded if e.step_id]
        graph = build_step_graph(plan.steps)
        affected: List[str] = []
        for step_id in failed_steps:
            for descendant in sorted(graph.downstream_of(step_id)):
                if descendant not in affected and descendant not in failed_steps:
                    affected.append(descendant)

        # A run is only as retryable as its worst failure.
        last = recorded[-1]
        retryable = all(e.retryable for e in recorded)
        logger.error(f"Workflow {plan.id} failed (retryable={retryable}): {last.message}")

        await self._emit(WorkflowEvent(
            type=WorkflowEventType.WORKFLOW_FAILED,
            workflow_id=plan.id,
            data={"error": last.message, "retryable": retryable},
        ))
        await self._notify(plan, NotificationKind.ERROR, {
            "error": last.message,
            "retryable": retryable,
            "failedSteps": failed_steps,
            "affectedSteps": affected,
        })

    def _record_failure(self, plan: WorkflowPlan, error: Exception) -> List[WorkflowError]:
        """
        Append one WorkflowError per failed step (or one for the workflow).

        Retryable failures go in before non-retryable ones, each group in
        plan order, so the plan's latest error is non-retryable whenever any
        failure of the wave was.
        """
        if isinstance(error, WaveExecutionError):
            failures: List[Exception] = list(error.failures)
        else:
            failures = [error]

        recorded = []
        for failure in failures:
            step_id = task_id = None
            cause: BaseException = failure
            if isinstance(failure, StepExecutionError):
                step_id, task_id, cause = failure.step_id, failure.task_id, failure.cause
            message = str(failure) or type(failure).__name__

            workflow_error = WorkflowError(
                id=str(uuid4()),
                workflow_id=plan.id,
                message=message,
                retryable=is_retryable_error(message),
                step_id=step_id,
                task_id=task_id,
                context={
                    "type": type(cause).__name__,
                    "stack": "".join(
                        traceback.format_exception(type(cause), cause, cause.__traceback__)
                    ),
                    "retryCount": plan.retry_count,
                },
            )
            recorded.append(workflow_error)

        recorded.sort(key=lambda e: not e.retryable)
        plan.errors.extend(recorded)
        return recorded

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_workflow_status(self, workflow_id: str) -> Optional[WorkflowPlan]:
        """Get a workflow plan by ID, or None if unknown."""
        return self.store.get(workflow_id)

    def get_active_workflows(self) -> List[WorkflowPlan]:
        """All retained workflow plans."""
        return self.store.list_active()

    def get_workflow_instruction(self, workflow_id: str) -> Optional[UserInstruction]:
        return self.store.get_instruction(workflow_id)

    def get_workflow_errors(self, workflow_id: str) -> List[WorkflowError]:
        """Errors recorded for a workflow, oldest first."""
        plan = self.store.get(workflow_id)
        return list(plan.errors) if plan else []

    def get_step_errors(self, workflow_id: str, step_id: str) -> List[WorkflowError]:
        plan = self.store.get(workflow_id)
        return plan.get_step_errors(step_id) if plan else []

    def get_workflow_summary(self) -> Dict[str, int]:
        """Number of retained workflows, in total and per status."""
        counts = self.store.count_by_status()
        summary = {"total": len(self.store)}
        summary.update({status.value: count for status, count in counts.items()})
        return summary

    # -------------------------------------------------------------------------
    # Cancellation and retry
    # -------------------------------------------------------------------------

    async def cancel_workflow(self, workflow_id: str) -> bool:
        """
        Mark a pending or processing workflow as failed.

        The gateway is not told; results of steps still in flight are
        discarded when they arrive.

        Returns:
            True if the workflow was cancelled, False if it had already failed

        Raises:
            WorkflowNotFoundError: If the workflow is unknown
            InvalidWorkflowStateError: If the workflow already completed
        """
        plan = self._require_plan(workflow_id)
        if plan.status == WorkflowStatus.COMPLETED:
            raise InvalidWorkflowStateError(workflow_id, plan.status.value, "cancel")
        if plan.status == WorkflowStatus.FAILED:
            return False

        plan.status = WorkflowStatus.FAILED
        logger.info(f"Workflow {workflow_id} cancelled")
        await self._emit(WorkflowEvent(
            type=WorkflowEventType.WORKFLOW_CANCELLED,
            workflow_id=workflow_id,
        ))
        return True

    async def retry_workflow(
        self,
        workflow_id: str,
        max_retries: Optional[int] = None,
    ) -> WorkflowPlan:
        """
        Re-run a failed workflow, keeping the results of error-free steps.

        Only steps with recorded errors lose their results; everything that
        completed cleanly is not submitted again.

        Raises:
            WorkflowNotFoundError: If the workflow is unknown
            RetryRejectedError: If the workflow is not failed, has used up its
                retries, or its latest error is not retryable
        """
        plan = self._require_plan(workflow_id)
        limit = self.config.max_workflow_retries if max_retries is None else max_retries

        if plan.status != WorkflowStatus.FAILED:
            raise RetryRejectedError(
                f"Only failed workflows can be retried. Current status: {plan.status.value}",
                workflow_id,
            )
        if plan.retry_count >= limit:
            raise RetryRejectedError(
                f"Maximum retry attempts ({limit}) exceeded for workflow {workflow_id}",
                workflow_id,
            )
        last_error = plan.last_error
        if last_error is not None and not last_error.retryable:
            raise RetryRejectedError(
                f"Workflow {workflow_id} failed with non-retryable error: {last_error.message}",
                workflow_id,
            )

        plan.retry_count += 1
        for step_id in {e.step_id for e in plan.errors if e.step_id}:
            plan.results.pop(step_id, None)
        plan.status = WorkflowStatus.PROCESSING

        logger.info(f"Retrying workflow {workflow_id} (attempt {plan.retry_count}/{limit})")
        await self._emit(WorkflowEvent(
            type=WorkflowEventType.WORKFLOW_RETRYING,
            workflow_id=workflow_id,
            data={"retry_count": plan.retry_count, "max_retries": limit},
        ))

        await self._drive(plan)
        return plan

    async def retry_workflow_step(
        self,
        workflow_id: str,
        step_id: str,
        max_retries: Optional[int] = None,
    ) -> Any:
        """
        Re-run a single step and store its new result.

        The step is submitted with its own retry policy, or the configured
        default. A failure is recorded on the plan and re-raised.

        Returns:
            The step's new result

        Raises:
            WorkflowNotFoundError: If the workflow is unknown
            StepNotFoundError: If the step is not part of the workflow
            InvalidWorkflowStateError: If the workflow already completed
            RetryRejectedError: If the step has used up its retries or its
                latest error is not retryable
            StepExecutionError: If the re-run fails
        """
        plan = self._require_plan(workflow_id)
        step = plan.get_step(step_id)
        if step is None:
            raise StepNotFoundError(workflow_id, step_id)
        if plan.status == WorkflowStatus.COMPLETED:
            raise InvalidWorkflowStateError(workflow_id, plan.status.value, "retry a step of")

        limit = self.config.max_step_retries if max_retries is None else max_retries
        step_errors = plan.get_step_errors(step_id)
        if len(step_errors) >= limit:
            raise RetryRejectedError(
                f"Maximum retry attempts ({limit}) exceeded for step {step_id}",
                workflow_id,
                step_id=step_id,
            )
        if step_errors and not step_errors[-1].retryable:
            raise RetryRejectedError(
                f"Step {step_id} failed with non-retryable error: {step_errors[-1].message}",
                workflow_id,
                step_id=step_id,
            )

        plan.results.pop(step_id, None)
        logger.info(f"Retrying step {step_id} of workflow {workflow_id}")
        await self._emit(WorkflowEvent(
            type=WorkflowEventType.STEP_RETRYING,
            workflow_id=workflow_id,
            step_id=step_id,
            data={"attempt": len(step_errors) + 1, "max_retries": limit},
        ))

        try:
            result = await self.scheduler.execute_step(
                plan, step, default_retry=self.config.default_step_retry
            )
        except StepExecutionError as e:
            self._record_failure(plan, e)
            if plan.status == WorkflowStatus.PROCESSING:
                plan.status = WorkflowStatus.FAILED
            raise

        plan.results[step_id] = result
        return result

    # -------------------------------------------------------------------------
    # Housekeeping
    # -------------------------------------------------------------------------

    def cleanup_completed_workflows(self, max_age_ms: Optional[int] = None) -> int:
        """Drop terminal workflows older than ``max_age_ms``; returns how many."""
        age = self.config.cleanup_max_age_ms if max_age_ms is None else max_age_ms
        removed = self.store.cleanup_completed_workflows(max_age_ms=age)
        if removed:
            logger.debug(f"Cleaned up {removed} workflows older than {age}ms")
        return removed

    async def shutdown(self) -> None:
        """Cancel background workflow runs and wait for them to unwind."""
        pending = [t for t in self._tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()

    def _require_plan(self, workflow_id: str) -> WorkflowPlan:
        plan = self.store.get(workflow_id)
        if plan is None:
            raise WorkflowNotFoundError(workflow_id)
        return plan

    async def _emit(self, event: WorkflowEvent) -> None:
        if self.config.emit_events:
            await self.emitter.emit(event)

    async def _notify(
        self,
        plan: WorkflowPlan,
        kind: NotificationKind,
        details: Dict[str, Any],
    ) -> None:
        instruction = self.store.get_instruction(plan.id)
        user_id = instruction.user_id if instruction else ""
        try:
            await self.notifier.notify(kind, user_id, plan.id, details)
        except Exception as e:
            logger.warning(f"Failed to send {kind.value} notification for workflow {plan.id}: {e}")
