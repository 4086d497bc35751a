"""
DocFlow - Workflow Scheduler

This module drains a workflow plan: it repeatedly selects the steps whose
dependencies have results, runs that wave concurrently against the task
gateway, records the results and moves on to the next wave.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from docflow.orchestration.dag import build_step_graph
from docflow.orchestration.errors import (
    StepExecutionError,
    WaveExecutionError,
    WorkflowCancelledError,
    WorkflowDeadlockError,
)
from docflow.orchestration.events import EventEmitter
from docflow.orchestration.gateway import TaskGateway
from docflow.orchestration.polling import PollingConfig, wait_for_task_completion
from docflow.orchestration.types import (
    RetryPolicy,
    TaskDefinition,
    WorkflowEvent,
    WorkflowEventType,
    WorkflowPlan,
    WorkflowStatus,
    WorkflowStep,
)

logger = logging.getLogger(__name__)


class WorkflowScheduler:
    """
    Executes workflow plans wave by wave.

    The scheduler is responsible for:
    - Computing the ready set from recorded results
    - Detecting plans that can no longer make progress
    - Forwarding dependency results into each step's payload
    - Submitting steps to the gateway and waiting for them
    - Recording results into the plan
    """

    def __init__(
        self,
        gateway: TaskGateway,
        polling: Optional[PollingConfig] = None,
        emitter: Optional[EventEmitter] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            gateway: Task execution gateway steps are submitted to
            polling: Task status polling configuration
            emitter: Optional event emitter for step events
        """
        self.gateway = gateway
        self.polling = polling or PollingConfig()
        self.emitter = emitter

    async def execute_workflow_steps(self, plan: WorkflowPlan) -> Dict[str, Any]:
        """
        Run every step of the plan that has no recorded result.

        Steps whose results are already in ``plan.results`` count as
        completed, so a retried plan only re-runs what is missing.

        Returns:
            The plan's results map

        Raises:
            WorkflowDeadlockError: If no step is ready but some are unfinished
            StepExecutionError: If a step of a wave failed
            WaveExecutionError: If several steps of a wave failed
            WorkflowCancelledError: If the plan left ``processing`` mid-wave
        """
        graph = build_step_graph(plan.steps)
        run_marker = plan.retry_count
        completed: Set[str] = {step.id for step in plan.steps if step.id in plan.results}

        while len(completed) < len(plan.steps):
            ready = graph.get_ready_steps(completed)

            if not ready:
                blocked = [step.id for step in plan.steps if step.id not in completed]
                cycle = graph.find_cycle(blocked)
                logger.error(
                    f"Workflow {plan.id} deadlocked with {len(blocked)} blocked steps"
                    + (f", cycle {' -> '.join(cycle)}" if cycle else "")
                )
                raise WorkflowDeadlockError(
                    workflow_id=plan.id,
                    blocked_steps=blocked,
                    unresolved_dependencies=graph.unresolved_dependencies(),
                )

            logger.info(
                f"Workflow {plan.id}: dispatching wave of {len(ready)} steps "
                f"({', '.join(step.task_type for step in ready)})"
            )
            outcomes = await asyncio.gather(
                *(self.execute_step(plan, step) for step in ready),
                return_exceptions=True,
            )

            if plan.status != WorkflowStatus.PROCESSING or plan.retry_count != run_marker:
                logger.info(f"Workflow {plan.id} no longer processing, discarding wave results")
                raise WorkflowCancelledError(plan.id)

            failures: List[StepExecutionError] = []
            for step, outcome in zip(ready, outcomes):
                if isinstance(outcome, StepExecutionError):
                    failures.append(outcome)
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    plan.results[step.id] = outcome
                    completed.add(step.id)

            if len(failures) == 1:
                raise failures[0]
            if failures:
                raise WaveExecutionError(failures)

        return plan.results

    async def execute_step(
        self,
        plan: WorkflowPlan,
        step: WorkflowStep,
        default_retry: Optional[RetryPolicy] = None,
    ) -> Any:
        """
        Submit one step to the gateway and wait for its result.

        The result is returned, not recorded; the caller decides whether it
        still belongs in the plan.

        Args:
            plan: The plan the step belongs to
            step: The step to run
            default_retry: Retry policy to send if the step has none

        Raises:
            StepExecutionError: Wrapping whatever made the step fail
        """
        await self._emit(WorkflowEvent(
            type=WorkflowEventType.STEP_STARTED,
            workflow_id=plan.id,
            step_id=step.id,
            data={"agent_type": step.agent_type.value, "task_type": step.task_type},
        ))

        task_id: Optional[str] = None
        try:
            definition = self.build_task_definition(plan, step, default_retry)
            task_id = await self.gateway.submit_task(definition)
            result = await wait_for_task_completion(
                self.gateway,
                task_id,
                timeout_ms=step.timeout_ms,
                config=self.polling,
            )
        except Exception as e:
            logger.error(f"Workflow step {step.id} ({step.task_type}) failed: {e}")
            await self._emit(WorkflowEvent(
                type=WorkflowEventType.STEP_FAILED,
                workflow_id=plan.id,
                step_id=step.id,
                data={"task_id": task_id, "error": str(e)},
            ))
            raise StepExecutionError(
                step_id=step.id,
                cause=e,
                workflow_id=plan.id,
                task_id=task_id,
            ) from e

        logger.info(f"Workflow step {step.id} ({step.task_type}) completed")
        await self._emit(WorkflowEvent(
            type=WorkflowEventType.STEP_COMPLETED,
            workflow_id=plan.id,
            step_id=step.id,
            data={"task_id": task_id},
        ))
        return result

    def build_task_definition(
        self,
        plan: WorkflowPlan,
        step: WorkflowStep,
        default_retry: Optional[RetryPolicy] = None,
    ) -> TaskDefinition:
        """Task definition for a step, carrying its dependencies' results."""
        dependency_results = {
            dep_id: plan.results[dep_id]
            for dep_id in step.dependencies
            if plan.results.get(dep_id) is not None
        }
        return TaskDefinition(
            type=step.task_type,
            agent_type=step.agent_type,
            payload={**step.payload.to_dict(), "dependencyResults": dependency_results},
            priority=step.priority,
            timeout_ms=step.timeout_ms,
            retry_policy=step.retry_policy or default_retry,
        )

    async def _emit(self, event: WorkflowEvent) -> None:
        if self.emitter is not None:
            await self.emitter.emit(event)
