"""
DocFlow - Task Execution Gateway

This module defines the protocol the orchestration core uses to submit agent
tasks and poll their status, and an in-process gateway that runs tasks with
async handlers, one per agent type.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol
from uuid import uuid4

from docflow.orchestration.errors import TaskNotFoundError, is_retryable_error
from docflow.orchestration.types import (
    AgentType,
    TaskDefinition,
    TaskStatus,
    TaskStatusReport,
    utcnow,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Gateway Protocol
# =============================================================================


class TaskGateway(Protocol):
    """Protocol for the service that runs agent tasks."""

    async def submit_task(self, task: TaskDefinition) -> str:
        """Submit a task and return its ID without waiting for completion."""
        ...

    async def get_task_status(self, task_id: str) -> TaskStatusReport:
        """Get the current status of a submitted task."""
        ...


TaskHandler = Callable[[TaskDefinition], Awaitable[Any]]


DEFAULT_MAX_CONCURRENCY: Dict[AgentType, int] = {
    AgentType.INGESTION: 3,
    AgentType.ANALYSIS: 5,
    AgentType.EXTRACTION: 4,
    AgentType.PEDAGOGY: 3,
    AgentType.SYNTHESIS: 2,
}


# =============================================================================
# In-Memory Gateway
# =============================================================================


@dataclass
class TaskRecord:
    """Bookkeeping for one submitted task."""

    task_id: str
    definition: TaskDefinition
    status: TaskStatus = TaskStatus.QUEUED
    result: Any = None
    error: Optional[str] = None
    attempts: int = 0
    submitted_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def execution_time_ms(self) -> Optional[int]:
        if self.started_at is None or self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)


class InMemoryTaskGateway:
    """
    Runs tasks in the current event loop.

    Each agent type has a handler coroutine and a concurrency limit. Handler
    failures whose message looks transient are retried according to the
    task's retry policy; a task exceeding its timeout ends in ``timeout``.
    """

    def __init__(
        self,
        handlers: Optional[Dict[AgentType, TaskHandler]] = None,
        max_concurrency: Optional[Dict[AgentType, int]] = None,
    ):
        """
        Initialize the gateway.

        Args:
            handlers: Handler coroutine per agent type
            max_concurrency: Concurrent task limit per agent type
        """
        self._handlers: Dict[AgentType, TaskHandler] = dict(handlers or {})
        limits = {**DEFAULT_MAX_CONCURRENCY, **(max_concurrency or {})}
        self._semaphores = {
            agent_type: asyncio.Semaphore(limit) for agent_type, limit in limits.items()
        }
        self._records: Dict[str, TaskRecord] = {}
        self._running: Dict[str, asyncio.Task] = {}
        self.submitted: List[TaskDefinition] = []

    def register_handler(self, agent_type: AgentType, handler: TaskHandler) -> None:
        """Register (or replace) the handler for an agent type."""
        self._handlers[agent_type] = handler

    async def submit_task(self, task: TaskDefinition) -> str:
        """Queue a task and start running it in the background."""
        task_id = str(uuid4())
        record = TaskRecord(task_id=task_id, definition=task)
        self._records[task_id] = record
        self.submitted.append(task)

        self._running[task_id] = asyncio.create_task(self._run(record))
        logger.debug(f"Submitted task {task_id} ({task.type}) to {task.agent_type.value}")
        return task_id

    async def get_task_status(self, task_id: str) -> TaskStatusReport:
        """Get the current status of a task."""
        record = self._records.get(task_id)
        if record is None:
            raise TaskNotFoundError(task_id)
        return TaskStatusReport(
            status=record.status,
            result=record.result,
            error=record.error,
        )

    async def cancel_task(self, task_id: str) -> bool:
        """
        Cancel a queued or running task.

        Returns:
            True if the task was still running and got cancelled
        """
        running = self._running.get(task_id)
        record = self._records.get(task_id)
        if running is None or running.done() or record is None:
            return False
        if record.status not in (TaskStatus.QUEUED, TaskStatus.PROCESSING):
            return False
        running.cancel()
        record.status = TaskStatus.FAILED
        record.error = "Task cancelled"
        record.completed_at = utcnow()
        return True

    def cleanup_finished_tasks(
        self,
        max_age_ms: int = 3600000,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Forget tasks that finished more than ``max_age_ms`` ago.

        Their records and submitted definitions are dropped; queued and
        running tasks are kept. Returns the number of tasks removed.
        """
        cutoff = (now or utcnow()) - timedelta(milliseconds=max_age_ms)
        stale = [
            task_id for task_id, record in self._records.items()
            if record.completed_at is not None
            and record.completed_at < cutoff
            and task_id not in self._running
        ]
        for task_id in stale:
            del self._records[task_id]
        if stale:
            self.submitted = [record.definition for record in self._records.values()]
            logger.debug(f"Cleaned up {len(stale)} finished tasks")
        return len(stale)

    async def shutdown(self) -> None:
        """Cancel everything still running and wait for it to unwind."""
        pending = [t for t in self._running.values() if not t.done()]
        for running in pending:
            running.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._running.clear()

    def get_task_metrics(self, agent_type: Optional[AgentType] = None) -> Dict[str, Any]:
        """Counters and average execution time, optionally for one agent type."""
        records = [
            r for r in self._records.values()
            if agent_type is None or r.definition.agent_type == agent_type
        ]
        completed = [r for r in records if r.status == TaskStatus.COMPLETED]
        failed = [r for r in records if r.status in (TaskStatus.FAILED, TaskStatus.TIMEOUT)]
        durations = [r.execution_time_ms for r in completed if r.execution_time_ms is not None]

        return {
            "totalTasks": len(records),
            "completedTasks": len(completed),
            "failedTasks": len(failed),
            "averageExecutionTime": sum(durations) / len(durations) if durations else 0,
            "errorRate": len(failed) / len(records) if records else 0,
        }

    async def _run(self, record: TaskRecord) -> None:
        definition = record.definition
        try:
            async with self._semaphores[definition.agent_type]:
                record.status = TaskStatus.PROCESSING
                record.started_at = utcnow()
                await self._run_with_retry(record)
        finally:
            self._running.pop(record.task_id, None)

    async def _run_with_retry(self, record: TaskRecord) -> None:
        definition = record.definition
        handler = self._handlers.get(definition.agent_type)
        if handler is None:
            self._finish(
                record,
                TaskStatus.FAILED,
                error=f"No handler registered for agent type '{definition.agent_type.value}'",
            )
            return

        policy = definition.retry_policy
        max_attempts = 1 + (policy.max_retries if policy else 0)
        timeout_seconds = definition.timeout_ms / 1000.0 if definition.timeout_ms else None

        while True:
            record.attempts += 1
            try:
                result = await asyncio.wait_for(handler(definition), timeout=timeout_seconds)
            except asyncio.TimeoutError:
                self._finish(record, TaskStatus.TIMEOUT, error="Task timed out")
                return
            except Exception as e:
                if policy and record.attempts < max_attempts and is_retryable_error(e):
                    delay_ms = policy.get_delay_ms(record.attempts)
                    logger.warning(
                        f"Task {record.task_id} failed (attempt {record.attempts}/{max_attempts}), "
                        f"retrying in {delay_ms}ms: {e}"
                    )
                    await asyncio.sleep(delay_ms / 1000.0)
                    continue
                self._finish(record, TaskStatus.FAILED, error=str(e) or type(e).__name__)
                return

            self._finish(record, TaskStatus.COMPLETED, result=result)
            return

    def _finish(
        self,
        record: TaskRecord,
        status: TaskStatus,
        result: Any = None,
        error: Optional[str] = None,
    ) -> None:
        record.status = status
        record.result = result
        record.error = error
        record.completed_at = utcnow()
        if error:
            logger.debug(f"Task {record.task_id} finished with {status.value}: {error}")
