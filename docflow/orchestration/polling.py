"""
DocFlow - Task Completion Polling

Waits for a gateway task to finish by polling its status. The delay between
polls grows with the elapsed time and is capped; the wait gives up on its
own once the timeout has passed, whatever the gateway reports.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from docflow.orchestration.errors import TaskFailedError, TaskTimeoutError
from docflow.orchestration.gateway import TaskGateway
from docflow.orchestration.types import TaskStatus

logger = logging.getLogger(__name__)


@dataclass
class PollingConfig:
    """Configuration for task status polling."""

    default_timeout_ms: int = 300000  # 5 minutes
    initial_delay_ms: float = 1000
    elapsed_factor: float = 0.1
    max_delay_ms: float = 5000

    def next_delay_ms(self, elapsed_ms: float) -> float:
        """Delay before the next poll after ``elapsed_ms`` of waiting."""
        return min(self.initial_delay_ms + elapsed_ms * self.elapsed_factor, self.max_delay_ms)

    @classmethod
    def from_dict(cls, data: dict) -> PollingConfig:
        """Create from dictionary representation."""
        defaults = cls()
        return cls(
            default_timeout_ms=data.get("defaultTimeoutMs", defaults.default_timeout_ms),
            initial_delay_ms=data.get("initialDelayMs", defaults.initial_delay_ms),
            elapsed_factor=data.get("elapsedFactor", defaults.elapsed_factor),
            max_delay_ms=data.get("maxDelayMs", defaults.max_delay_ms),
        )


async def wait_for_task_completion(
    gateway: TaskGateway,
    task_id: str,
    timeout_ms: Optional[int] = None,
    config: Optional[PollingConfig] = None,
) -> Any:
    """
    Poll the gateway until a task finishes.

    Args:
        gateway: Gateway the task was submitted to
        task_id: The task to wait for
        timeout_ms: Client-side timeout (defaults to the config's)
        config: Polling configuration

    Returns:
        The task's result payload

    Raises:
        TaskFailedError: If the gateway reports the task failed or timed out
        TaskTimeoutError: If the task is still running after the timeout
    """
    config = config or PollingConfig()
    max_timeout = timeout_ms or config.default_timeout_ms
    started = time.monotonic()

    while True:
        elapsed_ms = (time.monotonic() - started) * 1000
        if elapsed_ms > max_timeout:
            raise TaskTimeoutError(task_id, max_timeout)

        report = await gateway.get_task_status(task_id)

        if report.status == TaskStatus.COMPLETED:
            return report.result
        if report.status == TaskStatus.FAILED:
            raise TaskFailedError(task_id, report.error or "Task failed")
        if report.status == TaskStatus.TIMEOUT:
            raise TaskFailedError(task_id, "Task timed out")

        elapsed_ms = (time.monotonic() - started) * 1000
        delay_ms = config.next_delay_ms(elapsed_ms)
        logger.debug(f"Task {task_id} is {report.status.value}, polling again in {delay_ms:.0f}ms")
        await asyncio.sleep(delay_ms / 1000.0)
