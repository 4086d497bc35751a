"""
DocFlow - Orchestration Errors

This module defines the exception hierarchy for workflow orchestration and
the message-based classification of retryable errors.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence, Union


# =============================================================================
# Base Exception
# =============================================================================


class OrchestrationError(Exception):
    """Base exception for all orchestration errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "retryable": is_retryable_error(self.message),
            "details": self.details,
        }


# =============================================================================
# Planning Errors
# =============================================================================


class WorkflowDefinitionError(OrchestrationError):
    """Error while building a workflow plan."""


class UnknownTemplateError(WorkflowDefinitionError):
    """No plan template is registered for a template ID."""

    def __init__(self, template_id: str):
        super().__init__(
            f"No parser found for instruction type: {template_id}",
            details={"template_id": template_id},
        )
        self.template_id = template_id


# =============================================================================
# Lookup and State Errors
# =============================================================================


class WorkflowNotFoundError(OrchestrationError):
    """Workflow ID is not known to the state store."""

    def __init__(self, workflow_id: str):
        super().__init__(
            f"Workflow {workflow_id} not found",
            details={"workflow_id": workflow_id},
        )
        self.workflow_id = workflow_id


class StepNotFoundError(OrchestrationError):
    """Step ID is not part of the workflow."""

    def __init__(self, workflow_id: str, step_id: str):
        super().__init__(
            f"Step {step_id} not found in workflow {workflow_id}",
            details={"workflow_id": workflow_id, "step_id": step_id},
        )
        self.workflow_id = workflow_id
        self.step_id = step_id


class InvalidWorkflowStateError(OrchestrationError):
    """Operation is not allowed in the workflow's current status."""

    def __init__(self, workflow_id: str, status: str, operation: str):
        super().__init__(
            f"Cannot {operation} workflow {workflow_id} in status '{status}'",
            details={
                "workflow_id": workflow_id,
                "status": status,
                "operation": operation,
            },
        )
        self.workflow_id = workflow_id
        self.status = status
        self.operation = operation


class RetryRejectedError(OrchestrationError):
    """A workflow or step retry did not pass its preconditions."""

    def __init__(
        self,
        message: str,
        workflow_id: str,
        step_id: Optional[str] = None,
    ):
        super().__init__(
            message,
            details={"workflow_id": workflow_id, "step_id": step_id},
        )
        self.workflow_id = workflow_id
        self.step_id = step_id


# =============================================================================
# Execution Errors
# =============================================================================


class ExecutionError(OrchestrationError):
    """Error during workflow execution."""

    def __init__(
        self,
        message: str,
        workflow_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.workflow_id = workflow_id


class WorkflowDeadlockError(ExecutionError):
    """No step is ready although the plan is not finished."""

    def __init__(
        self,
        workflow_id: str,
        blocked_steps: Sequence[str],
        unresolved_dependencies: Sequence[str],
    ):
        super().__init__(
            "Workflow deadlock: no steps can be executed",
            workflow_id=workflow_id,
            details={
                "blocked_steps": list(blocked_steps),
                "unresolved_dependencies": list(unresolved_dependencies),
            },
        )
        self.blocked_steps = list(blocked_steps)
        self.unresolved_dependencies = list(unresolved_dependencies)


class WorkflowCancelledError(ExecutionError):
    """Workflow was cancelled while a wave was in flight."""

    def __init__(self, workflow_id: str):
        super().__init__(
            f"Workflow {workflow_id} cancelled",
            workflow_id=workflow_id,
        )


class TaskFailedError(ExecutionError):
    """The gateway reported a task as failed or timed out."""

    def __init__(self, task_id: str, message: str):
        super().__init__(message, details={"task_id": task_id})
        self.task_id = task_id


class TaskTimeoutError(ExecutionError):
    """A task did not finish within the client-side timeout."""

    def __init__(self, task_id: str, timeout_ms: int):
        super().__init__(
            f"Task {task_id} timed out after {timeout_ms}ms",
            details={"task_id": task_id, "timeout_ms": timeout_ms},
        )
        self.task_id = task_id
        self.timeout_ms = timeout_ms


class TaskNotFoundError(ExecutionError):
    """Task ID is unknown to the gateway."""

    def __init__(self, task_id: str):
        super().__init__(
            f"Task {task_id} not found",
            details={"task_id": task_id},
        )
        self.task_id = task_id


class StepExecutionError(ExecutionError):
    """A step failed; wraps the underlying cause."""

    def __init__(
        self,
        step_id: str,
        cause: BaseException,
        workflow_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ):
        message = str(cause) or type(cause).__name__
        super().__init__(
            message,
            workflow_id=workflow_id,
            details={"step_id": step_id, "task_id": task_id},
        )
        self.step_id = step_id
        self.task_id = task_id
        self.cause = cause


class WaveExecutionError(ExecutionError):
    """More than one step of the same wave failed."""

    def __init__(self, failures: List[StepExecutionError]):
        first = failures[0]
        super().__init__(
            first.message,
            workflow_id=first.workflow_id,
            details={"failed_steps": [f.step_id for f in failures]},
        )
        self.failures = failures


# =============================================================================
# Error Classification
# =============================================================================


RETRYABLE_ERROR_PATTERNS = [
    re.compile(r"timeout", re.IGNORECASE),
    re.compile(r"connection", re.IGNORECASE),
    re.compile(r"network", re.IGNORECASE),
    re.compile(r"temporary", re.IGNORECASE),
    re.compile(r"rate limit", re.IGNORECASE),
    re.compile(r"service unavailable", re.IGNORECASE),
    re.compile(r"internal server error", re.IGNORECASE),
]


def is_retryable_error(error: Union[BaseException, str]) -> bool:
    """Whether an error message looks like a transient failure."""
    message = error if isinstance(error, str) else str(error)
    return any(pattern.search(message) for pattern in RETRYABLE_ERROR_PATTERNS)
