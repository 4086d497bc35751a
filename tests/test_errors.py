"""
Tests for DocFlow Orchestration Errors

Tests for the exception hierarchy and retryable error classification.
"""

import pytest

from docflow.orchestration.errors import (
    ExecutionError,
    InvalidWorkflowStateError,
    OrchestrationError,
    RetryRejectedError,
    StepExecutionError,
    TaskFailedError,
    TaskTimeoutError,
    UnknownTemplateError,
    WaveExecutionError,
    WorkflowDeadlockError,
    WorkflowDefinitionError,
    WorkflowNotFoundError,
    is_retryable_error,
)


# =============================================================================
# Classification Tests
# =============================================================================


class TestIsRetryableError:
    """Tests for message-based retry classification."""

    @pytest.mark.parametrize("message", [
        "Request timeout",
        "Connection refused",
        "NETWORK unreachable",
        "Temporary failure in name resolution",
        "Rate limit exceeded",
        "503 Service Unavailable",
        "Internal Server Error",
    ])
    def test_transient_messages_are_retryable(self, message):
        assert is_retryable_error(message)

    @pytest.mark.parametrize("message", [
        "Invalid document format",
        "Malformed payload",
        "Workflow deadlock: no steps can be executed",
        "Task timed out",
        "Task abc timed out after 300000ms",
    ])
    def test_other_messages_are_not_retryable(self, message):
        assert not is_retryable_error(message)

    def test_accepts_exceptions(self):
        assert is_retryable_error(ConnectionError("connection reset by peer"))
        assert not is_retryable_error(ValueError("bad input"))


# =============================================================================
# Hierarchy Tests
# =============================================================================


class TestErrorHierarchy:
    """Tests for the exception hierarchy and messages."""

    def test_unknown_template(self):
        error = UnknownTemplateError("translate_document")
        assert isinstance(error, WorkflowDefinitionError)
        assert str(error) == "No parser found for instruction type: translate_document"

    def test_workflow_not_found(self):
        assert str(WorkflowNotFoundError("wf-1")) == "Workflow wf-1 not found"

    def test_invalid_state(self):
        error = InvalidWorkflowStateError("wf-1", "completed", "cancel")
        assert error.status == "completed"
        assert "wf-1" in str(error)

    def test_retry_rejected_carries_ids(self):
        error = RetryRejectedError("nope", "wf-1", step_id="s1")
        assert error.workflow_id == "wf-1"
        assert error.step_id == "s1"
        assert isinstance(error, OrchestrationError)

    def test_deadlock(self):
        error = WorkflowDeadlockError("wf-1", ["b"], ["missing"])
        assert isinstance(error, ExecutionError)
        assert str(error) == "Workflow deadlock: no steps can be executed"
        assert error.blocked_steps == ["b"]
        assert error.unresolved_dependencies == ["missing"]
        assert not is_retryable_error(error)

    def test_task_timeout_message(self):
        assert str(TaskTimeoutError("t-1", 1500)) == "Task t-1 timed out after 1500ms"

    def test_step_error_keeps_cause_message(self):
        cause = TaskFailedError("t-1", "Connection reset")
        error = StepExecutionError("s1", cause, workflow_id="wf-1", task_id="t-1")

        assert str(error) == "Connection reset"
        assert error.cause is cause
        assert error.task_id == "t-1"
        assert is_retryable_error(error)

    def test_wave_error_uses_first_failure(self):
        first = StepExecutionError("s1", RuntimeError("Invalid input"), workflow_id="wf-1")
        second = StepExecutionError("s2", RuntimeError("Connection reset"), workflow_id="wf-1")
        error = WaveExecutionError([first, second])

        assert str(error) == "Invalid input"
        assert error.failures == [first, second]
        assert error.details["failed_steps"] == ["s1", "s2"]

    def test_to_dict(self):
        data = TaskFailedError("t-1", "Rate limit exceeded").to_dict()
        assert data["error"] == "TaskFailedError"
        assert data["retryable"] is True
        assert data["details"] == {"task_id": "t-1"}
