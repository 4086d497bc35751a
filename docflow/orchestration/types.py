"""
DocFlow - Orchestration Types

This module defines the data types for workflow orchestration: user
instructions, workflow steps and plans, the error log, the task gateway
contract and workflow events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from docflow.orchestration.payloads import StepPayload


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enumerations
# =============================================================================


class AgentType(str, Enum):
    """Capability tag of the agent that owns a step."""

    INGESTION = "ingestion"
    ANALYSIS = "analysis"
    EXTRACTION = "extraction"
    PEDAGOGY = "pedagogy"
    SYNTHESIS = "synthesis"


class WorkflowStatus(str, Enum):
    """Status of a workflow plan."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED)


class TaskStatus(str, Enum):
    """Status of a task as reported by the task gateway."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class NotificationKind(str, Enum):
    """Kinds of user notifications sent by the workflow manager."""

    COMPLETE = "complete"
    ERROR = "error"


class WorkflowEventType(str, Enum):
    """Types of workflow events."""

    # Workflow lifecycle
    WORKFLOW_STARTED = "workflow.started"
    WORKFLOW_COMPLETED = "workflow.completed"
    WORKFLOW_FAILED = "workflow.failed"
    WORKFLOW_CANCELLED = "workflow.cancelled"
    WORKFLOW_RETRYING = "workflow.retrying"

    # Step lifecycle
    STEP_STARTED = "step.started"
    STEP_COMPLETED = "step.completed"
    STEP_FAILED = "step.failed"
    STEP_RETRYING = "step.retrying"


# =============================================================================
# Retry Policy
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """Retry behaviour requested from the gateway for a task."""

    max_retries: int = 3
    backoff_multiplier: float = 2.0
    initial_delay_ms: int = 1000

    def get_delay_ms(self, attempt: int) -> int:
        """Delay before retry number ``attempt`` (1-based)."""
        return int(self.initial_delay_ms * (self.backoff_multiplier ** (attempt - 1)))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "maxRetries": self.max_retries,
            "backoffMultiplier": self.backoff_multiplier,
            "initialDelay": self.initial_delay_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RetryPolicy:
        """Create from dictionary representation."""
        return cls(
            max_retries=data.get("maxRetries", 3),
            backoff_multiplier=data.get("backoffMultiplier", 2.0),
            initial_delay_ms=data.get("initialDelay", 1000),
        )


# =============================================================================
# User Instruction
# =============================================================================


@dataclass(frozen=True)
class InstructionOptions:
    """Structured options attached to a user instruction."""

    summary_length: Optional[str] = None
    question_types: Tuple[str, ...] = ()
    include_flashcards: Optional[bool] = None
    include_questions: bool = False
    extract_formulas: Optional[bool] = None
    generate_notebook: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> InstructionOptions:
        """Create from dictionary representation."""
        return cls(
            summary_length=data.get("summaryLength"),
            question_types=tuple(data.get("questionTypes", ())),
            include_flashcards=data.get("includeFlashcards"),
            include_questions=data.get("includeQuestions", False),
            extract_formulas=data.get("extractFormulas"),
            generate_notebook=data.get("generateNotebook", False),
        )


@dataclass(frozen=True)
class UserInstruction:
    """A natural-language instruction about one document."""

    id: str
    user_id: str
    document_id: str
    instruction: str
    options: InstructionOptions = field(default_factory=InstructionOptions)
    priority: Optional[int] = None
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        user_id: str,
        document_id: str,
        instruction: str,
        options: Optional[InstructionOptions] = None,
        priority: Optional[int] = None,
    ) -> UserInstruction:
        """Create a new instruction with a generated ID."""
        return cls(
            id=str(uuid4()),
            user_id=user_id,
            document_id=document_id,
            instruction=instruction,
            options=options or InstructionOptions(),
            priority=priority,
        )


# =============================================================================
# Workflow Step
# =============================================================================


@dataclass(frozen=True)
class WorkflowStep:
    """A unit of work owned by one agent, with explicit dependencies."""

    id: str
    agent_type: AgentType
    payload: StepPayload
    dependencies: Tuple[str, ...] = ()
    priority: int = 1
    timeout_ms: Optional[int] = None
    retry_policy: Optional[RetryPolicy] = None

    @property
    def task_type(self) -> str:
        return self.payload.task_type

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "id": self.id,
            "agentType": self.agent_type.value,
            "taskType": self.task_type,
            "dependencies": list(self.dependencies),
            "payload": self.payload.to_dict(),
            "priority": self.priority,
        }
        if self.timeout_ms:
            result["timeout"] = self.timeout_ms
        if self.retry_policy:
            result["retryPolicy"] = self.retry_policy.to_dict()
        return result


# =============================================================================
# Workflow Error
# =============================================================================


@dataclass(frozen=True)
class WorkflowError:
    """One recorded failure of a workflow or one of its steps."""

    id: str
    workflow_id: str
    message: str
    retryable: bool
    step_id: Optional[str] = None
    task_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "id": self.id,
            "workflowId": self.workflow_id,
            "error": self.message,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.step_id:
            result["stepId"] = self.step_id
        if self.task_id:
            result["taskId"] = self.task_id
        if self.context:
            result["context"] = self.context
        return result


# =============================================================================
# Workflow Plan
# =============================================================================


@dataclass
class WorkflowPlan:
    """A user instruction's execution plan and its runtime state."""

    id: str
    instruction_id: str
    steps: List[WorkflowStep]
    status: WorkflowStatus = WorkflowStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    results: Dict[str, Any] = field(default_factory=dict)
    errors: List[WorkflowError] = field(default_factory=list)
    retry_count: int = 0

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        """Get a step by ID."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def get_step_errors(self, step_id: str) -> List[WorkflowError]:
        """Errors recorded for one step, oldest first."""
        return [error for error in self.errors if error.step_id == step_id]

    @property
    def last_error(self) -> Optional[WorkflowError]:
        return self.errors[-1] if self.errors else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "id": self.id,
            "instructionId": self.instruction_id,
            "status": self.status.value,
            "steps": [s.to_dict() for s in self.steps],
            "createdAt": self.created_at.isoformat(),
            "results": dict(self.results),
            "errors": [e.to_dict() for e in self.errors],
            "retryCount": self.retry_count,
        }
        if self.completed_at:
            result["completedAt"] = self.completed_at.isoformat()
        return result


# =============================================================================
# Task Gateway Contract
# =============================================================================


@dataclass(frozen=True)
class TaskDefinition:
    """A task submitted to the task execution gateway."""

    type: str
    agent_type: AgentType
    payload: Dict[str, Any]
    priority: int = 1
    timeout_ms: Optional[int] = None
    retry_policy: Optional[RetryPolicy] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "type": self.type,
            "agentType": self.agent_type.value,
            "payload": self.payload,
            "priority": self.priority,
        }
        if self.timeout_ms is not None:
            result["timeout"] = self.timeout_ms
        if self.retry_policy:
            result["retryPolicy"] = self.retry_policy.to_dict()
        return result


@dataclass(frozen=True)
class TaskStatusReport:
    """Status of a submitted task, with its result or error once finished."""

    status: TaskStatus
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data: Dict[str, Any] = {"status": self.status.value}
        if self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.TIMEOUT):
            outcome: Dict[str, Any] = {"result": self.result}
            if self.error is not None:
                outcome["error"] = self.error
            data["result"] = outcome
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TaskStatusReport:
        """Create from dictionary representation."""
        outcome = data.get("result") or {}
        return cls(
            status=TaskStatus(data["status"]),
            result=outcome.get("result"),
            error=outcome.get("error"),
        )


# =============================================================================
# Workflow Event
# =============================================================================


@dataclass
class WorkflowEvent:
    """An event emitted during workflow execution."""

    type: WorkflowEventType
    workflow_id: str
    timestamp: datetime = field(default_factory=utcnow)
    step_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "type": self.type.value,
            "workflowId": self.workflow_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.step_id:
            result["stepId"] = self.step_id
        if self.data:
            result["data"] = self.data
        return result
