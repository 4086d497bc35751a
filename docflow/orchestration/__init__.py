"""
DocFlow - Orchestration Core

This module turns natural-language user instructions about a document into
workflow plans of agent steps, runs them in dependency order against a task
execution gateway, and tracks their state, errors and retries.

Example usage:

    from docflow.orchestration import (
        InMemoryTaskGateway,
        UserInstruction,
        WorkflowManager,
    )

    gateway = InMemoryTaskGateway(handlers={AgentType.INGESTION: extract_text, ...})
    manager = WorkflowManager(gateway=gateway)

    instruction = UserInstruction.create(
        user_id="user-1",
        document_id="doc-1",
        instruction="Please summarize this document",
    )
    workflow_id = await manager.process_user_instruction(instruction)
    plan = await manager.wait_for_workflow(workflow_id)
"""

from docflow.orchestration.types import (
    # Enums
    AgentType,
    WorkflowStatus,
    TaskStatus,
    NotificationKind,
    WorkflowEventType,
    # Data classes
    RetryPolicy,
    InstructionOptions,
    UserInstruction,
    WorkflowStep,
    WorkflowError,
    WorkflowPlan,
    TaskDefinition,
    TaskStatusReport,
    WorkflowEvent,
)

from docflow.orchestration.payloads import (
    StepPayload,
    ExtractTextPayload,
    AnalyzeDocumentPayload,
    GenerateSummaryPayload,
    AnalyzeForPedagogyPayload,
    ExtractKnowledgePayload,
    ExtractForPedagogyPayload,
    GenerateStudyMaterialsPayload,
    CompileNotebookPayload,
    PAYLOAD_TYPES,
)

from docflow.orchestration.errors import (
    # Base exceptions
    OrchestrationError,
    # Planning errors
    WorkflowDefinitionError,
    UnknownTemplateError,
    # Lookup and state errors
    WorkflowNotFoundError,
    StepNotFoundError,
    InvalidWorkflowStateError,
    RetryRejectedError,
    # Execution errors
    ExecutionError,
    WorkflowDeadlockError,
    WorkflowCancelledError,
    TaskFailedError,
    TaskTimeoutError,
    TaskNotFoundError,
    StepExecutionError,
    WaveExecutionError,
    # Utilities
    RETRYABLE_ERROR_PATTERNS,
    is_retryable_error,
)

from docflow.orchestration.classifier import (
    TemplateId,
    InstructionClassifier,
)

from docflow.orchestration.templates import (
    PlanTemplate,
    WorkflowPlanBuilder,
    DEFAULT_TEMPLATES,
)

from docflow.orchestration.dag import (
    StepNode,
    StepGraph,
    build_step_graph,
)

from docflow.orchestration.gateway import (
    TaskGateway,
    TaskHandler,
    InMemoryTaskGateway,
)

from docflow.orchestration.polling import (
    PollingConfig,
    wait_for_task_completion,
)

from docflow.orchestration.scheduler import WorkflowScheduler

from docflow.orchestration.state import WorkflowStateStore

from docflow.orchestration.notifications import (
    Notifier,
    LoggingNotifier,
)

from docflow.orchestration.events import (
    EventFilter,
    Subscription,
    EventEmitter,
)

from docflow.orchestration.manager import (
    WorkflowManagerConfig,
    WorkflowManager,
)


__all__ = [
    # Types - Enums
    "AgentType",
    "WorkflowStatus",
    "TaskStatus",
    "NotificationKind",
    "WorkflowEventType",
    # Types - Data classes
    "RetryPolicy",
    "InstructionOptions",
    "UserInstruction",
    "WorkflowStep",
    "WorkflowError",
    "WorkflowPlan",
    "TaskDefinition",
    "TaskStatusReport",
    "WorkflowEvent",
    # Payloads
    "StepPayload",
    "ExtractTextPayload",
    "AnalyzeDocumentPayload",
    "GenerateSummaryPayload",
    "AnalyzeForPedagogyPayload",
    "ExtractKnowledgePayload",
    "ExtractForPedagogyPayload",
    "GenerateStudyMaterialsPayload",
    "CompileNotebookPayload",
    "PAYLOAD_TYPES",
    # Errors
    "OrchestrationError",
    "WorkflowDefinitionError",
    "UnknownTemplateError",
    "WorkflowNotFoundError",
    "StepNotFoundError",
    "InvalidWorkflowStateError",
    "RetryRejectedError",
    "ExecutionError",
    "WorkflowDeadlockError",
    "WorkflowCancelledError",
    "TaskFailedError",
    "TaskTimeoutError",
    "TaskNotFoundError",
    "StepExecutionError",
    "WaveExecutionError",
    "RETRYABLE_ERROR_PATTERNS",
    "is_retryable_error",
    # Planning
    "TemplateId",
    "InstructionClassifier",
    "PlanTemplate",
    "WorkflowPlanBuilder",
    "DEFAULT_TEMPLATES",
    # Dependency graph
    "StepNode",
    "StepGraph",
    "build_step_graph",
    # Gateway
    "TaskGateway",
    "TaskHandler",
    "InMemoryTaskGateway",
    "PollingConfig",
    "wait_for_task_completion",
    # Execution
    "WorkflowScheduler",
    "WorkflowStateStore",
    "Notifier",
    "LoggingNotifier",
    # Events
    "EventFilter",
    "Subscription",
    "EventEmitter",
    # Manager
    "WorkflowManagerConfig",
    "WorkflowManager",
]
