"""
DocFlow - Test Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from docflow.orchestration import (
    AgentType,
    InMemoryTaskGateway,
    InstructionOptions,
    NotificationKind,
    PollingConfig,
    TaskDefinition,
    UserInstruction,
    WorkflowManager,
    WorkflowManagerConfig,
)


# =============================================================================
# Helpers
# =============================================================================


class RecordingNotifier:
    """Notifier that keeps every notification it receives."""

    def __init__(self):
        self.notifications: List[Tuple[NotificationKind, str, str, Dict[str, Any]]] = []

    async def notify(
        self,
        kind: NotificationKind,
        user_id: str,
        workflow_id: str,
        details: Dict[str, Any],
    ) -> None:
        self.notifications.append((kind, user_id, workflow_id, details))

    def of_kind(self, kind: NotificationKind) -> List[Tuple[NotificationKind, str, str, Dict[str, Any]]]:
        return [n for n in self.notifications if n[0] == kind]


class ScriptedAgents:
    """
    Handlers for every agent type that record calls and can be told to fail.

    ``failures`` maps a task type to the error messages its next attempts
    raise, one per attempt; once exhausted the task succeeds.
    """

    def __init__(self, latency_ms: float = 0):
        self.latency_ms = latency_ms
        self.calls: List[TaskDefinition] = []
        self.windows: Dict[str, Tuple[float, float]] = {}
        self.failures: Dict[str, List[str]] = {}

    async def __call__(self, task: TaskDefinition) -> Dict[str, Any]:
        self.calls.append(task)
        started = time.monotonic()
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000.0)

        pending = self.failures.get(task.type)
        if pending:
            raise RuntimeError(pending.pop(0))

        self.windows[task.type] = (started, time.monotonic())
        return {
            "taskType": task.type,
            "dependencies": sorted(task.payload.get("dependencyResults", {}).keys()),
        }

    def handlers(self) -> Dict[AgentType, Callable]:
        return {agent_type: self for agent_type in AgentType}

    def calls_of(self, task_type: str) -> List[TaskDefinition]:
        return [call for call in self.calls if call.type == task_type]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fast_polling() -> PollingConfig:
    """Polling that re-checks every 5ms."""
    return PollingConfig(
        default_timeout_ms=5000,
        initial_delay_ms=5,
        elapsed_factor=0,
        max_delay_ms=5,
    )


@pytest.fixture
def make_instruction() -> Callable[..., UserInstruction]:
    """Factory for user instructions."""

    def _make(
        text: str = "Please summarize this document",
        options: Optional[InstructionOptions] = None,
        user_id: str = "user-1",
        document_id: str = "doc-1",
    ) -> UserInstruction:
        return UserInstruction.create(
            user_id=user_id,
            document_id=document_id,
            instruction=text,
            options=options,
        )

    return _make


@pytest.fixture
def agents() -> ScriptedAgents:
    return ScriptedAgents()


@pytest.fixture
def gateway(agents: ScriptedAgents) -> InMemoryTaskGateway:
    return InMemoryTaskGateway(agents.handlers())


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def manager_config(fast_polling: PollingConfig) -> WorkflowManagerConfig:
    return WorkflowManagerConfig(polling=fast_polling)


@pytest.fixture
def manager(
    gateway: InMemoryTaskGateway,
    notifier: RecordingNotifier,
    manager_config: WorkflowManagerConfig,
) -> WorkflowManager:
    return WorkflowManager(gateway=gateway, notifier=notifier, config=manager_config)
