"""
Tests for the workflow state store.
"""

from datetime import timedelta

from docflow.orchestration.state import WorkflowStateStore
from docflow.orchestration.types import (
    UserInstruction,
    WorkflowPlan,
    WorkflowStatus,
    utcnow,
)


def register(store, status=WorkflowStatus.PENDING, age=timedelta(0)):
    instruction = UserInstruction.create("user-1", "doc-1", "Summarize")
    plan = WorkflowPlan(
        id=f"wf-{len(store)}",
        instruction_id=instruction.id,
        steps=[],
        status=status,
        created_at=utcnow() - age,
    )
    store.register(plan, instruction)
    return plan


class TestWorkflowStateStore:
    """Tests for WorkflowStateStore."""

    def test_register_and_get(self):
        store = WorkflowStateStore()
        plan = register(store)

        assert plan.id in store
        assert len(store) == 1
        assert store.get(plan.id) is plan
        assert store.get_instruction(plan.id).id == plan.instruction_id
        assert store.list_active() == [plan]
        assert store.get("missing") is None

    def test_count_by_status(self):
        store = WorkflowStateStore()
        register(store, WorkflowStatus.COMPLETED)
        register(store, WorkflowStatus.COMPLETED)
        register(store, WorkflowStatus.FAILED)

        counts = store.count_by_status()
        assert counts[WorkflowStatus.COMPLETED] == 2
        assert counts[WorkflowStatus.FAILED] == 1
        assert counts[WorkflowStatus.PENDING] == 0


class TestCleanup:
    """Tests for cleanup_completed_workflows."""

    def test_removes_only_old_terminal_plans(self):
        store = WorkflowStateStore()
        old_completed = register(store, WorkflowStatus.COMPLETED, timedelta(hours=2))
        old_failed = register(store, WorkflowStatus.FAILED, timedelta(hours=2))
        old_processing = register(store, WorkflowStatus.PROCESSING, timedelta(hours=2))
        old_pending = register(store, WorkflowStatus.PENDING, timedelta(hours=2))
        recent_completed = register(store, WorkflowStatus.COMPLETED, timedelta(minutes=5))

        removed = store.cleanup_completed_workflows(max_age_ms=3600000)

        assert removed == 2
        assert old_completed.id not in store
        assert old_failed.id not in store
        assert store.get_instruction(old_completed.id) is None
        assert {p.id for p in store.list_active()} == {
            old_processing.id,
            old_pending.id,
            recent_completed.id,
        }

    def test_explicit_now(self):
        store = WorkflowStateStore()
        plan = register(store, WorkflowStatus.COMPLETED)

        assert store.cleanup_completed_workflows(max_age_ms=1000, now=plan.created_at) == 0
        later = plan.created_at + timedelta(seconds=2)
        assert store.cleanup_completed_workflows(max_age_ms=1000, now=later) == 1
