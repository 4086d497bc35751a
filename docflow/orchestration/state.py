"""
DocFlow - Workflow State Store

In-memory registry of workflow plans and the instructions they came from.
Everything runs on one event loop, so plain dicts are enough.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from docflow.orchestration.types import (
    UserInstruction,
    WorkflowPlan,
    WorkflowStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


class WorkflowStateStore:
    """Maps workflow IDs to their plans and originating instructions."""

    def __init__(self):
        self._plans: Dict[str, WorkflowPlan] = {}
        self._instructions: Dict[str, UserInstruction] = {}

    def __len__(self) -> int:
        return len(self._plans)

    def __contains__(self, workflow_id: object) -> bool:
        return workflow_id in self._plans

    def register(self, plan: WorkflowPlan, instruction: UserInstruction) -> None:
        """Store a new plan together with its instruction."""
        self._plans[plan.id] = plan
        self._instructions[plan.id] = instruction

    def get(self, workflow_id: str) -> Optional[WorkflowPlan]:
        """Get a plan by workflow ID."""
        return self._plans.get(workflow_id)

    def get_instruction(self, workflow_id: str) -> Optional[UserInstruction]:
        """Get the instruction a workflow was created from."""
        return self._instructions.get(workflow_id)

    def list_active(self) -> List[WorkflowPlan]:
        """All retained plans, terminal ones included until cleaned up."""
        return list(self._plans.values())

    def count_by_status(self) -> Dict[WorkflowStatus, int]:
        """Number of retained plans per status."""
        counts = {status: 0 for status in WorkflowStatus}
        for plan in self._plans.values():
            counts[plan.status] += 1
        return counts

    def cleanup_completed_workflows(
        self,
        max_age_ms: int = 3600000,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Remove terminal plans older than ``max_age_ms``.

        Age is measured from the plan's creation time. Pending and processing
        plans are never removed.

        Returns:
            Number of plans removed
        """
        cutoff = (now or utcnow()) - timedelta(milliseconds=max_age_ms)
        removed = 0

        for workflow_id, plan in list(self._plans.items()):
            if plan.status.is_terminal and plan.created_at < cutoff:
                del self._plans[workflow_id]
                self._instructions.pop(workflow_id, None)
                removed += 1
                logger.debug(f"Cleaned up old workflow {workflow_id} ({plan.status.value})")

        return removed
