"""
DocFlow - User Notifications

The workflow manager tells users when a workflow finishes or fails through a
Notifier. Delivery is outside this package; the default notifier only logs.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Protocol

from docflow.orchestration.types import NotificationKind

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Protocol for delivering workflow notifications to users."""

    async def notify(
        self,
        kind: NotificationKind,
        user_id: str,
        workflow_id: str,
        details: Dict[str, Any],
    ) -> None:
        """Deliver one notification."""
        ...


class LoggingNotifier:
    """Notifier that writes notifications to the log."""

    async def notify(
        self,
        kind: NotificationKind,
        user_id: str,
        workflow_id: str,
        details: Dict[str, Any],
    ) -> None:
        if kind == NotificationKind.ERROR:
            logger.warning(
                f"Workflow {workflow_id} for user {user_id} failed "
                f"(retryable={details.get('retryable')}): {details.get('error')}"
            )
        else:
            logger.info(
                f"Workflow {workflow_id} for user {user_id} completed "
                f"{details.get('completedSteps')}/{details.get('totalSteps')} steps"
            )
