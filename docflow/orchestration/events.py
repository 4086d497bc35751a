"""
DocFlow - Workflow Events

Lifecycle events published by the scheduler and the manager. Subscribers
(the tracing bridge, the CLI, tests) register a callback with an optional
filter; delivery happens inline on the event loop.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, FrozenSet, Iterable, List, Optional

from docflow.orchestration.types import WorkflowEvent, WorkflowEventType

logger = logging.getLogger(__name__)

EventCallback = Callable[[WorkflowEvent], Any]


# =============================================================================
# Subscriptions
# =============================================================================


@dataclass
class EventFilter:
    """
    Narrows the events a subscriber sees.

    Empty criteria match everything. ``steps_only`` drops workflow-level
    events (those without a step id).
    """

    event_types: Optional[Iterable[WorkflowEventType]] = None
    workflow_ids: Optional[Iterable[str]] = None
    steps_only: bool = False
    _types: FrozenSet[WorkflowEventType] = field(init=False, repr=False)
    _workflows: FrozenSet[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._types = frozenset(self.event_types or ())
        self._workflows = frozenset(self.workflow_ids or ())

    def matches(self, event: WorkflowEvent) -> bool:
        if self._types and event.type not in self._types:
            return False
        if self._workflows and event.workflow_id not in self._workflows:
            return False
        return not (self.steps_only and event.step_id is None)


@dataclass
class Subscription:
    id: str
    callback: EventCallback
    filter: Optional[EventFilter] = None

    def accepts(self, event: WorkflowEvent) -> bool:
        return self.filter is None or self.filter.matches(event)


# =============================================================================
# Emitter
# =============================================================================


class EventEmitter:
    """
    Fan-out of workflow events to subscribers, plus a bounded history.

    Callbacks may be plain functions or coroutine functions. Subscribers are
    called in subscription order; one that raises is logged and skipped so a
    broken observer can never fail a workflow.
    """

    def __init__(self, history_limit: int = 1000):
        self._subscriptions: Dict[str, Subscription] = {}
        self._ids = itertools.count(1)
        self._history: Deque[WorkflowEvent] = deque(maxlen=history_limit)

    def subscribe(self, callback: EventCallback, filter: Optional[EventFilter] = None) -> str:
        """Register ``callback`` and return the id to unsubscribe with."""
        subscription = Subscription(id=f"sub-{next(self._ids)}", callback=callback, filter=filter)
        self._subscriptions[subscription.id] = subscription
        return subscription.id

    def unsubscribe(self, subscription_id: str) -> bool:
        return self._subscriptions.pop(subscription_id, None) is not None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def emit(self, event: WorkflowEvent) -> None:
        self._history.append(event)

        # Snapshot so callbacks can unsubscribe while being notified.
        for subscription in list(self._subscriptions.values()):
            if subscription.accepts(event):
                await self._deliver(subscription, event)

    async def _deliver(self, subscription: Subscription, event: WorkflowEvent) -> None:
        try:
            outcome = subscription.callback(event)
            if asyncio.iscoroutine(outcome):
                await outcome
        except Exception as e:
            logger.warning(
                f"Subscriber {subscription.id} failed handling {event.type.value} "
                f"for workflow {event.workflow_id}: {e}"
            )

    def get_history(self, workflow_id: Optional[str] = None, limit: int = 100) -> List[WorkflowEvent]:
        """Most recent events, oldest first, optionally for one workflow."""
        events = [e for e in self._history if workflow_id is None or e.workflow_id == workflow_id]
        return events[-limit:] if limit else []

    def clear_history(self) -> None:
        self._history.clear()
