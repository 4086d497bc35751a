"""
DocFlow - OpenTelemetry Bridge

This module subscribes to the workflow EventEmitter and turns workflow and
step events into OpenTelemetry spans and counters.

Usage:
    from docflow.orchestration.telemetry import WorkflowTracer, setup_tracing

    provider = setup_tracing("http://localhost:4317")
    tracer = WorkflowTracer(tracer_provider=provider)
    tracer.start(manager.emitter)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from docflow import __version__
from docflow.orchestration.events import EventEmitter
from docflow.orchestration.types import WorkflowEvent, WorkflowEventType

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class TelemetryConfig:
    """Configuration for workflow tracing and metrics."""

    # OTLP endpoint
    endpoint: str = "http://localhost:4317"

    # Service identification
    service_name: str = "docflow-orchestration"
    service_version: str = __version__
    deployment_environment: str = "development"

    # Enable/disable specific metric types
    enable_workflow_counter: bool = True
    enable_retry_counter: bool = True

    def to_resource(self) -> Resource:
        """Create OTel Resource from config."""
        return Resource.create({
            SERVICE_NAME: self.service_name,
            SERVICE_VERSION: self.service_version,
            "deployment.environment": self.deployment_environment,
            "service.namespace": "docflow",
        })


def setup_tracing(
    endpoint: Optional[str] = None,
    config: Optional[TelemetryConfig] = None,
) -> TracerProvider:
    """
    Create a tracer provider exporting spans over OTLP gRPC.

    The provider is also installed as the global tracer provider.
    """
    config = config or TelemetryConfig()
    exporter = OTLPSpanExporter(endpoint=endpoint or config.endpoint, insecure=True)

    provider = TracerProvider(resource=config.to_resource())
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    logger.info(f"Tracing spans to {endpoint or config.endpoint}")
    return provider


# =============================================================================
# Span Tracking
# =============================================================================


@dataclass
class SpanRegistry:
    """Open spans, keyed by workflow and by (workflow, step)."""

    workflow_spans: Dict[str, Any] = field(default_factory=dict)
    step_spans: Dict[Tuple[str, str], Any] = field(default_factory=dict)


# =============================================================================
# Workflow Tracer
# =============================================================================


class WorkflowTracer:
    """
    Bridges workflow events to OpenTelemetry.

    Each workflow run gets a span, and each step execution gets a child span
    of its workflow's span. Workflow outcomes and retries are counted.
    """

    def __init__(
        self,
        tracer_provider: Optional[Any] = None,
        meter_provider: Optional[Any] = None,
        config: Optional[TelemetryConfig] = None,
    ):
        """
        Initialize the tracer.

        Args:
            tracer_provider: Tracer provider (global provider if omitted)
            meter_provider: Meter provider (global provider if omitted)
            config: Telemetry configuration
        """
        self._config = config or TelemetryConfig()
        self._spans = SpanRegistry()
        self._emitter: Optional[EventEmitter] = None
        self._subscription_id: Optional[str] = None

        if tracer_provider is not None:
            self._tracer = tracer_provider.get_tracer(
                self._config.service_name, self._config.service_version
            )
        else:
            self._tracer = trace.get_tracer(
                self._config.service_name, self._config.service_version
            )

        if meter_provider is not None:
            meter = meter_provider.get_meter(self._config.service_name, self._config.service_version)
        else:
            meter = metrics.get_meter(self._config.service_name, self._config.service_version)

        self._workflow_counter = (
            meter.create_counter(
                name="docflow_workflow_total",
                description="Finished workflow runs by outcome",
                unit="1",
            )
            if self._config.enable_workflow_counter
            else None
        )
        self._retry_counter = (
            meter.create_counter(
                name="docflow_retry_total",
                description="Workflow and step retries",
                unit="1",
            )
            if self._config.enable_retry_counter
            else None
        )

    @property
    def started(self) -> bool:
        return self._subscription_id is not None

    def start(self, emitter: EventEmitter) -> None:
        """Subscribe to an emitter's events."""
        if self.started:
            logger.warning("WorkflowTracer already started")
            return
        self._emitter = emitter
        self._subscription_id = emitter.subscribe(self._on_event)

    def stop(self) -> None:
        """Unsubscribe and end any span still open."""
        if self._emitter is not None and self._subscription_id is not None:
            self._emitter.unsubscribe(self._subscription_id)
        self._emitter = None
        self._subscription_id = None

        for span in self._spans.step_spans.values():
            span.end()
        for span in self._spans.workflow_spans.values():
            span.end()
        self._spans = SpanRegistry()

    def _on_event(self, event: WorkflowEvent) -> None:
        handlers = {
            WorkflowEventType.WORKFLOW_STARTED: self._on_workflow_started,
            WorkflowEventType.WORKFLOW_RETRYING: self._on_workflow_retrying,
            WorkflowEventType.WORKFLOW_COMPLETED: self._on_workflow_completed,
            WorkflowEventType.WORKFLOW_FAILED: self._on_workflow_failed,
            WorkflowEventType.WORKFLOW_CANCELLED: self._on_workflow_cancelled,
            WorkflowEventType.STEP_STARTED: self._on_step_started,
            WorkflowEventType.STEP_COMPLETED: self._on_step_completed,
            WorkflowEventType.STEP_FAILED: self._on_step_failed,
            WorkflowEventType.STEP_RETRYING: self._on_step_retrying,
        }
        handler = handlers.get(event.type)
        if handler:
            handler(event)

    # =========================================================================
    # Workflow Event Handlers
    # =========================================================================

    def _on_workflow_started(self, event: WorkflowEvent) -> None:
        self._open_workflow_span(event, attempt=0)

    def _on_workflow_retrying(self, event: WorkflowEvent) -> None:
        self._count_retry(event, "workflow")
        self._open_workflow_span(event, attempt=event.data.get("retry_count", 0))

    def _on_workflow_completed(self, event: WorkflowEvent) -> None:
        self._end_workflow_span(event, StatusCode.OK)
        self._count_workflow(event, "completed")

    def _on_workflow_failed(self, event: WorkflowEvent) -> None:
        self._end_workflow_span(event, StatusCode.ERROR, event.data.get("error"))
        self._count_workflow(event, "failed")

    def _on_workflow_cancelled(self, event: WorkflowEvent) -> None:
        self._end_workflow_span(event, StatusCode.ERROR, "cancelled")
        self._count_workflow(event, "cancelled")

    def _open_workflow_span(self, event: WorkflowEvent, attempt: int) -> None:
        previous = self._spans.workflow_spans.pop(event.workflow_id, None)
        if previous is not None:
            previous.end()

        span = self._tracer.start_span(
            name=f"workflow.{event.workflow_id}",
            kind=SpanKind.INTERNAL,
            attributes={
                "docflow.workflow_id": event.workflow_id,
                "docflow.attempt": attempt,
            },
        )
        self._spans.workflow_spans[event.workflow_id] = span

    def _end_workflow_span(
        self,
        event: WorkflowEvent,
        status_code: StatusCode,
        description: Optional[str] = None,
    ) -> None:
        span = self._spans.workflow_spans.pop(event.workflow_id, None)
        if span is None:
            return
        if "retryable" in event.data:
            span.set_attribute("docflow.retryable", bool(event.data["retryable"]))
        span.set_status(Status(status_code, description if status_code == StatusCode.ERROR else None))
        span.end()

    def _count_workflow(self, event: WorkflowEvent, status: str) -> None:
        if self._workflow_counter:
            self._workflow_counter.add(1, {"status": status})

    def _count_retry(self, event: WorkflowEvent, scope: str) -> None:
        if self._retry_counter:
            self._retry_counter.add(1, {"scope": scope})

    # =========================================================================
    # Step Event Handlers
    # =========================================================================

    def _on_step_started(self, event: WorkflowEvent) -> None:
        if not event.step_id:
            return

        parent_span = self._spans.workflow_spans.get(event.workflow_id)
        parent_context = trace.set_span_in_context(parent_span) if parent_span else None

        span = self._tracer.start_span(
            name=f"step.{event.data.get('task_type', event.step_id)}",
            kind=SpanKind.INTERNAL,
            context=parent_context,
            attributes={
                "docflow.workflow_id": event.workflow_id,
                "docflow.step_id": event.step_id,
                "docflow.agent_type": event.data.get("agent_type", "unknown"),
            },
        )
        self._spans.step_spans[(event.workflow_id, event.step_id)] = span

    def _on_step_completed(self, event: WorkflowEvent) -> None:
        self._end_step_span(event, StatusCode.OK)

    def _on_step_failed(self, event: WorkflowEvent) -> None:
        self._end_step_span(event, StatusCode.ERROR, event.data.get("error"))

    def _on_step_retrying(self, event: WorkflowEvent) -> None:
        self._count_retry(event, "step")

    def _end_step_span(
        self,
        event: WorkflowEvent,
        status_code: StatusCode,
        description: Optional[str] = None,
    ) -> None:
        if not event.step_id:
            return
        span = self._spans.step_spans.pop((event.workflow_id, event.step_id), None)
        if span is None:
            return
        if event.data.get("task_id"):
            span.set_attribute("docflow.task_id", event.data["task_id"])
        span.set_status(Status(status_code, description if status_code == StatusCode.ERROR else None))
        span.end()
