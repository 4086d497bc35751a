"""
Tests for the DocFlow command line interface.
"""

import json

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from typer.testing import CliRunner

from docflow import __version__
from docflow.cli import app, workflows


@pytest.fixture
def runner():
    return CliRunner()


class TestInfoCommands:
    """Tests for version and classify."""

    def test_version(self, runner):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    @pytest.mark.parametrize("text,template", [
        ("Please summarize this document", "generate_summary"),
        ("Make flashcards", "create_study_materials"),
        ("Something else", "process_document"),
    ])
    def test_classify(self, runner, text, template):
        result = runner.invoke(app, ["classify", text])
        assert result.exit_code == 0
        assert template in result.output


class TestPlanCommand:
    """Tests for plan."""

    def test_json_output(self, runner):
        result = runner.invoke(app, ["plan", "Please summarize this document", "-o", "json", "-d", "doc-9"])

        assert result.exit_code == 0
        plan = json.loads(result.output)
        assert plan["status"] == "pending"
        assert [s["taskType"] for s in plan["steps"]] == ["extract_text", "generate_summary"]
        assert plan["steps"][0]["payload"]["documentId"] == "doc-9"

    def test_question_options(self, runner):
        result = runner.invoke(app, [
            "plan", "Process this document", "-o", "json",
            "-q", "multiple_choice", "-q", "fill_blank",
        ])

        plan = json.loads(result.output)
        pedagogy = plan["steps"][-1]
        assert pedagogy["taskType"] == "generate_study_materials"
        assert pedagogy["payload"]["questionTypes"] == ["multiple_choice", "fill_blank"]

    def test_table_output(self, runner):
        result = runner.invoke(app, ["plan", "Create a quiz"])

        assert result.exit_code == 0
        assert "Template: create_study_materials" in result.output
        assert "Wave" in result.output


class TestRunCommand:
    """Tests for run."""

    def test_successful_run(self, runner):
        result = runner.invoke(app, ["run", "Please summarize this document", "--latency-ms", "1"])

        assert result.exit_code == 0
        assert "completed" in result.output
        assert "2/2" in result.output

    def test_json_output(self, runner):
        result = runner.invoke(app, [
            "run", "Extract the key concepts", "--latency-ms", "1", "-o", "json",
        ])

        assert result.exit_code == 0
        plan = json.loads(result.output)
        assert plan["status"] == "completed"
        assert len(plan["results"]) == 2

    def test_failure_exits_non_zero(self, runner):
        result = runner.invoke(app, [
            "run", "Please summarize this document",
            "--latency-ms", "1",
            "--fail-task-type", "generate_summary",
            "--fail-message", "Invalid document format",
            "--log-level", "CRITICAL",
        ])

        assert result.exit_code == 1
        assert "failed" in result.output
        assert "Invalid document format" in result.output

    def test_retry_recovers_transient_failure(self, runner):
        result = runner.invoke(app, [
            "run", "Please summarize this document",
            "--latency-ms", "1",
            "--fail-task-type", "generate_summary",
            "--retry",
            "--log-level", "CRITICAL",
        ])

        assert result.exit_code == 0
        assert "retrying" in result.output
        assert "Retries: 1" in result.output

    def test_config_file(self, runner, tmp_path):
        config = tmp_path / "docflow.yaml"
        config.write_text(
            "maxWorkflowRetries: 0\n"
            "polling:\n"
            "  initialDelayMs: 10\n"
            "  maxDelayMs: 20\n"
        )
        result = runner.invoke(app, [
            "run", "Please summarize this document",
            "--latency-ms", "1",
            "--fail-task-type", "generate_summary",
            "--retry",
            "--config", str(config),
            "--log-level", "CRITICAL",
        ])

        assert result.exit_code == 1
        assert "Retry rejected" in result.output

    def test_missing_config_file(self, runner, tmp_path):
        result = runner.invoke(app, ["run", "Summarize", "--config", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_otlp_endpoint_exports_workflow_spans(self, runner, monkeypatch):
        exporter = InMemorySpanExporter()
        endpoints = []

        def fake_setup_tracing(endpoint):
            endpoints.append(endpoint)
            provider = TracerProvider()
            provider.add_span_processor(SimpleSpanProcessor(exporter))
            return provider

        monkeypatch.setattr(workflows, "setup_tracing", fake_setup_tracing)
        result = runner.invoke(app, [
            "run", "Please summarize this document",
            "--latency-ms", "1",
            "--otlp-endpoint", "http://collector:4317",
        ])

        assert result.exit_code == 0
        assert endpoints == ["http://collector:4317"]
        names = sorted(span.name for span in exporter.get_finished_spans())
        assert names[:2] == ["step.extract_text", "step.generate_summary"]
        assert names[2].startswith("workflow.")
