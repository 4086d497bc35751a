"""
Tests for DocFlow Workflow Plan Builder

Verifies the shape of every workflow template: step kinds, dependency
wiring, timeouts and option handling.
"""

import pytest

from docflow.orchestration.classifier import TemplateId
from docflow.orchestration.dag import build_step_graph
from docflow.orchestration.errors import UnknownTemplateError
from docflow.orchestration.payloads import ExtractTextPayload
from docflow.orchestration.templates import MINUTE_MS, WorkflowPlanBuilder
from docflow.orchestration.types import (
    AgentType,
    InstructionOptions,
    UserInstruction,
    WorkflowStatus,
    WorkflowStep,
)


def instruction(text: str = "anything", **options) -> UserInstruction:
    return UserInstruction.create(
        user_id="user-1",
        document_id="doc-1",
        instruction=text,
        options=InstructionOptions(**options),
    )


def task_types(plan):
    return [step.task_type for step in plan.steps]


def waves(plan):
    by_id = {step.id: step.task_type for step in plan.steps}
    return [
        sorted(by_id[step_id] for step_id in group)
        for group in build_step_graph(plan.steps).waves()
    ]


# =============================================================================
# Template Shape Tests
# =============================================================================


class TestProcessDocument:
    """Tests for the full processing template."""

    def test_without_study_options(self):
        plan = WorkflowPlanBuilder().build(TemplateId.PROCESS_DOCUMENT, instruction())

        assert task_types(plan) == ["extract_text", "analyze_document", "extract_knowledge"]
        assert waves(plan) == [["extract_text"], ["analyze_document", "extract_knowledge"]]

    def test_with_questions_adds_pedagogy(self):
        plan = WorkflowPlanBuilder().build(
            TemplateId.PROCESS_DOCUMENT,
            instruction(include_questions=True, question_types=("fill_blank",)),
        )

        assert len(plan.steps) == 4
        pedagogy = plan.steps[3]
        assert pedagogy.agent_type == AgentType.PEDAGOGY
        assert set(pedagogy.dependencies) == {plan.steps[1].id, plan.steps[2].id}
        assert pedagogy.payload.question_types == ("fill_blank",)
        assert waves(plan)[-1] == ["generate_study_materials"]

    def test_with_flashcards_only(self):
        plan = WorkflowPlanBuilder().build(
            TemplateId.PROCESS_DOCUMENT,
            instruction(include_flashcards=True),
        )
        pedagogy = plan.steps[3]
        assert pedagogy.payload.include_flashcards is True
        assert pedagogy.payload.question_types == ("multiple_choice", "short_answer")

    def test_option_passthrough(self):
        plan = WorkflowPlanBuilder().build(
            TemplateId.PROCESS_DOCUMENT,
            instruction(summary_length="long", extract_formulas=False),
        )
        assert plan.steps[1].payload.summary_length == "long"
        assert plan.steps[2].payload.extract_formulas is False

    def test_timeouts(self):
        plan = WorkflowPlanBuilder().build(TemplateId.PROCESS_DOCUMENT, instruction())
        assert [s.timeout_ms for s in plan.steps] == [5 * MINUTE_MS, 10 * MINUTE_MS, 10 * MINUTE_MS]


class TestGenerateSummary:
    """Tests for the summary template."""

    def test_two_step_chain(self):
        plan = WorkflowPlanBuilder().build(TemplateId.GENERATE_SUMMARY, instruction())

        ingestion, summary = plan.steps
        assert ingestion.payload.quick_mode is True
        assert summary.dependencies == (ingestion.id,)
        assert summary.payload.summary_length == "medium"
        assert [s.timeout_ms for s in plan.steps] == [3 * MINUTE_MS, 5 * MINUTE_MS]


class TestExtractKnowledge:
    """Tests for the extraction template."""

    def test_detailed_extraction(self):
        plan = WorkflowPlanBuilder().build(TemplateId.EXTRACT_KNOWLEDGE, instruction())

        assert task_types(plan) == ["extract_text", "extract_knowledge"]
        assert plan.steps[0].payload.preserve_structure is True
        assert plan.steps[1].payload.detailed_extraction is True


class TestCreateStudyMaterials:
    """Tests for the study materials template."""

    def test_diamond_shape(self):
        plan = WorkflowPlanBuilder().build(TemplateId.CREATE_STUDY_MATERIALS, instruction())

        assert waves(plan) == [
            ["extract_text"],
            ["analyze_for_pedagogy", "extract_for_pedagogy"],
            ["generate_study_materials"],
        ]

    def test_defaults(self):
        plan = WorkflowPlanBuilder().build(TemplateId.CREATE_STUDY_MATERIALS, instruction())
        payload = plan.steps[3].payload

        assert payload.question_types == ("multiple_choice", "fill_blank", "short_answer")
        assert payload.include_flashcards is True
        assert payload.quantity == "standard"

    def test_flashcards_can_be_disabled(self):
        plan = WorkflowPlanBuilder().build(
            TemplateId.CREATE_STUDY_MATERIALS,
            instruction(include_flashcards=False),
        )
        assert plan.steps[3].payload.include_flashcards is False


class TestCompileNotebook:
    """Tests for the notebook template."""

    def test_single_synthesis_step(self):
        plan = WorkflowPlanBuilder().build(TemplateId.COMPILE_NOTEBOOK, instruction())

        assert len(plan.steps) == 1
        assert plan.steps[0].agent_type == AgentType.SYNTHESIS
        assert plan.steps[0].dependencies == ()


# =============================================================================
# Builder Tests
# =============================================================================


class TestWorkflowPlanBuilder:
    """Tests for the builder itself."""

    @pytest.mark.parametrize("template_id", list(TemplateId))
    def test_every_template_builds_a_pending_plan(self, template_id):
        source = instruction()
        plan = WorkflowPlanBuilder().build(template_id, source)

        assert plan.status == WorkflowStatus.PENDING
        assert plan.instruction_id == source.id
        assert plan.steps
        assert len({s.id for s in plan.steps}) == len(plan.steps)
        known = {s.id for s in plan.steps}
        for step in plan.steps:
            assert set(step.dependencies) <= known
            assert step.payload.document_id == "doc-1"
            assert step.payload.user_id == "user-1"

    def test_ids_differ_between_builds(self):
        builder = WorkflowPlanBuilder()
        first = builder.build(TemplateId.GENERATE_SUMMARY, instruction())
        second = builder.build(TemplateId.GENERATE_SUMMARY, instruction())

        assert first.id != second.id
        assert first.steps[0].id != second.steps[0].id

    def test_unknown_template(self):
        builder = WorkflowPlanBuilder(templates={})
        with pytest.raises(UnknownTemplateError, match="No parser found for instruction type: generate_summary"):
            builder.build(TemplateId.GENERATE_SUMMARY, instruction())

    def test_register_custom_template(self):
        def single_step(source):
            return [WorkflowStep(
                id="only",
                agent_type=AgentType.INGESTION,
                payload=ExtractTextPayload(document_id=source.document_id, user_id=source.user_id),
            )]

        builder = WorkflowPlanBuilder()
        builder.register(TemplateId.GENERATE_SUMMARY, single_step)
        plan = builder.build(TemplateId.GENERATE_SUMMARY, instruction())

        assert [s.id for s in plan.steps] == ["only"]
