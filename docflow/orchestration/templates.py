"""
DocFlow - Workflow Plan Builder

Each template turns a user instruction into an ordered list of workflow
steps with explicit dependency wiring. Step IDs are generated when the steps
are built and dependencies always refer to those IDs.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from docflow.orchestration.classifier import TemplateId
from docflow.orchestration.errors import UnknownTemplateError
from docflow.orchestration.payloads import (
    AnalyzeDocumentPayload,
    AnalyzeForPedagogyPayload,
    CompileNotebookPayload,
    ExtractForPedagogyPayload,
    ExtractKnowledgePayload,
    ExtractTextPayload,
    GenerateStudyMaterialsPayload,
    GenerateSummaryPayload,
)
from docflow.orchestration.types import (
    AgentType,
    UserInstruction,
    WorkflowPlan,
    WorkflowStep,
)

logger = logging.getLogger(__name__)

PlanTemplate = Callable[[UserInstruction], List[WorkflowStep]]

MINUTE_MS = 60000


def _new_id() -> str:
    return str(uuid4())


# =============================================================================
# Templates
# =============================================================================


def process_document_steps(instruction: UserInstruction) -> List[WorkflowStep]:
    """Full processing: ingestion, then analysis and extraction, then pedagogy if asked."""
    options = instruction.options
    doc, user = instruction.document_id, instruction.user_id

    ingestion = WorkflowStep(
        id=_new_id(),
        agent_type=AgentType.INGESTION,
        payload=ExtractTextPayload(
            document_id=doc,
            user_id=user,
            extract_images=True,
            preserve_structure=True,
        ),
        priority=1,
        timeout_ms=5 * MINUTE_MS,
    )
    analysis = WorkflowStep(
        id=_new_id(),
        agent_type=AgentType.ANALYSIS,
        payload=AnalyzeDocumentPayload(
            document_id=doc,
            user_id=user,
            summary_length=options.summary_length or "medium",
        ),
        dependencies=(ingestion.id,),
        priority=2,
        timeout_ms=10 * MINUTE_MS,
    )
    extraction = WorkflowStep(
        id=_new_id(),
        agent_type=AgentType.EXTRACTION,
        payload=ExtractKnowledgePayload(
            document_id=doc,
            user_id=user,
            extract_formulas=options.extract_formulas is not False,
        ),
        dependencies=(ingestion.id,),
        priority=2,
        timeout_ms=10 * MINUTE_MS,
    )
    steps = [ingestion, analysis, extraction]

    if options.include_questions or options.include_flashcards:
        steps.append(WorkflowStep(
            id=_new_id(),
            agent_type=AgentType.PEDAGOGY,
            payload=GenerateStudyMaterialsPayload(
                document_id=doc,
                user_id=user,
                question_types=options.question_types or ("multiple_choice", "short_answer"),
                include_flashcards=bool(options.include_flashcards),
            ),
            dependencies=(analysis.id, extraction.id),
            priority=3,
            timeout_ms=10 * MINUTE_MS,
        ))

    return steps


def generate_summary_steps(instruction: UserInstruction) -> List[WorkflowStep]:
    """Summary only: quick ingestion followed by summary generation."""
    doc, user = instruction.document_id, instruction.user_id

    ingestion = WorkflowStep(
        id=_new_id(),
        agent_type=AgentType.INGESTION,
        payload=ExtractTextPayload(document_id=doc, user_id=user, quick_mode=True),
        priority=1,
        timeout_ms=3 * MINUTE_MS,
    )
    summary = WorkflowStep(
        id=_new_id(),
        agent_type=AgentType.ANALYSIS,
        payload=GenerateSummaryPayload(
            document_id=doc,
            user_id=user,
            summary_length=instruction.options.summary_length or "medium",
        ),
        dependencies=(ingestion.id,),
        priority=2,
        timeout_ms=5 * MINUTE_MS,
    )
    return [ingestion, summary]


def extract_knowledge_steps(instruction: UserInstruction) -> List[WorkflowStep]:
    """Extraction only: structure-preserving ingestion, then detailed extraction."""
    doc, user = instruction.document_id, instruction.user_id

    ingestion = WorkflowStep(
        id=_new_id(),
        agent_type=AgentType.INGESTION,
        payload=ExtractTextPayload(document_id=doc, user_id=user, preserve_structure=True),
        priority=1,
        timeout_ms=5 * MINUTE_MS,
    )
    extraction = WorkflowStep(
        id=_new_id(),
        agent_type=AgentType.EXTRACTION,
        payload=ExtractKnowledgePayload(
            document_id=doc,
            user_id=user,
            detailed_extraction=True,
        ),
        dependencies=(ingestion.id,),
        priority=2,
        timeout_ms=10 * MINUTE_MS,
    )
    return [ingestion, extraction]


def create_study_materials_steps(instruction: UserInstruction) -> List[WorkflowStep]:
    """Study materials: ingestion, parallel analysis and extraction, then pedagogy."""
    options = instruction.options
    doc, user = instruction.document_id, instruction.user_id

    ingestion = WorkflowStep(
        id=_new_id(),
        agent_type=AgentType.INGESTION,
        payload=ExtractTextPayload(document_id=doc, user_id=user),
        priority=1,
        timeout_ms=5 * MINUTE_MS,
    )
    analysis = WorkflowStep(
        id=_new_id(),
        agent_type=AgentType.ANALYSIS,
        payload=AnalyzeForPedagogyPayload(document_id=doc, user_id=user),
        dependencies=(ingestion.id,),
        priority=2,
        timeout_ms=5 * MINUTE_MS,
    )
    extraction = WorkflowStep(
        id=_new_id(),
        agent_type=AgentType.EXTRACTION,
        payload=ExtractForPedagogyPayload(document_id=doc, user_id=user),
        dependencies=(ingestion.id,),
        priority=2,
        timeout_ms=5 * MINUTE_MS,
    )
    pedagogy = WorkflowStep(
        id=_new_id(),
        agent_type=AgentType.PEDAGOGY,
        payload=GenerateStudyMaterialsPayload(
            document_id=doc,
            user_id=user,
            question_types=options.question_types
            or ("multiple_choice", "fill_blank", "short_answer"),
            include_flashcards=options.include_flashcards is not False,
            quantity="standard",
        ),
        dependencies=(analysis.id, extraction.id),
        priority=3,
        timeout_ms=10 * MINUTE_MS,
    )
    return [ingestion, analysis, extraction, pedagogy]


def compile_notebook_steps(instruction: UserInstruction) -> List[WorkflowStep]:
    """Notebook compilation from knowledge elements that already exist."""
    return [
        WorkflowStep(
            id=_new_id(),
            agent_type=AgentType.SYNTHESIS,
            payload=CompileNotebookPayload(
                document_id=instruction.document_id,
                user_id=instruction.user_id,
            ),
            priority=1,
            timeout_ms=5 * MINUTE_MS,
        )
    ]


DEFAULT_TEMPLATES: Dict[TemplateId, PlanTemplate] = {
    TemplateId.PROCESS_DOCUMENT: process_document_steps,
    TemplateId.GENERATE_SUMMARY: generate_summary_steps,
    TemplateId.EXTRACT_KNOWLEDGE: extract_knowledge_steps,
    TemplateId.CREATE_STUDY_MATERIALS: create_study_materials_steps,
    TemplateId.COMPILE_NOTEBOOK: compile_notebook_steps,
}


# =============================================================================
# Plan Builder
# =============================================================================


class WorkflowPlanBuilder:
    """Expands a classified instruction into a pending workflow plan."""

    def __init__(self, templates: Optional[Dict[TemplateId, PlanTemplate]] = None):
        self._templates: Dict[TemplateId, PlanTemplate] = dict(
            DEFAULT_TEMPLATES if templates is None else templates
        )

    def register(self, template_id: TemplateId, template: PlanTemplate) -> None:
        """Register or replace the template for an ID."""
        self._templates[template_id] = template

    def build(self, template_id: TemplateId, instruction: UserInstruction) -> WorkflowPlan:
        """
        Build a plan for an instruction.

        Raises:
            UnknownTemplateError: If no template is registered for the ID
        """
        template = self._templates.get(template_id)
        if template is None:
            raise UnknownTemplateError(getattr(template_id, "value", str(template_id)))

        steps = template(instruction)
        plan = WorkflowPlan(
            id=_new_id(),
            instruction_id=instruction.id,
            steps=steps,
        )
        logger.debug(
            f"Built {getattr(template_id, 'value', template_id)} plan {plan.id} with {len(steps)} steps "
            f"for instruction {instruction.id}"
        )
        return plan
