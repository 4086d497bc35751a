"""
DocFlow - Step Payloads

Each workflow step carries a typed payload. The payload class is the tag that
determines the step's task type, and its fields are forwarded to the agent
as a camelCase key-value map.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Optional, Tuple


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


# =============================================================================
# Base Payload
# =============================================================================


@dataclass(frozen=True)
class StepPayload:
    """Data shared by every agent task: the target document and its owner."""

    task_type: ClassVar[str] = ""

    document_id: str
    user_id: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the key-value map sent to the agent.

        Fields left as None are omitted, tuples become lists.
        """
        result: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, tuple):
                value = list(value)
            result[_camel_case(f.name)] = value
        return result


# =============================================================================
# Ingestion
# =============================================================================


@dataclass(frozen=True)
class ExtractTextPayload(StepPayload):
    task_type: ClassVar[str] = "extract_text"

    extract_images: Optional[bool] = None
    preserve_structure: Optional[bool] = None
    quick_mode: Optional[bool] = None


# =============================================================================
# Analysis
# =============================================================================


@dataclass(frozen=True)
class AnalyzeDocumentPayload(StepPayload):
    task_type: ClassVar[str] = "analyze_document"

    summary_length: str = "medium"
    analyze_structure: bool = True
    extract_topics: bool = True


@dataclass(frozen=True)
class GenerateSummaryPayload(StepPayload):
    task_type: ClassVar[str] = "generate_summary"

    summary_length: str = "medium"
    summary_type: str = "abstractive"


@dataclass(frozen=True)
class AnalyzeForPedagogyPayload(StepPayload):
    task_type: ClassVar[str] = "analyze_for_pedagogy"

    extract_topics: bool = True
    identify_key_points: bool = True


# =============================================================================
# Knowledge Extraction
# =============================================================================


@dataclass(frozen=True)
class ExtractKnowledgePayload(StepPayload):
    task_type: ClassVar[str] = "extract_knowledge"

    extract_entities: bool = True
    extract_definitions: bool = True
    extract_formulas: bool = True
    extract_relationships: bool = True
    detailed_extraction: Optional[bool] = None


@dataclass(frozen=True)
class ExtractForPedagogyPayload(StepPayload):
    task_type: ClassVar[str] = "extract_for_pedagogy"

    extract_definitions: bool = True
    extract_concepts: bool = True


# =============================================================================
# Pedagogy
# =============================================================================


@dataclass(frozen=True)
class GenerateStudyMaterialsPayload(StepPayload):
    task_type: ClassVar[str] = "generate_study_materials"

    question_types: Tuple[str, ...] = ("multiple_choice", "short_answer")
    include_flashcards: bool = False
    difficulty: str = "medium"
    quantity: Optional[str] = None


# =============================================================================
# Synthesis
# =============================================================================


@dataclass(frozen=True)
class CompileNotebookPayload(StepPayload):
    task_type: ClassVar[str] = "compile_notebook"

    include_annotations: bool = True
    format: str = "pdf"
    template: str = "academic"


PAYLOAD_TYPES: Dict[str, type] = {
    cls.task_type: cls
    for cls in (
        ExtractTextPayload,
        AnalyzeDocumentPayload,
        GenerateSummaryPayload,
        AnalyzeForPedagogyPayload,
        ExtractKnowledgePayload,
        ExtractForPedagogyPayload,
        GenerateStudyMaterialsPayload,
        CompileNotebookPayload,
    )
}
