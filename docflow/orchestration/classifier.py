"""
DocFlow - Instruction Classifier

Maps a free-form instruction to one of the workflow templates by keyword.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Sequence, Tuple

from docflow.orchestration.types import UserInstruction


class TemplateId(str, Enum):
    """Workflow templates an instruction can be expanded into."""

    PROCESS_DOCUMENT = "process_document"
    GENERATE_SUMMARY = "generate_summary"
    EXTRACT_KNOWLEDGE = "extract_knowledge"
    CREATE_STUDY_MATERIALS = "create_study_materials"
    COMPILE_NOTEBOOK = "compile_notebook"


# Order matters: the first rule with a matching keyword wins.
DEFAULT_RULES: List[Tuple[Tuple[str, ...], TemplateId]] = [
    (("process", "analyze"), TemplateId.PROCESS_DOCUMENT),
    (("summary", "summarize"), TemplateId.GENERATE_SUMMARY),
    (("extract", "knowledge", "concepts"), TemplateId.EXTRACT_KNOWLEDGE),
    (("flashcard", "question", "quiz"), TemplateId.CREATE_STUDY_MATERIALS),
    (("notebook", "compile", "export"), TemplateId.COMPILE_NOTEBOOK),
]


class InstructionClassifier:
    """Case-insensitive keyword classifier with a fixed fallback template."""

    def __init__(
        self,
        rules: Sequence[Tuple[Tuple[str, ...], TemplateId]] = DEFAULT_RULES,
        default: TemplateId = TemplateId.PROCESS_DOCUMENT,
    ):
        self.rules = list(rules)
        self.default = default

    def classify(self, instruction: UserInstruction) -> TemplateId:
        return self.classify_text(instruction.instruction)

    def classify_text(self, text: str) -> TemplateId:
        lowered = text.lower()
        for keywords, template_id in self.rules:
            if any(keyword in lowered for keyword in keywords):
                return template_id
        return self.default
