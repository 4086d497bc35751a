"""
Tests for DocFlow Instruction Classifier
"""

import pytest

from docflow.orchestration.classifier import InstructionClassifier, TemplateId
from docflow.orchestration.types import UserInstruction


class TestInstructionClassifier:
    """Tests for keyword classification."""

    @pytest.mark.parametrize("text,expected", [
        ("Please summarize this document", TemplateId.GENERATE_SUMMARY),
        ("I need a short SUMMARY", TemplateId.GENERATE_SUMMARY),
        ("Process this document", TemplateId.PROCESS_DOCUMENT),
        ("Extract the key concepts", TemplateId.EXTRACT_KNOWLEDGE),
        ("Make me some flashcards", TemplateId.CREATE_STUDY_MATERIALS),
        ("Quiz me on chapter 2", TemplateId.CREATE_STUDY_MATERIALS),
        ("Export to a notebook", TemplateId.COMPILE_NOTEBOOK),
    ])
    def test_keywords(self, text, expected):
        assert InstructionClassifier().classify_text(text) == expected

    def test_first_matching_rule_wins(self):
        # "analyze" (process) is checked before "summary"
        assert (
            InstructionClassifier().classify_text("Analyze and write a summary")
            == TemplateId.PROCESS_DOCUMENT
        )

    def test_fallback(self):
        assert InstructionClassifier().classify_text("Hello there") == TemplateId.PROCESS_DOCUMENT

    def test_custom_rules_and_default(self):
        classifier = InstructionClassifier(
            rules=[(("tldr",), TemplateId.GENERATE_SUMMARY)],
            default=TemplateId.EXTRACT_KNOWLEDGE,
        )
        assert classifier.classify_text("tldr please") == TemplateId.GENERATE_SUMMARY
        assert classifier.classify_text("summarize") == TemplateId.EXTRACT_KNOWLEDGE

    def test_classify_instruction(self):
        instruction = UserInstruction.create("u", "d", "Create study questions")
        assert InstructionClassifier().classify(instruction) == TemplateId.CREATE_STUDY_MATERIALS
