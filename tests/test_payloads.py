"""
Tests for DocFlow Step Payloads
"""

import dataclasses

import pytest

from docflow.orchestration.payloads import (
    PAYLOAD_TYPES,
    CompileNotebookPayload,
    ExtractKnowledgePayload,
    ExtractTextPayload,
    GenerateStudyMaterialsPayload,
)


class TestPayloadSerialization:
    """Tests for the key-value map forwarded to agents."""

    def test_keys_are_camel_case(self):
        payload = ExtractTextPayload(
            document_id="doc-1",
            user_id="user-1",
            extract_images=True,
            preserve_structure=True,
        )
        assert payload.to_dict() == {
            "documentId": "doc-1",
            "userId": "user-1",
            "extractImages": True,
            "preserveStructure": True,
        }

    def test_unset_optional_fields_are_omitted(self):
        data = ExtractKnowledgePayload(document_id="doc-1", user_id="user-1").to_dict()
        assert "detailedExtraction" not in data
        assert data["extractFormulas"] is True

    def test_tuples_become_lists(self):
        payload = GenerateStudyMaterialsPayload(
            document_id="doc-1",
            user_id="user-1",
            question_types=("multiple_choice", "fill_blank"),
            include_flashcards=True,
            quantity="standard",
        )
        data = payload.to_dict()

        assert data["questionTypes"] == ["multiple_choice", "fill_blank"]
        assert data["includeFlashcards"] is True
        assert data["quantity"] == "standard"

    def test_notebook_defaults(self):
        data = CompileNotebookPayload(document_id="doc-1", user_id="user-1").to_dict()
        assert data["format"] == "pdf"
        assert data["template"] == "academic"
        assert data["includeAnnotations"] is True

    def test_payloads_are_immutable(self):
        payload = ExtractTextPayload(document_id="doc-1", user_id="user-1")
        with pytest.raises(dataclasses.FrozenInstanceError):
            payload.document_id = "other"  # type: ignore[misc]


class TestPayloadTypes:
    """Tests for the task type registry."""

    def test_every_task_type_is_registered(self):
        assert set(PAYLOAD_TYPES) == {
            "extract_text",
            "analyze_document",
            "generate_summary",
            "analyze_for_pedagogy",
            "extract_knowledge",
            "extract_for_pedagogy",
            "generate_study_materials",
            "compile_notebook",
        }

    def test_registry_maps_to_payload_class(self):
        for task_type, payload_cls in PAYLOAD_TYPES.items():
            assert payload_cls.task_type == task_type
            assert payload_cls(document_id="d", user_id="u").to_dict()["documentId"] == "d"
