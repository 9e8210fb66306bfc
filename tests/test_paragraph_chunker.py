"""Tests for paragraph chunking and section detection."""

from __future__ import annotations

import pytest

from chunking.paragraph_chunker import (
    ChunkBuilder,
    count_words,
    detect_section_type,
    split_paragraphs,
)
from shared.schemas import SectionType

from .conftest import make_document

TEXT = (
    "Executive Summary\nWe deliver.\n\n"
    "   \n\n"
    "Our technical solution uses proven technology.\n\n"
    "  Project timeline and staffing.  \n \n"
    "Past performance on similar contracts."
)


@pytest.fixture
def builder():
    return ChunkBuilder()


@pytest.fixture
def document():
    return make_document("doc-1", category="proposals", name="volume1.docx")


class TestSplitParagraphs:
    def test_splits_on_blank_lines_and_strips(self):
        assert split_paragraphs("a\n\nb\n   \n c ") == ["a", "b", "c"]

    def test_drops_whitespace_only(self):
        assert split_paragraphs("\n\n   \n\n\t\n\n") == []

    def test_single_newline_is_not_a_boundary(self):
        assert split_paragraphs("line one\nline two") == ["line one\nline two"]

    @pytest.mark.parametrize("value", ["", None, 42])
    def test_non_text(self, value):
        assert split_paragraphs(value) == []


class TestDetectSectionType:
    @pytest.mark.parametrize(
        "content,expected",
        [
            ("EXECUTIVE SUMMARY", SectionType.EXECUTIVE_SUMMARY),
            ("A technical approach", SectionType.TECHNICAL),
            ("Management plan and timeline", SectionType.MANAGEMENT),
            ("Each requirement shall", SectionType.REQUIREMENTS),
            ("Relevant experience", SectionType.EXPERIENCE),
            ("Nothing special here", SectionType.GENERAL),
        ],
    )
    def test_rules(self, content, expected):
        assert detect_section_type(content) == expected

    def test_first_match_wins(self):
        # matches both "summary" and "technical"; summary rule comes first
        assert detect_section_type("Technical summary") == SectionType.EXECUTIVE_SUMMARY


class TestChunkBuilder:
    def test_builds_ordered_chunks(self, builder, document):
        chunks = builder.build(document, TEXT)

        assert [c.chunk_index for c in chunks] == [0, 1, 2, 3]
        assert [c.id for c in chunks] == [f"doc-1_chunk_{i}" for i in range(4)]
        assert [c.section_type for c in chunks] == [
            SectionType.EXECUTIVE_SUMMARY,
            SectionType.TECHNICAL,
            SectionType.MANAGEMENT,
            SectionType.EXPERIENCE,
        ]

    def test_counts(self, builder, document):
        chunk = builder.build(document, TEXT)[2]
        assert chunk.content == "Project timeline and staffing."
        assert chunk.word_count == 4
        assert chunk.character_count == len("Project timeline and staffing.")

    def test_metadata(self, builder, document):
        chunk = builder.build(document, TEXT)[0]
        assert chunk.document_id == "doc-1"
        assert chunk.document_name == "volume1.docx"
        assert chunk.metadata == {
            "document_type": "proposals",
            "project": "Acme",
            "upload_date": document.created_at.isoformat(),
        }

    def test_deterministic(self, builder, document):
        first = builder.build(document, TEXT)
        second = ChunkBuilder().build(document, TEXT)
        assert [c.model_dump_json() for c in first] == [c.model_dump_json() for c in second]

    def test_empty_text(self, builder, document):
        assert builder.build(document, "") == []

    def test_custom_rules(self, document):
        builder = ChunkBuilder(section_rules=[(SectionType.MANAGEMENT, ("budget",))])
        chunks = builder.build(document, "Budget overview\n\nExecutive summary")
        assert [c.section_type for c in chunks] == [SectionType.MANAGEMENT, SectionType.GENERAL]


def test_count_words():
    assert count_words("  one two\nthree\tfour ") == 4
    assert count_words("") == 0
