"""Tests for document prioritization and relevance scoring."""

from __future__ import annotations

import pytest

from ingestion.prioritizer import MB, DocumentPrioritizer

from .conftest import NOW, make_document


@pytest.fixture
def prioritizer():
    return DocumentPrioritizer(now=lambda: NOW)


class TestPrioritize:
    def test_category_order(self, prioritizer):
        docs = [
            make_document("m", category="media"),
            make_document("u", category="something-else"),
            make_document("s", category="solicitations"),
            make_document("p", category="past-performance"),
            make_document("r", category="requirements"),
        ]
        ordered = [d.id for d in prioritizer.prioritize(docs)]
        assert ordered == ["s", "r", "p", "m", "u"]

    def test_active_first(self, prioritizer):
        docs = [
            make_document("archived", category="solicitations", status="archived"),
            make_document("active", category="media"),
        ]
        assert prioritizer.prioritize(docs)[0].id == "active"

    def test_keywords_break_category_ties(self, prioritizer):
        docs = [
            make_document("plain", name="notes.pdf"),
            make_document("exec", name="executive_summary.pdf"),
            make_document("tech", name="notes.pdf", description="technical approach"),
        ]
        assert [d.id for d in prioritizer.prioritize(docs)] == ["exec", "tech", "plain"]

    def test_size_penalties(self, prioritizer):
        docs = [
            make_document("huge", size=6 * MB),
            make_document("tiny", size=10),
            make_document("normal", size=20_000),
        ]
        assert [d.id for d in prioritizer.prioritize(docs)] == ["normal", "tiny", "huge"]

    def test_newest_first_on_full_tie(self, prioritizer):
        docs = [
            make_document("old", age_days=100),
            make_document("new", age_days=1),
            make_document("mid", age_days=20),
        ]
        assert [d.id for d in prioritizer.prioritize(docs)] == ["new", "mid", "old"]

    def test_does_not_mutate_input(self, prioritizer, documents):
        original = list(reversed(documents))
        snapshot = list(original)
        prioritizer.prioritize(original)
        assert original == snapshot

    def test_priority_scores_follow_ranking(self, prioritizer, documents):
        scores = prioritizer.priority_scores(documents)
        assert scores == {"sol-1": 0, "req-1": 1, "media-1": 2}


class TestRelevanceScore:
    def test_clamped_to_100(self, prioritizer):
        doc = make_document("s", category="solicitations", name="final.pdf", size=2000, age_days=5)
        assert prioritizer.relevance_score(doc) == 100

    def test_base_components(self, prioritizer):
        doc = make_document("r", category="references", name="notes.pdf", size=2000, age_days=60)
        # base 50 + size 20 + age<90 10
        assert prioritizer.relevance_score(doc) == 80

    def test_draft_penalty_and_old_large(self, prioritizer):
        doc = make_document("m", category="media", name="draft.mp4", size=6 * MB, age_days=400)
        assert prioritizer.relevance_score(doc) == 40

    def test_size_bounds_are_exclusive(self, prioritizer):
        doc = make_document("x", category="media", name="x.bin", size=100, age_days=400)
        assert prioritizer.relevance_score(doc) == 50

    def test_never_negative(self, prioritizer):
        doc = make_document("x", category="media", name="draft_temp", size=0, age_days=400)
        assert 0 <= prioritizer.relevance_score(doc) <= 100

    def test_missing_created_at_counts_as_old(self, prioritizer):
        doc = make_document("x", category="media", name="x.bin", size=0).model_copy(
            update={"created_at": None}
        )
        assert prioritizer.relevance_score(doc) == 50
