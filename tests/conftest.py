"""
Shared fixtures for context assembly tests.

Provides:
1. A document factory
2. In-memory document source and text extractor fakes
3. A ManualClock-driven engine
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

import pytest

from app.cache import ContextCache
from app.config import AssemblyConfig, ContextSettings, SchedulerConfig
from app.context_assembly import ContextAssemblyEngine
from scheduling.clock import ManualClock
from shared.errors import ExtractionError
from shared.schemas import Document

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_document(
    doc_id: str,
    category: str = "references",
    name: Optional[str] = None,
    project: str = "Acme",
    size: int = 50_000,
    age_days: float = 10,
    description: str = "",
    status: str = "active",
) -> Document:
    created = NOW - timedelta(days=age_days)
    return Document(
        id=doc_id,
        name=name or f"{doc_id}.pdf",
        category=category,
        project=project,
        size=size,
        created_at=created,
        description=description,
        status=status,
    )


class FakeDocumentSource:
    """Document listing collaborator backed by a dict."""

    def __init__(self, documents: Optional[Dict[str, List[Document]]] = None):
        self.documents = documents or {}
        self.calls = 0
        self.error: Optional[Exception] = None

    async def list_active_documents(self, project: str, document_type: str) -> List[Document]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.documents.get(project, []))


class FakeExtractor:
    """Text extraction collaborator with optional failures and a gate."""

    def __init__(self, texts: Optional[Dict[str, str]] = None):
        self.texts = texts or {}
        self.failing: Set[str] = set()
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None

    async def extract_text(self, document: Document) -> str:
        self.calls.append(document.id)
        if self.gate is not None:
            await self.gate.wait()
        if document.id in self.failing:
            raise ExtractionError(f"cannot read {document.name}", document_id=document.id)
        return self.texts.get(document.id, f"Paragraph for {document.id}.")


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler_config():
    return SchedulerConfig(debounce_seconds=10, retry_delay_seconds=5, max_attempts=3)


@pytest.fixture
def context_settings():
    return ContextSettings()


@pytest.fixture
def documents():
    return [
        make_document("sol-1", category="solicitations", name="rfp_final.pdf"),
        make_document("req-1", category="requirements", name="requirements.docx"),
        make_document("media-1", category="media", name="briefing.mp4"),
    ]


@pytest.fixture
def source(documents):
    return FakeDocumentSource({"Acme": documents})


@pytest.fixture
def extractor():
    return FakeExtractor(
        {
            "sol-1": "Executive summary of the solicitation.\n\nTechnical solution required.",
            "req-1": "Requirement one.\n\n\n\nRequirement two.",
            "media-1": "Transcript of the briefing.",
        }
    )


@pytest.fixture
def store():
    return ContextCache()


@pytest.fixture
def engine(source, extractor, store, clock, scheduler_config, context_settings):
    return ContextAssemblyEngine(
        source,
        extractor,
        store=store,
        settings_provider=lambda: context_settings,
        clock=clock,
        scheduler_config=scheduler_config,
        assembly_config=AssemblyConfig(max_concurrent_extractions=2),
    )
