"""
Context assembly engine.
Treat prompt context as a resource with a budget.

Flow for a (project, document_type) request:
- List active documents and fingerprint them
- Serve the cached context when the fingerprint still matches
- Otherwise schedule a debounced background build and report "building"

A background build prioritizes documents, extracts their text, chunks it
into paragraphs and atomically replaces the cached context.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional, Protocol, Sequence, Tuple, Union

from chunking.paragraph_chunker import ChunkBuilder
from context.context_budgeting import allocate_token_budget, calculate_token_usage
from context.overflow import OverflowAnalyzer, apply_document_selection
from ingestion.checksum import ChecksumService
from ingestion.prioritizer import DocumentPrioritizer
from scheduling.build_scheduler import BuildRecord, BuildScheduler
from scheduling.clock import Clock
from shared.errors import NoDocumentsError, TransientBuildError
from shared.schemas import (
    BuildStatus,
    CachedContext,
    ContextChunk,
    ContextStatus,
    ContextSummary,
    Document,
    DocumentSelection,
    FailedDocument,
    OverflowReport,
)

from .cache import BuildKey, ContextCache, ContextStore
from .config import AssemblyConfig, ContextSettings, SchedulerConfig, get_settings

logger = logging.getLogger(__name__)

ContextResult = Union[CachedContext, ContextStatus]


class DocumentSource(Protocol):
    """Lists the documents of a project."""

    async def list_active_documents(self, project: str, document_type: str) -> List[Document]: ...


class TextExtractor(Protocol):
    """Extracts plaintext from a document. May raise ExtractionError."""

    async def extract_text(self, document: Document) -> str: ...


async def _call(fn: Callable, *args: Any) -> Any:
    """Call a sync or async collaborator."""
    result = fn(*args)
    if inspect.isawaitable(result):
        return await result
    return result


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContextAssemblyEngine:
    """
    Orchestrates checksum, cache, scheduler, chunking and overflow analysis.

    Usage:
        engine = ContextAssemblyEngine(document_source, text_extractor)
        result = await engine.get_context("acme", "solicitations")
        if isinstance(result, CachedContext):
            report = engine.check_overflow(documents, list(result.chunks), "small")
    """

    def __init__(
        self,
        document_source: DocumentSource,
        text_extractor: TextExtractor,
        store: Optional[ContextStore] = None,
        settings_provider: Optional[Callable[[], ContextSettings]] = None,
        clock: Optional[Clock] = None,
        scheduler_config: Optional[SchedulerConfig] = None,
        assembly_config: Optional[AssemblyConfig] = None,
        prioritizer: Optional[DocumentPrioritizer] = None,
        chunk_builder: Optional[ChunkBuilder] = None,
        checksums: Optional[ChecksumService] = None,
    ):
        settings = get_settings()
        self.document_source = document_source
        self.text_extractor = text_extractor
        self.store = store if store is not None else ContextCache()
        self.settings_provider = settings_provider or settings.settings_provider()
        self.assembly = assembly_config or settings.assembly
        self.prioritizer = prioritizer or DocumentPrioritizer()
        self.chunk_builder = chunk_builder or ChunkBuilder()
        self.checksums = checksums or ChecksumService()
        self.overflow = OverflowAnalyzer(self.prioritizer)
        self.scheduler = BuildScheduler(
            self._build,
            self.store,
            clock=clock,
            config=scheduler_config or settings.scheduler,
        )

    async def list_documents(self, project: str, document_type: str) -> List[Document]:
        """Active documents for a key, highest priority first."""
        documents = await _call(
            self.document_source.list_active_documents, project, document_type
        )
        active = [doc for doc in documents or [] if doc.status == "active"]
        logger.info(f"Found {len(active)} documents for {project}/{document_type}")
        return self.prioritizer.prioritize(active)[: self.assembly.document_limit]

    async def get_context(self, project: str, document_type: str) -> ContextResult:
        """
        Get the context for a key, scheduling a build if needed.

        Never raises: failures are reported as a ContextStatus.

        Args:
            project: Project name
            document_type: Document category the context is for

        Returns:
            CachedContext on a cache hit, ContextStatus otherwise
        """
        key = BuildKey(project, document_type)
        logger.info(f"Getting context for {key}")

        try:
            documents = await self.list_documents(project, document_type)
            checksum = self.checksums.compute(documents)

            cached = await self.store.get_cached_context(key)
            if cached is not None and cached.checksum == checksum:
                logger.info(
                    f"Using cached context: {cached.token_count} tokens "
                    f"from {cached.document_count} documents"
                )
                return cached
            if cached is not None:
                logger.info(f"Context needs rebuild - checksum changed: {cached.checksum} -> {checksum}")

            record = self.scheduler.get_record(key)
            if record.status == BuildStatus.BUILDING:
                return ContextStatus(status=BuildStatus.BUILDING, build_timestamp=record.build_timestamp)
            if record.status == BuildStatus.SCHEDULED:
                return ContextStatus(status=BuildStatus.BUILDING, build_timestamp=record.requested_at)
            if record.status == BuildStatus.FAILED and record.checksum == checksum:
                return ContextStatus(
                    status=BuildStatus.FAILED,
                    build_timestamp=record.build_timestamp,
                    error_message=record.error_message,
                )

            record = self.scheduler.request_build(key, checksum)
            return ContextStatus(status=BuildStatus.BUILDING, build_timestamp=record.requested_at)
        except Exception as e:
            logger.error(f"Error getting project context for {key}: {e}")
            return ContextStatus(status=BuildStatus.FAILED, build_timestamp=_utcnow(), error_message=str(e))

    async def process_documents(
        self, documents: Sequence[Document]
    ) -> Tuple[List[ContextChunk], List[FailedDocument]]:
        """
        Extract and chunk documents, keeping their priority order.

        Args:
            documents: Prioritized documents

        Returns:
            (chunks, failed documents)
        """
        semaphore = asyncio.Semaphore(max(1, self.assembly.max_concurrent_extractions))

        async def extract(document: Document) -> Union[str, FailedDocument]:
            async with semaphore:
                logger.info(f"Processing document: {document.name}")
                try:
                    return await _call(self.text_extractor.extract_text, document)
                except Exception as e:
                    logger.error(f"Failed to process document {document.name}: {e}")
                    return FailedDocument(
                        document_id=document.id,
                        filename=document.stored_filename,
                        error=str(e),
                    )

        results = await asyncio.gather(*(extract(doc) for doc in documents))

        chunks: List[ContextChunk] = []
        failed: List[FailedDocument] = []
        for document, result in zip(documents, results):
            if isinstance(result, FailedDocument):
                failed.append(result)
            else:
                chunks.extend(self.chunk_builder.build(document, result))

        return chunks, failed

    def aggregate(
        self,
        key: BuildKey,
        documents: Sequence[Document],
        chunks: Sequence[ContextChunk],
        failed: Sequence[FailedDocument],
    ) -> CachedContext:
        """Assemble a CachedContext from built chunks."""
        return CachedContext(
            project=key.project,
            document_type=key.document_type,
            token_count=calculate_token_usage(chunks),
            word_count=sum(chunk.word_count for chunk in chunks),
            character_count=sum(chunk.character_count for chunk in chunks),
            document_count=len(documents) - len(failed),
            chunk_count=len(chunks),
            checksum=self.checksums.compute(documents),
            chunks=tuple(chunks),
            failed_documents=tuple(failed),
            build_timestamp=_utcnow(),
        )

    async def _build(self, key: BuildKey) -> CachedContext:
        documents = await self.list_documents(key.project, key.document_type)
        if not documents:
            raise NoDocumentsError(key.project, key.document_type)

        chunks, failed = await self.process_documents(documents)
        if len(failed) == len(documents):
            raise TransientBuildError(
                f"All {len(documents)} documents failed text extraction"
            )

        context = self.aggregate(key, documents, chunks, failed)
        await self.store.save_cached_context(
            key,
            context,
            {
                "failed_documents": [doc.model_dump() for doc in failed],
                "processed_at": context.build_timestamp.isoformat(),
            },
        )
        return context

    def check_overflow(
        self,
        documents: Sequence[Document],
        chunks: Sequence[ContextChunk],
        model_category: str,
    ) -> OverflowReport:
        """
        Check chunks against a model category's context budget.

        Settings are fetched fresh on every call.

        Raises:
            ConfigurationError: If the model category is unknown
        """
        return self.overflow.analyze(documents, chunks, model_category, self.settings_provider())

    def apply_document_selection(
        self, selected_document_ids: Iterable[str], chunks: Sequence[ContextChunk]
    ) -> List[ContextChunk]:
        return apply_document_selection(selected_document_ids, chunks)

    async def _current_chunks(
        self, project: str, document_type: str
    ) -> Tuple[List[Document], List[ContextChunk]]:
        documents = await self.list_documents(project, document_type)
        cached = await self.store.get_cached_context(BuildKey(project, document_type))
        if cached is not None and cached.checksum == self.checksums.compute(documents):
            return documents, list(cached.chunks)
        chunks, _ = await self.process_documents(documents)
        return documents, chunks

    async def check_context_overflow(
        self, project: str, document_type: str, model_category: str = "medium"
    ) -> OverflowReport:
        """List, chunk and analyze a key's documents in one call."""
        settings = self.settings_provider()
        allocate_token_budget(settings, model_category)

        documents, chunks = await self._current_chunks(project, document_type)
        logger.info(f"Checking context overflow for {project}/{document_type} ({model_category})")
        return self.overflow.analyze(documents, chunks, model_category, settings)

    async def select_documents(
        self,
        project: str,
        document_type: str,
        selected_document_ids: Iterable[str],
        model_category: str = "medium",
    ) -> DocumentSelection:
        """Apply a manual document selection and measure it against the budget."""
        selected_ids = list(selected_document_ids)
        budget = allocate_token_budget(self.settings_provider(), model_category)

        _, chunks = await self._current_chunks(project, document_type)
        selected = apply_document_selection(selected_ids, chunks)
        token_count = calculate_token_usage(selected)

        return DocumentSelection(
            selected_document_ids=selected_ids,
            chunks=selected,
            token_count=token_count,
            original_token_count=calculate_token_usage(chunks),
            max_context_tokens=budget.context_tokens,
            within_limit=budget.fits(token_count),
        )

    async def get_context_summary(self, project: str, document_type: str) -> ContextSummary:
        """Context size summary for UI rendering."""
        key = BuildKey(project, document_type)
        status = await self.store.get_build_status(key)

        if status.status == BuildStatus.COMPLETE:
            context = await self.store.get_cached_context(key)
            if context is not None:
                return ContextSummary(
                    status="ready",
                    token_count=context.token_count,
                    word_count=context.word_count,
                    document_count=context.document_count,
                    last_built=context.build_timestamp,
                )

        record = self.scheduler.get_record(key)
        if record.in_flight:
            return ContextSummary(status=BuildStatus.BUILDING.value, last_built=record.build_timestamp)

        return ContextSummary(
            status=status.status.value,
            error=status.error_message,
            last_built=status.build_timestamp,
        )

    def notify_documents_changed(self, project: str, document_type: str) -> BuildRecord:
        """Debounced rebuild trigger for uploads, edits and deletions."""
        return self.scheduler.request_build(BuildKey(project, document_type))

    async def build_now(self, project: str, document_type: str) -> BuildRecord:
        """Build immediately, joining a build already in flight."""
        return await self.scheduler.run_now(BuildKey(project, document_type))

    async def rebuild_context(self, project: str, document_type: str) -> ContextStatus:
        """Force rebuild: drop the cached context and schedule a fresh build."""
        key = BuildKey(project, document_type)
        self.scheduler.cancel_build(key)
        await self.store.delete(key)
        record = self.scheduler.request_build(key)
        logger.info(f"Force rebuild requested for {key}")
        return ContextStatus(status=BuildStatus.BUILDING, build_timestamp=record.requested_at)

    async def clear_context(self, project: str, document_type: str) -> None:
        """Cancel pending work and drop the cached context."""
        key = BuildKey(project, document_type)
        self.scheduler.cancel_build(key)
        await self.store.delete(key)
        await self.store.mark_failed(key, "Cache cleared by user")

    async def cleanup(self, older_than_hours: Optional[int] = None) -> int:
        hours = older_than_hours if older_than_hours is not None else self.assembly.cleanup_after_hours
        return await self.store.cleanup(hours)

    async def shutdown(self, wait: bool = True) -> None:
        await self.scheduler.shutdown(wait=wait)
