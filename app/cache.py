"""
Context cache for assembled project contexts.
Holds the latest successfully built context per (project, document_type).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, NamedTuple, Optional, Protocol

from shared.schemas import BuildStatus, CachedContext, ContextStatus

logger = logging.getLogger(__name__)


class BuildKey(NamedTuple):
    """Cache and scheduler key."""

    project: str
    document_type: str

    def __str__(self) -> str:
        return f"{self.project}:{self.document_type}"


class ContextStore(Protocol):
    """Storage collaborator for cached contexts and their build status."""

    async def get_cached_context(self, key: BuildKey) -> Optional[CachedContext]: ...

    async def save_cached_context(
        self, key: BuildKey, context: CachedContext, metadata: Optional[Dict] = None
    ) -> None: ...

    async def mark_building(self, key: BuildKey) -> None: ...

    async def mark_failed(self, key: BuildKey, reason: str) -> None: ...

    async def get_build_status(self, key: BuildKey) -> ContextStatus: ...

    async def delete(self, key: BuildKey) -> None: ...

    async def cleanup(self, older_than_hours: int = 24) -> int: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _StatusEntry:
    status: BuildStatus
    build_timestamp: datetime
    error_message: Optional[str] = None


class ContextCache:
    """
    In-memory context store.

    Contexts are immutable and replaced whole, so concurrent readers see
    either the previous context or the new one, never a partial write.
    Marking a key building or failed does not evict its last good context.

    Usage:
        cache = ContextCache()
        await cache.save_cached_context(key, context)
        context = await cache.get_cached_context(key)
    """

    def __init__(self):
        self._contexts: Dict[BuildKey, CachedContext] = {}
        self._metadata: Dict[BuildKey, Dict] = {}
        self._status: Dict[BuildKey, _StatusEntry] = {}

    async def get_cached_context(self, key: BuildKey) -> Optional[CachedContext]:
        """Get the latest complete context for a key."""
        context = self._contexts.get(key)
        if context is not None:
            logger.debug(f"Cache hit: {key}")
        return context

    async def save_cached_context(
        self,
        key: BuildKey,
        context: CachedContext,
        metadata: Optional[Dict] = None,
    ) -> None:
        """Atomically replace the context for a key."""
        self._contexts[key] = context
        self._metadata[key] = dict(metadata or {})
        self._status[key] = _StatusEntry(
            status=BuildStatus.COMPLETE, build_timestamp=context.build_timestamp
        )
        logger.info(
            f"Saved context cache for {key}: {context.token_count} tokens, "
            f"{context.document_count} documents"
        )

    async def mark_building(self, key: BuildKey) -> None:
        self._status[key] = _StatusEntry(status=BuildStatus.BUILDING, build_timestamp=_utcnow())
        logger.info(f"Marked context as building for {key}")

    async def mark_failed(self, key: BuildKey, reason: str) -> None:
        self._status[key] = _StatusEntry(
            status=BuildStatus.FAILED, build_timestamp=_utcnow(), error_message=reason
        )
        logger.error(f"Context build failed for {key}: {reason}")

    async def get_build_status(self, key: BuildKey) -> ContextStatus:
        entry = self._status.get(key)
        if entry is None:
            return ContextStatus(status=BuildStatus.IDLE)
        return ContextStatus(
            status=entry.status,
            build_timestamp=entry.build_timestamp,
            error_message=entry.error_message,
        )

    def get_metadata(self, key: BuildKey) -> Dict:
        return dict(self._metadata.get(key, {}))

    async def delete(self, key: BuildKey) -> None:
        """Delete a key's context and status."""
        self._contexts.pop(key, None)
        self._metadata.pop(key, None)
        self._status.pop(key, None)

    async def cleanup(self, older_than_hours: int = 24) -> int:
        """
        Drop failed or stuck building entries older than the threshold.

        Returns:
            Number of entries removed
        """
        cutoff = _utcnow() - timedelta(hours=older_than_hours)
        stale = [
            key
            for key, entry in self._status.items()
            if entry.status in (BuildStatus.FAILED, BuildStatus.BUILDING)
            and entry.build_timestamp < cutoff
        ]
        for key in stale:
            self._status.pop(key, None)

        if stale:
            logger.info(f"Cleaned up {len(stale)} old/failed context entries")
        return len(stale)

    def stats(self) -> dict:
        """Get cache statistics."""
        statuses = [entry.status for entry in self._status.values()]
        return {
            "total_contexts": len(self._contexts),
            "building": statuses.count(BuildStatus.BUILDING),
            "failed": statuses.count(BuildStatus.FAILED),
        }
