"""Tests for the in-memory context store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.cache import BuildKey, ContextCache
from shared.schemas import BuildStatus, CachedContext

KEY = BuildKey("Acme", "solicitations")


def make_context(checksum: str = "abc", tokens: int = 10) -> CachedContext:
    return CachedContext(
        project=KEY.project,
        document_type=KEY.document_type,
        token_count=tokens,
        word_count=5,
        character_count=tokens * 4,
        document_count=1,
        chunk_count=1,
        checksum=checksum,
        build_timestamp=datetime.now(timezone.utc),
    )


@pytest.fixture
def cache():
    return ContextCache()


class TestBuildKey:
    def test_str(self):
        assert str(KEY) == "Acme:solicitations"

    def test_hashable(self):
        assert {KEY: 1}[BuildKey("Acme", "solicitations")] == 1


class TestContextCache:
    @pytest.mark.asyncio
    async def test_miss_returns_none(self, cache):
        assert await cache.get_cached_context(KEY) is None
        status = await cache.get_build_status(KEY)
        assert status.status == BuildStatus.IDLE

    @pytest.mark.asyncio
    async def test_save_and_get(self, cache):
        context = make_context()
        await cache.save_cached_context(KEY, context, {"failed_documents": []})

        assert await cache.get_cached_context(KEY) is context
        assert (await cache.get_build_status(KEY)).status == BuildStatus.COMPLETE
        assert cache.get_metadata(KEY) == {"failed_documents": []}

    @pytest.mark.asyncio
    async def test_building_keeps_previous_context(self, cache):
        context = make_context()
        await cache.save_cached_context(KEY, context)
        await cache.mark_building(KEY)

        assert await cache.get_cached_context(KEY) is context
        assert (await cache.get_build_status(KEY)).status == BuildStatus.BUILDING

    @pytest.mark.asyncio
    async def test_replace_is_whole(self, cache):
        await cache.save_cached_context(KEY, make_context("old"))
        new = make_context("new", tokens=20)
        await cache.save_cached_context(KEY, new)

        assert await cache.get_cached_context(KEY) is new

    @pytest.mark.asyncio
    async def test_mark_failed(self, cache):
        await cache.mark_failed(KEY, "No documents found")
        status = await cache.get_build_status(KEY)
        assert status.status == BuildStatus.FAILED
        assert status.error_message == "No documents found"

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        await cache.save_cached_context(KEY, make_context())
        await cache.delete(KEY)
        assert await cache.get_cached_context(KEY) is None

    @pytest.mark.asyncio
    async def test_cleanup_drops_old_failed_entries(self, cache):
        other = BuildKey("Acme", "references")
        await cache.mark_failed(KEY, "boom")
        await cache.mark_failed(other, "boom")
        cache._status[KEY].build_timestamp -= timedelta(hours=30)

        removed = await cache.cleanup(24)

        assert removed == 1
        assert (await cache.get_build_status(KEY)).status == BuildStatus.IDLE
        assert (await cache.get_build_status(other)).status == BuildStatus.FAILED

    @pytest.mark.asyncio
    async def test_stats(self, cache):
        await cache.save_cached_context(KEY, make_context())
        await cache.mark_failed(BuildKey("Other", "media"), "boom")
        assert cache.stats() == {"total_contexts": 1, "building": 0, "failed": 1}

    def test_context_is_immutable(self):
        context = make_context()
        with pytest.raises(Exception):
            context.token_count = 99
