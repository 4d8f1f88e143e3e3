"""Tests for SQLRecordStore on in-memory SQLite."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from matchday.models import Article
from matchday.store import RecordFilter, SQLRecordStore, StoreError

BASE = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def article(title: str, days: int, source: str = "VnExpress", content: str = "match report") -> Article:
    return Article(
        original_title=title,
        original_link=f"https://example.vn/{days}",
        source=source,
        title=title,
        description=f"{title} summary",
        content=content,
        created_at=BASE + timedelta(days=days),
    )


@pytest_asyncio.fixture
async def store(session_factory):
    store = SQLRecordStore(Article, session_factory)
    await store.insert(article("Arsenal win derby", 0))
    await store.insert(article("Haaland hat-trick", 1, source="Bóng Đá Plus", content="City analysis"))
    await store.insert(article("El Clasico preview", 2, content="Real vs Barca tactics"))
    return store


class TestSQLRecordStore:
    @pytest.mark.asyncio
    async def test_insert_assigns_id(self, session_factory):
        store = SQLRecordStore(Article, session_factory)
        saved = await store.insert(article("New", 0))
        assert saved.id is not None

    @pytest.mark.asyncio
    async def test_find_sorted_newest_first(self, store):
        titles = [a.title for a in await store.find()]
        assert titles == ["El Clasico preview", "Haaland hat-trick", "Arsenal win derby"]

    @pytest.mark.asyncio
    async def test_find_ascending_with_limit_and_offset(self, store):
        found = await store.find(sort="created_at", limit=1, offset=1)
        assert [a.title for a in found] == ["Haaland hat-trick"]

    @pytest.mark.asyncio
    async def test_equality_filter(self, store):
        found = await store.find(RecordFilter(equals={"source": "Bóng Đá Plus"}))
        assert [a.title for a in found] == ["Haaland hat-trick"]

    @pytest.mark.asyncio
    async def test_created_range(self, store):
        assert await store.count(RecordFilter(created_after=BASE + timedelta(days=1))) == 2
        assert await store.count(RecordFilter(created_before=BASE + timedelta(days=1))) == 1

    @pytest.mark.asyncio
    async def test_text_search_is_case_insensitive(self, store):
        found = await store.find(RecordFilter(text="tactics"))
        assert [a.title for a in found] == ["El Clasico preview"]
        assert await store.count(RecordFilter(text="HAALAND")) == 1

    @pytest.mark.asyncio
    async def test_delete_many(self, store):
        result = await store.delete_many(RecordFilter(created_before=BASE + timedelta(days=2)))
        assert result.deleted_count == 2
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_unknown_field_raises(self, store):
        with pytest.raises(StoreError):
            await store.find(RecordFilter(equals={"nope": 1}))

    @pytest.mark.asyncio
    async def test_database_error_becomes_store_error(self, store, engine):
        async with engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE articles")

        with pytest.raises(StoreError):
            await store.count()


class TestTimestamps:
    @pytest.mark.asyncio
    async def test_created_at_defaults_to_aware_utc(self, session_factory):
        store = SQLRecordStore(Article, session_factory)
        await store.insert(
            Article(original_title="t", source="VnExpress", title="t", description="d", content="c")
        )

        saved = (await store.find())[0]

        assert saved.created_at.tzinfo is not None
        assert saved.created_at.utcoffset() == timedelta(0)

    @pytest.mark.asyncio
    async def test_offsets_are_normalized_to_utc(self, store):
        hanoi = timezone(timedelta(hours=7))
        # 19:00+07:00 on day 1 is 12:00 UTC, the created_at of "Haaland hat-trick"
        after = datetime(2025, 3, 2, 19, 0, tzinfo=hanoi)

        assert await store.count(RecordFilter(created_after=after)) == 2
        found = await store.find(RecordFilter(created_after=after), sort="created_at", limit=1)
        assert found[0].created_at == BASE + timedelta(days=1)
