"""ChatStorageService against a real async engine (SQLite via aiosqlite).

The mocked-session tests check the statements we build; these check what
actually survives in the table after writes, failed writes and purges.

**Feature: chat-storage**
"""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.models.chat import ChatMessage
from app.services.chat_isolation import PROBE_QUERY_IDS, PROBE_SENDER_PATTERN, ChatIsolationProbe
from app.services.chat_records import ChatMessageRecord
from app.services.chat_storage import ChatStorageService

T0 = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


def make_record(query_id: str, sender: str = "Priya", offset: int = 0, **overrides) -> ChatMessageRecord:
    fields = {
        "query_id": query_id,
        "message": f"{sender} on {query_id} #{offset}",
        "sender": sender,
        "sender_role": "credit",
        "team": "credit",
        "timestamp": T0 + timedelta(seconds=offset),
    }
    fields.update(overrides)
    return ChatMessageRecord(**fields)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}")

    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; emit it ourselves.
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(ChatMessage.__table__.create)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


async def count_rows(session_maker) -> int:
    async with session_maker() as db:
        return (await db.execute(select(func.count(ChatMessage.id)))).scalar_one()


# =============================================================================
# Test failed writes
# =============================================================================


class TestFailedWrite:
    @pytest.mark.asyncio
    async def test_failed_insert_keeps_earlier_messages(self, session_maker):
        async with session_maker() as db:
            service = ChatStorageService(db)

            first = await service.store_chat_message(make_record("TEST_QUERY_1", "TestUser1"))
            # NOT NULL violation on sender
            second = await service.store_chat_message(make_record("TEST_QUERY_1", sender=None))
            await db.commit()

        assert first is True
        assert second is False
        assert await count_rows(session_maker) == 1

    @pytest.mark.asyncio
    async def test_session_stays_usable_after_failed_insert(self, session_maker):
        async with session_maker() as db:
            service = ChatStorageService(db)

            await service.store_chat_message(make_record("APP-1", sender=None))
            assert await service.store_chat_message(make_record("APP-1", offset=1)) is True
            messages = await service.get_chat_messages("APP-1")
            await db.commit()

        assert [m.sender for m in messages] == ["Priya"]
        assert await count_rows(session_maker) == 1


# =============================================================================
# Test purge
# =============================================================================


class TestDeleteMatchingOnEngine:
    @pytest.mark.asyncio
    async def test_removes_exactly_the_matching_set(self, session_maker):
        async with session_maker() as db:
            service = ChatStorageService(db)
            for record in [
                make_record("TEST_QUERY_1", "TestUser1"),
                make_record("TEST_QUERY_2", "Priya", offset=1),
                make_record("APP-7", "TestUser12", offset=2),
                make_record("APP-8", "Ravi", offset=3, original_query_id="TEST_QUERY_3"),
                make_record("APP-7", "Priya", offset=4),
                make_record("APP-9", "TestUser", offset=5),
                make_record("APP-9", "xTestUser1", offset=6),
            ]:
                assert await service.store_chat_message(record) is True
            await db.commit()

        async with session_maker() as db:
            deleted = await ChatStorageService(db).delete_matching(PROBE_QUERY_IDS, PROBE_SENDER_PATTERN)
            await db.commit()

        assert deleted == 4
        async with session_maker() as db:
            service = ChatStorageService(db)
            for query_id in PROBE_QUERY_IDS:
                assert await service.get_chat_messages(query_id) == []
            survivors = {
                query_id: [m.sender for m in await service.get_chat_messages(query_id)]
                for query_id in ("APP-7", "APP-8", "APP-9")
            }

        assert survivors == {"APP-7": ["Priya"], "APP-8": [], "APP-9": ["TestUser", "xTestUser1"]}

    @pytest.mark.asyncio
    async def test_isolation_run_then_cleanup_leaves_other_queries(self, session_maker):
        async with session_maker() as db:
            await ChatStorageService(db).store_chat_message(make_record("APP-42", "Priya"))
            await db.commit()

        async with session_maker() as db:
            probe = ChatIsolationProbe(ChatStorageService(db), read_interval=0)
            report = await probe.run()
            cleanup = await probe.cleanup()
            await db.commit()

        assert report.test_passed is True
        assert all(r.messages_retrieved == 3 for r in report.by_query.values())
        assert cleanup.database == 9
        async with session_maker() as db:
            remaining = await ChatStorageService(db).get_chat_messages("APP-42")
        assert [m.sender for m in remaining] == ["Priya"]
        assert await count_rows(session_maker) == 1
