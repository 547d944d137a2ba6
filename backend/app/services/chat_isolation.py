"""Chat isolation probe.

Writes synthetic chat messages under a fixed set of probe query ids, reads
them back and checks that no message shows up under an id it was not written
for. A cleanup pass deletes every synthetic record again.

The probe only observes isolation; it never repairs data. Records it writes
stay in storage until ``cleanup()`` runs.
"""

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from app.models.chat import ChatActionType
from app.services.chat_records import ChatMessageRecord, MessageStore, matches_purge
from app.services.fallback_store import InMemoryMessageStore

logger = logging.getLogger(__name__)

PROBE_QUERY_IDS: tuple[str, ...] = ("TEST_QUERY_1", "TEST_QUERY_2", "TEST_QUERY_3")
MESSAGES_PER_QUERY = 3
PROBE_SENDER_PATTERN = re.compile(r"^TestUser\d+$")
PROBE_SENDER_ROLE = "tester"
PROBE_TEAM = "testing"

PASSED_ACTIONS = ["Chat isolation is working correctly"]
FAILED_ACTIONS = [
    "Run scripts/clean_chat_storage.py to repair query isolation",
    "Check database indexes",
    "Review chat storage implementation",
]


# =============================================================================
# Result types
# =============================================================================


@dataclass
class QueryProbeResult:
    """Outcome for one probe query id."""

    messages_sent: int = 0
    messages_retrieved: int = 0
    cross_contamination: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return (
            self.messages_sent == self.messages_retrieved
            and not self.cross_contamination
            and not self.errors
        )

    def flag(self, error: str) -> None:
        self.cross_contamination = True
        self.errors.append(error)


@dataclass
class FallbackStoreCheck:
    """Outcome of inspecting the in-memory fallback store."""

    exists: bool = False
    message_count: int = 0
    isolation_valid: bool = True
    errors: list[str] = field(default_factory=list)


@dataclass
class OverallResults:
    total_queries: int
    successful_queries: int
    isolation_violations: int
    total_errors: int


@dataclass
class ProbeReport:
    """Everything one probe run found."""

    by_query: dict[str, QueryProbeResult]
    fallback: FallbackStoreCheck

    @property
    def overall(self) -> OverallResults:
        results = list(self.by_query.values())
        return OverallResults(
            total_queries=len(results),
            successful_queries=sum(1 for r in results if r.succeeded),
            isolation_violations=sum(1 for r in results if r.cross_contamination),
            total_errors=sum(len(r.errors) for r in results),
        )

    @property
    def test_passed(self) -> bool:
        overall = self.overall
        return (
            overall.successful_queries == overall.total_queries
            and overall.isolation_violations == 0
            and self.fallback.isolation_valid
        )

    @property
    def recommended_actions(self) -> list[str]:
        return list(PASSED_ACTIONS if self.test_passed else FAILED_ACTIONS)


@dataclass
class CleanupResult:
    database: int
    fallback: int

    @property
    def total(self) -> int:
        return self.database + self.fallback


# =============================================================================
# Probe
# =============================================================================


class ChatIsolationProbe:
    """Seed, read back and cross-check synthetic messages per probe query id."""

    def __init__(
        self,
        store: MessageStore,
        fallback: InMemoryMessageStore | None = None,
        *,
        query_ids: Sequence[str] = PROBE_QUERY_IDS,
        messages_per_query: int = MESSAGES_PER_QUERY,
        read_attempts: int = 5,
        read_interval: float = 0.1,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.store = store
        self.fallback = fallback
        self.query_ids = tuple(query_ids)
        self.messages_per_query = messages_per_query
        self.read_attempts = read_attempts
        self.read_interval = read_interval
        self.clock = clock

    def build_message(self, query_id: str, index: int) -> ChatMessageRecord:
        """Synthetic message ``index`` (1-based) for ``query_id``."""
        text = f"Test message {index} for query {query_id}"
        return ChatMessageRecord(
            query_id=query_id,
            message=text,
            response_text=text,
            sender=f"TestUser{index}",
            sender_role=PROBE_SENDER_ROLE,
            team=PROBE_TEAM,
            # Stagger timestamps so read-back order matches write order
            timestamp=self.clock() + timedelta(seconds=index),
            is_system_message=False,
            action_type=ChatActionType.MESSAGE.value,
        )

    async def run(self) -> ProbeReport:
        """Run all three passes and return the report.

        Failures inside one query's seed/read-back are recorded on that query.
        Failures in the cross-check pass propagate to the caller.
        """
        logger.info("🧪 Starting chat isolation test...")

        by_query: dict[str, QueryProbeResult] = {}
        for query_id in self.query_ids:
            by_query[query_id] = await self._probe_query(query_id)

        await self._cross_check(by_query)
        fallback_check = self._check_fallback_store()

        report = ProbeReport(by_query=by_query, fallback=fallback_check)
        logger.info(f"🧪 Chat isolation test {'PASSED' if report.test_passed else 'FAILED'}")
        return report

    async def _probe_query(self, query_id: str) -> QueryProbeResult:
        result = QueryProbeResult()
        try:
            for index in range(1, self.messages_per_query + 1):
                if await self.store.store_chat_message(self.build_message(query_id, index)):
                    result.messages_sent += 1

            retrieved = await self._read_back(query_id, result.messages_sent)
            result.messages_retrieved = len(retrieved)

            for message in retrieved:
                if not message.belongs_to(query_id):
                    other = message.query_id or message.original_query_id
                    result.flag(f"Message from query {other} found in query {query_id}")
        except Exception as e:
            logger.warning(f"Isolation probe failed for query {query_id}: {e}")
            result.errors.append(str(e))
        return result

    async def _read_back(self, query_id: str, expected: int) -> list[ChatMessageRecord]:
        """Read a query's messages, polling until ``expected`` are visible.

        Gives up after ``read_attempts`` reads and returns whatever the last
        read saw, so a shortfall shows up as a sent/retrieved mismatch.
        """

        def last_result(state: RetryCallState) -> list[ChatMessageRecord]:
            return state.outcome.result()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.read_attempts),
            wait=wait_fixed(self.read_interval),
            retry=retry_if_result(lambda messages: len(messages) < expected),
            retry_error_callback=last_result,
        )
        return await retrying(self.store.get_chat_messages, query_id)

    async def _cross_check(self, by_query: dict[str, QueryProbeResult]) -> None:
        """Flag any (message, sender) pair visible under two probe ids.

        Catches leaks even when the id fields on the leaked copy were rewritten.
        """
        for query_id in self.query_ids:
            messages = await self.store.get_chat_messages(query_id)
            for other_id in self.query_ids:
                if other_id == query_id:
                    continue
                other_messages = await self.store.get_chat_messages(other_id)
                other_keys = {(m.message, m.sender) for m in other_messages}
                for message in messages:
                    if (message.message, message.sender) in other_keys:
                        by_query[query_id].flag(f"Message leaked to query {other_id}")

    def _check_fallback_store(self) -> FallbackStoreCheck:
        check = FallbackStoreCheck()
        if self.fallback is None or not self.fallback.is_open:
            return check

        check.exists = True
        check.message_count = len(self.fallback)

        probe_ids = set(self.query_ids)
        candidates = [m for m in self.fallback.messages if m.query_id in probe_ids]
        # Candidates are already restricted to probe ids, so this never fires.
        # Kept so the report shape matches the legacy global-store check.
        for message in candidates:
            if message.query_id not in probe_ids:
                check.isolation_valid = False
                check.errors.append(f"Invalid queryId {message.query_id} found in global database")
        return check

    async def cleanup(self) -> CleanupResult:
        """Delete every synthetic record from the primary and fallback stores."""
        logger.info("🧹 Cleaning up chat isolation test data...")
        database = await self.store.delete_matching(self.query_ids, PROBE_SENDER_PATTERN)

        fallback = 0
        if self.fallback is not None and self.fallback.is_open:
            probe_ids = frozenset(self.query_ids)
            fallback = self.fallback.remove_where(
                lambda m: matches_purge(m, probe_ids, PROBE_SENDER_PATTERN)
            )

        result = CleanupResult(database=database, fallback=fallback)
        logger.info(f"✅ Chat isolation test cleanup completed ({result.total} records)")
        return result
