"""Diagnostic endpoint schemas (chat isolation test, chat history debug)."""

from typing import Any

from pydantic import Field

from app.schemas.common import CamelSchema
from app.services.chat_isolation import CleanupResult, ProbeReport


class QueryIsolationResult(CamelSchema):
    """Per probe query id."""

    messages_sent: int
    messages_retrieved: int
    cross_contamination: bool
    errors: list[str] = Field(default_factory=list)


class OverallIsolationResult(CamelSchema):
    total_queries: int
    successful_queries: int
    isolation_violations: int
    total_errors: int


class FallbackStoreResult(CamelSchema):
    """In-memory fallback store check (``global`` on the wire)."""

    exists: bool
    message_count: int
    isolation_valid: bool
    errors: list[str] = Field(default_factory=list)


class IsolationSummary(CamelSchema):
    isolation_working: bool
    recommended_actions: list[str]


class IsolationResults(CamelSchema):
    overall: OverallIsolationResult
    by_query: dict[str, QueryIsolationResult]
    global_store: FallbackStoreResult = Field(alias="global")
    summary: IsolationSummary


class IsolationTestResponse(CamelSchema):
    success: bool = True
    test_passed: bool
    results: IsolationResults

    @classmethod
    def from_report(cls, report: ProbeReport) -> "IsolationTestResponse":
        overall = report.overall
        return cls(
            test_passed=report.test_passed,
            results=IsolationResults(
                overall=OverallIsolationResult(
                    total_queries=overall.total_queries,
                    successful_queries=overall.successful_queries,
                    isolation_violations=overall.isolation_violations,
                    total_errors=overall.total_errors,
                ),
                by_query={
                    query_id: QueryIsolationResult(
                        messages_sent=r.messages_sent,
                        messages_retrieved=r.messages_retrieved,
                        cross_contamination=r.cross_contamination,
                        errors=list(r.errors),
                    )
                    for query_id, r in report.by_query.items()
                },
                global_store=FallbackStoreResult(
                    exists=report.fallback.exists,
                    message_count=report.fallback.message_count,
                    isolation_valid=report.fallback.isolation_valid,
                    errors=list(report.fallback.errors),
                ),
                summary=IsolationSummary(
                    isolation_working=report.test_passed,
                    recommended_actions=report.recommended_actions,
                ),
            ),
        )


class IsolationTestError(CamelSchema):
    success: bool = False
    error: str
    test_passed: bool = False


class CleanupCounts(CamelSchema):
    database: int
    global_store: int = Field(alias="global")
    total: int


class CleanupResponse(CamelSchema):
    success: bool = True
    cleaned: CleanupCounts

    @classmethod
    def from_result(cls, result: CleanupResult) -> "CleanupResponse":
        return cls(
            cleaned=CleanupCounts(
                database=result.database,
                global_store=result.fallback,
                total=result.total,
            )
        )


class ChatHistoryCounts(CamelSchema):
    direct: int
    chat_service: int


class ChatHistoryDebugInfo(CamelSchema):
    query_id_type: str
    query_id_length: int
    search_variations: list[str]


class ChatHistoryDebugResponse(CamelSchema):
    success: bool = True
    query_id: str
    direct_messages: list[dict[str, Any]]
    chat_service_messages: list[dict[str, Any]]
    counts: ChatHistoryCounts
    debug: ChatHistoryDebugInfo
