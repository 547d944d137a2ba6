"""Credit dashboard schemas."""

from datetime import datetime
from typing import Any

from app.schemas.common import CamelSchema


class TeamActivityContent(CamelSchema):
    """Dashboard body: chat activity counters for the team."""

    team: str
    total_messages: int
    active_queries: int
    last_message_at: datetime | None = None


class DashboardFallback(CamelSchema):
    """Shown instead of content after a rendering error."""

    error: str
    actions: list[str]


class QueryClientConfig(CamelSchema):
    stale_time: float
    refetch_on_window_focus: bool
    refetch_on_mount: bool
    query_retries: int
    max_retry_delay: float
    mutation_retries: int


class DashboardView(CamelSchema):
    """Rendered credit dashboard page."""

    state: str
    team: str
    content: TeamActivityContent | None = None
    fallback: DashboardFallback | None = None
    query_client: QueryClientConfig
    services: dict[str, bool]
    devtools: list[dict[str, Any]] | None = None


class DashboardRetryResponse(CamelSchema):
    state: str
