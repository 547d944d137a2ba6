"""Data-fetching client for dashboard content.

Caches the last result per query key and decides when to refetch and how to
retry. Dashboards use it with ``stale_time=0`` so every read goes back to the
source.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import asdict, dataclass
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

QueryKey = tuple[Hashable, ...]


@dataclass(frozen=True)
class QueryClientOptions:
    """Defaults applied to every query and mutation."""

    stale_time: float = 0.0  # seconds; 0 means data is stale as soon as it lands
    refetch_on_window_focus: bool = True
    refetch_on_mount: bool = True
    query_retries: int = 3
    max_retry_delay: float = 30.0
    mutation_retries: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def error_status(error: BaseException) -> int | None:
    """HTTP status carried by an error, if any.

    Understands ``HTTPException.status_code`` and
    ``httpx.HTTPStatusError.response.status_code``.
    """
    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def is_client_error(error: BaseException) -> bool:
    status = error_status(error)
    return status is not None and 400 <= status < 500


def should_retry_query(failure_count: int, error: BaseException, max_retries: int = 3) -> bool:
    """Retry decision after ``failure_count`` failed attempts (1-based).

    4xx failures are never retried; repeating a bad request or a missing
    permission gives the same answer.
    """
    if is_client_error(error):
        return False
    return failure_count <= max_retries


def retry_delay(failure_index: int, max_delay: float = 30.0) -> float:
    """Seconds to wait before retry number ``failure_index`` (0-based)."""
    return min(2.0**failure_index, max_delay)


@dataclass
class QueryState:
    """Cache entry for one query key."""

    key: QueryKey
    status: str = "idle"
    data: Any = None
    error: str | None = None
    data_updated_at: float | None = None
    fetch_count: int = 0
    failure_count: int = 0


class QueryClient:
    """Per-key query cache with a retry policy."""

    def __init__(
        self,
        options: QueryClientOptions | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.options = options or QueryClientOptions()
        self._sleep = sleep
        self._clock = clock
        self._queries: dict[QueryKey, QueryState] = {}

    def _state(self, key: QueryKey) -> QueryState:
        if key not in self._queries:
            self._queries[key] = QueryState(key=key)
        return self._queries[key]

    def is_stale(self, key: QueryKey) -> bool:
        state = self._queries.get(key)
        if state is None or state.data_updated_at is None:
            return True
        return self._clock() - state.data_updated_at >= self.options.stale_time

    def get_query_data(self, key: QueryKey) -> Any:
        state = self._queries.get(key)
        return state.data if state is not None else None

    def invalidate(self, key: QueryKey | None = None) -> None:
        """Mark one key (or all keys) stale."""
        if key is None:
            targets = list(self._queries.values())
        else:
            targets = [self._queries[key]] if key in self._queries else []
        for state in targets:
            state.data_updated_at = None

    async def fetch_query(self, key: QueryKey, fn: Callable[[], Awaitable[T]]) -> T:
        """Return cached data when fresh, otherwise fetch with retries.

        Raises the last error once retries are exhausted or a 4xx error is
        seen. The previous data stays cached on failure.
        """
        state = self._state(key)
        if not self.is_stale(key):
            return state.data

        options = self.options
        state.failure_count = 0

        def _should_retry(error: BaseException) -> bool:
            state.failure_count += 1
            retry = should_retry_query(state.failure_count, error, options.query_retries)
            if retry:
                logger.debug(f"Query {key} failed ({error}), retry {state.failure_count}/{options.query_retries}")
            return retry

        def _wait(retry_state: RetryCallState) -> float:
            return retry_delay(retry_state.attempt_number - 1, options.max_retry_delay)

        retrying = AsyncRetrying(
            retry=retry_if_exception(_should_retry),
            stop=stop_after_attempt(options.query_retries + 1),
            wait=_wait,
            sleep=self._sleep,
            reraise=True,
        )

        state.fetch_count += 1
        try:
            data = await retrying(fn)
        except Exception as e:
            state.status = "error"
            state.error = str(e) or e.__class__.__name__
            logger.warning(f"Query {key} failed after {state.failure_count} attempt(s): {e}")
            raise

        state.status = "success"
        state.data = data
        state.error = None
        state.data_updated_at = self._clock()
        return data

    async def mutate(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run a mutation. Mutations are not retried unless configured."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.options.mutation_retries + 1),
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(fn, *args, **kwargs)

    def inspect(self) -> list[dict[str, Any]]:
        """Snapshot of cached queries for the dev inspection panel."""
        snapshot = []
        for state in self._queries.values():
            snapshot.append(
                {
                    "key": list(state.key),
                    "status": state.status,
                    "isStale": self.is_stale(state.key),
                    "fetchCount": state.fetch_count,
                    "failureCount": state.failure_count,
                    "error": state.error,
                }
            )
        return snapshot
