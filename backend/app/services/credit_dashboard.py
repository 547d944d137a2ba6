"""Credit team dashboard composition root.

Owns the dashboard's query client, starts the optional real-time services
when mounted, and tracks whether the page is rendering normally or showing
its error fallback.

Page states, tracked per viewer:
    normal  -> errored   content loader raised while rendering
    errored -> normal    user pressed retry (the fault may still be there)
"""

import asyncio
import enum
import importlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from app.services.query_client import QueryClient, QueryClientOptions

logger = logging.getLogger(__name__)

CREDIT_TEAM = "credit"
CREDIT_DASHBOARD_ROLES = ("credit",)

# name -> (module path, attribute); loaded on mount, skipped when missing
OPTIONAL_SERVICES: dict[str, tuple[str, str]] = {
    "updates": ("app.services.query_updates", "query_update_service"),
    "sync": ("app.services.query_sync", "query_sync_service"),
}

FALLBACK_ACTIONS = ["retry", "login"]


class PageState(str, enum.Enum):
    NORMAL = "normal"
    ERRORED = "errored"


def load_optional_service(module_path: str, attribute: str) -> Any | None:
    """Import ``module_path`` and return ``attribute``, or None if unavailable."""
    try:
        module = importlib.import_module(module_path)
        return getattr(module, attribute)
    except (ImportError, AttributeError) as e:
        logger.warning(f"Optional service {module_path}.{attribute} unavailable: {e}")
        return None


class CreditDashboardPage:
    """Dashboard page for one team.

    Background services are mounted once per process and shared. The
    normal/errored state is kept per viewer, so one user's failed render
    never puts another user into the fallback.

    Background services are best effort: a service that fails to load or
    start is logged and left off, and the page keeps rendering.
    """

    def __init__(
        self,
        query_client: QueryClient | None = None,
        *,
        team: str = CREDIT_TEAM,
        sync_interval_minutes: float = 1,
        include_devtools: bool = True,
        services: dict[str, tuple[str, str]] | None = None,
    ) -> None:
        self.query_client = query_client or QueryClient(QueryClientOptions())
        self.team = team
        self.sync_interval_minutes = sync_interval_minutes
        self.include_devtools = include_devtools
        self.services = OPTIONAL_SERVICES if services is None else services

        # viewer -> last render error; a viewer is errored while present here
        self._errors: dict[str, str] = {}
        self.services_started: dict[str, bool] = {name: False for name in self.services}
        self._sync: tuple[Any, Any] | None = None
        self._init_tasks: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def mount(self) -> None:
        """Start the real-time services. Never raises for a failing service."""
        update_module, update_attr = self.services.get("updates", ("", ""))
        update_service = load_optional_service(update_module, update_attr) if update_module else None
        if update_service is not None:
            # Fire and forget; the page does not wait for initialization
            task = asyncio.get_running_loop().create_task(self._initialize_updates(update_service))
            self._init_tasks.add(task)
            task.add_done_callback(self._init_tasks.discard)

        sync_module, sync_attr = self.services.get("sync", ("", ""))
        sync_service = load_optional_service(sync_module, sync_attr) if sync_module else None
        if sync_service is not None:
            try:
                handle = sync_service.start_auto_sync(self.team, self.sync_interval_minutes)
            except Exception as e:
                logger.warning(f"{self.team.title()} page: could not start auto-sync: {e}")
            else:
                self._sync = (sync_service, handle)
                self.services_started["sync"] = True
                logger.info(f"🔄 {self.team.title()} page: started auto-sync for {self.team} team")

    async def _initialize_updates(self, service: Any) -> None:
        try:
            await service.initialize()
        except Exception as e:
            logger.warning(f"{self.team.title()} page: query update service failed to initialize: {e}")
            return
        self.services_started["updates"] = True
        logger.info(f"🌐 {self.team.title()} page: initialized query update service")

    async def unmount(self) -> None:
        """Stop the auto-sync loop and any pending initialization, and wait for both."""
        pending = []
        if self._sync is not None:
            sync_service, handle = self._sync
            self._sync = None
            sync_service.stop_auto_sync(handle)
            pending.append(handle.task)
        for task in list(self._init_tasks):
            task.cancel()
            pending.append(task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._init_tasks.clear()
        self.services_started = {name: False for name in self.services}

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def state_for(self, viewer: str) -> PageState:
        return PageState.ERRORED if viewer in self._errors else PageState.NORMAL

    def last_error_for(self, viewer: str) -> str | None:
        return self._errors.get(viewer)

    def retry(self, viewer: str) -> PageState:
        """Leave the error fallback and render normally on the next request."""
        error = self._errors.pop(viewer, None)
        if error is not None:
            logger.info(f"{self.team.title()} page: retry requested by {viewer} after error: {error}")
        self.query_client.invalidate(("dashboard", self.team))
        return self.state_for(viewer)

    async def render(
        self,
        load_content: Callable[[], Awaitable[dict[str, Any]]],
        viewer: str,
    ) -> dict[str, Any]:
        """Build the page view for ``viewer``.

        While that viewer is errored the loader is not called; the fallback
        is returned until they ``retry()``.
        """
        content = None
        if self.state_for(viewer) is PageState.NORMAL:
            try:
                content = await self.query_client.fetch_query(
                    ("dashboard", self.team), load_content
                )
            except Exception as e:
                logger.exception(f"{self.team.title()} page: rendering failed for {viewer}")
                self._errors[viewer] = str(e) or e.__class__.__name__

        state = self.state_for(viewer)
        fallback = None
        if state is PageState.ERRORED:
            fallback = {
                "error": self._errors[viewer],
                "actions": list(FALLBACK_ACTIONS),
            }

        return {
            "state": state.value,
            "team": self.team,
            "content": content,
            "fallback": fallback,
            "query_client": self.query_client.options.to_dict(),
            "services": dict(self.services_started),
            "devtools": self.query_client.inspect() if self.include_devtools else None,
        }
