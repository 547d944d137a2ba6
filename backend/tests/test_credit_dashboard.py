"""Tests for the credit dashboard page and its endpoints.

**Feature: credit-dashboard**
"""

import asyncio
import uuid
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.deps import get_current_user
from app.core.database import get_db
from app.services.chat_storage import TeamActivity
from app.services.credit_dashboard import (
    CREDIT_DASHBOARD_ROLES,
    FALLBACK_ACTIONS,
    CreditDashboardPage,
    PageState,
    load_optional_service,
)
from app.services.query_client import QueryClient, QueryClientOptions
from app.services.query_sync import QuerySyncService
from main import app


def make_page(**kwargs) -> CreditDashboardPage:
    kwargs.setdefault("services", {})
    client = QueryClient(QueryClientOptions(), sleep=AsyncMock())
    return CreditDashboardPage(client, **kwargs)


def make_services() -> tuple[MagicMock, MagicMock, SimpleNamespace]:
    """Update and sync service doubles; call from a running event loop."""
    update_service = MagicMock()
    update_service.initialize = AsyncMock()
    handle = SimpleNamespace(team="credit", task=asyncio.get_running_loop().create_future())
    sync_service = MagicMock()
    sync_service.start_auto_sync.return_value = handle
    sync_service.stop_auto_sync.side_effect = lambda h: h.task.cancel()
    return update_service, sync_service, handle


VIEWER = "EMP-0042"


async def settle() -> None:
    """Let fire-and-forget tasks created during mount run."""
    for _ in range(3):
        await asyncio.sleep(0)


# =============================================================================
# Test Optional Service Loading
# =============================================================================


class TestLoadOptionalService:
    def test_loads_existing_attribute(self):
        from app.services.query_sync import query_sync_service

        assert load_optional_service("app.services.query_sync", "query_sync_service") is query_sync_service

    def test_missing_module_returns_none(self):
        assert load_optional_service("app.services.no_such_module", "service") is None

    def test_missing_attribute_returns_none(self):
        assert load_optional_service("app.services.query_sync", "no_such_service") is None

    def test_roles(self):
        assert CREDIT_DASHBOARD_ROLES == ("credit",)


# =============================================================================
# Test Mount / Unmount
# =============================================================================


class TestPageLifecycle:
    """Test starting and stopping the real-time services."""

    @pytest.mark.asyncio
    async def test_mount_starts_both_services(self):
        update_service, sync_service, handle = make_services()
        page = make_page(services=None)

        with patch(
            "app.services.credit_dashboard.load_optional_service",
            side_effect=[update_service, sync_service],
        ):
            await page.mount()
        await settle()

        update_service.initialize.assert_awaited_once()
        sync_service.start_auto_sync.assert_called_once_with("credit", 1)
        assert page.services_started == {"updates": True, "sync": True}

        await page.unmount()

        sync_service.stop_auto_sync.assert_called_once_with(handle)
        assert handle.task.cancelled()
        assert page.services_started == {"updates": False, "sync": False}

    @pytest.mark.asyncio
    async def test_custom_sync_interval(self):
        _, sync_service, _ = make_services()
        page = make_page(services=None, sync_interval_minutes=5)

        with patch(
            "app.services.credit_dashboard.load_optional_service",
            side_effect=[None, sync_service],
        ):
            await page.mount()

        sync_service.start_auto_sync.assert_called_once_with("credit", 5)
        await page.unmount()

    @pytest.mark.asyncio
    async def test_missing_services_do_not_block_mount(self):
        page = make_page(
            services={
                "updates": ("app.services.no_such_module", "query_update_service"),
                "sync": ("app.services.query_sync", "no_such_service"),
            }
        )

        await page.mount()
        await settle()

        assert page.services_started == {"updates": False, "sync": False}
        view = await page.render(AsyncMock(return_value={"team": "credit"}), VIEWER)
        assert view["state"] == "normal"
        await page.unmount()

    @pytest.mark.asyncio
    async def test_failing_initialize_is_logged_not_raised(self):
        update_service, sync_service, _ = make_services()
        update_service.initialize.side_effect = ConnectionError("redis down")
        page = make_page(services=None)

        with patch(
            "app.services.credit_dashboard.load_optional_service",
            side_effect=[update_service, sync_service],
        ):
            await page.mount()
        await settle()

        assert page.services_started == {"updates": False, "sync": True}
        await page.unmount()

    @pytest.mark.asyncio
    async def test_failing_auto_sync_start_is_logged_not_raised(self):
        update_service, sync_service, handle = make_services()
        sync_service.start_auto_sync.side_effect = RuntimeError("no loop")
        page = make_page(services=None)

        with patch(
            "app.services.credit_dashboard.load_optional_service",
            side_effect=[update_service, sync_service],
        ):
            await page.mount()
        await settle()

        assert page.services_started["sync"] is False
        await page.unmount()
        sync_service.stop_auto_sync.assert_not_called()

    @pytest.mark.asyncio
    async def test_unmount_cancels_pending_initialization(self):
        started = asyncio.Event()

        async def slow_initialize():
            started.set()
            await asyncio.sleep(3600)

        update_service = MagicMock()
        update_service.initialize = slow_initialize
        page = make_page(services=None)

        with patch(
            "app.services.credit_dashboard.load_optional_service",
            side_effect=[update_service, None],
        ):
            await page.mount()
        await started.wait()

        await page.unmount()

        assert page.services_started["updates"] is False
        assert not page._init_tasks

    @pytest.mark.asyncio
    async def test_unmount_stops_sync_through_the_service(self):
        sync_service = QuerySyncService()
        page = make_page(services=None)

        with (
            patch.object(sync_service, "sync_team", AsyncMock()),
            patch(
                "app.services.credit_dashboard.load_optional_service",
                side_effect=[None, sync_service],
            ),
        ):
            await page.mount()
            handle = sync_service._handles["credit"]
            await settle()

            await page.unmount()

        assert handle.task.done()
        assert sync_service._handles == {}


# =============================================================================
# Test Rendering and Error Fallback
# =============================================================================


class TestPageRendering:
    """Test the normal/errored page states."""

    @pytest.mark.asyncio
    async def test_normal_render(self):
        page = make_page()
        content = {"team": "credit", "total_messages": 3, "active_queries": 1, "last_message_at": None}

        view = await page.render(AsyncMock(return_value=content), VIEWER)

        assert view["state"] == "normal"
        assert view["team"] == "credit"
        assert view["content"] == content
        assert view["fallback"] is None
        assert view["query_client"]["stale_time"] == 0
        assert view["query_client"]["query_retries"] == 3
        assert view["devtools"][0]["key"] == ["dashboard", "credit"]

    @pytest.mark.asyncio
    async def test_devtools_hidden_when_disabled(self):
        page = make_page(include_devtools=False)

        view = await page.render(AsyncMock(return_value={}), VIEWER)

        assert view["devtools"] is None

    @pytest.mark.asyncio
    async def test_loader_error_switches_to_fallback(self):
        page = make_page()

        view = await page.render(AsyncMock(side_effect=RuntimeError("db timeout")), VIEWER)

        assert page.state_for(VIEWER) is PageState.ERRORED
        assert view["state"] == "errored"
        assert view["content"] is None
        assert view["fallback"] == {"error": "db timeout", "actions": FALLBACK_ACTIONS}

    @pytest.mark.asyncio
    async def test_errored_page_does_not_reload(self):
        page = make_page()
        await page.render(AsyncMock(side_effect=RuntimeError("db timeout")), VIEWER)
        loader = AsyncMock(return_value={})

        view = await page.render(loader, VIEWER)

        loader.assert_not_awaited()
        assert view["state"] == "errored"

    @pytest.mark.asyncio
    async def test_retry_returns_to_normal(self):
        page = make_page()
        await page.render(AsyncMock(side_effect=RuntimeError("db timeout")), VIEWER)

        assert page.retry(VIEWER) is PageState.NORMAL
        view = await page.render(AsyncMock(return_value={"ok": True}), VIEWER)

        assert view["state"] == "normal"
        assert view["content"] == {"ok": True}
        assert page.last_error_for(VIEWER) is None

    @pytest.mark.asyncio
    async def test_retry_with_persisting_fault_errors_again(self):
        page = make_page()
        failing = AsyncMock(side_effect=RuntimeError("still down"))
        await page.render(failing, VIEWER)

        page.retry(VIEWER)
        view = await page.render(failing, VIEWER)

        assert view["state"] == "errored"
        assert view["fallback"]["error"] == "still down"

    @pytest.mark.asyncio
    async def test_error_without_message_uses_class_name(self):
        page = make_page()

        view = await page.render(AsyncMock(side_effect=TimeoutError()), VIEWER)

        assert view["fallback"]["error"] == "TimeoutError"

    @pytest.mark.asyncio
    async def test_viewers_have_separate_states(self):
        page = make_page()
        await page.render(AsyncMock(side_effect=RuntimeError("db timeout")), "EMP-0001")

        view = await page.render(AsyncMock(return_value={"ok": True}), "EMP-0002")

        assert view["state"] == "normal"
        assert view["content"] == {"ok": True}
        assert page.state_for("EMP-0001") is PageState.ERRORED
        assert page.last_error_for("EMP-0001") == "db timeout"

    @pytest.mark.asyncio
    async def test_retry_only_clears_own_fallback(self):
        page = make_page()
        failing = AsyncMock(side_effect=RuntimeError("db timeout"))
        await page.render(failing, "EMP-0001")
        await page.render(failing, "EMP-0002")

        page.retry("EMP-0002")

        assert page.state_for("EMP-0001") is PageState.ERRORED
        assert page.state_for("EMP-0002") is PageState.NORMAL


# =============================================================================
# Test Dashboard Endpoints
# =============================================================================


def as_user(role: str | None):
    user = SimpleNamespace(
        id=uuid.uuid4(),
        employee_id="EMP-0042",
        full_name="Priya Raman",
        role=role,
        is_active=True,
    )
    app.dependency_overrides[get_current_user] = lambda: user
    return user


@pytest.fixture
def mounted_page():
    page = make_page()
    app.state.credit_dashboard = page

    async def _get_db():
        yield AsyncMock()

    app.dependency_overrides[get_db] = _get_db
    yield page
    app.dependency_overrides.clear()
    app.state.credit_dashboard = None


class TestDashboardEndpoints:
    """Test role gating and rendering over HTTP."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", ["sales", "operations", "admin", None])
    async def test_other_roles_are_forbidden(self, mounted_page, role):
        as_user(role)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/v1/credit-dashboard")

        assert response.status_code == 403
        assert response.json() == {"detail": "Insufficient permissions"}

    @pytest.mark.asyncio
    async def test_credit_user_sees_team_activity(self, mounted_page):
        as_user("credit")
        last = datetime(2026, 4, 2, 15, 0, tzinfo=UTC)

        with patch("app.api.v1.credit_dashboard.ChatStorageService") as service_cls:
            service_cls.return_value.team_activity = AsyncMock(
                return_value=TeamActivity(team="credit", total_messages=8, active_queries=3, last_message_at=last)
            )
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                response = await client.get("/v1/credit-dashboard")

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "normal"
        assert body["team"] == "credit"
        assert body["content"]["totalMessages"] == 8
        assert body["content"]["activeQueries"] == 3
        assert body["fallback"] is None
        assert body["queryClient"]["staleTime"] == 0
        assert body["queryClient"]["refetchOnWindowFocus"] is True
        assert body["services"] == {}

    @pytest.mark.asyncio
    async def test_error_fallback_then_retry(self, mounted_page):
        user = as_user("credit")

        with patch("app.api.v1.credit_dashboard.ChatStorageService") as service_cls:
            service_cls.return_value.team_activity = AsyncMock(side_effect=RuntimeError("db timeout"))
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                errored = await client.get("/v1/credit-dashboard")
                retried = await client.post("/v1/credit-dashboard/retry")

        assert errored.status_code == 200
        assert errored.json()["state"] == "errored"
        assert errored.json()["fallback"] == {"error": "db timeout", "actions": ["retry", "login"]}
        assert retried.json() == {"state": "normal"}
        assert mounted_page.state_for(str(user.id)) is PageState.NORMAL

    @pytest.mark.asyncio
    async def test_one_users_failure_does_not_error_another(self, mounted_page):
        failing_user = as_user("credit")
        with patch("app.api.v1.credit_dashboard.ChatStorageService") as service_cls:
            service_cls.return_value.team_activity = AsyncMock(side_effect=RuntimeError("db timeout"))
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                errored = await client.get("/v1/credit-dashboard")

        other_user = as_user("credit")
        with patch("app.api.v1.credit_dashboard.ChatStorageService") as service_cls:
            service_cls.return_value.team_activity = AsyncMock(
                return_value=TeamActivity(team="credit", total_messages=1, active_queries=1, last_message_at=None)
            )
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                other_view = await client.get("/v1/credit-dashboard")
                other_retry = await client.post("/v1/credit-dashboard/retry")

        assert errored.json()["state"] == "errored"
        assert other_view.json()["state"] == "normal"
        assert other_view.json()["content"]["totalMessages"] == 1
        assert other_retry.json() == {"state": "normal"}
        # the other user's retry leaves the first user's fallback in place
        assert mounted_page.state_for(str(failing_user.id)) is PageState.ERRORED
        assert mounted_page.state_for(str(other_user.id)) is PageState.NORMAL

    @pytest.mark.asyncio
    async def test_unmounted_page_returns_503(self, mounted_page):
        as_user("credit")
        app.state.credit_dashboard = None

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/v1/credit-dashboard")

        assert response.status_code == 503
