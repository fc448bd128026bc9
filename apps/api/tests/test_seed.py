from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from insightsync import events
from insightsync.core.config import get_settings
from insightsync.crm.activity_log import ActivityLog
from insightsync.crm.repositories import CRMStore, build_memory_store
from insightsync.crm.seed import CRMSeedHelper
from insightsync.main import app


@pytest.fixture(autouse=True)
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    events.published_events.clear()
    yield
    get_settings.cache_clear()
    events.published_events.clear()


@pytest.fixture()
def store() -> CRMStore:
    return build_memory_store()


def test_seed_loads_demo_dataset_once(store: CRMStore) -> None:
    helper = CRMSeedHelper()

    assert helper.seed_if_empty(store) is True
    assert helper.seed_if_empty(store) is False

    assert len(store.users.list()) == 4
    assert [stage.name for stage in store.pipeline_stages.list()] == [
        "Lead",
        "Contact",
        "Proposal",
        "Negotiation",
        "Closed Won",
    ]
    assert len(store.customers.list()) == 4
    assert len(store.products.list()) == 5
    assert len(store.deals.list()) == 4
    assert len(store.tasks.list()) == 5
    assert len(store.tickets.list()) == 3
    assert len(store.activities.list()) == 5
    assert events.published_events == []


def test_seed_keeps_demo_copy_and_pictures(store: CRMStore) -> None:
    CRMSeedHelper().seed(store, now=datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc))

    follow_up = store.tasks.get(1)
    assert follow_up is not None
    assert follow_up.title == "Follow up with GlobalTrade Inc. about proposal"
    assert follow_up.description == (
        "Send additional information about implementation timeline and integration options"
    )
    enterprise = store.products.get(3)
    assert enterprise is not None
    assert enterprise.description == "Comprehensive CRM solution for large enterprises with custom integrations"
    assert enterprise.image_url == (
        "https://images.unsplash.com/photo-1512486130939-2c4f79935e4f"
        "?ixlib=rb-1.2.1&auto=format&fit=crop&w=256&h=256&q=80"
    )
    tech_solutions = store.customers.get(1)
    assert tech_solutions is not None
    assert tech_solutions.avatar_url == (
        "https://images.unsplash.com/photo-1549887552-cb1071d3e5ca"
        "?ixlib=rb-1.2.1&auto=format&fit=crop&w=256&h=256&q=80"
    )
    priya = store.find_user_by_username("priya")
    assert priya is not None
    assert priya.avatar_url == (
        "https://images.unsplash.com/photo-1550525811-e5869dd03032"
        "?ixlib=rb-1.2.1&ixid=eyJhcHBfaWQiOjEyMDd9&auto=format&fit=facearea&facepad=2&w=256&h=256&q=80"
    )
    licenses = store.tickets.get(2)
    assert licenses is not None
    assert licenses.description == "We need to add 5 more users to our account"
    won = store.deals.get(1)
    assert won is not None
    assert won.notes == "Successfully implemented InsightSync Professional with custom integrations."


def test_seed_includes_system_activity(store: CRMStore) -> None:
    CRMSeedHelper().seed(store, now=datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc))

    [system_update] = ActivityLog().list_by_related(store, "system", 0)
    assert system_update.user_id == 0
    assert system_update.activity_type == "system_update"
    assert system_update.description == "Updated the sales forecast for Q3"
    assert system_update.metadata == {"updateType": "forecast"}


def test_seed_dates_are_relative_to_now(store: CRMStore) -> None:
    now = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)

    CRMSeedHelper().seed(store, now=now)

    won = store.deals.get(1)
    assert won is not None
    assert won.status == "won"
    assert won.expected_close_date == datetime(2024, 5, 8, 12, 0, tzinfo=timezone.utc)
    demo = store.activities.get(4)
    assert demo is not None
    assert demo.metadata == {"customerId": 4, "demoDate": "2024-05-15T12:00:00+00:00"}
    assert demo.description == "Scheduled a demo with InnovateTech Solutions"
    admin = store.find_user_by_username("admin")
    assert admin is not None
    assert admin.email == "raj.mehta@insightsync.com"
    assert admin.role == "admin"


def test_startup_seeds_the_application_store(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SEED_DEMO_DATA", "true")
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    get_settings.cache_clear()

    with TestClient(app) as client:
        users = client.get("/api/users").json()
        customers = client.get("/api/customers").json()

    assert [user["username"] for user in users] == ["admin", "alisha", "priya", "arjun"]
    assert all("password" not in user for user in users)
    assert customers[3]["status"] == "lead"


def test_startup_without_seed_leaves_store_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SEED_DEMO_DATA", "false")
    get_settings.cache_clear()

    with TestClient(app) as client:
        assert client.get("/api/users").json() == []
