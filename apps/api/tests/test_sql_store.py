from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest

from insightsync.core.config import Settings
from insightsync.core.database import Base, build_engine, build_session_factory
from insightsync.crm import repositories
from insightsync.crm.dashboard import DashboardService
from insightsync.crm.repositories import CRMStore, build_sql_store, build_store
from insightsync.crm.seed import CRMSeedHelper


@pytest.fixture()
def store() -> Generator[CRMStore, None, None]:
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    try:
        yield build_sql_store(build_session_factory(engine))
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def test_sql_ids_are_not_reused_after_deleting_the_last_row(store: CRMStore) -> None:
    first = store.products.create({"name": "Basic", "price": 499})
    second = store.products.create({"name": "Pro", "price": 1499})
    assert store.products.delete(second.id) is True

    third = store.products.create({"name": "Enterprise", "price": 2999})

    assert [first.id, second.id, third.id] == [1, 2, 3]


def test_sql_round_trip_keeps_aware_datetimes_and_defaults(store: CRMStore) -> None:
    close = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)
    deal = store.deals.create(
        {"title": "Rollout", "customer_id": 5, "value": 1200.5, "stage_id": 2, "expected_close_date": close}
    )

    fetched = store.deals.get(deal.id)

    assert fetched is not None
    assert fetched == deal
    assert fetched.expected_close_date == close
    assert fetched.expected_close_date.tzinfo is not None
    assert fetched.created_at.tzinfo is not None
    assert fetched.status == "open"
    assert fetched.probability == 0


def test_sql_activity_metadata_round_trips(store: CRMStore) -> None:
    activity = store.activities.create(
        {
            "user_id": 1,
            "activity_type": "deal_closed",
            "related_to": "deal",
            "related_id": 3,
            "description": "Closed",
            "metadata": {"dealId": 3, "value": 240000},
        }
    )

    fetched = store.activities.get(activity.id)

    assert fetched is not None
    assert fetched.metadata == {"dealId": 3, "value": 240000}
    assert [item.id for item in store.activities.list_by("related_to", "deal")] == [activity.id]


def test_sql_update_merges_and_reports_missing(store: CRMStore) -> None:
    customer = store.customers.create({"name": "Acme", "company": "Acme Corp", "churn_risk": 3})
    contact = datetime.now(timezone.utc) - timedelta(days=2)

    updated = store.customers.update(customer.id, {"last_contact": contact, "status": "churned"})

    assert updated is not None
    assert updated.company == "Acme Corp"
    assert updated.churn_risk == 3
    assert updated.status == "churned"
    assert updated.last_contact == contact
    assert updated.created_at == customer.created_at
    assert store.customers.update(404, {"name": "x"}) is None
    assert store.customers.delete(404) is False


def test_sql_pipeline_stages_list_by_order(store: CRMStore) -> None:
    store.pipeline_stages.create({"name": "Closed Won", "order": 5, "color": "#22C55E"})
    store.pipeline_stages.create({"name": "Lead", "order": 1})

    assert [stage.name for stage in store.pipeline_stages.list()] == ["Lead", "Closed Won"]


def test_sql_filtered_lookups(store: CRMStore) -> None:
    store.tickets.create({"title": "K1", "customer_id": 2, "assigned_to": 4})
    store.tickets.create({"title": "K2", "customer_id": 1, "assigned_to": 4})
    store.users.create({"username": "arjun", "password": "pw"})

    assert [ticket.title for ticket in store.list_tickets_by_customer(1)] == ["K2"]
    assert [ticket.title for ticket in store.list_tickets_by_assignee(4)] == ["K1", "K2"]
    assert store.find_user_by_username("arjun") is not None


def test_sql_dashboard_aggregates(store: CRMStore, monkeypatch: pytest.MonkeyPatch) -> None:
    now = datetime(2024, 5, 10, 15, 0, tzinfo=timezone.utc)
    monkeypatch.setattr(repositories, "utcnow", lambda: now - timedelta(days=60))
    store.customers.create({"name": "Old Co"})
    monkeypatch.setattr(repositories, "utcnow", lambda: now - timedelta(days=1))
    store.customers.create({"name": "New Co"})
    store.pipeline_stages.create({"name": "Lead", "order": 1})
    store.deals.create({"title": "A", "customer_id": 1, "value": 100, "stage_id": 1, "status": "won"})
    store.deals.create({"title": "B", "customer_id": 2, "value": 50, "stage_id": 1, "status": "won"})
    store.deals.create({"title": "C", "customer_id": 2, "value": 999, "stage_id": 1})
    store.tasks.create({"title": "Due today", "due_date": now.replace(hour=9)})
    store.tasks.create({"title": "Due tomorrow", "due_date": now + timedelta(days=1)})

    stats = DashboardService().compute_dashboard_stats(store, now=now, settings=Settings(dashboard_timezone="UTC"))

    assert stats.metrics.total_revenue == 150
    assert stats.metrics.avg_deal_size == 75
    assert stats.metrics.new_customers == 1
    assert [(stage.name, stage.count, stage.value) for stage in stats.pipeline_summary] == [("Lead", 3, 1149)]
    assert [task.title for task in stats.todays_tasks] == ["Due today"]


def test_sql_dashboard_on_demo_data(store: CRMStore) -> None:
    now = datetime(2024, 5, 10, 15, 0, tzinfo=timezone.utc)
    CRMSeedHelper().seed(store, now=now)

    stats = DashboardService().compute_dashboard_stats(store, now=now, settings=Settings())

    assert stats.metrics.total_revenue == 240000
    assert [stage.count for stage in stats.pipeline_summary] == [1, 0, 1, 1, 1]
    assert len(stats.recent_activities) == 5
    assert stats.recent_activities[0].related_to == "system"


def test_build_store_selects_backend() -> None:
    sql_store = build_store(Settings(storage_backend="sql", database_url="sqlite+pysqlite:///:memory:"))
    memory_store = build_store(Settings(storage_backend="memory"))

    assert sql_store.backend == "sql"
    assert memory_store.backend == "memory"
    assert sql_store.is_empty() is True

    with pytest.raises(ValueError):
        build_store(Settings(storage_backend="redis"))
