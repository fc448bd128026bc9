from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from insightsync import events
from insightsync.core.config import get_settings
from insightsync.crm.api import get_store
from insightsync.crm.repositories import CRMStore, build_memory_store
from insightsync.main import app


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("SEED_DEMO_DATA", "false")
    get_settings.cache_clear()
    events.published_events.clear()
    yield
    get_settings.cache_clear()
    events.published_events.clear()


@pytest.fixture()
def store() -> CRMStore:
    store = build_memory_store()
    store.users.create({"username": "admin", "password": "pw", "full_name": "Raj Mehta"})
    store.users.create({"username": "priya", "password": "pw", "full_name": "Priya Singh"})
    store.users.create({"username": "arjun", "password": "pw"})
    return store


@pytest.fixture()
def client(store: CRMStore) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_create_task_records_activity_for_assignee(client: TestClient, store: CRMStore) -> None:
    response = client.post(
        "/api/tasks",
        json={
            "title": "Follow up with GlobalTrade",
            "dueDate": "2024-05-10T09:00:00Z",
            "priority": "high",
            "assignedTo": 2,
            "relatedTo": "deal",
            "relatedId": 2,
        },
    )

    assert response.status_code == 201
    task = response.json()
    assert task["status"] == "pending"
    assert task["dueDate"].startswith("2024-05-10T09:00:00")
    activity = store.activities.list()[0]
    assert activity.activity_type == "task_created"
    assert activity.description == "Created new task: Follow up with GlobalTrade"
    assert activity.user_id == 2


def test_task_rejects_unknown_related_tag(client: TestClient) -> None:
    response = client.post("/api/tasks", json={"title": "Odd", "relatedTo": "invoice", "relatedId": 1})

    assert response.status_code == 422


def test_completing_a_task(client: TestClient, store: CRMStore) -> None:
    task = client.post("/api/tasks", json={"title": "Quarterly report"}).json()

    completed = client.put(f"/api/tasks/{task['id']}", json={"status": "completed"})
    again = client.put(f"/api/tasks/{task['id']}", json={"status": "completed", "priority": "low"})

    assert completed.status_code == 200
    assert again.json()["priority"] == "low"
    types = [activity.activity_type for activity in store.activities.list()]
    assert types == ["task_created", "task_completed", "task_updated"]
    assert store.activities.list()[1].description == "Completed task: Quarterly report"
    assert store.activities.list()[1].user_id == 1
    assert any(event["event_type"] == "crm.task.completed" for event in events.published_events)


def test_delete_task_and_missing_task(client: TestClient, store: CRMStore) -> None:
    task = client.post("/api/tasks", json={"title": "Schedule meeting", "assignedTo": 3}).json()

    assert client.delete(f"/api/tasks/{task['id']}").status_code == 204
    assert client.delete(f"/api/tasks/{task['id']}").status_code == 404
    assert client.put(f"/api/tasks/{task['id']}", json={"title": "x"}).status_code == 404
    latest = store.activities.list()[-1]
    assert latest.activity_type == "task_deleted"
    assert latest.user_id == 3


def test_list_tasks_by_assignee(client: TestClient) -> None:
    client.post("/api/tasks", json={"title": "A", "assignedTo": 1})
    client.post("/api/tasks", json={"title": "B", "assignedTo": 2})
    client.post("/api/tasks", json={"title": "C", "assignedTo": 1})

    response = client.get("/api/tasks", params={"assignedTo": 1})

    assert [task["title"] for task in response.json()] == ["A", "C"]
    assert len(client.get("/api/tasks").json()) == 3


def test_create_ticket_defaults(client: TestClient, store: CRMStore) -> None:
    response = client.post("/api/tickets", json={"title": "Data import errors", "customerId": 3, "assignedTo": 3})

    assert response.status_code == 201
    ticket = response.json()
    assert ticket["status"] == "open"
    assert ticket["priority"] == "medium"
    activity = store.activities.list()[0]
    assert activity.activity_type == "ticket_created"
    assert activity.description == "Created new support ticket: Data import errors"
    assert activity.user_id == 3


def test_ticket_status_changes(client: TestClient, store: CRMStore) -> None:
    ticket = client.post("/api/tickets", json={"title": "Licenses"}).json()

    client.put(f"/api/tickets/{ticket['id']}", json={"status": "in-progress"})
    client.put(f"/api/tickets/{ticket['id']}", json={"status": "closed"})
    client.put(f"/api/tickets/{ticket['id']}", json={"status": "closed", "category": "Billing"})

    activities = store.activities.list()
    assert [activity.activity_type for activity in activities] == [
        "ticket_created",
        "ticket_status_changed",
        "ticket_closed",
        "ticket_updated",
    ]
    assert activities[1].description == "Changed ticket status to in-progress: Licenses"
    assert activities[2].description == "Closed ticket: Licenses"


def test_ticket_assignment_uses_assignee_name(client: TestClient, store: CRMStore) -> None:
    ticket = client.post("/api/tickets", json={"title": "Integration broken", "assignedTo": 1}).json()

    response = client.put(f"/api/tickets/{ticket['id']}", json={"assignedTo": 2, "status": "in-progress"})
    client.put(f"/api/tickets/{ticket['id']}", json={"assignedTo": 3})

    assert response.status_code == 200
    activities = store.activities.list()
    assert activities[1].activity_type == "ticket_assigned"
    assert activities[1].description == "Assigned ticket to Priya Singh: Integration broken"
    assert activities[1].user_id == 2
    assert activities[2].description == "Assigned ticket to arjun: Integration broken"


def test_ticket_assignment_to_unknown_user_is_a_plain_update(client: TestClient, store: CRMStore) -> None:
    ticket = client.post("/api/tickets", json={"title": "Orphan"}).json()

    client.put(f"/api/tickets/{ticket['id']}", json={"assignedTo": 40})

    latest = store.activities.list()[-1]
    assert latest.activity_type == "ticket_updated"
    assert latest.user_id == 40


def test_ticket_rejects_unknown_status(client: TestClient) -> None:
    ticket = client.post("/api/tickets", json={"title": "Status"}).json()

    assert client.put(f"/api/tickets/{ticket['id']}", json={"status": "resolved"}).status_code == 422
    assert client.put(f"/api/tickets/{ticket['id']}", json={"status": None}).status_code == 422


def test_list_tickets_filters_with_customer_first(client: TestClient) -> None:
    client.post("/api/tickets", json={"title": "A", "customerId": 1, "assignedTo": 2})
    client.post("/api/tickets", json={"title": "B", "customerId": 2, "assignedTo": 2})
    client.post("/api/tickets", json={"title": "C", "customerId": 1, "assignedTo": 3})

    by_customer = client.get("/api/tickets", params={"customerId": 1, "assignedTo": 2})
    by_assignee = client.get("/api/tickets", params={"assignedTo": 2})

    assert [ticket["title"] for ticket in by_customer.json()] == ["A", "C"]
    assert [ticket["title"] for ticket in by_assignee.json()] == ["A", "B"]


def test_delete_ticket(client: TestClient, store: CRMStore) -> None:
    ticket = client.post("/api/tickets", json={"title": "Cleanup"}).json()

    assert client.delete(f"/api/tickets/{ticket['id']}").status_code == 204
    assert client.get(f"/api/tickets/{ticket['id']}").json() == {"detail": "Ticket not found"}
    assert store.activities.list()[-1].description == "Deleted ticket: Cleanup"
