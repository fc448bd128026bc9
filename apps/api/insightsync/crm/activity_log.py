from __future__ import annotations

import logging
from typing import Any

from insightsync.crm.repositories import CRMStore
from insightsync.crm.schemas import ActivityRead, RelatedEntityType
from insightsync.metrics import observe_activity_recorded


logger = logging.getLogger("insightsync.crm.activity")


def _newest_first(activities: list[ActivityRead]) -> list[ActivityRead]:
    # Ids are minted in creation order, so they settle equal timestamps.
    return sorted(activities, key=lambda activity: (activity.created_at, activity.id), reverse=True)


class ActivityLog:
    """Append-only timeline of domain events across every entity type.

    The log never decides when to write; the services call :meth:`record` after each
    successful mutation. Entries are never updated or deleted.
    """

    def record(
        self,
        store: CRMStore,
        *,
        user_id: int | None,
        activity_type: str,
        related_to: RelatedEntityType | None,
        related_id: int | None,
        description: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> ActivityRead:
        activity = store.activities.create(
            {
                "user_id": user_id,
                "activity_type": activity_type,
                "related_to": related_to,
                "related_id": related_id,
                "description": description,
                "metadata": metadata,
            }
        )
        observe_activity_recorded(activity_type)
        logger.info(
            "crm.activity.recorded",
            extra={"activity_type": activity_type, "entity_type": related_to, "entity_id": related_id},
        )
        return activity

    def list(self, store: CRMStore) -> list[ActivityRead]:
        return _newest_first(store.activities.list())

    def list_by_related(self, store: CRMStore, related_to: str, related_id: int) -> list[ActivityRead]:
        return _newest_first(
            [activity for activity in store.activities.list_by("related_to", related_to) if activity.related_id == related_id]
        )


activity_log = ActivityLog()
