from __future__ import annotations

import random
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from opentelemetry import trace

from insightsync.core.config import Settings, get_settings
from insightsync.crm.activity_log import ActivityLog, activity_log
from insightsync.crm.repositories import CRMStore
from insightsync.crm.schemas import (
    DashboardMetrics,
    DashboardStatsRead,
    DealRead,
    PipelineStageRead,
    PipelineStageSummary,
    TaskRead,
    TeamMemberPerformance,
    UserRecord,
)
from insightsync.metrics import observe_dashboard_compute


tracer = trace.get_tracer("insightsync.crm.dashboard")


@dataclass(frozen=True)
class PlaceholderPerformance:
    percentage_of_target: int
    growth: float


def placeholder_team_performance(user_id: int) -> PlaceholderPerformance:
    """Stand-in target and growth figures for the team leaderboard.

    There is no sales target or historical baseline to compute these from, so they
    are generated in the ranges the dashboard expects (45-85% of target, growth
    between -5% and 15%). Seeding by user id keeps a user's figures stable between
    calls. Only ``value`` in the team summary is a real number.
    """
    rng = random.Random(user_id)
    return PlaceholderPerformance(
        percentage_of_target=rng.randint(45, 85),
        growth=round(rng.uniform(-5.0, 15.0), 1),
    )


def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def day_window(now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    start = now.astimezone(tz).replace(hour=0, minute=0, second=0, microsecond=0)
    # Aware arithmetic is wall-clock arithmetic, so this lands on the next local midnight.
    return start, start + timedelta(days=1)


def _sum_values(deals: list[DealRead]) -> float:
    return sum(deal.value for deal in deals)


class DashboardService:
    def __init__(self, log: ActivityLog | None = None) -> None:
        self._activity_log = log or activity_log

    def compute_dashboard_stats(
        self,
        store: CRMStore,
        *,
        now: datetime | None = None,
        settings: Settings | None = None,
    ) -> DashboardStatsRead:
        settings = settings or get_settings()
        current = now or datetime.now(timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)

        started = time.perf_counter()
        with tracer.start_as_current_span("crm.dashboard.compute") as span, store.transaction():
            customers = store.customers.list()
            deals = store.deals.list()
            stages = store.pipeline_stages.list()
            users = store.users.list()
            tasks = store.tasks.list()
            activities = self._activity_log.list(store)

            won_deals = [deal for deal in deals if deal.status == "won"]
            total_revenue = _sum_values(won_deals)
            window_start = current - timedelta(days=settings.dashboard_new_customer_window_days)

            metrics = DashboardMetrics(
                total_revenue=total_revenue,
                new_customers=sum(1 for customer in customers if customer.created_at > window_start),
                churn_rate=settings.dashboard_churn_rate_placeholder,
                avg_deal_size=total_revenue / len(won_deals) if won_deals else 0,
            )
            stats = DashboardStatsRead(
                metrics=metrics,
                pipeline_summary=self._pipeline_summary(stages, deals),
                team_performance=[self._team_member(user, won_deals) for user in users],
                recent_activities=activities[: settings.dashboard_recent_activity_limit],
                todays_tasks=self._todays_tasks(
                    tasks,
                    current,
                    resolve_timezone(settings.dashboard_timezone),
                    settings.dashboard_todays_task_limit,
                ),
            )
            span.set_attribute("crm.dashboard.deal_count", len(deals))
            span.set_attribute("crm.dashboard.customer_count", len(customers))

        observe_dashboard_compute(time.perf_counter() - started)
        return stats

    def _pipeline_summary(self, stages: list[PipelineStageRead], deals: list[DealRead]) -> list[PipelineStageSummary]:
        summary: list[PipelineStageSummary] = []
        for stage in stages:
            stage_deals = [deal for deal in deals if deal.stage_id == stage.id]
            summary.append(
                PipelineStageSummary(**stage.model_dump(), count=len(stage_deals), value=_sum_values(stage_deals))
            )
        return summary

    def _team_member(self, user: UserRecord, won_deals: list[DealRead]) -> TeamMemberPerformance:
        placeholder = placeholder_team_performance(user.id)
        return TeamMemberPerformance(
            id=user.id,
            name=user.full_name or user.username,
            avatar_url=user.avatar_url,
            value=_sum_values([deal for deal in won_deals if deal.owner_id == user.id]),
            percentage_of_target=placeholder.percentage_of_target,
            growth=placeholder.growth,
        )

    def _todays_tasks(self, tasks: list[TaskRead], now: datetime, tz: tzinfo, limit: int) -> list[TaskRead]:
        start, end = day_window(now, tz)
        due_today = [task for task in tasks if task.due_date is not None and start <= task.due_date < end]
        return due_today[:limit]


dashboard_service = DashboardService()
