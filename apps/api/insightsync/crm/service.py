from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, status

from insightsync import events
from insightsync.core.config import get_settings
from insightsync.crm.activity_log import activity_log
from insightsync.crm.repositories import CRMStore
from insightsync.crm.schemas import (
    ActivityCreate,
    ActivityRead,
    CustomerCreate,
    CustomerRead,
    CustomerUpdate,
    DealCreate,
    DealRead,
    DealUpdate,
    PipelineStageCreate,
    PipelineStageRead,
    PipelineStageUpdate,
    ProductCreate,
    ProductRead,
    ProductUpdate,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    TicketCreate,
    TicketRead,
    TicketUpdate,
    UserCreate,
    UserRead,
    UserRecord,
)
from insightsync.metrics import observe_entity_mutation


logger = logging.getLogger("insightsync.crm")


def default_actor_user_id() -> int:
    return get_settings().default_actor_user_id


def _actor(candidate: int | None) -> int:
    # 0 and None both mean "no owner", same as an unset assignee.
    return candidate or default_actor_user_id()


def format_lakh(value: float) -> str:
    return f"₹{value / 100000:.1f}L"


def _not_found(label: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")


def _emit(
    entity_type: str,
    action: str,
    entity_id: int,
    *,
    actor_user_id: int | None,
    payload: dict[str, Any],
    event_type: str | None = None,
) -> None:
    observe_entity_mutation(entity_type, action)
    logger.info(
        "crm.entity.mutated",
        extra={"entity_type": entity_type, "entity_id": entity_id, "action": action},
    )
    events.publish(
        events.build_envelope(
            event_type or f"crm.{entity_type}.{action}d",
            actor_user_id=actor_user_id,
            payload={f"{entity_type}_id": entity_id, **payload},
        )
    )


class UserService:
    entity_type = "user"

    def list_users(self, store: CRMStore) -> list[UserRead]:
        return [self._to_read(user) for user in store.users.list()]

    def get_user(self, store: CRMStore, user_id: int) -> UserRead:
        user = store.users.get(user_id)
        if user is None:
            raise _not_found("User")
        return self._to_read(user)

    def create_user(self, store: CRMStore, dto: UserCreate) -> UserRead:
        with store.transaction():
            if store.find_user_by_username(dto.username) is not None:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="username already exists")
            user = store.users.create(dto.model_dump())

        _emit(self.entity_type, "create", user.id, actor_user_id=None, payload={"username": user.username})
        return self._to_read(user)

    def _to_read(self, user: UserRecord) -> UserRead:
        return UserRead.model_validate(user.model_dump(exclude={"password"}))


class CustomerService:
    entity_type = "customer"

    def list_customers(self, store: CRMStore) -> list[CustomerRead]:
        return store.customers.list()

    def get_customer(self, store: CRMStore, customer_id: int) -> CustomerRead:
        customer = store.customers.get(customer_id)
        if customer is None:
            raise _not_found("Customer")
        return customer

    def create_customer(self, store: CRMStore, dto: CustomerCreate) -> CustomerRead:
        actor_user_id = default_actor_user_id()
        with store.transaction():
            customer = store.customers.create(dto.model_dump())
            kind = "lead" if customer.status == "lead" else "customer"
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type=f"{kind}_added",
                related_to="customer",
                related_id=customer.id,
                description=f"Added {customer.name} as a new {kind}",
                metadata={"customerId": customer.id},
            )

        _emit(
            self.entity_type,
            "create",
            customer.id,
            actor_user_id=actor_user_id,
            payload={"name": customer.name, "status": customer.status},
        )
        return customer

    def update_customer(self, store: CRMStore, customer_id: int, dto: CustomerUpdate) -> CustomerRead:
        actor_user_id = default_actor_user_id()
        with store.transaction():
            customer = store.customers.update(customer_id, dto.changes())
            if customer is None:
                raise _not_found("Customer")
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="customer_updated",
                related_to="customer",
                related_id=customer.id,
                description=f"Updated {customer.name}'s information",
                metadata={"customerId": customer.id},
            )

        _emit(
            self.entity_type,
            "update",
            customer.id,
            actor_user_id=actor_user_id,
            payload={"changed_fields": sorted(dto.model_fields_set)},
        )
        return customer

    def delete_customer(self, store: CRMStore, customer_id: int) -> None:
        # Deals and tickets pointing at the customer are left in place.
        actor_user_id = default_actor_user_id()
        with store.transaction():
            customer = self.get_customer(store, customer_id)
            if not store.customers.delete(customer_id):
                raise _not_found("Customer")
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="customer_deleted",
                related_to="customer",
                related_id=customer_id,
                description=f"Deleted customer {customer.name}",
                metadata={"customerId": customer_id},
            )

        _emit(self.entity_type, "delete", customer_id, actor_user_id=actor_user_id, payload={})


class ProductService:
    entity_type = "product"

    def list_products(self, store: CRMStore) -> list[ProductRead]:
        return store.products.list()

    def get_product(self, store: CRMStore, product_id: int) -> ProductRead:
        product = store.products.get(product_id)
        if product is None:
            raise _not_found("Product")
        return product

    def create_product(self, store: CRMStore, dto: ProductCreate) -> ProductRead:
        actor_user_id = default_actor_user_id()
        with store.transaction():
            product = store.products.create(dto.model_dump())
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="product_added",
                related_to="product",
                related_id=product.id,
                description=f"Added new product: {product.name}",
                metadata={"productId": product.id},
            )

        _emit(self.entity_type, "create", product.id, actor_user_id=actor_user_id, payload={"name": product.name})
        return product

    def update_product(self, store: CRMStore, product_id: int, dto: ProductUpdate) -> ProductRead:
        actor_user_id = default_actor_user_id()
        with store.transaction():
            product = store.products.update(product_id, dto.changes())
            if product is None:
                raise _not_found("Product")
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="product_updated",
                related_to="product",
                related_id=product.id,
                description=f"Updated product: {product.name}",
                metadata={"productId": product.id},
            )

        _emit(
            self.entity_type,
            "update",
            product.id,
            actor_user_id=actor_user_id,
            payload={"changed_fields": sorted(dto.model_fields_set)},
        )
        return product

    def delete_product(self, store: CRMStore, product_id: int) -> None:
        actor_user_id = default_actor_user_id()
        with store.transaction():
            product = self.get_product(store, product_id)
            if not store.products.delete(product_id):
                raise _not_found("Product")
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="product_deleted",
                related_to="product",
                related_id=product_id,
                description=f"Deleted product: {product.name}",
                metadata={"productId": product_id},
            )

        _emit(self.entity_type, "delete", product_id, actor_user_id=actor_user_id, payload={})


class PipelineService:
    entity_type = "pipeline_stage"

    def list_stages(self, store: CRMStore) -> list[PipelineStageRead]:
        return store.pipeline_stages.list()

    def get_stage(self, store: CRMStore, stage_id: int) -> PipelineStageRead:
        stage = store.pipeline_stages.get(stage_id)
        if stage is None:
            raise _not_found("Pipeline stage")
        return stage

    def create_stage(self, store: CRMStore, dto: PipelineStageCreate) -> PipelineStageRead:
        stage = store.pipeline_stages.create(dto.model_dump())
        _emit(
            self.entity_type,
            "create",
            stage.id,
            actor_user_id=default_actor_user_id(),
            payload={"name": stage.name, "order": stage.order},
        )
        return stage

    def update_stage(self, store: CRMStore, stage_id: int, dto: PipelineStageUpdate) -> PipelineStageRead:
        stage = store.pipeline_stages.update(stage_id, dto.changes())
        if stage is None:
            raise _not_found("Pipeline stage")
        _emit(
            self.entity_type,
            "update",
            stage.id,
            actor_user_id=default_actor_user_id(),
            payload={"changed_fields": sorted(dto.model_fields_set)},
        )
        return stage

    def delete_stage(self, store: CRMStore, stage_id: int) -> None:
        # Deals on the stage keep their stage_id and drop out of the pipeline summary.
        if not store.pipeline_stages.delete(stage_id):
            raise _not_found("Pipeline stage")
        _emit(self.entity_type, "delete", stage_id, actor_user_id=default_actor_user_id(), payload={})


class DealService:
    entity_type = "deal"

    def list_deals(
        self,
        store: CRMStore,
        *,
        stage_id: int | None = None,
        customer_id: int | None = None,
    ) -> list[DealRead]:
        if stage_id is not None:
            return store.list_deals_by_stage(stage_id)
        if customer_id is not None:
            return store.list_deals_by_customer(customer_id)
        return store.deals.list()

    def get_deal(self, store: CRMStore, deal_id: int) -> DealRead:
        deal = store.deals.get(deal_id)
        if deal is None:
            raise _not_found("Deal")
        return deal

    def create_deal(self, store: CRMStore, dto: DealCreate) -> DealRead:
        with store.transaction():
            deal = store.deals.create(dto.model_dump())
            actor_user_id = _actor(deal.owner_id)
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="deal_created",
                related_to="deal",
                related_id=deal.id,
                description=f"Created new deal: {deal.title}",
                metadata={"dealId": deal.id, "value": deal.value},
            )

        _emit(
            self.entity_type,
            "create",
            deal.id,
            actor_user_id=actor_user_id,
            payload={"customer_id": deal.customer_id, "stage_id": deal.stage_id, "value": deal.value},
        )
        return deal

    def update_deal(self, store: CRMStore, deal_id: int, dto: DealUpdate) -> DealRead:
        changes = dto.changes()
        with store.transaction():
            previous = self.get_deal(store, deal_id)
            deal = store.deals.update(deal_id, changes)
            if deal is None:
                raise _not_found("Deal")

            activity_type = "deal_updated"
            description = f"Updated deal: {deal.title}"
            event_type = "crm.deal.updated"

            new_stage_id = changes.get("stage_id")
            if new_stage_id is not None and new_stage_id != previous.stage_id:
                stage = store.pipeline_stages.get(new_stage_id)
                if stage is not None:
                    activity_type = "deal_stage_changed"
                    description = f"Moved deal {deal.title} to {stage.name} stage"
                    event_type = "crm.deal.stage_changed"

            if changes.get("status") == "won" and previous.status != "won":
                customer = store.customers.get(deal.customer_id)
                customer_name = customer.name if customer is not None else "Customer"
                activity_type = "deal_closed"
                description = f"Closed a deal with {customer_name} worth {format_lakh(deal.value)}"
                event_type = "crm.deal.closed_won"

            actor_user_id = _actor(deal.owner_id)
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type=activity_type,
                related_to="deal",
                related_id=deal.id,
                description=description,
                metadata={"dealId": deal.id, "value": deal.value},
            )

        _emit(
            self.entity_type,
            "update",
            deal.id,
            actor_user_id=actor_user_id,
            payload={
                "from_stage_id": previous.stage_id,
                "to_stage_id": deal.stage_id,
                "status": deal.status,
                "value": deal.value,
            },
            event_type=event_type,
        )
        return deal

    def delete_deal(self, store: CRMStore, deal_id: int) -> None:
        with store.transaction():
            deal = self.get_deal(store, deal_id)
            if not store.deals.delete(deal_id):
                raise _not_found("Deal")
            actor_user_id = _actor(deal.owner_id)
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="deal_deleted",
                related_to="deal",
                related_id=deal_id,
                description=f"Deleted deal: {deal.title}",
                metadata={"dealId": deal_id},
            )

        _emit(self.entity_type, "delete", deal_id, actor_user_id=actor_user_id, payload={})


class TaskService:
    entity_type = "task"

    def list_tasks(self, store: CRMStore, *, assigned_to: int | None = None) -> list[TaskRead]:
        if assigned_to is not None:
            return store.list_tasks_by_assignee(assigned_to)
        return store.tasks.list()

    def get_task(self, store: CRMStore, task_id: int) -> TaskRead:
        task = store.tasks.get(task_id)
        if task is None:
            raise _not_found("Task")
        return task

    def create_task(self, store: CRMStore, dto: TaskCreate) -> TaskRead:
        with store.transaction():
            task = store.tasks.create(dto.model_dump())
            actor_user_id = _actor(task.assigned_to)
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="task_created",
                related_to="task",
                related_id=task.id,
                description=f"Created new task: {task.title}",
                metadata={"taskId": task.id},
            )

        _emit(
            self.entity_type,
            "create",
            task.id,
            actor_user_id=actor_user_id,
            payload={"related_to": task.related_to, "related_id": task.related_id},
        )
        return task

    def update_task(self, store: CRMStore, task_id: int, dto: TaskUpdate) -> TaskRead:
        changes = dto.changes()
        with store.transaction():
            previous = self.get_task(store, task_id)
            task = store.tasks.update(task_id, changes)
            if task is None:
                raise _not_found("Task")

            completed = changes.get("status") == "completed" and previous.status != "completed"
            actor_user_id = _actor(task.assigned_to)
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="task_completed" if completed else "task_updated",
                related_to="task",
                related_id=task.id,
                description=f"Completed task: {task.title}" if completed else f"Updated task: {task.title}",
                metadata={"taskId": task.id},
            )

        _emit(
            self.entity_type,
            "update",
            task.id,
            actor_user_id=actor_user_id,
            payload={"status": task.status},
            event_type="crm.task.completed" if completed else None,
        )
        return task

    def delete_task(self, store: CRMStore, task_id: int) -> None:
        with store.transaction():
            task = self.get_task(store, task_id)
            if not store.tasks.delete(task_id):
                raise _not_found("Task")
            actor_user_id = _actor(task.assigned_to)
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="task_deleted",
                related_to="task",
                related_id=task_id,
                description=f"Deleted task: {task.title}",
                metadata={"taskId": task_id},
            )

        _emit(self.entity_type, "delete", task_id, actor_user_id=actor_user_id, payload={})


class TicketService:
    entity_type = "ticket"

    def list_tickets(
        self,
        store: CRMStore,
        *,
        customer_id: int | None = None,
        assigned_to: int | None = None,
    ) -> list[TicketRead]:
        if customer_id is not None:
            return store.list_tickets_by_customer(customer_id)
        if assigned_to is not None:
            return store.list_tickets_by_assignee(assigned_to)
        return store.tickets.list()

    def get_ticket(self, store: CRMStore, ticket_id: int) -> TicketRead:
        ticket = store.tickets.get(ticket_id)
        if ticket is None:
            raise _not_found("Ticket")
        return ticket

    def create_ticket(self, store: CRMStore, dto: TicketCreate) -> TicketRead:
        with store.transaction():
            ticket = store.tickets.create(dto.model_dump())
            actor_user_id = _actor(ticket.assigned_to)
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="ticket_created",
                related_to="ticket",
                related_id=ticket.id,
                description=f"Created new support ticket: {ticket.title}",
                metadata={"ticketId": ticket.id},
            )

        _emit(
            self.entity_type,
            "create",
            ticket.id,
            actor_user_id=actor_user_id,
            payload={"customer_id": ticket.customer_id, "priority": ticket.priority},
        )
        return ticket

    def update_ticket(self, store: CRMStore, ticket_id: int, dto: TicketUpdate) -> TicketRead:
        changes = dto.changes()
        with store.transaction():
            previous = self.get_ticket(store, ticket_id)
            ticket = store.tickets.update(ticket_id, changes)
            if ticket is None:
                raise _not_found("Ticket")

            activity_type = "ticket_updated"
            description = f"Updated ticket: {ticket.title}"

            new_status = changes.get("status")
            if new_status is not None and new_status != previous.status:
                if new_status == "closed":
                    activity_type = "ticket_closed"
                    description = f"Closed ticket: {ticket.title}"
                else:
                    activity_type = "ticket_status_changed"
                    description = f"Changed ticket status to {new_status}: {ticket.title}"

            new_assignee_id = changes.get("assigned_to")
            if new_assignee_id and new_assignee_id != previous.assigned_to:
                assignee = store.users.get(new_assignee_id)
                if assignee is not None:
                    activity_type = "ticket_assigned"
                    description = f"Assigned ticket to {assignee.full_name or assignee.username}: {ticket.title}"

            actor_user_id = _actor(ticket.assigned_to)
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type=activity_type,
                related_to="ticket",
                related_id=ticket.id,
                description=description,
                metadata={"ticketId": ticket.id},
            )

        _emit(
            self.entity_type,
            "update",
            ticket.id,
            actor_user_id=actor_user_id,
            payload={"status": ticket.status, "assigned_to": ticket.assigned_to},
        )
        return ticket

    def delete_ticket(self, store: CRMStore, ticket_id: int) -> None:
        with store.transaction():
            ticket = self.get_ticket(store, ticket_id)
            if not store.tickets.delete(ticket_id):
                raise _not_found("Ticket")
            actor_user_id = _actor(ticket.assigned_to)
            activity_log.record(
                store,
                user_id=actor_user_id,
                activity_type="ticket_deleted",
                related_to="ticket",
                related_id=ticket_id,
                description=f"Deleted ticket: {ticket.title}",
                metadata={"ticketId": ticket_id},
            )

        _emit(self.entity_type, "delete", ticket_id, actor_user_id=actor_user_id, payload={})


class ActivityService:
    def list_activities(
        self,
        store: CRMStore,
        *,
        related_to: str | None = None,
        related_id: int | None = None,
    ) -> list[ActivityRead]:
        if related_to is not None and related_id is not None:
            return activity_log.list_by_related(store, related_to, related_id)
        return activity_log.list(store)

    def create_activity(self, store: CRMStore, dto: ActivityCreate) -> ActivityRead:
        return activity_log.record(
            store,
            user_id=dto.user_id,
            activity_type=dto.activity_type,
            related_to=dto.related_to,
            related_id=dto.related_id,
            description=dto.description,
            metadata=dto.metadata,
        )
