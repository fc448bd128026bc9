from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response, status

from insightsync.crm.dashboard import dashboard_service
from insightsync.crm.repositories import CRMStore
from insightsync.crm.schemas import (
    ActivityCreate,
    ActivityRead,
    CustomerCreate,
    CustomerRead,
    CustomerUpdate,
    DashboardStatsRead,
    DealCreate,
    DealRead,
    DealUpdate,
    PipelineStageCreate,
    PipelineStageRead,
    PipelineStageUpdate,
    ProductCreate,
    ProductRead,
    ProductUpdate,
    RelatedEntityType,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    TicketCreate,
    TicketRead,
    TicketUpdate,
    UserCreate,
    UserRead,
)
from insightsync.crm.service import (
    ActivityService,
    CustomerService,
    DealService,
    PipelineService,
    ProductService,
    TaskService,
    TicketService,
    UserService,
)

users_router = APIRouter(prefix="/api/users", tags=["crm.users"])
customers_router = APIRouter(prefix="/api/customers", tags=["crm.customers"])
products_router = APIRouter(prefix="/api/products", tags=["crm.products"])
pipeline_router = APIRouter(prefix="/api/pipeline-stages", tags=["crm.pipeline"])
deals_router = APIRouter(prefix="/api/deals", tags=["crm.deals"])
tasks_router = APIRouter(prefix="/api/tasks", tags=["crm.tasks"])
tickets_router = APIRouter(prefix="/api/tickets", tags=["crm.tickets"])
activities_router = APIRouter(prefix="/api/activities", tags=["crm.activities"])
dashboard_router = APIRouter(prefix="/api/dashboard", tags=["crm.dashboard"])

user_service = UserService()
customer_service = CustomerService()
product_service = ProductService()
pipeline_service = PipelineService()
deal_service = DealService()
task_service = TaskService()
ticket_service = TicketService()
activity_service = ActivityService()


def get_store(request: Request) -> CRMStore:
    return request.app.state.store


@users_router.get("", response_model=list[UserRead])
def list_users(store: CRMStore = Depends(get_store)) -> list[UserRead]:
    return user_service.list_users(store)


@users_router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(dto: UserCreate, store: CRMStore = Depends(get_store)) -> UserRead:
    return user_service.create_user(store, dto)


@users_router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, store: CRMStore = Depends(get_store)) -> UserRead:
    return user_service.get_user(store, user_id)


@customers_router.get("", response_model=list[CustomerRead])
def list_customers(store: CRMStore = Depends(get_store)) -> list[CustomerRead]:
    return customer_service.list_customers(store)


@customers_router.post("", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
def create_customer(dto: CustomerCreate, store: CRMStore = Depends(get_store)) -> CustomerRead:
    return customer_service.create_customer(store, dto)


@customers_router.get("/{customer_id}", response_model=CustomerRead)
def get_customer(customer_id: int, store: CRMStore = Depends(get_store)) -> CustomerRead:
    return customer_service.get_customer(store, customer_id)


@customers_router.put("/{customer_id}", response_model=CustomerRead)
def update_customer(customer_id: int, dto: CustomerUpdate, store: CRMStore = Depends(get_store)) -> CustomerRead:
    return customer_service.update_customer(store, customer_id, dto)


@customers_router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_customer(customer_id: int, store: CRMStore = Depends(get_store)) -> Response:
    customer_service.delete_customer(store, customer_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@products_router.get("", response_model=list[ProductRead])
def list_products(store: CRMStore = Depends(get_store)) -> list[ProductRead]:
    return product_service.list_products(store)


@products_router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(dto: ProductCreate, store: CRMStore = Depends(get_store)) -> ProductRead:
    return product_service.create_product(store, dto)


@products_router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: int, store: CRMStore = Depends(get_store)) -> ProductRead:
    return product_service.get_product(store, product_id)


@products_router.put("/{product_id}", response_model=ProductRead)
def update_product(product_id: int, dto: ProductUpdate, store: CRMStore = Depends(get_store)) -> ProductRead:
    return product_service.update_product(store, product_id, dto)


@products_router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_product(product_id: int, store: CRMStore = Depends(get_store)) -> Response:
    product_service.delete_product(store, product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@pipeline_router.get("", response_model=list[PipelineStageRead])
def list_pipeline_stages(store: CRMStore = Depends(get_store)) -> list[PipelineStageRead]:
    return pipeline_service.list_stages(store)


@pipeline_router.post("", response_model=PipelineStageRead, status_code=status.HTTP_201_CREATED)
def create_pipeline_stage(dto: PipelineStageCreate, store: CRMStore = Depends(get_store)) -> PipelineStageRead:
    return pipeline_service.create_stage(store, dto)


@pipeline_router.get("/{stage_id}", response_model=PipelineStageRead)
def get_pipeline_stage(stage_id: int, store: CRMStore = Depends(get_store)) -> PipelineStageRead:
    return pipeline_service.get_stage(store, stage_id)


@pipeline_router.put("/{stage_id}", response_model=PipelineStageRead)
def update_pipeline_stage(
    stage_id: int,
    dto: PipelineStageUpdate,
    store: CRMStore = Depends(get_store),
) -> PipelineStageRead:
    return pipeline_service.update_stage(store, stage_id, dto)


@pipeline_router.delete("/{stage_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_pipeline_stage(stage_id: int, store: CRMStore = Depends(get_store)) -> Response:
    pipeline_service.delete_stage(store, stage_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@deals_router.get("", response_model=list[DealRead])
def list_deals(
    stage_id: int | None = Query(default=None, alias="stageId"),
    customer_id: int | None = Query(default=None, alias="customerId"),
    store: CRMStore = Depends(get_store),
) -> list[DealRead]:
    return deal_service.list_deals(store, stage_id=stage_id, customer_id=customer_id)


@deals_router.post("", response_model=DealRead, status_code=status.HTTP_201_CREATED)
def create_deal(dto: DealCreate, store: CRMStore = Depends(get_store)) -> DealRead:
    return deal_service.create_deal(store, dto)


@deals_router.get("/{deal_id}", response_model=DealRead)
def get_deal(deal_id: int, store: CRMStore = Depends(get_store)) -> DealRead:
    return deal_service.get_deal(store, deal_id)


@deals_router.put("/{deal_id}", response_model=DealRead)
def update_deal(deal_id: int, dto: DealUpdate, store: CRMStore = Depends(get_store)) -> DealRead:
    return deal_service.update_deal(store, deal_id, dto)


@deals_router.delete("/{deal_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_deal(deal_id: int, store: CRMStore = Depends(get_store)) -> Response:
    deal_service.delete_deal(store, deal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@tasks_router.get("", response_model=list[TaskRead])
def list_tasks(
    assigned_to: int | None = Query(default=None, alias="assignedTo"),
    store: CRMStore = Depends(get_store),
) -> list[TaskRead]:
    return task_service.list_tasks(store, assigned_to=assigned_to)


@tasks_router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(dto: TaskCreate, store: CRMStore = Depends(get_store)) -> TaskRead:
    return task_service.create_task(store, dto)


@tasks_router.get("/{task_id}", response_model=TaskRead)
def get_task(task_id: int, store: CRMStore = Depends(get_store)) -> TaskRead:
    return task_service.get_task(store, task_id)


@tasks_router.put("/{task_id}", response_model=TaskRead)
def update_task(task_id: int, dto: TaskUpdate, store: CRMStore = Depends(get_store)) -> TaskRead:
    return task_service.update_task(store, task_id, dto)


@tasks_router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_task(task_id: int, store: CRMStore = Depends(get_store)) -> Response:
    task_service.delete_task(store, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@tickets_router.get("", response_model=list[TicketRead])
def list_tickets(
    customer_id: int | None = Query(default=None, alias="customerId"),
    assigned_to: int | None = Query(default=None, alias="assignedTo"),
    store: CRMStore = Depends(get_store),
) -> list[TicketRead]:
    return ticket_service.list_tickets(store, customer_id=customer_id, assigned_to=assigned_to)


@tickets_router.post("", response_model=TicketRead, status_code=status.HTTP_201_CREATED)
def create_ticket(dto: TicketCreate, store: CRMStore = Depends(get_store)) -> TicketRead:
    return ticket_service.create_ticket(store, dto)


@tickets_router.get("/{ticket_id}", response_model=TicketRead)
def get_ticket(ticket_id: int, store: CRMStore = Depends(get_store)) -> TicketRead:
    return ticket_service.get_ticket(store, ticket_id)


@tickets_router.put("/{ticket_id}", response_model=TicketRead)
def update_ticket(ticket_id: int, dto: TicketUpdate, store: CRMStore = Depends(get_store)) -> TicketRead:
    return ticket_service.update_ticket(store, ticket_id, dto)


@tickets_router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_ticket(ticket_id: int, store: CRMStore = Depends(get_store)) -> Response:
    ticket_service.delete_ticket(store, ticket_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@activities_router.get("", response_model=list[ActivityRead])
def list_activities(
    related_to: RelatedEntityType | None = Query(default=None, alias="relatedTo"),
    related_id: int | None = Query(default=None, alias="relatedId"),
    store: CRMStore = Depends(get_store),
) -> list[ActivityRead]:
    return activity_service.list_activities(store, related_to=related_to, related_id=related_id)


@activities_router.post("", response_model=ActivityRead, status_code=status.HTTP_201_CREATED)
def create_activity(dto: ActivityCreate, store: CRMStore = Depends(get_store)) -> ActivityRead:
    return activity_service.create_activity(store, dto)


@dashboard_router.get("/stats", response_model=DashboardStatsRead)
def get_dashboard_stats(store: CRMStore = Depends(get_store)) -> DashboardStatsRead:
    return dashboard_service.compute_dashboard_stats(store)
