"""
Task endpoints.

Ordered-collection routes under /tasks plus:
GET /tasks/assigned/{user_id}      - open tasks assigned to a user
GET /tasks/{task_id}/activities    - activity log, newest first
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from mte_erp.core.models import TaskPayload
from mte_erp.ordering import TASKS, OrderStore
from mte_erp.routers.deps import get_order_store
from mte_erp.routers.ordered import ordered_router

ACTIVITIES_PAGE_SIZE = 10


class CreateTaskRequest(BaseModel):
    task_list_id: int
    title: str = Field(min_length=1)
    description: str = ""
    assignee_ids: list[int] = []
    start_date: date | None = None
    end_date: date | None = None

    @property
    def container_id(self) -> int:
        return self.task_list_id

    def to_payload(self) -> TaskPayload:
        return TaskPayload(
            title=self.title.strip(),
            description=self.description,
            assignee_ids=tuple(dict.fromkeys(self.assignee_ids)),
            start_date=self.start_date,
            end_date=self.end_date,
        )


class UpdateTaskRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    completed: bool | None = None
    assignee_ids: list[int] | None = None
    start_date: date | None = None
    end_date: date | None = None


router = APIRouter()


@router.get("/tasks/assigned/{user_id}", tags=["tasks"])
def assigned_tasks(user_id: int, store: OrderStore = Depends(get_order_store)):
    """Open tasks assigned to a user, earliest deadline first."""
    tasks = store.tasks_assigned_to(user_id)
    return {"user_id": user_id, "items": [task.to_dict() for task in tasks]}


@router.get("/tasks/{task_id}/activities", tags=["tasks"])
def task_activities(
    task_id: int,
    page: int = Query(default=1, ge=1),
    store: OrderStore = Depends(get_order_store),
):
    total, activities = store.list_activities(task_id, ACTIVITIES_PAGE_SIZE, (page - 1) * ACTIVITIES_PAGE_SIZE)
    return {
        "task_id": task_id,
        "page": page,
        "total": total,
        "items": [activity.to_dict() for activity in activities],
    }


router.include_router(ordered_router(TASKS, "/tasks", CreateTaskRequest, UpdateTaskRequest))
