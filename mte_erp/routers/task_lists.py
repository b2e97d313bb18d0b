"""
Task list endpoints (columns of a team board).
"""

from pydantic import BaseModel, Field

from mte_erp.core.models import TaskListPayload
from mte_erp.ordering import TASK_LISTS
from mte_erp.routers.ordered import ordered_router


class CreateTaskListRequest(BaseModel):
    team_id: int
    name: str = Field(min_length=1)

    @property
    def container_id(self) -> int:
        return self.team_id

    def to_payload(self) -> TaskListPayload:
        return TaskListPayload(name=self.name.strip())


class UpdateTaskListRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)


router = ordered_router(TASK_LISTS, "/task-lists", CreateTaskListRequest, UpdateTaskListRequest)
