"""
Task checklist endpoints.

GET    /check-lists?task_id=     - a task's checklists, each with its items
POST   /check-lists              - create an empty checklist on a task
PATCH  /check-lists/{id}         - rename
DELETE /check-lists/{id}         - soft delete, items included
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from mte_erp.ordering import CHECK_LISTS, ContainerManager
from mte_erp.routers.deps import get_actor, get_container_manager

router = APIRouter(prefix="/check-lists", tags=["check_lists"])


class CreateCheckListRequest(BaseModel):
    task_id: int
    name: str = Field(min_length=1)


class RenameCheckListRequest(BaseModel):
    name: str = Field(min_length=1)


@router.get("")
def list_check_lists(task_id: int, manager: ContainerManager = Depends(get_container_manager)):
    check_lists = manager.list_with_items(CHECK_LISTS, task_id)
    return {
        "task_id": task_id,
        "items": [
            {**check_list.to_dict(), "items": [item.to_dict() for item in items]}
            for check_list, items in check_lists
        ],
    }


@router.post("", status_code=201)
def create_check_list(
    req: CreateCheckListRequest,
    manager: ContainerManager = Depends(get_container_manager),
    actor: int | None = Depends(get_actor),
):
    return manager.create(CHECK_LISTS, req.name, parent_id=req.task_id, actor=actor).to_dict()


@router.patch("/{check_list_id}")
def rename_check_list(
    check_list_id: int,
    req: RenameCheckListRequest,
    manager: ContainerManager = Depends(get_container_manager),
    actor: int | None = Depends(get_actor),
):
    return manager.rename(CHECK_LISTS, check_list_id, req.name, actor=actor).to_dict()


@router.delete("/{check_list_id}")
def delete_check_list(
    check_list_id: int,
    manager: ContainerManager = Depends(get_container_manager),
    actor: int | None = Depends(get_actor),
):
    check_list = manager.delete(CHECK_LISTS, check_list_id, actor=actor)
    return {"id": check_list.id, "deleted": True}
