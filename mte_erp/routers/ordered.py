"""
Route factory for ordered collections.

GET    /{prefix}?container_id=    - live items in order
POST   /{prefix}                  - append a new item
PATCH  /{prefix}/{id}             - update payload fields
POST   /{prefix}/{id}/move        - move to an order (optionally another container)
DELETE /{prefix}/{id}             - soft delete and compact
POST   /{prefix}/{id}/resync      - re-publish the container snapshot
"""

from typing import Type

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from mte_erp.ordering import Collection, ReorderEngine
from mte_erp.routers.deps import get_actor, get_reorder_engine


class MoveRequest(BaseModel):
    order: int
    container_id: int | None = None  # None keeps the current container


def ordered_router(
    collection: Collection,
    prefix: str,
    create_model: Type[BaseModel],
    update_model: Type[BaseModel],
) -> APIRouter:
    """
    Build the CRUD + move routes for one collection.

    create_model must expose container_id and to_payload(); update_model's
    set fields are merged into the item payload.
    """
    router = APIRouter(prefix=prefix, tags=[collection.name])

    @router.get("")
    def list_items(container_id: int, engine: ReorderEngine = Depends(get_reorder_engine)):
        items = engine.list_items(collection, container_id)
        return {"container_id": container_id, "items": [item.to_dict() for item in items]}

    @router.post("", status_code=201)
    def create_item(
        req: create_model,  # type: ignore[valid-type]
        engine: ReorderEngine = Depends(get_reorder_engine),
        actor: int | None = Depends(get_actor),
    ):
        result = engine.create(collection, req.container_id, req.to_payload(), actor=actor)
        return result.to_dict()

    @router.patch("/{item_id}")
    def update_item(
        item_id: int,
        req: update_model,  # type: ignore[valid-type]
        engine: ReorderEngine = Depends(get_reorder_engine),
        actor: int | None = Depends(get_actor),
    ):
        result = engine.update(collection, item_id, req.model_dump(exclude_unset=True), actor=actor)
        return result.to_dict()

    @router.post("/{item_id}/move")
    def move_item(
        item_id: int,
        req: MoveRequest,
        engine: ReorderEngine = Depends(get_reorder_engine),
        actor: int | None = Depends(get_actor),
    ):
        result = engine.move(collection, item_id, req.order, req.container_id, actor=actor)
        return result.to_dict()

    @router.delete("/{item_id}")
    def delete_item(
        item_id: int,
        engine: ReorderEngine = Depends(get_reorder_engine),
        actor: int | None = Depends(get_actor),
    ):
        result = engine.delete(collection, item_id, actor=actor)
        return result.to_dict()

    @router.post("/{item_id}/resync")
    def resync_item(item_id: int, engine: ReorderEngine = Depends(get_reorder_engine)):
        result = engine.resync(collection, item_id)
        return result.to_dict()

    return router
