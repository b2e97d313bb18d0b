"""
Team endpoints.

GET  /teams?page=&limit=&search=   - live teams by name, with the total
POST /teams                        - create, or rename when id is given
GET  /teams/{team_id}              - one team
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from mte_erp.ordering import TEAMS, ContainerManager
from mte_erp.routers.deps import get_actor, get_container_manager

router = APIRouter(prefix="/teams", tags=["teams"])


class SaveTeamRequest(BaseModel):
    id: int | None = None
    name: str = Field(min_length=1)


@router.get("")
def list_teams(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    search: str | None = None,
    manager: ContainerManager = Depends(get_container_manager),
):
    total, teams = manager.list_page(TEAMS, search=search, page=page, limit=limit)
    return {"page": page, "total": total, "items": [team.to_dict() for team in teams]}


@router.post("")
def save_team(
    req: SaveTeamRequest,
    manager: ContainerManager = Depends(get_container_manager),
    actor: int | None = Depends(get_actor),
):
    if req.id is None:
        team = manager.create(TEAMS, req.name, actor=actor)
    else:
        team = manager.rename(TEAMS, req.id, req.name, actor=actor)
    return {"created": req.id is None, "item": team.to_dict()}


@router.get("/{team_id}")
def get_team(team_id: int, manager: ContainerManager = Depends(get_container_manager)):
    return manager.get(TEAMS, team_id).to_dict()
