"""
Checklist item endpoints.
"""

from pydantic import BaseModel, Field

from mte_erp.core.models import ChecklistItemPayload
from mte_erp.ordering import CHECKLIST_ITEMS
from mte_erp.routers.ordered import ordered_router


class CreateChecklistItemRequest(BaseModel):
    check_list_id: int
    title: str = Field(min_length=1)
    checked: bool = False

    @property
    def container_id(self) -> int:
        return self.check_list_id

    def to_payload(self) -> ChecklistItemPayload:
        return ChecklistItemPayload(title=self.title.strip(), checked=self.checked)


class UpdateChecklistItemRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    checked: bool | None = None


router = ordered_router(CHECKLIST_ITEMS, "/checklist-items", CreateChecklistItemRequest, UpdateChecklistItemRequest)
