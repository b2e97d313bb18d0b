"""
Attachment endpoints.

POST /attachments                   - upload files (multipart), unlinked
GET  /tasks/{task_id}/attachments   - files linked to a task
POST /tasks/{task_id}/attachments   - link uploaded files to a task
"""

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel

from mte_erp.ordering import TaskAttachments
from mte_erp.routers.deps import get_actor, get_task_attachments

router = APIRouter(tags=["attachments"])


class AttachFilesRequest(BaseModel):
    attachment_ids: list[int]


@router.post("/attachments", status_code=201)
def upload_attachments(
    files: list[UploadFile] = File(...),
    attachments: TaskAttachments = Depends(get_task_attachments),
    actor: int | None = Depends(get_actor),
):
    """Files over the size limit are skipped and listed in the response."""
    uploaded, skipped = [], []
    for upload in files:
        raw = upload.file.read()
        attachment = attachments.upload(upload.filename or "file", raw, upload.content_type, actor=actor)
        if attachment is None:
            skipped.append(upload.filename)
        else:
            uploaded.append(attachment.to_dict())
    return {"items": uploaded, "skipped": skipped}


@router.get("/tasks/{task_id}/attachments")
def task_attachments(task_id: int, attachments: TaskAttachments = Depends(get_task_attachments)):
    return {"task_id": task_id, "items": [a.to_dict() for a in attachments.for_task(task_id)]}


@router.post("/tasks/{task_id}/attachments")
def attach_files(
    task_id: int,
    req: AttachFilesRequest,
    attachments: TaskAttachments = Depends(get_task_attachments),
    actor: int | None = Depends(get_actor),
):
    linked = attachments.attach(task_id, req.attachment_ids, actor=actor)
    return {"task_id": task_id, "items": [a.to_dict() for a in linked]}
