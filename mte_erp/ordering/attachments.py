"""
Task attachments.

Files are uploaded on their own first, then linked to a task in one
transaction that also records a Task_Attachment_Added activity. Only
attachments not yet linked anywhere can be linked.
"""

import time
from uuid import uuid4

from mte_erp.config import settings
from mte_erp.core.errors import NotFound, ValidationFailed
from mte_erp.core.logging import get_logger
from mte_erp.core.models import Activity, ActivityAction, Attachment
from mte_erp.ordering.collections import TASKS
from mte_erp.ordering.engine import run_with_retry
from mte_erp.ordering.fanout import LiveUpdateFanout
from mte_erp.ordering.store import OrderStore
from mte_erp.services.minio import BlobStore

log = get_logger(__name__)

ATTACHMENTS_CREATED_EVENT = "attachments-created"
TASK_CHANNEL = "private-task-{task_id}"


def object_name_for(filename: str) -> str:
    """Unique blob name that keeps the original filename readable."""
    base = filename.replace("/", "_").replace("\\", "_").strip() or "file"
    return f"{int(time.time() * 1000)}-{uuid4().hex[:8]}-{base}"


class TaskAttachments:
    """Upload files and link them to tasks."""

    def __init__(
        self,
        store: OrderStore,
        blob_store: BlobStore,
        fanout: LiveUpdateFanout,
        max_size: int | None = None,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
    ):
        self.store = store
        self.blob_store = blob_store
        self.fanout = fanout
        self.max_size = max_size or settings.attachment_max_size
        self.max_attempts = max_attempts or settings.reorder_max_attempts
        self.retry_delay = settings.reorder_retry_delay if retry_delay is None else retry_delay

    def upload(
        self,
        filename: str,
        data: bytes,
        content_type: str | None = None,
        actor: int | None = None,
    ) -> Attachment | None:
        """
        Store one file and register it as an unlinked attachment.

        Returns:
            The attachment, or None when the file is over the size limit.
        """
        if len(data) > self.max_size:
            log.warning("attachment_too_large", filename=filename, size=len(data), max_size=self.max_size)
            return None

        object_name = object_name_for(filename)
        content_type = content_type or "application/octet-stream"
        url = self.blob_store.add_file(object_name, data, content_type)

        def attempt() -> Attachment:
            with self.store.transaction() as tx:
                return tx.insert_attachment(filename, object_name, url, content_type, len(data), actor)

        try:
            attachment = run_with_retry("upload_attachment", attempt, self.max_attempts, self.retry_delay)
        except Exception:
            self.blob_store.delete_file(object_name)
            raise

        log.info("attachment_uploaded", attachment_id=attachment.id, filename=filename, size=len(data))
        return attachment

    def attach(self, task_id: int, attachment_ids: list[int], actor: int | None = None) -> list[Attachment]:
        """
        Link uploaded attachments to a task.

        Attachments already linked elsewhere are left alone; the returned
        list holds only those linked by this call.

        Raises:
            ValidationFailed: No attachment ids given.
            NotFound: The task is missing or deleted.
        """
        ids = list(dict.fromkeys(attachment_ids))
        if not ids:
            raise ValidationFailed("At least one attachment id is required")

        def attempt() -> list[Attachment]:
            with self.store.transaction() as tx:
                task = tx.get(TASKS, task_id)
                if task is None or task.is_deleted:
                    raise NotFound(f"tasks item {task_id} not found", item_id=task_id)
                linked = tx.link_attachments(task_id, ids)
                if linked:
                    tx.add_activity(Activity(
                        task_id=task_id,
                        action=ActivityAction.ATTACHMENT_ADDED,
                        created_by=actor,
                        description=f"{len(linked)} attachment(s) added",
                        details={"attachment_ids": [a.id for a in linked]},
                    ))
                return linked

        linked = run_with_retry("attach_files", attempt, self.max_attempts, self.retry_delay)
        log.info("attachments_linked", task_id=task_id, requested=len(ids), linked=len(linked))
        if linked:
            self.fanout.publish(
                TASK_CHANNEL.format(task_id=task_id),
                ATTACHMENTS_CREATED_EVENT,
                {"task_id": task_id, "items": [a.to_dict() for a in linked]},
            )
        return linked

    def for_task(self, task_id: int) -> list[Attachment]:
        return self.store.task_attachments(task_id)

