"""
Shared FastAPI dependencies.

Each provider builds its collaborator once per process; tests swap them
out through app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Header

from mte_erp.communications import CommunicationService, PostgresCommunicationRepository
from mte_erp.core.database import Database
from mte_erp.ordering import (
    ContainerManager,
    LiveUpdateFanout,
    OrderStore,
    PostgresOrderStore,
    ReorderEngine,
    TaskAttachments,
)
from mte_erp.services.gateway import HttpMessagingGateway
from mte_erp.services.minio import BlobStore, MinIOClient
from mte_erp.services.publisher import get_publisher


@lru_cache
def get_database() -> Database:
    return Database()


@lru_cache
def get_order_store() -> OrderStore:
    return PostgresOrderStore(get_database())


@lru_cache
def get_blob_store() -> BlobStore:
    return MinIOClient()


@lru_cache
def get_fanout() -> LiveUpdateFanout:
    return LiveUpdateFanout(get_publisher())


@lru_cache
def get_reorder_engine() -> ReorderEngine:
    return ReorderEngine(get_order_store(), get_fanout())


@lru_cache
def get_container_manager() -> ContainerManager:
    return ContainerManager(get_order_store(), get_fanout())


@lru_cache
def get_task_attachments() -> TaskAttachments:
    return TaskAttachments(get_order_store(), get_blob_store(), get_fanout())


@lru_cache
def get_communication_service() -> CommunicationService:
    return CommunicationService(
        repository=PostgresCommunicationRepository(get_database()),
        blob_store=get_blob_store(),
        gateway=HttpMessagingGateway(),
    )


def get_actor(x_user_id: int | None = Header(default=None)) -> int | None:
    """Acting user id from the X-User-Id header set by the auth proxy."""
    return x_user_id
