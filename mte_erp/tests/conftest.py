"""
Shared pytest fixtures for mte_erp tests.
"""

import pytest

from mte_erp.communications import CommunicationService
from mte_erp.core.models import (
    ChecklistItemPayload,
    LineItem,
    Recipient,
    RecipientKind,
    Representative,
    TaskListPayload,
    TaskPayload,
)
from mte_erp.ordering import (
    CHECK_LISTS,
    CHECKLIST_ITEMS,
    TASK_LISTS,
    TASKS,
    TEAMS,
    ContainerManager,
    LiveUpdateFanout,
    ReorderEngine,
    TaskAttachments,
)
from mte_erp.tests.fakes import (
    FakeGateway,
    InMemoryBlobStore,
    InMemoryCommunicationRepository,
    InMemoryOrderStore,
    RecordingPublisher,
)

TEAM_ID = 1
OTHER_TEAM_ID = 2
CHECK_LIST_ID = 500
CHECKLIST_TASK_ID = 900

ACTOR_ID = 7
FPR_ID = 3


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def order_store() -> InMemoryOrderStore:
    store = InMemoryOrderStore()
    store.add_container(TEAMS, TEAM_ID, "Design")
    store.add_container(TEAMS, OTHER_TEAM_ID, "Build")
    store.add_container(CHECK_LISTS, CHECK_LIST_ID, "Site visit", parent_id=CHECKLIST_TASK_ID)
    return store


@pytest.fixture
def engine(order_store, publisher) -> ReorderEngine:
    return ReorderEngine(order_store, LiveUpdateFanout(publisher), max_attempts=3, retry_delay=0)


@pytest.fixture
def containers(order_store, publisher) -> ContainerManager:
    return ContainerManager(order_store, LiveUpdateFanout(publisher), max_attempts=3, retry_delay=0)


@pytest.fixture
def board(engine, publisher) -> dict:
    """
    Two task lists on team 1 with tasks:
    todo: A, B, C, D  /  done: E, F
    """
    todo = engine.create(TASK_LISTS, TEAM_ID, TaskListPayload(name="To do"), actor=ACTOR_ID).item
    done = engine.create(TASK_LISTS, TEAM_ID, TaskListPayload(name="Done"), actor=ACTOR_ID).item

    tasks = {}
    for title in "ABCD":
        tasks[title] = engine.create(TASKS, todo.id, TaskPayload(title=title), actor=ACTOR_ID).item
    for title in "EF":
        tasks[title] = engine.create(TASKS, done.id, TaskPayload(title=title), actor=ACTOR_ID).item

    publisher.events.clear()
    return {"todo": todo, "done": done, "tasks": tasks}


@pytest.fixture
def checklist(engine, publisher) -> list:
    items = [
        engine.create(CHECKLIST_ITEMS, CHECK_LIST_ID, ChecklistItemPayload(title=title)).item
        for title in ("Measure", "Quote", "Order")
    ]
    publisher.events.clear()
    return items


@pytest.fixture
def supplier() -> Recipient:
    return Recipient(
        id=1,
        kind=RecipientKind.SUPPLIER,
        name="Acme Steel",
        emails=("sales@acme.example.com", "ops@acme.example.com"),
        whatsapp_numbers=("+911111111111",),
    )


@pytest.fixture
def customer() -> Recipient:
    return Recipient(
        id=2,
        kind=RecipientKind.CUSTOMER,
        name="Blue Build",
        emails=("buyer@bluebuild.example.com",),
        whatsapp_numbers=("+922222222222",),
    )


@pytest.fixture
def representative() -> Representative:
    return Representative(id=FPR_ID, name="Priya", email="priya@mte.example.com", mobile="+933333333333")


@pytest.fixture
def comm_repo(supplier, customer, representative) -> InMemoryCommunicationRepository:
    repo = InMemoryCommunicationRepository()
    repo.add_recipient(supplier)
    repo.add_recipient(customer)
    repo.users = {FPR_ID: "priya@mte.example.com", ACTOR_ID: "actor@mte.example.com"}
    repo.customer_sites = {customer.id: [{"id": 20, "name": "Site A"}, {"id": 21, "name": "Site B"}]}

    for item_id, remark in ((101, "Urgent"), (102, None), (103, "Urgent")):
        repo.add_item(RecipientKind.SUPPLIER, LineItem(
            id=item_id,
            recipient_id=supplier.id,
            description=f"Steel pipe {item_id}",
            unit="m",
            quantity=10,
            size="2in",
            pr_number_and_name="PR-1",
            site_id=20,
            site_name="Site A",
            remark=remark,
            representative=representative,
        ))

    repo.add_item(RecipientKind.CUSTOMER, LineItem(
        id=201, recipient_id=customer.id, description="Valve", quantity=2, price=15.5,
        site_id=20, site_name="Site A", pr_number_and_name="PR-7", representative=representative,
    ))
    repo.add_item(RecipientKind.CUSTOMER, LineItem(
        id=202, recipient_id=customer.id, description="Flange", quantity=4, price=3.0,
        site_id=21, site_name="Site B", pr_number_and_name="PR-8",
    ))
    # unpriced: never offered
    repo.add_item(RecipientKind.CUSTOMER, LineItem(
        id=203, recipient_id=customer.id, description="Gasket", quantity=1,
        site_id=20, site_name="Site A", pr_number_and_name="PR-7",
    ))
    return repo


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def attachments(order_store, blob_store, publisher) -> TaskAttachments:
    return TaskAttachments(
        order_store, blob_store, LiveUpdateFanout(publisher), max_size=1024, max_attempts=3, retry_delay=0,
    )


@pytest.fixture
def service(comm_repo, blob_store, gateway) -> CommunicationService:
    return CommunicationService(comm_repo, blob_store, gateway)
