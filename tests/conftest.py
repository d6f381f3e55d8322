"""Shared test fixtures and helpers."""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Optional

# Keep the module-level singletons away from the working directory
os.environ.setdefault(
    "DATABASE_PATH", os.path.join(tempfile.mkdtemp(prefix="frontdesk-"), "test.db")
)

import pytest

from src.database.seed import INITIAL_KNOWLEDGE
from src.database.store import Collection, RecordStore
from src.models.records import KnowledgeEntry, KnowledgeSource, new_record_id
from src.services.delivery import DeliveryNotifier
from src.services.follow_up import FollowUpService
from src.services.help_request import HelpRequestService
from src.services.knowledge_base import KnowledgeBaseService
from src.services.notification import NotificationSink
from src.services.poller import ResolutionPoller
from src.services.session_directory import SessionDirectory

START = datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeSession:
    """Stands in for a LiveKit AgentSession."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.said = []

    async def say(self, message: str):
        if self.fail:
            raise RuntimeError("room closed")
        self.said.append(message)


class RecordingSink(NotificationSink):
    def __init__(self):
        self.supervisor = []
        self.customer = []

    async def notify_supervisor(self, request):
        self.supervisor.append(request)

    async def notify_customer(self, customer_phone, message):
        self.customer.append((customer_phone, message))


def make_entry(
    question: str,
    answer: str = "An answer.",
    category: Optional[str] = None,
    source: KnowledgeSource = KnowledgeSource.INITIAL,
) -> KnowledgeEntry:
    return KnowledgeEntry(
        id=new_record_id("kb"),
        question=question,
        answer=answer,
        category=category,
        source=source,
        created_at=START,
        updated_at=START,
    )


def add_entry(store: RecordStore, *args, **kwargs) -> KnowledgeEntry:
    entry = make_entry(*args, **kwargs)
    store.insert(Collection.KNOWLEDGE, entry.id, entry.model_dump(mode="json"))
    return entry


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return RecordStore(db_path=str(tmp_path / "records.db"))


@pytest.fixture
def seeded_store(store):
    for item in INITIAL_KNOWLEDGE:
        add_entry(store, item["question"], item["answer"], item["category"])
    return store


@pytest.fixture
def directory():
    return SessionDirectory()


@pytest.fixture
def notifier(directory):
    return DeliveryNotifier(directory)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def kb_service(seeded_store, clock):
    return KnowledgeBaseService(seeded_store, clock=clock)


@pytest.fixture
def help_service(seeded_store, kb_service, sink, notifier, clock):
    return HelpRequestService(
        store=seeded_store,
        knowledge_base=kb_service,
        sink=sink,
        notifier=notifier,
        timeout_hours=1,
        clock=clock,
    )


@pytest.fixture
def follow_ups(seeded_store, clock):
    return FollowUpService(seeded_store, clock=clock)


@pytest.fixture
def poller(help_service, notifier, follow_ups, sink):
    return ResolutionPoller(help_service, notifier, follow_ups, sink, interval=0.01)
