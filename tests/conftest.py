"""
Shared fixtures.

Every test gets a fresh in-memory store, so nothing leaks between tests.
Expense timestamps come from a ticking clock so "newest first" is
deterministic.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.audit import AuditLogger
from src.models.identity import ExternalCredential
from src.services import (
    AuthGateway,
    CategoryRegistry,
    ExpenseService,
    GroupService,
    InMemoryAuditStorage,
    InMemoryExpenseStore,
    InMemorySessionStore,
    TemplateService,
    UserDirectory,
)


class TickingClock:
    """Returns a later instant on every call."""

    def __init__(self, start: datetime = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)):
        self._now = start

    def __call__(self) -> datetime:
        self._now += timedelta(minutes=1)
        return self._now


class FailingCommitStore(InMemoryExpenseStore):
    """In-memory store whose commits can be made to fail."""

    def __init__(self):
        super().__init__()
        self.fail_commits = False

    def _publish(self, tables) -> None:
        if self.fail_commits:
            raise RuntimeError("disk full")
        super()._publish(tables)


@pytest.fixture
def store():
    return InMemoryExpenseStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def auth(store, session_store, audit_logger):
    return AuthGateway(store, session_store, audit_logger)


@pytest.fixture
def categories(store, audit_logger):
    return CategoryRegistry(store, audit_logger)


@pytest.fixture
def expenses(store, audit_logger):
    return ExpenseService(store, audit_logger, clock=TickingClock())


@pytest.fixture
def groups(store, audit_logger):
    return GroupService(store, audit_logger)


@pytest.fixture
def templates(store, audit_logger):
    return TemplateService(store, audit_logger, clock=TickingClock())


@pytest.fixture
def users(store, audit_logger):
    return UserDirectory(store, audit_logger)


@pytest.fixture
async def alice(auth):
    return await auth.authenticate(
        ExternalCredential(subject_id="apple:123", proposed_name="Alice")
    )


@pytest.fixture
async def bob(auth):
    return await auth.authenticate(
        ExternalCredential(subject_id="apple:456", proposed_name="Bob")
    )


@pytest.fixture
async def household(groups, alice):
    return await groups.create_group(alice, "Household")
