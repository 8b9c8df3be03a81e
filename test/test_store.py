import logging
from contextlib import asynccontextmanager

import pytest

from dcb_event_store import (
    AppendCondition,
    AppendConditionError,
    DomainEvent,
    EventCriteria,
    EventStoreImpl,
    SerializationConflictError,
    StoreUnavailableError,
)
from dcb_event_store.adaptors.sqlite import SQLiteQueryCompiler


class FakeTransaction:
    async def execute(self, sql, params=()):
        return 0

    async def fetch(self, sql, params=()):
        return []


class FakeHandle:
    """Records calls and fails the first `conflicts` transactions with a serialization conflict."""

    def __init__(self, conflicts=0, matches=False, error=None):
        self.conflicts = conflicts
        self.matches = matches
        self.error = error
        self.transactions = 0
        self.committed = []
        self.checked = []
        self.closed = False

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        pending = []
        self._pending = pending
        yield FakeTransaction()
        if self.transactions <= self.conflicts:
            raise SerializationConflictError("could not serialize access")
        if self.error is not None:
            raise self.error
        self.committed.extend(pending)

    async def matches_exist(self, tx, where):
        self.checked.append(where)
        return self.matches

    async def insert_event(self, tx, event):
        self._pending.append(event)
        return len(self.committed) + len(self._pending)

    async def select_events(self, where):
        return []

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_serialization_conflicts_are_retried(caplog):
    handle = FakeHandle(conflicts=2)
    store = EventStoreImpl(handle, SQLiteQueryCompiler(), max_retries=3)

    with caplog.at_level(logging.WARNING):
        positions = await store.append([DomainEvent(id="1", type="T")])

    assert positions == [1]
    assert handle.transactions == 3
    assert [e.id for e in handle.committed] == ["1"]
    assert "retrying (2/3)" in caplog.text


@pytest.mark.asyncio
async def test_retries_are_bounded():
    handle = FakeHandle(conflicts=10)
    store = EventStoreImpl(handle, SQLiteQueryCompiler(), max_retries=2)

    with pytest.raises(SerializationConflictError):
        await store.append([DomainEvent(id="1", type="T")])
    assert handle.transactions == 3
    assert handle.committed == []


@pytest.mark.asyncio
async def test_zero_retries_surfaces_first_conflict():
    handle = FakeHandle(conflicts=1)
    store = EventStoreImpl(handle, SQLiteQueryCompiler(), max_retries=0)
    with pytest.raises(SerializationConflictError):
        await store.append([DomainEvent(id="1", type="T")])
    assert handle.transactions == 1


@pytest.mark.asyncio
async def test_condition_violation_is_not_retried():
    handle = FakeHandle(matches=True)
    store = EventStoreImpl(handle, SQLiteQueryCompiler())
    condition = AppendCondition.for_criteria(EventCriteria().for_types("T"), after=4)

    with pytest.raises(AppendConditionError):
        await store.append([DomainEvent(id="1", type="T")], condition)
    assert handle.transactions == 1
    assert handle.committed == []
    [where] = handle.checked
    assert where.values == ("T", 4)


@pytest.mark.asyncio
async def test_other_backend_errors_propagate_without_retry():
    handle = FakeHandle(error=StoreUnavailableError("connection lost"))
    store = EventStoreImpl(handle, SQLiteQueryCompiler())
    with pytest.raises(StoreUnavailableError):
        await store.append([DomainEvent(id="1", type="T")])
    assert handle.transactions == 1


@pytest.mark.asyncio
async def test_empty_condition_skips_the_check():
    handle = FakeHandle(matches=True)
    store = EventStoreImpl(handle, SQLiteQueryCompiler())
    assert await store.append([DomainEvent(id="1", type="T"), DomainEvent(id="2", type="T")]) == [1, 2]
    assert handle.checked == []


@pytest.mark.asyncio
async def test_append_rejects_non_events():
    store = EventStoreImpl(FakeHandle(), SQLiteQueryCompiler())
    with pytest.raises(TypeError):
        await store.append([{"id": "1", "type": "T"}])


def test_negative_retry_budget_is_refused():
    with pytest.raises(ValueError):
        EventStoreImpl(FakeHandle(), SQLiteQueryCompiler(), max_retries=-1)


@pytest.mark.asyncio
async def test_close_closes_handle():
    handle = FakeHandle()
    await EventStoreImpl(handle, SQLiteQueryCompiler()).close()
    assert handle.closed


@pytest.mark.asyncio
async def test_retry_replays_a_generator_batch():
    handle = FakeHandle(conflicts=1)
    store = EventStoreImpl(handle, SQLiteQueryCompiler())

    positions = await store.append(DomainEvent(id=str(i), type="T") for i in range(3))

    assert positions == [1, 2, 3]
    assert handle.transactions == 2
    assert [e.id for e in handle.committed] == ["0", "1", "2"]
