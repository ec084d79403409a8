import logging

import pytest

from conftest import make_co
from wip_core.models import ChangeOrderStatus
from wip_core.store import DuplicateChangeOrderNumber, InMemoryChangeOrderStore, add_change_order


class RacingStore(InMemoryChangeOrderStore):
    """Another writer takes the number we just read, `races` times."""

    def __init__(self, races: int):
        super().__init__()
        self.races = races

    def list_for_job(self, job_id):
        rows = super().list_for_job(job_id)
        if self.races > 0:
            self.races -= 1
            next_number = max((co.co_number for co in rows), default=0) + 1
            racer = make_co(next_number, ChangeOrderStatus.PENDING, 0, job_id=job_id, id=f"other-{next_number}")
            super().insert(racer)
        return rows


def test_store_rejects_duplicate_numbers():
    store = InMemoryChangeOrderStore([make_co(1, ChangeOrderStatus.PENDING, 100)])
    with pytest.raises(DuplicateChangeOrderNumber) as excinfo:
        store.insert(make_co(1, ChangeOrderStatus.APPROVED, 200))
    assert excinfo.value.job_id == "J-100"
    assert excinfo.value.co_number == 1
    assert isinstance(excinfo.value, ValueError)


def test_add_change_order_numbers_sequentially():
    store = InMemoryChangeOrderStore()
    draft = make_co(0, ChangeOrderStatus.PENDING, 1000)
    first = add_change_order(store, draft)
    second = add_change_order(store, draft)
    assert (first.co_number, second.co_number) == (1, 2)
    assert [co.co_number for co in store.list_for_job("J-100")] == [1, 2]


def test_add_change_order_retries_after_conflict(caplog):
    store = RacingStore(races=1)
    with caplog.at_level(logging.WARNING, logger="wip_core"):
        created = add_change_order(store, make_co(0, ChangeOrderStatus.PENDING, 1000))
    assert created.co_number == 2
    assert len(store.all()) == 2
    assert "retrying" in caplog.text


def test_add_change_order_gives_up_after_max_attempts():
    store = RacingStore(races=5)
    with pytest.raises(DuplicateChangeOrderNumber):
        add_change_order(store, make_co(0, ChangeOrderStatus.PENDING, 1000), max_attempts=3)
