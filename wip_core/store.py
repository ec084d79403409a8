"""
Change order persistence seam.

CO numbers are assigned as "highest existing + 1", a read-then-write against
the store. The store must reject a second row with the same
(job_id, co_number); callers go through add_change_order, which re-reads and
retries when it loses that race.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, List, Protocol, Tuple

from wip_core.change_orders import get_next_co_number
from wip_core.models import ChangeOrder
from wip_core.utils import get_logger


class DuplicateChangeOrderNumber(ValueError):
    """A change order with the same job and number already exists."""

    def __init__(self, job_id: str, co_number: int):
        super().__init__(f"Change order {co_number} already exists for job {job_id}")
        self.job_id = job_id
        self.co_number = co_number


class ChangeOrderStore(Protocol):
    def list_for_job(self, job_id: str) -> List[ChangeOrder]:
        ...

    def insert(self, change_order: ChangeOrder) -> ChangeOrder:
        ...


class InMemoryChangeOrderStore:
    """Thread-safe store with a unique (job_id, co_number) constraint."""

    def __init__(self, change_orders: List[ChangeOrder] | None = None):
        self._lock = threading.Lock()
        self._rows: Dict[Tuple[str, int], ChangeOrder] = {}
        for co in change_orders or []:
            self.insert(co)

    def list_for_job(self, job_id: str) -> List[ChangeOrder]:
        with self._lock:
            rows = [co for (jid, _), co in self._rows.items() if jid == job_id]
        return sorted(rows, key=lambda co: co.co_number)

    def insert(self, change_order: ChangeOrder) -> ChangeOrder:
        key = (change_order.job_id, change_order.co_number)
        with self._lock:
            if key in self._rows:
                raise DuplicateChangeOrderNumber(*key)
            self._rows[key] = change_order
        return change_order

    def all(self) -> List[ChangeOrder]:
        with self._lock:
            return list(self._rows.values())


def add_change_order(store: ChangeOrderStore, draft: ChangeOrder, max_attempts: int = 3) -> ChangeOrder:
    """Number a draft change order and insert it, retrying on a numbering conflict."""
    logger = get_logger()
    for attempt in range(1, max_attempts + 1):
        existing = store.list_for_job(draft.job_id)
        numbered = replace(draft, co_number=get_next_co_number(existing, draft.job_id))
        try:
            created = store.insert(numbered)
        except DuplicateChangeOrderNumber:
            if attempt == max_attempts:
                raise
            logger.warning(
                "CO number %s taken for job %s, retrying (%s/%s)",
                numbered.co_number,
                draft.job_id,
                attempt,
                max_attempts,
            )
            continue
        logger.info("Created change order %s for job %s", created.co_number, created.job_id)
        return created
    raise ValueError("max_attempts must be at least 1")
