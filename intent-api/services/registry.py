"""
Store registry — the authoritative in-process map of store records.

Every read and write goes through a single asyncio.Lock. Callers only ever
receive detached snapshots, so a record is never observed half-built or
half-updated. No external call is made while the lock is held.
"""

import asyncio
import logging
import uuid
from collections import deque
from typing import Iterable, Optional

from config import settings
from exceptions import InvalidTransitionError, StoreAllocationError
from models import StoreRecord, StoreState, can_transition, utcnow

logger = logging.getLogger("registry")


def generate_store_id(prefix: str = settings.STORE_ID_PREFIX) -> str:
    return prefix + uuid.uuid4().hex[:6]


def store_endpoint(store_id: str) -> str:
    return f"{settings.ENDPOINT_SCHEME}://{store_id}.{settings.DOMAIN_SUFFIX}"


class StoreRegistry:
    def __init__(
        self,
        id_factory=generate_store_id,
        max_attempts: int = settings.ID_ALLOCATION_ATTEMPTS,
        activity_max: int = settings.ACTIVITY_LOG_MAX,
    ) -> None:
        self._records: dict[str, StoreRecord] = {}
        self._lock = asyncio.Lock()
        self._id_factory = id_factory
        self._max_attempts = max_attempts
        self._activity_max = activity_max

    async def allocate(self) -> StoreRecord:
        """Insert a new Provisioning record under a fresh identifier."""
        async with self._lock:
            for _ in range(self._max_attempts):
                store_id = self._id_factory()
                if store_id not in self._records:
                    break
                logger.warning(f"Store id collision on {store_id} — regenerating")
            else:
                raise StoreAllocationError(
                    f"Could not allocate a unique store id after {self._max_attempts} attempts"
                )
            record = StoreRecord(
                id=store_id,
                endpoint=store_endpoint(store_id),
                message="Creating store resources...",
                activity=deque(maxlen=self._activity_max),
            )
            record.add_activity("PROVISIONING_START", "Store provisioning started")
            self._records[store_id] = record
            logger.info(f"Store {store_id} allocated")
            return record.snapshot()

    async def get(self, store_id: str) -> Optional[StoreRecord]:
        async with self._lock:
            record = self._records.get(store_id)
            return record.snapshot() if record else None

    async def list_records(self, state: Optional[StoreState] = None) -> list[StoreRecord]:
        async with self._lock:
            records = [r.snapshot() for r in self._records.values()]
        if state is not None:
            records = [r for r in records if r.state == state]
        return sorted(records, key=lambda r: r.created_at)

    async def ids_in_state(self, state: StoreState) -> list[str]:
        async with self._lock:
            return [r.id for r in self._records.values() if r.state == state]

    async def transition(
        self,
        store_id: str,
        target: StoreState,
        expected: Optional[Iterable[StoreState]] = None,
        message: str = "",
        event: str = "",
    ) -> Optional[StoreRecord]:
        """
        Compare-and-set a state transition.

        Returns the updated snapshot, or None if the record is gone or its
        current state is not among `expected`. Raises InvalidTransitionError
        when the state machine forbids the move.
        """
        async with self._lock:
            record = self._records.get(store_id)
            if record is None:
                return None
            if expected is not None and record.state not in set(expected):
                logger.debug(
                    f"Store {store_id}: skip {record.state.value} -> {target.value} (state moved)"
                )
                return None
            if not can_transition(record.state, target):
                raise InvalidTransitionError(
                    f"Store {store_id}: {record.state.value} -> {target.value} not allowed"
                )
            previous = record.state
            record.state = target
            record.updated_at = utcnow()
            if message:
                record.message = message
            record.add_activity(event or target.value.upper(), message or target.value)
            logger.info(f"Store {store_id}: {previous.value} -> {target.value}")
            return record.snapshot()

    async def note(self, store_id: str, event: str, message: str) -> None:
        """Record an activity entry and status message without changing state."""
        async with self._lock:
            record = self._records.get(store_id)
            if record is None:
                return
            record.message = message
            record.updated_at = utcnow()
            record.add_activity(event, message)

    async def remove(self, store_id: str) -> bool:
        async with self._lock:
            removed = self._records.pop(store_id, None) is not None
        if removed:
            logger.info(f"Store {store_id} removed from registry")
        return removed

    async def count_by_state(self) -> dict[str, int]:
        async with self._lock:
            counts = {s.value: 0 for s in StoreState}
            for record in self._records.values():
                counts[record.state.value] += 1
            counts["total"] = len(self._records)
            return counts
