"""Progression stores - optimistic-concurrency persistence for ProgressionState.

Writers load a state together with its version, compute a new state in
memory, and commit with ``compare_and_swap``. The swap only succeeds if
nobody else committed in between; otherwise ``VersionConflict`` is raised and
the caller reloads and recomputes.
"""

import abc
import asyncio
import logging
import threading

from sqlalchemy import delete, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyhub.core.exceptions import (
    ProgressionAlreadyExists,
    ProgressionNotFound,
    ProgressionStateRejected,
    StorageUnavailable,
    VersionConflict,
)
from studyhub.models.progression import ProgressionRecord
from studyhub.services.state import CounterKind, ProgressionState

logger = logging.getLogger(__name__)

# Infrastructure failures surfaced as StorageUnavailable. IntegrityError is a
# DBAPIError too, so catch it first wherever a constraint can fail.
_TRANSIENT_ERRORS = (OperationalError, DBAPIError, OSError)


class ProgressionStore(abc.ABC):
    """Interface the engine consumes. One record per user, written atomically."""

    @abc.abstractmethod
    async def create(self, user_id: int) -> ProgressionState:
        """Create a zeroed record at registration."""

    @abc.abstractmethod
    async def delete(self, user_id: int) -> None:
        """Remove the record at account deletion."""

    @abc.abstractmethod
    async def load(self, user_id: int) -> tuple[ProgressionState, int]:
        """Return a private copy of the state and its version."""

    @abc.abstractmethod
    async def compare_and_swap(
        self,
        user_id: int,
        expected_version: int,
        new_state: ProgressionState,
    ) -> int:
        """Write ``new_state`` if the stored version equals ``expected_version``.

        Returns the new version.

        Raises:
            VersionConflict: stored version moved on, or the record is gone.
            ProgressionStateRejected: the state breaks a storage constraint.
            StorageUnavailable: infrastructure failure.
        """


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class InMemoryProgressionStore(ProgressionStore):
    """Process-local store for tests and tooling.

    Safe to share across threads and event loops. Each operation yields to
    the event loop before touching data so concurrent callers interleave
    between load and swap the way they would against a remote database.
    """

    def __init__(self):
        self._records: dict[int, ProgressionState] = {}
        self._lock = threading.Lock()
        self.commits = 0
        self.conflicts = 0

    def seed(self, state: ProgressionState) -> None:
        """Insert or overwrite a record as-is (test setup)."""
        with self._lock:
            self._records[state.user_id] = state.copy()

    async def create(self, user_id: int) -> ProgressionState:
        await asyncio.sleep(0)
        with self._lock:
            if user_id in self._records:
                raise ProgressionAlreadyExists(user_id)
            state = ProgressionState(user_id=user_id)
            self._records[user_id] = state
            return state.copy()

    async def delete(self, user_id: int) -> None:
        await asyncio.sleep(0)
        with self._lock:
            if self._records.pop(user_id, None) is None:
                raise ProgressionNotFound(user_id)

    async def load(self, user_id: int) -> tuple[ProgressionState, int]:
        await asyncio.sleep(0)
        with self._lock:
            record = self._records.get(user_id)
            if record is None:
                raise ProgressionNotFound(user_id)
            snapshot = record.copy()
        return snapshot, snapshot.version

    async def compare_and_swap(
        self,
        user_id: int,
        expected_version: int,
        new_state: ProgressionState,
    ) -> int:
        await asyncio.sleep(0)
        with self._lock:
            current = self._records.get(user_id)
            if current is None or current.version != expected_version:
                self.conflicts += 1
                raise VersionConflict(user_id, expected_version)
            stored = new_state.copy()
            stored.version = expected_version + 1
            self._records[user_id] = stored
            self.commits += 1
            return stored.version


# =============================================================================
# SQLALCHEMY STORE
# =============================================================================

def _record_to_state(record: ProgressionRecord) -> ProgressionState:
    return ProgressionState.from_storage(
        user_id=record.user_id,
        xp=record.xp,
        level=record.level,
        streak_current=record.streak_current,
        streak_longest=record.streak_longest,
        last_activity_date=record.last_activity_date,
        counters=record.counters,
        badges=record.badges,
        version=record.version,
    )


def _state_columns(state: ProgressionState) -> dict:
    return {
        "xp": state.xp,
        "level": state.level,
        "streak_current": state.streak_current,
        "streak_longest": state.streak_longest,
        "last_activity_date": state.last_activity_date,
        "counters": {kind.value: state.counter(kind) for kind in CounterKind},
        "badges": sorted(state.badges),
    }


class SqlAlchemyProgressionStore(ProgressionStore):
    """Durable store on the ``progression_states`` table.

    Every operation runs in its own short transaction; compare-and-swap is a
    single conditional UPDATE, so a record is always written as one unit.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def create(self, user_id: int) -> ProgressionState:
        state = ProgressionState(user_id=user_id)
        record = ProgressionRecord(user_id=user_id, version=0, **_state_columns(state))
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add(record)
        except IntegrityError as exc:
            raise ProgressionAlreadyExists(user_id) from exc
        except _TRANSIENT_ERRORS as exc:
            raise StorageUnavailable("create", str(exc)) from exc
        logger.info("Created progression record for user %d", user_id)
        return state

    async def delete(self, user_id: int) -> None:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(ProgressionRecord).where(ProgressionRecord.user_id == user_id)
                    )
        except _TRANSIENT_ERRORS as exc:
            raise StorageUnavailable("delete", str(exc)) from exc
        if result.rowcount == 0:
            raise ProgressionNotFound(user_id)
        logger.info("Deleted progression record for user %d", user_id)

    async def load(self, user_id: int) -> tuple[ProgressionState, int]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(ProgressionRecord).where(ProgressionRecord.user_id == user_id)
                )
                record = result.scalar_one_or_none()
                state = _record_to_state(record) if record is not None else None
        except _TRANSIENT_ERRORS as exc:
            raise StorageUnavailable("load", str(exc)) from exc
        if state is None:
            raise ProgressionNotFound(user_id)
        return state, state.version

    async def compare_and_swap(
        self,
        user_id: int,
        expected_version: int,
        new_state: ProgressionState,
    ) -> int:
        new_version = expected_version + 1
        stmt = (
            update(ProgressionRecord)
            .where(
                ProgressionRecord.user_id == user_id,
                ProgressionRecord.version == expected_version,
            )
            .values(version=new_version, **_state_columns(new_state))
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    result = await session.execute(stmt)
        except IntegrityError as exc:
            raise ProgressionStateRejected(user_id, str(exc.orig)) from exc
        except _TRANSIENT_ERRORS as exc:
            raise StorageUnavailable("compare_and_swap", str(exc)) from exc
        if result.rowcount != 1:
            raise VersionConflict(user_id, expected_version)
        return new_version
