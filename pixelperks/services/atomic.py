"""Optimistic read-modify-write for stations and members.

- `run_atomic` runs a unit of work inside one transaction.
- Writes inside the work are conditioned on the version that was read
  (see UpdateData.write_station / write_member); a stale write raises
  VersionConflict, the transaction rolls back, and the work is re-run from
  fresh reads.
- Deadlocks and serialization failures reported by the database are
  retried the same way.
- After `max_retries` conflicting attempts a StorageConflictError is raised
  for the caller to report as a transient failure.
"""

import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pixelperks.crud import VersionConflict
from pixelperks.load_secrets import storage_max_retries

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


class StorageConflictError(RuntimeError):
    """Concurrent writers kept winning; the operation may be retried later."""


def is_transient(error: DBAPIError) -> bool:
    """Whether the database aborted the transaction only because of a concurrent one."""
    code = getattr(error.orig, "sqlstate", None) or getattr(error.orig, "pgcode", None)
    if code in RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(error.orig)


async def run_atomic(
    session_factory: async_sessionmaker,
    work: Callable[[AsyncSession], Awaitable[T]],
    label: str,
    max_retries: int = storage_max_retries,
) -> T:
    for attempt in range(1, max_retries + 1):
        try:
            async with session_factory() as session:
                async with session.begin():
                    return await work(session)
        except VersionConflict as e:
            logging.warning(f"{label}: write conflict on attempt {attempt}/{max_retries}: {e}")
        except DBAPIError as e:
            if not is_transient(e):
                raise
            logging.warning(f"{label}: transaction aborted on attempt {attempt}/{max_retries}: {e.orig}")
    raise StorageConflictError(f"{label}: gave up after {max_retries} conflicting attempts")
