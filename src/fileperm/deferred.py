"""
Deferred level assignment for newly created resources.

A resource created inside a transaction has no durable id until that
transaction commits, so assigning its level is split in two:

    1. submit(): register "give (namespace, key) level L once it exists"
       as a post-commit callback of the creating transaction
    2. drain(): after that commit, re-resolve (namespace, key), confirm
       the resource exists and write the level through a fresh LevelStore

An assignment enters the queue only when its own transaction commits. If
that transaction rolls back, the assignment is discarded with it and can
never be applied to a later resource that reuses the same key.

A resource that is still not visible is logged and dropped, never
retried. Any failure during the write is logged and dropped so it cannot
fail the unrelated operation that triggered it.
"""

import logging
import queue
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from fileperm.errors import FilePermError
from fileperm.schema import Level
from fileperm.store.db import FilePermDB
from fileperm.store.level_store import LevelStore

logger = logging.getLogger(__name__)


class DeferredLevelAssignment(BaseModel):
    """Request to assign a level to a resource once it is durable."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    namespace: int = Field(..., description="Namespace of the resource")
    key: str = Field(..., description="Key of the resource", min_length=1)
    level: Level = Field(..., description="Level to assign")


@dataclass
class DrainResult:
    """
    Outcome of processing queued assignments.

    Attributes:
        applied: Assignments written
        skipped: Assignments whose resource was not visible
        failed: Assignments whose write raised
    """

    applied: int = 0
    skipped: int = 0
    failed: int = 0


class DeferredLevelQueue:
    """
    Thread-safe queue of pending level assignments.

    Usage:
        pending = DeferredLevelQueue()
        with db.transaction():
            resource_id = db.create_resource(6, "Report.pdf")
            pending.submit(db, 6, "Report.pdf", "internal", store_factory)
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[DeferredLevelAssignment] = queue.Queue()

    def enqueue(self, namespace: int, key: str, level: Level) -> DeferredLevelAssignment:
        """Queue an assignment."""
        assignment = DeferredLevelAssignment(namespace=namespace, key=key, level=level)
        self._queue.put(assignment)
        return assignment

    def __len__(self) -> int:
        return self._queue.qsize()

    def submit(
        self,
        db: FilePermDB,
        namespace: int,
        key: str,
        level: Level,
        store_factory: Callable[[], LevelStore],
    ) -> DeferredLevelAssignment:
        """
        Assign a level once the calling thread's transaction on ``db`` commits.

        Outside a transaction the assignment is applied immediately. On
        rollback it is dropped without ever being queued.
        """
        assignment = DeferredLevelAssignment(namespace=namespace, key=key, level=level)

        def after_commit() -> None:
            self._queue.put(assignment)
            self.drain(store_factory)

        db.on_commit(after_commit)
        return assignment

    def drain(self, store_factory: Callable[[], LevelStore]) -> DrainResult:
        """
        Apply every queued assignment.

        Args:
            store_factory: Builds a fresh LevelStore for each assignment

        Returns:
            Counts of applied, skipped and failed assignments
        """
        result = DrainResult()
        while True:
            try:
                assignment = self._queue.get_nowait()
            except queue.Empty:
                break
            try:
                if self._apply(assignment, store_factory()):
                    result.applied += 1
                else:
                    result.skipped += 1
            except (FilePermError, sqlite3.Error) as e:
                result.failed += 1
                logger.error(
                    "Failed to set permission level on creation of %s:%s: %s",
                    assignment.namespace,
                    assignment.key,
                    e,
                )
            finally:
                self._queue.task_done()
        return result

    def _apply(self, assignment: DeferredLevelAssignment, store: LevelStore) -> bool:
        resource_id = store.db.find_resource(assignment.namespace, assignment.key)
        if resource_id is None:
            logger.info(
                "Skipping deferred level for %s:%s: resource not found",
                assignment.namespace,
                assignment.key,
            )
            return False
        store.set_level(resource_id, assignment.level)
        return True
