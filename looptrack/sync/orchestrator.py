"""Sync orchestrator: pull, push and full sync for one owner."""

import logging
import os
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Callable, Optional

from dotenv import load_dotenv
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from looptrack.database.block_repository import BlockRepository
from looptrack.database.repository import TaskRepository
from looptrack.database.task_instance_repository import TaskInstanceRepository
from looptrack.database.user_repository import UserRepository
from looptrack.engine.dates import to_naive_utc
from looptrack.errors import ChangeRejected, NotFoundError, StoreUnavailableError
from looptrack.models.sync import (
    DataCounts,
    FullSyncResponse,
    PullResponse,
    PushRequest,
    PushResponse,
    SyncConflict,
    SyncStatus,
)
from looptrack.sync.conflicts import ConflictResolver
from looptrack.sync.locks import owner_locks
from looptrack.sync.processor import ChangeProcessor

load_dotenv()

logger = logging.getLogger(__name__)

SYNC_TIMEOUT_SEC = float(os.getenv("SYNC_TIMEOUT_SEC", "30"))


def pull(db: Session, user_id: str, since: Optional[datetime] = None) -> PullResponse:
    """Every live row of the owner changed strictly after `since` (everything if None).

    The checkpoint is taken before reading, so a row written during the pull
    is returned again on the next one rather than missed.
    """
    sync_timestamp = datetime.utcnow()
    since = to_naive_utc(since) if since else None
    try:
        blocks = BlockRepository(db).changed_since(user_id, since)
        tasks = TaskRepository(db).changed_since(user_id, since)
        instances = TaskInstanceRepository(db).changed_since(user_id, since)
    except OperationalError as e:
        raise StoreUnavailableError(f"Store unavailable: {type(e).__name__}") from e
    logger.info(
        f"Pull for user {user_id} since {since.isoformat() if since else 'bootstrap'}: "
        f"{len(blocks)} blocks, {len(tasks)} tasks, {len(instances)} instances"
    )
    return PullResponse(
        blocks=blocks,
        tasks=tasks,
        task_instances=instances,
        sync_timestamp=sync_timestamp,
        has_more=False,
    )


def push(
    db: Session,
    user_id: str,
    request: PushRequest,
    resolver: Optional[ConflictResolver] = None,
    *,
    today=None,
) -> PushResponse:
    """Apply the batch in order, one change at a time.

    A rejected change becomes a conflict and the batch continues. Changes
    already applied stay committed if a later one hits a store failure.
    lastSyncAt advances once the batch has run.

    Raises:
        StoreUnavailableError: store failure or owner lock timeout
        StreakUpdateError: the owner row is missing
    """
    response = PushResponse()
    with owner_locks.hold(user_id):
        processor = ChangeProcessor(db, user_id, resolver, last_sync_at=request.last_sync_at, today=today)
        for change in request.changes:
            try:
                processor.apply(change)
                response.applied.append(change.entity_id)
            except ChangeRejected as e:
                logger.warning(f"Rejected {change.entity}/{change.action} {change.entity_id}: {e.reason}")
                response.conflicts.append(
                    SyncConflict(
                        entity=change.entity,
                        entity_id=change.entity_id,
                        server_data=e.server_data,
                        client_data=change.data,
                        reason=e.reason,
                    )
                )
        try:
            UserRepository(db).touch_last_sync(user_id)
        except OperationalError as e:
            raise StoreUnavailableError(f"Store unavailable: {type(e).__name__}") from e

    logger.info(
        f"Push for user {user_id}: {len(response.applied)} applied, {len(response.conflicts)} conflicts"
    )
    return response


def _in_session(session_factory: Callable[[], Session], fn, *args, **kwargs):
    db = session_factory()
    try:
        return fn(db, *args, **kwargs)
    finally:
        db.close()


def full_sync(
    db: Session,
    user_id: str,
    request: PushRequest,
    session_factory: Optional[Callable[[], Session]] = None,
    resolver: Optional[ConflictResolver] = None,
    *,
    today=None,
    timeout: float = SYNC_TIMEOUT_SEC,
) -> FullSyncResponse:
    """Pull (since request.last_sync_at) and push (request.changes) in one round trip.

    With a session factory the two halves run concurrently on their own
    sessions; otherwise they run one after the other on `db`.
    """
    if session_factory is None:
        pulled = pull(db, user_id, request.last_sync_at)
        pushed = push(db, user_id, request, resolver, today=today)
    else:
        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="full-sync")
        try:
            pull_future = pool.submit(_in_session, session_factory, pull, user_id, request.last_sync_at)
            push_future = pool.submit(_in_session, session_factory, push, user_id, request, resolver, today=today)
            pulled = pull_future.result(timeout=timeout)
            pushed = push_future.result(timeout=timeout)
        except FutureTimeoutError as e:
            logger.error(f"Full sync for user {user_id} timed out after {timeout}s")
            raise StoreUnavailableError("Sync timed out; retry with the same checkpoint") from e
        finally:
            # Do not wait on a stuck half; its session is closed when it finishes.
            pool.shutdown(wait=False, cancel_futures=True)

    return FullSyncResponse(success=True, pull=pulled, push=pushed, server_timestamp=datetime.utcnow())


def sync_status(db: Session, user_id: str) -> SyncStatus:
    """Last sync time and live row counts of the owner."""
    user = UserRepository(db).get(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return SyncStatus(
        last_sync_at=user.last_sync_at,
        data_counts=DataCounts(
            blocks=BlockRepository(db).count_active(user_id),
            tasks=TaskRepository(db).count_active(user_id),
            task_instances=TaskInstanceRepository(db).count_for_user(user_id),
        ),
    )
