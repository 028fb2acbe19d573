"""
Identity Sync Service

Keeps the identity service's copy of a driver's employer and assignment
status in step with local employment records.

Updates are written to the ``identity_sync_outbox`` table inside the
transaction that changed the employment, delivered right after commit,
and retried by the reconciliation worker until acknowledged or parked.
"""

from datetime import timedelta
from typing import Dict, Iterable, List, Optional
import logging
from sqlalchemy import func
from models import db, IdentitySyncOutbox, OutboxStatus
from timezone_utils import get_local_time_naive
from .exceptions import CollaboratorError
from .identity_client import IdentityUpdate
from .transaction_helper import TransactionHelper

logger = logging.getLogger(__name__)

BASE_RETRY_DELAY = 30
MAX_RETRY_DELAY = 3600

SENT = 'sent'
RETRYING = 'retrying'
FAILED = 'failed'
DEFERRED = 'deferred'


def retry_delay(attempts: int) -> timedelta:
    """Back-off after ``attempts`` failed deliveries"""
    seconds = BASE_RETRY_DELAY * (2 ** attempts)
    return timedelta(seconds=min(seconds, MAX_RETRY_DELAY))


class IdentitySyncService:
    """Service class for the identity-sync outbox"""

    def __init__(self, identity_client, max_attempts: int = 10):
        self.identity = identity_client
        self.max_attempts = max_attempts

    def enqueue(self, driver_id: str, update: IdentityUpdate, reason: str) -> IdentitySyncOutbox:
        """
        Add an outbox row to the current session.

        The caller's transaction owns the commit, so the row exists exactly
        when the employment change that produced it does.
        """
        row = IdentitySyncOutbox(
            driver_id=driver_id,
            reason=reason,
            status=OutboxStatus.PENDING,
            attempts=0,
            next_attempt_at=get_local_time_naive(),
        )
        row.fields = update.to_wire()
        db.session.add(row)
        db.session.flush()
        logger.debug(f"Queued identity update {row.id} for driver {driver_id}: {reason}")
        return row

    def dispatch(self, row_ids: Iterable[int]) -> Dict[str, int]:
        """Deliver freshly committed rows immediately, ignoring back-off"""
        results = {}
        for row_id in row_ids:
            row = db.session.get(IdentitySyncOutbox, row_id)
            if row is None or row.status != OutboxStatus.PENDING:
                continue
            results[row_id] = self._deliver(row)
        return results

    def drain_pending(self, limit: int = 100, now=None) -> Dict[str, int]:
        """
        Retry every due PENDING row, oldest first.

        Returns:
            dict: counts of sent, retrying, failed and deferred rows
        """
        now = now or get_local_time_naive()
        rows = IdentitySyncOutbox.query.filter(
            IdentitySyncOutbox.status == OutboxStatus.PENDING,
            IdentitySyncOutbox.next_attempt_at <= now
        ).order_by(IdentitySyncOutbox.id).limit(limit).all()

        stats = {SENT: 0, RETRYING: 0, FAILED: 0, DEFERRED: 0}
        for row in rows:
            stats[self._deliver(row, now)] += 1

        if rows:
            logger.info(f"Identity outbox drained: {stats}")
        return stats

    def backlog(self) -> Dict[str, int]:
        """Row counts per outbox status"""
        counts = db.session.query(
            IdentitySyncOutbox.status, func.count(IdentitySyncOutbox.id)
        ).group_by(IdentitySyncOutbox.status).all()
        summary = {status.value: 0 for status in OutboxStatus}
        for status, count in counts:
            summary[status.value] = count
        return summary

    def pending_for_driver(self, driver_id: str) -> List[IdentitySyncOutbox]:
        return IdentitySyncOutbox.query.filter_by(
            driver_id=driver_id, status=OutboxStatus.PENDING
        ).order_by(IdentitySyncOutbox.id).all()

    @TransactionHelper.with_transaction
    def requeue_failed(self, row_ids: Optional[List[int]] = None) -> int:
        """
        Move parked rows back to PENDING with a fresh attempt budget.

        Fields that a newer, already delivered update for the same driver
        has overwritten are dropped first, so a stale hire cannot undo a
        later release. Rows left with nothing to send are closed as SENT.

        Returns:
            int: number of rows put back in the queue
        """
        query = IdentitySyncOutbox.query.filter(IdentitySyncOutbox.status == OutboxStatus.FAILED)
        if row_ids:
            query = query.filter(IdentitySyncOutbox.id.in_(row_ids))
        rows = query.order_by(IdentitySyncOutbox.id).all()
        now = get_local_time_naive()

        requeued = 0
        for row in rows:
            remaining = self._fields_not_overwritten(row)
            if not remaining:
                row.status = OutboxStatus.SENT
                row.last_error = 'Superseded by a newer update'
                logger.info(f"Identity update {row.id} for driver {row.driver_id} superseded, not requeued")
                continue
            row.fields = remaining
            row.status = OutboxStatus.PENDING
            row.attempts = 0
            row.next_attempt_at = now
            requeued += 1
        logger.info(f"Requeued {requeued} of {len(rows)} failed identity updates")
        return requeued

    def _fields_not_overwritten(self, row: IdentitySyncOutbox) -> Dict[str, str]:
        newer = IdentitySyncOutbox.query.filter(
            IdentitySyncOutbox.driver_id == row.driver_id,
            IdentitySyncOutbox.status == OutboxStatus.SENT,
            IdentitySyncOutbox.id > row.id
        ).all()
        overwritten = set()
        for later in newer:
            overwritten.update(later.fields)
        return {key: value for key, value in row.fields.items() if key not in overwritten}

    def _has_older_pending(self, row: IdentitySyncOutbox) -> bool:
        older = IdentitySyncOutbox.query.filter(
            IdentitySyncOutbox.driver_id == row.driver_id,
            IdentitySyncOutbox.status == OutboxStatus.PENDING,
            IdentitySyncOutbox.id < row.id
        ).first()
        return older is not None

    def _deliver(self, row: IdentitySyncOutbox, now=None) -> str:
        # Per-driver order: an older undelivered update goes first
        if self._has_older_pending(row):
            logger.debug(f"Identity update {row.id} waits for an older update of driver {row.driver_id}")
            return DEFERRED

        try:
            self.identity.update_user_fields(row.driver_id, row.fields)
        except CollaboratorError as e:
            return self._record_failure(row, str(e), now)

        self._record_success(row, now)
        return SENT

    @TransactionHelper.with_transaction
    def _record_success(self, row: IdentitySyncOutbox, now=None) -> None:
        row.status = OutboxStatus.SENT
        row.attempts = row.attempts + 1
        row.last_error = None
        row.sent_at = now or get_local_time_naive()
        logger.info(f"Identity update {row.id} delivered for driver {row.driver_id} ({row.reason})")

    @TransactionHelper.with_transaction
    def _record_failure(self, row: IdentitySyncOutbox, error: str, now=None) -> str:
        now = now or get_local_time_naive()
        row.attempts = row.attempts + 1
        row.last_error = error[:1000]

        if row.attempts >= self.max_attempts:
            row.status = OutboxStatus.FAILED
            logger.error(f"Identity update {row.id} for driver {row.driver_id} parked after "
                         f"{row.attempts} attempts: {error}")
            return FAILED

        row.next_attempt_at = now + retry_delay(row.attempts)
        logger.warning(f"Identity update {row.id} for driver {row.driver_id} failed "
                       f"(attempt {row.attempts}/{self.max_attempts}): {error}")
        return RETRYING
