"""
Assignment Status Propagator

Every change to a driver's deployability is written to the local
employment record and mirrored onto the identity record through the
identity-sync outbox.
"""

import logging
from models import db, AssignmentStatus, Employment, EmploymentStatus
from .audit_service import AuditService
from .caller import SYSTEM_ACTOR
from .exceptions import NotFoundError, ValidationError
from .identity_client import IdentityUpdate
from .transaction_helper import TransactionHelper

logger = logging.getLogger(__name__)


def parse_assignment_status(value):
    try:
        return AssignmentStatus(value)
    except ValueError:
        raise ValidationError('Invalid assignment status. Must be UNASSIGNED or ASSIGNED')


class AssignmentStatusPropagator:
    """Writes deployability changes to both stores"""

    def __init__(self, identity_sync):
        self.identity_sync = identity_sync

    def driver_hired(self, driver_id, employer_name):
        """Queue the identity update for a new hire; runs inside the hiring transaction"""
        return self.identity_sync.enqueue(driver_id, IdentityUpdate.hired(employer_name), 'hired')

    def driver_released(self, driver_id, reason='released'):
        """Queue the identity update that clears the driver's employer"""
        return self.identity_sync.enqueue(driver_id, IdentityUpdate.released(), reason)

    def update_driver_assignment_status(self, driver_id, assignment_status):
        """
        Set the assignment status on the driver's ACTIVE employment.

        Called by the trip service when a trip starts or finishes. Setting
        the value the employment already has changes nothing.

        Returns:
            tuple: (employment, changed)
        """
        status = parse_assignment_status(assignment_status)
        employment, row_id = self._apply_assignment_status(driver_id, status)

        if row_id is not None:
            self.identity_sync.dispatch([row_id])
        return employment, row_id is not None

    @TransactionHelper.with_transaction
    def _apply_assignment_status(self, driver_id, status):
        employment = Employment.query.filter_by(
            driver_id=driver_id, status=EmploymentStatus.ACTIVE
        ).first()
        if employment is None:
            raise NotFoundError('Active employment record for driver')

        if employment.assignment_status == status:
            logger.debug(f"Driver {driver_id} already {status.value}")
            return employment, None

        previous = employment.assignment_status
        employment.assignment_status = status
        row = self.identity_sync.enqueue(driver_id, IdentityUpdate.assignment(status.value),
                                         'assignment_status')
        AuditService.log_action(
            'update_assignment_status', SYSTEM_ACTOR, 'employment', employment.id,
            {'from': previous.value, 'to': status.value}
        )
        db.session.flush()
        logger.info(f"Driver {driver_id} assignment status {previous.value} -> {status.value}")
        return employment, row.id
