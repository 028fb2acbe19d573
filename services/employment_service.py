"""
Employment Service

The employment ledger: one record per accepted offer, carrying the
contract snapshot, vehicle assignment and termination details. Releasing
a driver queues the identity update in the same transaction.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
import logging
from models import (
    db, Employment, EmploymentStatus, AssignmentStatus, TerminationReason, InitiatedBy,
    SalaryFrequency
)
from timezone_utils import get_local_time_naive, to_iso
from . import event_bus as events
from . import policies
from .audit_service import AuditService
from .exceptions import CollaboratorError, NotFoundError, ValidationError
from .transaction_helper import TransactionHelper
from .trip_client import busy_driver_ids

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (EmploymentStatus.ACTIVE, EmploymentStatus.ON_LEAVE, EmploymentStatus.SUSPENDED)


class EmploymentService:
    """Service class for employment operations"""

    def __init__(self, identity_client, trip_client, vehicle_client, propagator, identity_sync,
                 event_bus, notification_service=None):
        self.identity = identity_client
        self.trips = trip_client
        self.vehicles = vehicle_client
        self.propagator = propagator
        self.identity_sync = identity_sync
        self.events = event_bus
        self.notifications = notification_service

    # Reads

    def get_employment(self, caller, employment_id: int) -> Employment:
        employment = self._load(employment_id)
        policies.ensure_employment_viewer(caller, employment)
        return employment

    def list_company_employees(self, caller, status: Optional[str] = None,
                               assignment_status: Optional[str] = None) -> List[Dict[str, Any]]:
        """Company's employment records, newest first, each with the driver's identity summary"""
        query = Employment.query.filter(Employment.company_id == caller.user_id)
        if status:
            query = query.filter(Employment.status == _parse_enum(EmploymentStatus, status, 'status'))
        if assignment_status:
            query = query.filter(Employment.assignment_status ==
                                 _parse_enum(AssignmentStatus, assignment_status, 'assignmentStatus'))

        employments = query.order_by(Employment.created_at.desc(), Employment.id.desc()).all()
        return [self._with_driver_details(employment) for employment in employments]

    def get_driver_history(self, caller) -> List[Employment]:
        return Employment.query.filter(Employment.driver_id == caller.user_id) \
            .order_by(Employment.start_date.desc(), Employment.id.desc()).all()

    def get_current_employment(self, caller) -> Optional[Employment]:
        return Employment.query.filter_by(
            driver_id=caller.user_id, status=EmploymentStatus.ACTIVE
        ).first()

    # Company edits

    @TransactionHelper.with_transaction(conflict_message='Driver already has an active employment')
    def update_employment(self, caller, employment_id: int, data: Dict[str, Any]) -> Employment:
        """
        Edit status, description or salary of a non-terminal employment.

        Args:
            caller: Company caller owning the employment
            employment_id: Employment ID
            data: Validated fields (status, description, salary)
        """
        employment = self._load(employment_id)
        policies.ensure_employer(caller, employment)
        policies.ensure_employment_open(employment)

        changes = {}
        if data.get('status'):
            status = _parse_enum(EmploymentStatus, data['status'], 'status')
            if status not in EDITABLE_STATUSES:
                raise ValidationError('Use terminate or resign to end an employment')
            changes['status'] = status.value
            employment.status = status
        if data.get('description') is not None:
            employment.description = data['description'] or None
            changes['description'] = employment.description

        salary = data.get('salary') or {}
        if salary.get('amount') is not None:
            employment.salary_amount = salary['amount']
        if salary.get('currency'):
            employment.salary_currency = salary['currency']
        if salary.get('frequency'):
            employment.salary_frequency = SalaryFrequency(salary['frequency'])
        if salary:
            changes['salary'] = employment.salary

        AuditService.log_action('update_employment', caller.user_id, 'employment', employment.id, changes)
        db.session.flush()
        logger.info(f"Employment {employment.id} updated by {caller.user_id}: {sorted(changes)}")
        return employment

    @TransactionHelper.with_transaction
    def assign_vehicle(self, caller, employment_id: int, vehicle_id: str,
                       notes: Optional[str] = None) -> Employment:
        employment = self._load(employment_id)
        policies.ensure_employer(caller, employment)
        policies.ensure_employment_active(employment, 'Cannot assign vehicle to inactive employment')

        employment.assign_vehicle(vehicle_id, caller.user_id, notes)
        AuditService.log_action('assign_vehicle', caller.user_id, 'employment', employment.id,
                                {'vehicleId': vehicle_id})
        logger.info(f"Vehicle {vehicle_id} assigned to employment {employment.id}")
        return employment

    @TransactionHelper.with_transaction
    def unassign_vehicle(self, caller, employment_id: int, reason: Optional[str] = None) -> Employment:
        employment = self._load(employment_id)
        policies.ensure_employer(caller, employment)
        if not employment.assigned_vehicle_id:
            raise ValidationError('No vehicle assigned to this employment')

        vehicle_id = employment.assigned_vehicle_id
        employment.unassign_vehicle(caller.user_id, reason)
        AuditService.log_action('unassign_vehicle', caller.user_id, 'employment', employment.id,
                                {'vehicleId': vehicle_id, 'reason': reason})
        logger.info(f"Vehicle {vehicle_id} unassigned from employment {employment.id}")
        return employment

    # Ending an employment

    def terminate(self, caller, employment_id: int, reason: str,
                  details: Optional[str] = None) -> Employment:
        """
        Company ends an ACTIVE employment and frees the driver.

        Returns:
            Employment: the TERMINATED record
        """
        employment = self._load(employment_id, 'Employment record')
        policies.ensure_employer(caller, employment)
        policies.ensure_employment_active(employment)

        termination_reason = _parse_enum(TerminationReason, reason, 'reason')
        outbox_id = self._release(employment, caller, EmploymentStatus.TERMINATED,
                                  termination_reason, details, InitiatedBy.COMPANY)
        self._after_release(employment, outbox_id)
        return employment

    def resign(self, caller, employment_id: int, reason: Optional[str] = None,
               details: Optional[str] = None) -> Employment:
        """Driver leaves an ACTIVE employment"""
        employment = self._load(employment_id, 'Employment record')
        policies.ensure_employee(caller, employment)
        policies.ensure_employment_active(employment)

        termination_reason = _parse_enum(TerminationReason, reason or TerminationReason.RESIGNATION.value, 'reason')
        outbox_id = self._release(employment, caller, EmploymentStatus.RESIGNED,
                                  termination_reason, details, InitiatedBy.DRIVER)
        self._after_release(employment, outbox_id)
        return employment

    @TransactionHelper.with_transaction
    def _release(self, employment: Employment, caller, status, reason, details, initiated_by) -> int:
        now = get_local_time_naive()
        employment.end(status, reason, details, initiated_by, now)
        outbox = self.propagator.driver_released(employment.driver_id, status.value.lower())
        AuditService.log_action(
            'resign_employment' if initiated_by == InitiatedBy.DRIVER else 'terminate_employment',
            caller.user_id, 'employment', employment.id,
            {'reason': reason.value, 'details': details}
        )
        logger.info(f"Employment {employment.id} {status.value} by {caller.user_id} ({reason.value})")
        return outbox.id

    def _after_release(self, employment: Employment, outbox_id: int) -> None:
        self.identity_sync.dispatch([outbox_id])

        reason = employment.termination_reason.value if employment.termination_reason else None
        if self.notifications:
            driver = self.identity.get_user(employment.driver_id)
            driver_name = (driver.display_name if driver else None) or 'Driver'
            self.notifications.notify_contract_terminated(
                [employment.company_id, employment.driver_id], driver_name,
                employment.termination_details or reason, employment.id
            )

        self.events.publish(events.DRIVER_RELEASED, {
            'driverId': employment.driver_id,
            'companyId': employment.company_id,
            'employmentId': employment.id,
            'releasedAt': to_iso(employment.end_date),
            'reason': reason,
        })

    # Availability

    def get_available_drivers(self, caller, start=None, end=None) -> Dict[str, Any]:
        """
        Company's ACTIVE employees not booked on a trip.

        Without a window any scheduled or in-progress trip makes a driver
        busy; with one, only trips overlapping it do. When the trip service
        is unreachable no one is filtered out.
        """
        if (start is None) != (end is None):
            raise ValidationError('startDateTime and endDateTime must be provided together')
        if start is not None and start > end:
            raise ValidationError('startDateTime must be before endDateTime')

        employments = Employment.query.filter_by(
            company_id=caller.user_id, status=EmploymentStatus.ACTIVE
        ).order_by(Employment.start_date.desc()).all()

        trip_filter_applied = True
        try:
            busy = busy_driver_ids(self.trips.list_trips(caller.user_id), start, end)
        except CollaboratorError as e:
            logger.warning(f"Trip service unavailable, skipping availability filter: {str(e)}")
            busy = set()
            trip_filter_applied = False

        available = [
            self._with_driver_details(employment)
            for employment in employments if employment.driver_id not in busy
        ]
        return {
            'drivers': available,
            'total': len(available),
            'tripFilterApplied': trip_filter_applied,
        }

    def get_my_assigned_vehicle(self, caller) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
        """
        The driver's assigned vehicle with its trips.

        Returns:
            tuple: (data, message); data is None when there is nothing assigned
        """
        employment = self.get_current_employment(caller)
        if employment is None:
            return None, 'No active employment found'
        if not employment.assigned_vehicle_id:
            return None, 'No vehicle assigned'

        vehicle_id = employment.assigned_vehicle_id
        try:
            vehicle = self.vehicles.get_vehicle(vehicle_id, employment.company_id)
        except CollaboratorError as e:
            logger.warning(f"Could not fetch vehicle {vehicle_id}: {str(e)}")
            vehicle = None

        try:
            trips = [
                trip for trip in self.trips.list_trips(employment.company_id, vehicle_id)
                if trip.driver_id == caller.user_id
            ]
        except CollaboratorError as e:
            logger.warning(f"Could not fetch trips for vehicle {vehicle_id}: {str(e)}")
            trips = []
        trips.sort(key=lambda trip: trip.start or datetime.min, reverse=True)

        statuses = [trip.status for trip in trips]
        data = {
            'vehicle': vehicle,
            'assignment': {
                'vehicleId': vehicle_id,
                'assignedOn': to_iso(employment.vehicle_assigned_on),
                'notes': employment.vehicle_assignment_notes,
            },
            'employment': {
                'id': employment.id,
                'vehicleType': employment.vehicle_type,
                'startDate': to_iso(employment.start_date),
                'companyId': employment.company_id,
            },
            'trips': [trip.raw for trip in trips],
            'tripStats': {
                'total': len(trips),
                'scheduled': statuses.count('scheduled'),
                'inProgress': statuses.count('in-progress'),
                'completed': statuses.count('completed'),
                'cancelled': statuses.count('cancelled'),
            },
        }
        return data, None

    # Helpers

    def _load(self, employment_id: int, resource: str = 'Employment') -> Employment:
        employment = db.session.get(Employment, employment_id)
        if employment is None:
            raise NotFoundError(resource)
        return employment

    def _with_driver_details(self, employment: Employment) -> Dict[str, Any]:
        item = employment.to_dict()
        driver = self.identity.get_user(employment.driver_id)
        item['driverDetails'] = driver.driver_details() if driver else None
        return item


def _parse_enum(enum_class, value, field_name):
    try:
        return enum_class(value)
    except ValueError:
        raise ValidationError(f'Invalid {field_name}: {value}')
