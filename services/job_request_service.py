"""
Job Request Service

Offer lifecycle between a company and a driver:
- Creation against a free-agent driver
- Driver views, accepts, rejects or counters
- Company withdraws or schedules an interview
- Expiry, lazily at response time and by the background sweep

Accepting an offer creates the Employment and queues the identity update
in one local transaction.
"""

from typing import Optional, Dict, Any, List, Tuple
import logging
from models import (
    db, JobRequest, JobRequestStatus, JobRequestType, Employment, ServiceType, ContractUnit,
    SalaryFrequency, RejectionReason, RejectedBy, InterviewMode, InterviewStatus,
    OPEN_REQUEST_STATUSES
)
from timezone_utils import get_local_time_naive
from utils.payloads import pagination_meta
from . import event_bus as events
from . import policies
from .audit_service import AuditService
from .caller import SYSTEM_ACTOR
from .exceptions import CollaboratorError, ServiceError, NotFoundError, ValidationError
from .transaction_helper import TransactionHelper

logger = logging.getLogger(__name__)

ACTION_ACCEPT = 'accept'
ACTION_REJECT = 'reject'
ACTION_COUNTER = 'counter'
RESPONSE_ACTIONS = (ACTION_ACCEPT, ACTION_REJECT, ACTION_COUNTER)


class JobRequestService:
    """Service class for job request operations"""

    def __init__(self, identity_client, propagator, identity_sync, event_bus,
                 notification_service=None, email_service=None, ttl_days: int = 30):
        self.identity = identity_client
        self.propagator = propagator
        self.identity_sync = identity_sync
        self.events = event_bus
        self.notifications = notification_service
        self.email = email_service
        self.ttl_days = ttl_days

    # Creation

    def create_job_request(self, caller, data: Dict[str, Any]) -> JobRequest:
        """
        Send an offer to a free-agent driver.

        Args:
            caller: Company caller
            data: Validated offer fields (driver_id, job_details, offered_salary, ...)

        Returns:
            JobRequest: the new PENDING request
        """
        driver_id = data['driver_id']
        try:
            driver = self.identity.fetch_user(driver_id)
        except CollaboratorError as e:
            logger.error(f"Identity lookup failed for driver {driver_id}: {str(e)}")
            raise ServiceError('Identity service unavailable', 503)

        policies.ensure_offerable_driver(driver)
        policies.ensure_no_open_request(self._find_open_request(caller.user_id, driver_id))

        now = get_local_time_naive()
        expires_at = data.get('expires_at') or JobRequest.default_expiry(now, self.ttl_days)
        if expires_at <= now:
            raise ValidationError('Expiry date must be in the future')

        job_request = self._persist_job_request(caller, data, expires_at, now)
        logger.info(f"Job request {job_request.id} sent by {caller.user_id} to driver {driver_id}")

        if self.email and driver.email:
            company = self.identity.get_user(caller.user_id)
            self.email.send_hire_request_email(
                driver.email, driver.display_name or 'Driver',
                self._company_display_name(company, caller.user_id),
                job_request.job_details, job_request.offered_salary
            )

        self.events.publish(events.JOB_REQUEST_CREATED, {
            'jobRequestId': job_request.id,
            'companyId': job_request.company_id,
            'driverId': job_request.driver_id,
            'expiresAt': job_request.to_dict()['expiresAt'],
        })
        return job_request

    @TransactionHelper.with_transaction(conflict_message='A pending job request already exists for this driver')
    def _persist_job_request(self, caller, data, expires_at, now) -> JobRequest:
        details = data['job_details']
        salary = data['offered_salary']
        job_request = JobRequest(
            company_id=caller.user_id,
            driver_id=data['driver_id'],
            request_type=JobRequestType(data.get('type') or JobRequestType.DIRECT_OFFER.value),
            status=JobRequestStatus.PENDING,
            service_type=ServiceType(details['service_type']),
            vehicle_type=details['vehicle_type'],
            contract_duration=details['contract_duration'],
            contract_unit=ContractUnit(details['contract_unit']),
            accommodation=bool(details.get('accommodation')),
            health_insurance=bool(details.get('health_insurance')),
            description=details.get('description') or None,
            salary_amount=salary['amount'],
            salary_currency=salary.get('currency') or 'INR',
            salary_frequency=SalaryFrequency(salary['frequency']),
            expires_at=expires_at,
            proposed_start_date=data.get('proposed_start_date'),
            company_notes=data.get('company_notes') or None,
            created_at=now,
        )
        job_request.update_status(JobRequestStatus.PENDING, caller.user_id, 'Job request created', now)
        db.session.add(job_request)
        db.session.flush()

        AuditService.log_action('create_job_request', caller.user_id, 'job_request', job_request.id,
                                {'driverId': job_request.driver_id})
        return job_request

    # Reads

    def get_job_request(self, caller, request_id: int) -> JobRequest:
        """Fetch one request; a driver's view marks a PENDING request VIEWED"""
        job_request = self._load(request_id)
        policies.ensure_request_party(caller, job_request)
        if caller.is_driver:
            self._record_driver_view(job_request, caller)
        return job_request

    @TransactionHelper.with_transaction
    def _record_driver_view(self, job_request: JobRequest, caller) -> None:
        job_request.view_count = (job_request.view_count or 0) + 1
        if job_request.status == JobRequestStatus.PENDING:
            job_request.update_status(JobRequestStatus.VIEWED, caller.user_id, 'Viewed by driver')

    def list_received(self, caller, status: Optional[str] = None,
                      page: int = 1, limit: int = 20) -> Tuple[List[JobRequest], Dict[str, int]]:
        query = JobRequest.query.filter(JobRequest.driver_id == caller.user_id)
        return self._paginate(query, status, page, limit)

    def list_sent(self, caller, status: Optional[str] = None,
                  page: int = 1, limit: int = 20) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
        """Requests sent by the company, each with the driver's identity summary"""
        query = JobRequest.query.filter(JobRequest.company_id == caller.user_id)
        job_requests, meta = self._paginate(query, status, page, limit)

        items = []
        for job_request in job_requests:
            item = job_request.to_dict()
            driver = self.identity.get_user(job_request.driver_id)
            item['driverDetails'] = driver.driver_details() if driver else None
            items.append(item)
        return items, meta

    def list_free_agents(self, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        """Drivers without an employer, straight from the identity service"""
        try:
            drivers, total = self.identity.list_available_drivers(page, limit)
        except CollaboratorError as e:
            logger.warning(f"Could not list available drivers: {str(e)}")
            return {'drivers': [], 'pagination': pagination_meta(page, limit, 0), 'degraded': True}

        return {
            'drivers': [dict(driver.driver_details(), id=driver.id) for driver in drivers],
            'pagination': pagination_meta(page, limit, total),
            'degraded': False,
        }

    # Driver response

    def respond(self, caller, request_id: int, data: Dict[str, Any]) -> Tuple[JobRequest, Optional[Employment]]:
        """
        Apply the driver's accept, reject or counter.

        Args:
            caller: Driver caller named on the request
            request_id: Job request ID
            data: Validated response (action, message, dl_consent_given,
                counter_offer, rejection)

        Returns:
            tuple: (job_request, employment or None)
        """
        job_request = self._load(request_id)
        policies.ensure_request_recipient(caller, job_request)
        policies.ensure_request_open(job_request)

        previous_status = job_request.status
        if job_request.is_expired():
            # The EXPIRED flip is committed before the error is raised
            self._expire(job_request, caller.user_id, 'Expired before response')
            self._publish_status_change(job_request, previous_status)
            raise ValidationError('This job request has expired')

        action = data.get('action')
        employment = None

        if action == ACTION_ACCEPT:
            policies.ensure_license_consent(data.get('dl_consent_given'))
            company = self.identity.get_user(job_request.company_id)
            employer_name = self._company_display_name(company, job_request.company_id)
            employment, outbox_id = self._accept(job_request, caller, data, employer_name)
            self.identity_sync.dispatch([outbox_id])
            self._after_accept(job_request, employment, company)
        elif action == ACTION_REJECT:
            self._reject(job_request, caller, data)
            self._after_reject(job_request)
        elif action == ACTION_COUNTER:
            policies.ensure_counter_offer(data.get('counter_offer'))
            self._counter(job_request, caller, data)
            self._after_counter(job_request)
        else:
            raise ValidationError('Invalid action. Must be accept, reject or counter')

        self._publish_status_change(job_request, previous_status)
        logger.info(f"Driver {caller.user_id} responded '{action}' to job request {job_request.id}")
        return job_request, employment

    @TransactionHelper.with_transaction(conflict_message='Driver already has an active employment')
    def _accept(self, job_request: JobRequest, caller, data, employer_name) -> Tuple[Employment, int]:
        now = get_local_time_naive()
        self._set_driver_response(job_request, data, now)
        job_request.dl_consent_given = True

        employment = Employment.from_job_request(job_request, started_at=now)
        db.session.add(employment)
        db.session.flush()

        job_request.resulting_employment_id = employment.id
        job_request.update_status(JobRequestStatus.HIRED, caller.user_id, 'Driver accepted the offer', now)

        outbox = self.propagator.driver_hired(job_request.driver_id, employer_name)
        AuditService.log_action('accept_job_request', caller.user_id, 'job_request', job_request.id,
                                {'employmentId': employment.id})
        return employment, outbox.id

    @TransactionHelper.with_transaction
    def _reject(self, job_request: JobRequest, caller, data) -> None:
        now = get_local_time_naive()
        rejection = data.get('rejection') or {}
        self._set_driver_response(job_request, data, now)
        job_request.rejection_reason = RejectionReason(rejection.get('reason') or RejectionReason.OTHER.value)
        job_request.rejection_details = rejection.get('details') or None
        job_request.rejected_by = RejectedBy.DRIVER
        job_request.update_status(JobRequestStatus.REJECTED, caller.user_id,
                                  job_request.rejection_details or 'Driver rejected the offer', now)
        AuditService.log_action('reject_job_request', caller.user_id, 'job_request', job_request.id,
                                {'reason': job_request.rejection_reason.value})

    @TransactionHelper.with_transaction
    def _counter(self, job_request: JobRequest, caller, data) -> None:
        now = get_local_time_naive()
        counter = data.get('counter_offer') or {}
        self._set_driver_response(job_request, data, now)
        job_request.counter_salary = counter.get('salary')
        job_request.counter_start_date = counter.get('start_date')
        job_request.counter_notes = counter.get('notes') or None
        # Still open; the counter-proposal is recorded on the response
        job_request.update_status(JobRequestStatus.VIEWED, caller.user_id, 'Counter offer made', now)
        AuditService.log_action('counter_job_request', caller.user_id, 'job_request', job_request.id,
                                {'salary': job_request.counter_salary})

    @staticmethod
    def _set_driver_response(job_request: JobRequest, data, now) -> None:
        job_request.responded_at = now
        job_request.response_message = data.get('message') or None
        job_request.dl_consent_given = bool(data.get('dl_consent_given'))

    def _after_accept(self, job_request: JobRequest, employment: Employment, company) -> None:
        driver_name = self._driver_name(job_request.driver_id)
        if self.notifications:
            self.notifications.notify_hire_request_accepted(
                job_request.company_id, job_request.driver_id, driver_name, job_request.id)
            self.notifications.notify_driver_hired(
                job_request.company_id, job_request.driver_id, driver_name, employment.id)
        self._email_company(job_request, company, driver_name, 'ACCEPTED')
        self.events.publish(events.DRIVER_HIRED, {
            'driverId': employment.driver_id,
            'companyId': employment.company_id,
            'employmentId': employment.id,
            'jobRequestId': job_request.id,
            'startDate': employment.to_dict()['startDate'],
        })

    def _after_reject(self, job_request: JobRequest) -> None:
        driver_name = self._driver_name(job_request.driver_id)
        reason = job_request.rejection_reason.value if job_request.rejection_reason else None
        if self.notifications:
            self.notifications.notify_hire_request_rejected(
                job_request.company_id, job_request.driver_id, driver_name, job_request.id, reason)
        company = self.identity.get_user(job_request.company_id)
        self._email_company(job_request, company, driver_name, 'REJECTED',
                            job_request.rejection_details or reason or '')

    def _after_counter(self, job_request: JobRequest) -> None:
        company = self.identity.get_user(job_request.company_id)
        self._email_company(job_request, company, self._driver_name(job_request.driver_id),
                            'VIEWED', job_request.counter_notes or '')

    def _email_company(self, job_request, company, driver_name, response, reason='') -> None:
        if not self.email or company is None or not company.email:
            return
        self.email.send_hire_response_email(
            company.email, self._company_display_name(company, job_request.company_id),
            driver_name, response, reason
        )

    # Company actions

    def withdraw(self, caller, request_id: int, reason: Optional[str] = None) -> JobRequest:
        job_request = self._load(request_id)
        policies.ensure_request_owner(caller, job_request)
        policies.ensure_request_open(job_request, 'This job request cannot be withdrawn')

        previous_status = job_request.status
        self._withdraw(job_request, caller, reason)
        self._publish_status_change(job_request, previous_status)
        logger.info(f"Job request {job_request.id} withdrawn by {caller.user_id}")
        return job_request

    @TransactionHelper.with_transaction
    def _withdraw(self, job_request: JobRequest, caller, reason) -> None:
        job_request.update_status(JobRequestStatus.WITHDRAWN, caller.user_id, reason or 'Withdrawn by company')
        AuditService.log_action('withdraw_job_request', caller.user_id, 'job_request', job_request.id,
                                {'reason': reason})

    @TransactionHelper.with_transaction
    def schedule_interview(self, caller, request_id: int, data: Dict[str, Any]) -> JobRequest:
        """Attach an interview to an open request"""
        job_request = self._load(request_id)
        policies.ensure_request_owner(caller, job_request)
        policies.ensure_request_open(job_request, 'Cannot schedule interview for this request status')

        job_request.interview_scheduled_at = data['scheduled_at']
        job_request.interview_location = data.get('location') or None
        job_request.interview_mode = InterviewMode(data.get('mode') or InterviewMode.IN_PERSON.value)
        job_request.interview_notes = data.get('notes') or None
        job_request.interview_status = InterviewStatus.SCHEDULED
        AuditService.log_action('schedule_interview', caller.user_id, 'job_request', job_request.id,
                                {'scheduledAt': data['scheduled_at'].isoformat()})
        return job_request

    # Expiry

    def expire_overdue(self, now=None) -> int:
        """Mark every open request past its expiry as EXPIRED"""
        now = now or get_local_time_naive()
        expired = self._expire_overdue(now)
        for job_request, previous_status in expired:
            self._publish_status_change(job_request, previous_status)
        if expired:
            logger.info(f"Expired {len(expired)} overdue job requests")
        return len(expired)

    @TransactionHelper.with_transaction
    def _expire_overdue(self, now):
        overdue = JobRequest.query.filter(
            JobRequest.status.in_(OPEN_REQUEST_STATUSES),
            JobRequest.expires_at < now
        ).order_by(JobRequest.id).all()

        expired = []
        for job_request in overdue:
            previous_status = job_request.status
            job_request.update_status(JobRequestStatus.EXPIRED, SYSTEM_ACTOR, 'Auto-expired', now)
            expired.append((job_request, previous_status))
        return expired

    @TransactionHelper.with_transaction
    def _expire(self, job_request: JobRequest, changed_by: str, reason: str) -> None:
        job_request.update_status(JobRequestStatus.EXPIRED, changed_by, reason)

    # Helpers

    def _load(self, request_id: int) -> JobRequest:
        job_request = db.session.get(JobRequest, request_id)
        if job_request is None:
            raise NotFoundError('Job request')
        return job_request

    @staticmethod
    def _find_open_request(company_id: str, driver_id: str) -> Optional[JobRequest]:
        return JobRequest.query.filter(
            JobRequest.company_id == company_id,
            JobRequest.driver_id == driver_id,
            JobRequest.status.in_(OPEN_REQUEST_STATUSES)
        ).first()

    @staticmethod
    def _paginate(query, status, page, limit):
        if status:
            try:
                query = query.filter(JobRequest.status == JobRequestStatus(status))
            except ValueError:
                raise ValidationError(f'Invalid status filter: {status}')
        total = query.count()
        items = query.order_by(JobRequest.created_at.desc(), JobRequest.id.desc()) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, pagination_meta(page, limit, total)

    def _driver_name(self, driver_id: str) -> str:
        driver = self.identity.get_user(driver_id)
        return (driver.display_name if driver else None) or 'Driver'

    @staticmethod
    def _company_display_name(company, company_id: str) -> str:
        if company is None:
            return company_id
        return company.employer_name or company.display_name or company_id

    def _publish_status_change(self, job_request: JobRequest, previous_status) -> None:
        self.events.publish(events.JOB_REQUEST_STATUS_CHANGED, {
            'jobRequestId': job_request.id,
            'driverId': job_request.driver_id,
            'companyId': job_request.company_id,
            'previousStatus': previous_status.value,
            'newStatus': job_request.status.value,
        })
