import json
import math
from datetime import timedelta
from enum import Enum
from sqlalchemy import Index, CheckConstraint, UniqueConstraint, text
from sqlalchemy.ext.hybrid import hybrid_property
from app import db
from timezone_utils import get_local_time_naive, to_iso

# Enums for better data integrity
class JobRequestType(Enum):
    DIRECT_OFFER = 'DIRECT_OFFER'
    APPLICATION_RESPONSE = 'APPLICATION_RESPONSE'
    INTERVIEW_INVITE = 'INTERVIEW_INVITE'

class JobRequestStatus(Enum):
    PENDING = 'PENDING'
    VIEWED = 'VIEWED'
    ACCEPTED = 'ACCEPTED'
    REJECTED = 'REJECTED'
    WITHDRAWN = 'WITHDRAWN'
    EXPIRED = 'EXPIRED'
    HIRED = 'HIRED'
    CANCELLED = 'CANCELLED'

class ServiceType(Enum):
    COMMERCIAL = 'Commercial'
    PASSENGER = 'Passenger'

class ContractUnit(Enum):
    DAYS = 'Day(s)'
    WEEKS = 'Week(s)'
    MONTHS = 'Month(s)'
    YEARS = 'Year(s)'

class SalaryFrequency(Enum):
    PER_KM = 'PER_KM'
    PER_DAY = 'PER_DAY'
    PER_MONTH = 'PER_MONTH'

class RejectionReason(Enum):
    SALARY_LOW = 'SALARY_LOW'
    LOCATION = 'LOCATION'
    TIMING = 'TIMING'
    BETTER_OFFER = 'BETTER_OFFER'
    PERSONAL = 'PERSONAL'
    QUALIFICATIONS = 'QUALIFICATIONS'
    EXPERIENCE = 'EXPERIENCE'
    OTHER = 'OTHER'

class RejectedBy(Enum):
    DRIVER = 'DRIVER'
    COMPANY = 'COMPANY'

class InterviewMode(Enum):
    IN_PERSON = 'IN_PERSON'
    PHONE = 'PHONE'
    VIDEO = 'VIDEO'

class InterviewStatus(Enum):
    SCHEDULED = 'SCHEDULED'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    RESCHEDULED = 'RESCHEDULED'

class EmploymentStatus(Enum):
    ACTIVE = 'ACTIVE'
    ON_LEAVE = 'ON_LEAVE'
    SUSPENDED = 'SUSPENDED'
    TERMINATED = 'TERMINATED'
    RESIGNED = 'RESIGNED'

class AssignmentStatus(Enum):
    UNASSIGNED = 'UNASSIGNED'
    ASSIGNED = 'ASSIGNED'

class TerminationReason(Enum):
    RESIGNATION = 'RESIGNATION'
    TERMINATION = 'TERMINATION'
    CONTRACT_END = 'CONTRACT_END'
    MUTUAL_AGREEMENT = 'MUTUAL_AGREEMENT'
    PERFORMANCE = 'PERFORMANCE'
    MISCONDUCT = 'MISCONDUCT'
    REDUNDANCY = 'REDUNDANCY'
    OTHER = 'OTHER'

class InitiatedBy(Enum):
    COMPANY = 'COMPANY'
    DRIVER = 'DRIVER'

class VehicleAssignmentAction(Enum):
    ASSIGNED = 'ASSIGNED'
    UNASSIGNED = 'UNASSIGNED'

class RaterRole(Enum):
    COMPANY = 'COMPANY'
    FLEET_MANAGER = 'FLEET_MANAGER'
    SUPERVISOR = 'SUPERVISOR'

class RatingTag(Enum):
    HIGHLY_RECOMMENDED = 'HIGHLY_RECOMMENDED'
    RELIABLE = 'RELIABLE'
    SKILLED = 'SKILLED'
    PROFESSIONAL = 'PROFESSIONAL'
    EXPERIENCED = 'EXPERIENCED'
    NEEDS_IMPROVEMENT = 'NEEDS_IMPROVEMENT'
    PUNCTUAL = 'PUNCTUAL'
    SAFE_DRIVER = 'SAFE_DRIVER'
    GOOD_COMMUNICATOR = 'GOOD_COMMUNICATOR'
    TEAM_PLAYER = 'TEAM_PLAYER'

class ModerationStatus(Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    FLAGGED = 'FLAGGED'

class OutboxStatus(Enum):
    PENDING = 'PENDING'
    SENT = 'SENT'
    FAILED = 'FAILED'


OPEN_REQUEST_STATUSES = (JobRequestStatus.PENDING, JobRequestStatus.VIEWED)
TERMINAL_EMPLOYMENT_STATUSES = (EmploymentStatus.TERMINATED, EmploymentStatus.RESIGNED)
RATING_CATEGORIES = ('safety', 'punctuality', 'professionalism', 'vehicle_care', 'communication')


def _camel(name):
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def _enum_value(member):
    return member.value if member is not None else None


class JobRequest(db.Model):
    __tablename__ = 'job_requests'

    id = db.Column(db.Integer, primary_key=True)
    # Opaque identity-service user ids
    company_id = db.Column(db.String(64), nullable=False, index=True)
    driver_id = db.Column(db.String(64), nullable=False, index=True)
    request_type = db.Column(db.Enum(JobRequestType), nullable=False, default=JobRequestType.DIRECT_OFFER)
    status = db.Column(db.Enum(JobRequestStatus), nullable=False, default=JobRequestStatus.PENDING, index=True)

    # Offer snapshot
    service_type = db.Column(db.Enum(ServiceType), nullable=False)
    vehicle_type = db.Column(db.String(100), nullable=False)
    contract_duration = db.Column(db.Integer, nullable=False)
    contract_unit = db.Column(db.Enum(ContractUnit), nullable=False)
    accommodation = db.Column(db.Boolean, default=False, nullable=False)
    health_insurance = db.Column(db.Boolean, default=False, nullable=False)
    description = db.Column(db.Text)

    salary_amount = db.Column(db.Float, nullable=False)
    salary_currency = db.Column(db.String(10), nullable=False, default='INR')
    salary_frequency = db.Column(db.Enum(SalaryFrequency), nullable=False)

    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    proposed_start_date = db.Column(db.DateTime)
    company_notes = db.Column(db.Text)

    # Driver response
    responded_at = db.Column(db.DateTime)
    response_message = db.Column(db.Text)
    dl_consent_given = db.Column(db.Boolean, default=False, nullable=False)
    counter_salary = db.Column(db.Float)
    counter_start_date = db.Column(db.DateTime)
    counter_notes = db.Column(db.Text)

    rejection_reason = db.Column(db.Enum(RejectionReason))
    rejection_details = db.Column(db.Text)
    rejected_by = db.Column(db.Enum(RejectedBy))

    resulting_employment_id = db.Column(db.Integer, db.ForeignKey('employments.id'), unique=True)

    # Interview
    interview_scheduled_at = db.Column(db.DateTime)
    interview_location = db.Column(db.String(255))
    interview_mode = db.Column(db.Enum(InterviewMode))
    interview_notes = db.Column(db.Text)
    interview_status = db.Column(db.Enum(InterviewStatus))

    viewed_at = db.Column(db.DateTime)
    view_count = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    status_history = db.relationship('JobRequestStatusChange', backref='job_request', lazy=True,
                                     order_by='JobRequestStatusChange.id',
                                     cascade='all, delete-orphan')
    resulting_employment = db.relationship('Employment', foreign_keys=[resulting_employment_id])

    __table_args__ = (
        Index('ix_job_requests_company_driver_status', 'company_id', 'driver_id', 'status'),
        # One open offer per company and driver
        Index('uq_job_requests_open_pair', 'company_id', 'driver_id', unique=True,
              sqlite_where=text("status IN ('PENDING', 'VIEWED')"),
              postgresql_where=text("status IN ('PENDING', 'VIEWED')")),
        CheckConstraint('contract_duration >= 1', name='ck_job_requests_contract_duration'),
        CheckConstraint('salary_amount >= 0', name='ck_job_requests_salary_amount'),
    )

    @staticmethod
    def default_expiry(now=None, ttl_days=30):
        return (now or get_local_time_naive()) + timedelta(days=ttl_days)

    def can_be_modified(self):
        return self.status in OPEN_REQUEST_STATUSES

    def is_expired(self, now=None):
        if self.status == JobRequestStatus.EXPIRED:
            return True
        return self.expires_at < (now or get_local_time_naive())

    def update_status(self, new_status, changed_by, reason=None, at=None):
        """Move to ``new_status`` and append the change to the status history."""
        at = at or get_local_time_naive()
        self.status = new_status
        if new_status == JobRequestStatus.VIEWED and self.viewed_at is None:
            self.viewed_at = at
        self.status_history.append(JobRequestStatusChange(
            status=new_status,
            changed_by=changed_by,
            changed_at=at,
            reason=reason,
        ))

    @property
    def job_details(self):
        return {
            'serviceType': _enum_value(self.service_type),
            'vehicleType': self.vehicle_type,
            'contractDuration': self.contract_duration,
            'contractUnit': _enum_value(self.contract_unit),
            'accommodation': self.accommodation,
            'healthInsurance': self.health_insurance,
            'description': self.description,
        }

    @property
    def offered_salary(self):
        return {
            'amount': self.salary_amount,
            'currency': self.salary_currency,
            'frequency': _enum_value(self.salary_frequency),
        }

    def _driver_response(self):
        if self.responded_at is None:
            return None
        response = {
            'respondedAt': to_iso(self.responded_at),
            'message': self.response_message,
            'dlConsentGiven': self.dl_consent_given,
        }
        if self.counter_salary is not None or self.counter_start_date or self.counter_notes:
            response['counterOffer'] = {
                'salary': self.counter_salary,
                'startDate': to_iso(self.counter_start_date),
                'notes': self.counter_notes,
            }
        return response

    def _rejection(self):
        if self.rejected_by is None:
            return None
        return {
            'reason': _enum_value(self.rejection_reason),
            'details': self.rejection_details,
            'rejectedBy': _enum_value(self.rejected_by),
        }

    def _interview(self):
        if self.interview_scheduled_at is None:
            return None
        return {
            'scheduledAt': to_iso(self.interview_scheduled_at),
            'location': self.interview_location,
            'mode': _enum_value(self.interview_mode),
            'notes': self.interview_notes,
            'status': _enum_value(self.interview_status),
        }

    def to_dict(self):
        return {
            'id': self.id,
            'type': _enum_value(self.request_type),
            'companyId': self.company_id,
            'driverId': self.driver_id,
            'status': self.status.value,
            'jobDetails': self.job_details,
            'offeredSalary': self.offered_salary,
            'expiresAt': to_iso(self.expires_at),
            'proposedStartDate': to_iso(self.proposed_start_date),
            'companyNotes': self.company_notes,
            'statusHistory': [entry.to_dict() for entry in self.status_history],
            'driverResponse': self._driver_response(),
            'rejection': self._rejection(),
            'resultingEmployment': self.resulting_employment_id,
            'interview': self._interview(),
            'viewedAt': to_iso(self.viewed_at),
            'viewCount': self.view_count,
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.updated_at),
        }

    def __repr__(self):
        return f'<JobRequest {self.id} {self.company_id}->{self.driver_id} {self.status.name}>'


class JobRequestStatusChange(db.Model):
    """Append-only audit trail of job request transitions"""
    __tablename__ = 'job_request_status_history'

    id = db.Column(db.Integer, primary_key=True)
    job_request_id = db.Column(db.Integer, db.ForeignKey('job_requests.id'), nullable=False, index=True)
    status = db.Column(db.Enum(JobRequestStatus), nullable=False)
    changed_by = db.Column(db.String(64), nullable=False)
    changed_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    reason = db.Column(db.String(255))

    def to_dict(self):
        return {
            'status': self.status.value,
            'changedBy': self.changed_by,
            'changedAt': to_iso(self.changed_at),
            'reason': self.reason,
        }


class Employment(db.Model):
    __tablename__ = 'employments'

    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.String(64), nullable=False, index=True)
    company_id = db.Column(db.String(64), nullable=False, index=True)
    # Weak back-reference, lookup only
    source_job_request_id = db.Column(db.Integer, index=True)

    # Contract snapshot copied from the accepted job request
    service_type = db.Column(db.Enum(ServiceType), nullable=False)
    vehicle_type = db.Column(db.String(100), nullable=False)
    contract_duration = db.Column(db.Integer, nullable=False)
    contract_unit = db.Column(db.Enum(ContractUnit), nullable=False)
    accommodation = db.Column(db.Boolean, default=False, nullable=False)
    health_insurance = db.Column(db.Boolean, default=False, nullable=False)
    description = db.Column(db.Text)

    salary_amount = db.Column(db.Float, nullable=False)
    salary_currency = db.Column(db.String(10), nullable=False, default='INR')
    salary_frequency = db.Column(db.Enum(SalaryFrequency), nullable=False)

    status = db.Column(db.Enum(EmploymentStatus), nullable=False, default=EmploymentStatus.ACTIVE, index=True)
    assignment_status = db.Column(db.Enum(AssignmentStatus), nullable=False, default=AssignmentStatus.UNASSIGNED)

    start_date = db.Column(db.DateTime, nullable=False, default=get_local_time_naive)
    end_date = db.Column(db.DateTime)

    termination_reason = db.Column(db.Enum(TerminationReason))
    termination_details = db.Column(db.Text)
    termination_initiated_by = db.Column(db.Enum(InitiatedBy))
    terminated_at = db.Column(db.DateTime)

    assigned_vehicle_id = db.Column(db.String(64))
    vehicle_assigned_on = db.Column(db.DateTime)
    vehicle_assignment_notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    vehicle_history = db.relationship('EmploymentVehicleAssignment', backref='employment', lazy=True,
                                      order_by='EmploymentVehicleAssignment.id',
                                      cascade='all, delete-orphan')

    __table_args__ = (
        Index('ix_employments_driver_status', 'driver_id', 'status'),
        Index('ix_employments_company_status', 'company_id', 'status'),
        # A driver holds at most one ACTIVE employment
        Index('uq_employments_active_driver', 'driver_id', unique=True,
              sqlite_where=text("status = 'ACTIVE'"),
              postgresql_where=text("status = 'ACTIVE'")),
        CheckConstraint('salary_amount >= 0', name='ck_employments_salary_amount'),
    )

    @hybrid_property
    def is_terminal(self):
        return self.status in TERMINAL_EMPLOYMENT_STATUSES

    @is_terminal.expression
    def is_terminal(cls):
        return cls.status.in_(TERMINAL_EMPLOYMENT_STATUSES)

    @property
    def duration_in_days(self):
        end = self.end_date or get_local_time_naive()
        seconds = abs((end - self.start_date).total_seconds())
        return math.ceil(seconds / 86400)

    def is_current(self):
        return self.status == EmploymentStatus.ACTIVE and self.end_date is None

    @classmethod
    def from_job_request(cls, job_request, started_at):
        return cls(
            driver_id=job_request.driver_id,
            company_id=job_request.company_id,
            source_job_request_id=job_request.id,
            service_type=job_request.service_type,
            vehicle_type=job_request.vehicle_type,
            contract_duration=job_request.contract_duration,
            contract_unit=job_request.contract_unit,
            accommodation=job_request.accommodation,
            health_insurance=job_request.health_insurance,
            description=job_request.description,
            salary_amount=job_request.salary_amount,
            salary_currency=job_request.salary_currency,
            salary_frequency=job_request.salary_frequency,
            status=EmploymentStatus.ACTIVE,
            assignment_status=AssignmentStatus.UNASSIGNED,
            start_date=started_at,
        )

    def end(self, status, reason, details, initiated_by, at):
        self.status = status
        self.end_date = at
        self.termination_reason = reason
        self.termination_details = details
        self.termination_initiated_by = initiated_by
        self.terminated_at = at

    def assign_vehicle(self, vehicle_id, changed_by, notes=None, at=None):
        at = at or get_local_time_naive()
        self.assigned_vehicle_id = vehicle_id
        self.vehicle_assigned_on = at
        self.vehicle_assignment_notes = notes
        self.vehicle_history.append(EmploymentVehicleAssignment(
            vehicle_id=vehicle_id,
            action=VehicleAssignmentAction.ASSIGNED,
            notes=notes,
            changed_by=changed_by,
            changed_at=at,
        ))

    def unassign_vehicle(self, changed_by, reason=None, at=None):
        at = at or get_local_time_naive()
        previous = self.assigned_vehicle_id
        self.assigned_vehicle_id = None
        self.vehicle_assigned_on = None
        self.vehicle_assignment_notes = None
        self.vehicle_history.append(EmploymentVehicleAssignment(
            vehicle_id=previous,
            action=VehicleAssignmentAction.UNASSIGNED,
            notes=reason,
            changed_by=changed_by,
            changed_at=at,
        ))

    @property
    def salary(self):
        return {
            'amount': self.salary_amount,
            'currency': self.salary_currency,
            'frequency': _enum_value(self.salary_frequency),
        }

    def assigned_vehicle(self):
        if not self.assigned_vehicle_id:
            return None
        return {
            'vehicleId': self.assigned_vehicle_id,
            'assignedOn': to_iso(self.vehicle_assigned_on),
            'notes': self.vehicle_assignment_notes,
        }

    def _termination(self):
        if self.termination_initiated_by is None:
            return None
        return {
            'reason': _enum_value(self.termination_reason),
            'details': self.termination_details,
            'initiatedBy': _enum_value(self.termination_initiated_by),
            'terminatedAt': to_iso(self.terminated_at),
        }

    def to_dict(self):
        return {
            'id': self.id,
            'driverId': self.driver_id,
            'companyId': self.company_id,
            'sourceJobRequest': self.source_job_request_id,
            'serviceType': _enum_value(self.service_type),
            'vehicleType': self.vehicle_type,
            'contractDuration': self.contract_duration,
            'contractUnit': _enum_value(self.contract_unit),
            'accommodation': self.accommodation,
            'healthInsurance': self.health_insurance,
            'description': self.description,
            'salary': self.salary,
            'status': self.status.value,
            'assignmentStatus': self.assignment_status.value,
            'startDate': to_iso(self.start_date),
            'endDate': to_iso(self.end_date),
            'termination': self._termination(),
            'assignedVehicle': self.assigned_vehicle(),
            'durationInDays': self.duration_in_days,
            'isCurrent': self.is_current(),
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Employment {self.id} driver={self.driver_id} {self.status.name}>'


class EmploymentVehicleAssignment(db.Model):
    __tablename__ = 'employment_vehicle_assignments'

    id = db.Column(db.Integer, primary_key=True)
    employment_id = db.Column(db.Integer, db.ForeignKey('employments.id'), nullable=False, index=True)
    vehicle_id = db.Column(db.String(64))
    action = db.Column(db.Enum(VehicleAssignmentAction), nullable=False)
    notes = db.Column(db.Text)
    changed_by = db.Column(db.String(64), nullable=False)
    changed_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)

    def to_dict(self):
        return {
            'vehicleId': self.vehicle_id,
            'action': self.action.value,
            'notes': self.notes,
            'changedBy': self.changed_by,
            'changedAt': to_iso(self.changed_at),
        }


class DriverRating(db.Model):
    __tablename__ = 'driver_ratings'

    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.String(64), nullable=False, index=True)
    rater_user_id = db.Column(db.String(64), nullable=False)
    rater_company_id = db.Column(db.String(64), nullable=False, index=True)
    rater_role = db.Column(db.Enum(RaterRole), nullable=False, default=RaterRole.COMPANY)
    employment_id = db.Column(db.Integer, db.ForeignKey('employments.id'), index=True)

    overall_rating = db.Column(db.Integer, nullable=False)
    safety = db.Column(db.Integer)
    punctuality = db.Column(db.Integer)
    professionalism = db.Column(db.Integer)
    vehicle_care = db.Column(db.Integer)
    communication = db.Column(db.Integer)

    review_title = db.Column(db.String(100))
    review_content = db.Column(db.Text)
    tags_json = db.Column(db.Text)  # JSON array
    would_rehire = db.Column(db.Boolean)

    context_employment_duration = db.Column(db.Integer)
    context_vehicle_type = db.Column(db.String(100))
    context_route_type = db.Column(db.String(100))

    is_public = db.Column(db.Boolean, default=True, nullable=False)
    is_approved = db.Column(db.Boolean, default=True, nullable=False, index=True)
    moderation_status = db.Column(db.Enum(ModerationStatus), default=ModerationStatus.APPROVED, nullable=False)
    moderation_notes = db.Column(db.Text)

    driver_response_content = db.Column(db.Text)
    driver_responded_at = db.Column(db.DateTime)
    helpful_votes = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    edit_history = db.relationship('RatingEdit', backref='rating', lazy=True,
                                   order_by='RatingEdit.id', cascade='all, delete-orphan')
    employment = db.relationship('Employment')

    __table_args__ = (
        # NULL employment ids never collide, so the guard only applies to employment-scoped ratings
        UniqueConstraint('driver_id', 'rater_company_id', 'employment_id', name='uq_driver_rating_employment'),
        CheckConstraint('overall_rating BETWEEN 1 AND 5', name='ck_driver_ratings_overall'),
    )

    @property
    def tags(self):
        return json.loads(self.tags_json) if self.tags_json else []

    @tags.setter
    def tags(self, values):
        self.tags_json = json.dumps(list(values)) if values else None

    @property
    def category_ratings(self):
        return {_camel(name): getattr(self, name) for name in RATING_CATEGORIES}

    def set_category_ratings(self, ratings):
        for name in RATING_CATEGORIES:
            if name in ratings:
                setattr(self, name, ratings[name])

    def to_dict(self, include_moderation=True):
        data = {
            'id': self.id,
            'driverId': self.driver_id,
            'ratedBy': {
                'userId': self.rater_user_id,
                'companyId': self.rater_company_id,
                'role': self.rater_role.value,
            },
            'employmentId': self.employment_id,
            'overallRating': self.overall_rating,
            'categoryRatings': self.category_ratings,
            'review': {'title': self.review_title, 'content': self.review_content},
            'tags': self.tags,
            'wouldRehire': self.would_rehire,
            'context': {
                'employmentDuration': self.context_employment_duration,
                'vehicleType': self.context_vehicle_type,
                'routeType': self.context_route_type,
            },
            'isPublic': self.is_public,
            'isApproved': self.is_approved,
            'driverResponse': None,
            'helpfulVotes': self.helpful_votes,
            'editHistory': [edit.to_dict() for edit in self.edit_history],
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.updated_at),
        }
        if self.driver_response_content:
            data['driverResponse'] = {
                'content': self.driver_response_content,
                'respondedAt': to_iso(self.driver_responded_at),
            }
        if include_moderation:
            data['moderationStatus'] = self.moderation_status.value
            data['moderationNotes'] = self.moderation_notes
        return data


class RatingEdit(db.Model):
    __tablename__ = 'driver_rating_edits'

    id = db.Column(db.Integer, primary_key=True)
    rating_id = db.Column(db.Integer, db.ForeignKey('driver_ratings.id'), nullable=False, index=True)
    edited_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    previous_rating = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255))

    def to_dict(self):
        return {
            'editedAt': to_iso(self.edited_at),
            'previousRating': self.previous_rating,
            'reason': self.reason,
        }


class IdentitySyncOutbox(db.Model):
    """Pending identity-service field updates, written in the same transaction as the change that caused them"""
    __tablename__ = 'identity_sync_outbox'

    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.String(64), nullable=False, index=True)
    fields_json = db.Column(db.Text, nullable=False)  # JSON object
    reason = db.Column(db.String(100), nullable=False)
    status = db.Column(db.Enum(OutboxStatus), nullable=False, default=OutboxStatus.PENDING, index=True)
    attempts = db.Column(db.Integer, default=0, nullable=False)
    last_error = db.Column(db.Text)
    next_attempt_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    sent_at = db.Column(db.DateTime)

    __table_args__ = (
        Index('ix_identity_sync_outbox_status_next', 'status', 'next_attempt_at'),
    )

    @property
    def fields(self):
        return json.loads(self.fields_json)

    @fields.setter
    def fields(self, value):
        self.fields_json = json.dumps(value, sort_keys=True)

    def to_dict(self):
        return {
            'id': self.id,
            'driverId': self.driver_id,
            'fields': self.fields,
            'reason': self.reason,
            'status': self.status.value,
            'attempts': self.attempts,
            'lastError': self.last_error,
            'nextAttemptAt': to_iso(self.next_attempt_at),
            'createdAt': to_iso(self.created_at),
            'sentAt': to_iso(self.sent_at),
        }


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    # Action details
    action = db.Column(db.String(100), nullable=False, index=True)
    entity_type = db.Column(db.String(50), index=True)
    entity_id = db.Column(db.Integer)

    new_values = db.Column(db.Text)  # JSON

    # Request context
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)

    def __repr__(self):
        return f'<AuditLog {self.action} {self.entity_type}:{self.entity_id}>'
