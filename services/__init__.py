"""
Service Layer Architecture

Business rules for the hiring lifecycle live here; route handlers only
parse input, resolve the caller and shape responses.

Services Architecture:
- **JobRequestService**: Offers, driver responses, withdrawal, expiry
- **EmploymentService**: Employment ledger, vehicle assignment, release
- **RatingService**: Driver ratings and the derived aggregate
- **AssignmentStatusPropagator**: Deployability changes mirrored to identity
- **IdentitySyncService**: Outbox delivery of identity updates
- **NotificationService** / **EmailService**: Best-effort messaging
- **AuditService**: Audit trail rows written with each change
"""

from .assignment_propagator import AssignmentStatusPropagator
from .audit_service import AuditService
from .container import ServiceContainer, get_services, init_services
from .email_service import EmailService
from .employment_service import EmploymentService
from .event_bus import DomainEventBus
from .identity_sync_service import IdentitySyncService
from .job_request_service import JobRequestService
from .notification_service import NotificationService
from .rating_service import RatingService
from .transaction_helper import TransactionHelper

__all__ = [
    'AssignmentStatusPropagator',
    'AuditService',
    'DomainEventBus',
    'EmailService',
    'EmploymentService',
    'IdentitySyncService',
    'JobRequestService',
    'NotificationService',
    'RatingService',
    'ServiceContainer',
    'TransactionHelper',
    'get_services',
    'init_services',
]
