"""
Service wiring.

The container is built once per application and stored in
``app.extensions`` so blueprints, the background worker and the CLI share
one set of collaborator clients. Tests hand ``create_app`` a container
built around fakes.
"""

from dataclasses import dataclass
from typing import Any, Optional
import logging
from flask import current_app
from .assignment_propagator import AssignmentStatusPropagator
from .email_service import EmailService
from .employment_service import EmploymentService
from .event_bus import DomainEventBus, LoggingEventSink
from .identity_client import IdentityClient
from .identity_sync_service import IdentitySyncService
from .job_request_service import JobRequestService
from .notification_service import NotificationService
from .rating_service import RatingService
from .trip_client import TripClient
from .vehicle_client import VehicleClient

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'hiring_services'


@dataclass
class ServiceContainer:
    identity: Any
    trips: Any
    vehicles: Any
    notifications: Any
    email: Any
    event_bus: DomainEventBus
    identity_sync: IdentitySyncService
    propagator: AssignmentStatusPropagator
    job_requests: JobRequestService
    employments: EmploymentService
    ratings: RatingService

    @classmethod
    def build(cls, identity, trips, vehicles, notifications=None, email=None,
              event_bus: Optional[DomainEventBus] = None, max_attempts: int = 10,
              ttl_days: int = 30) -> 'ServiceContainer':
        """Assemble the domain services around the given collaborators"""
        event_bus = event_bus or DomainEventBus([LoggingEventSink()])
        identity_sync = IdentitySyncService(identity, max_attempts=max_attempts)
        propagator = AssignmentStatusPropagator(identity_sync)
        return cls(
            identity=identity,
            trips=trips,
            vehicles=vehicles,
            notifications=notifications,
            email=email,
            event_bus=event_bus,
            identity_sync=identity_sync,
            propagator=propagator,
            job_requests=JobRequestService(identity, propagator, identity_sync, event_bus,
                                           notifications, email, ttl_days=ttl_days),
            employments=EmploymentService(identity, trips, vehicles, propagator, identity_sync,
                                          event_bus, notifications),
            ratings=RatingService(event_bus),
        )

    @classmethod
    def from_config(cls, config) -> 'ServiceContainer':
        timeout = float(config.get('COLLABORATOR_TIMEOUT', 5))
        user_service_url = config['USER_SERVICE_URL']
        return cls.build(
            identity=IdentityClient(user_service_url, timeout=timeout),
            trips=TripClient(config['TRIP_SERVICE_URL'], timeout=timeout),
            vehicles=VehicleClient(config['VEHICLE_SERVICE_URL'], timeout=timeout),
            notifications=NotificationService(user_service_url, timeout=timeout),
            email=EmailService.from_config(config),
            max_attempts=int(config.get('OUTBOX_MAX_ATTEMPTS', 10)),
            ttl_days=int(config.get('JOB_REQUEST_TTL_DAYS', 30)),
        )


def init_services(app, container: Optional[ServiceContainer] = None) -> ServiceContainer:
    container = container or ServiceContainer.from_config(app.config)
    app.extensions[EXTENSION_KEY] = container
    logger.info("Hiring services initialized")
    return container


def get_services(app=None) -> ServiceContainer:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
