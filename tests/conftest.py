"""
Test configuration and fixtures for the fleet hiring service
"""

import pytest
import os
from datetime import timedelta

TEST_SECRET = 'test_jwt_secret_for_testing_only_0123456789'

# Set test environment before importing app
os.environ.update({
    'FLASK_ENV': 'testing',
    'JWT_SECRET_KEY': TEST_SECRET,
    'DATABASE_URL': 'sqlite:///:memory:',
    'ERROR_LOG_FILE': '',
    'ENABLE_BACKGROUND_TASKS': 'false',
    'APP_TIMEZONE': 'Asia/Kolkata',
})

from app import create_app, db
from auth import issue_token
from models import (
    JobRequest, JobRequestStatus, Employment, EmploymentStatus, AssignmentStatus, DriverRating,
    ServiceType, ContractUnit, SalaryFrequency, RaterRole
)
from services import ServiceContainer, NotificationService, EmailService
from services.caller import Caller, CallerRole
from services.event_bus import DomainEventBus, InMemoryEventSink
from services.exceptions import CollaboratorError
from services.identity_client import IdentityUser, normalize_employer_name
from services.trip_client import Trip
from timezone_utils import get_local_time_naive
import factory


COMPANY_ID = 'company-1'
OTHER_COMPANY_ID = 'company-2'
DRIVER_ID = 'driver-1'


# Fake collaborators

class FakeIdentityClient:
    """In-memory identity service holding raw user payloads"""

    def __init__(self):
        self.users = {}
        self.updates = []
        self.unavailable = False
        self.fail_updates = False

    def add_user(self, user_id, role='driver', company_name='Unemployed', **fields):
        payload = {
            '_id': user_id,
            'role': role,
            'email': f'{user_id}@example.com',
            'firstName': user_id.split('-')[0].title(),
            'lastName': user_id.split('-')[-1],
            'companyName': company_name,
            'assignmentStatus': 'UNASSIGNED',
        }
        payload.update(fields)
        self.users[user_id] = payload
        return payload

    def fetch_user(self, user_id):
        if self.unavailable:
            raise CollaboratorError('identity', 'Request error: connection refused')
        payload = self.users.get(user_id)
        return IdentityUser.from_payload(payload) if payload else None

    def get_user(self, user_id):
        try:
            return self.fetch_user(user_id)
        except CollaboratorError:
            return None

    def update_user_fields(self, user_id, body):
        if self.fail_updates:
            raise CollaboratorError('identity', 'PUT failed: 503 - unavailable', status_code=503)
        self.updates.append((user_id, dict(body)))
        self.users.setdefault(user_id, {'_id': user_id, 'role': 'driver'}).update(body)
        return {'success': True}

    def list_available_drivers(self, page=1, limit=20):
        if self.unavailable:
            raise CollaboratorError('identity', 'Request error: connection refused')
        drivers = [
            IdentityUser.from_payload(payload) for payload in self.users.values()
            if payload.get('role') == 'driver' and normalize_employer_name(payload.get('companyName')) is None
        ]
        return drivers[(page - 1) * limit:page * limit], len(drivers)


class FakeTripClient:
    def __init__(self):
        self.trips = []
        self.unavailable = False

    def add_trip(self, trip_id, driver_id, vehicle_id, start, end=None, status='scheduled'):
        payload = {
            '_id': trip_id,
            'driverId': driver_id,
            'vehicleId': vehicle_id,
            'status': status,
            'startDateTime': start.isoformat() if start else None,
            'endDateTime': end.isoformat() if end else None,
        }
        self.trips.append(Trip.from_payload(payload))
        return payload

    def list_trips(self, company_id, vehicle_id=None):
        if self.unavailable:
            raise CollaboratorError('trip', 'Request error: timed out')
        return [trip for trip in self.trips if vehicle_id is None or trip.vehicle_id == vehicle_id]


class FakeVehicleClient:
    def __init__(self):
        self.vehicles = {}
        self.unavailable = False

    def get_vehicle(self, vehicle_id, company_id):
        if self.unavailable or vehicle_id not in self.vehicles:
            raise CollaboratorError('vehicle', f'GET /api/vehicles/{vehicle_id} failed: 404', status_code=404)
        return self.vehicles[vehicle_id]


class RecordingNotificationService(NotificationService):
    """Keeps notifications instead of posting them"""

    def __init__(self):
        super().__init__('http://notifications.test')
        self.sent = []

    def create_notification(self, user_id, notification_type, title, message,
                            related_entity=None, metadata=None, priority='medium'):
        record = {'userId': user_id, 'type': notification_type, 'title': title,
                  'message': message, 'priority': priority, 'metadata': metadata}
        self.sent.append(record)
        return record

    def of_type(self, notification_type):
        return [record for record in self.sent if record['type'] == notification_type]


class RecordingEmailService(EmailService):
    def __init__(self):
        super().__init__(smtp_host='smtp.test', from_email='hiring@example.com')
        self.outbox = []

    def send_email(self, to_email, subject, body):
        self.outbox.append({'to': to_email, 'subject': subject, 'body': body})
        return True


# Application fixtures

@pytest.fixture(scope='function')
def identity():
    client = FakeIdentityClient()
    client.add_user(COMPANY_ID, role='fleetmanager', company_name='Acme Logistics')
    client.add_user(OTHER_COMPANY_ID, role='company', company_name='Zenith Transport')
    client.add_user(DRIVER_ID, role='driver')
    return client


@pytest.fixture(scope='function')
def trips():
    return FakeTripClient()


@pytest.fixture(scope='function')
def vehicles():
    return FakeVehicleClient()


@pytest.fixture(scope='function')
def notifications():
    return RecordingNotificationService()


@pytest.fixture(scope='function')
def emails():
    return RecordingEmailService()


@pytest.fixture(scope='function')
def events():
    return InMemoryEventSink()


@pytest.fixture(scope='function')
def services(identity, trips, vehicles, notifications, emails, events):
    return ServiceContainer.build(
        identity=identity,
        trips=trips,
        vehicles=vehicles,
        notifications=notifications,
        email=emails,
        event_bus=DomainEventBus([events]),
        max_attempts=3,
    )


@pytest.fixture(scope='function')
def app(services):
    """Create application for testing"""
    app = create_app({
        'TESTING': True,
        'DATABASE_URL': 'sqlite:///:memory:',
        'ENABLE_BACKGROUND_TASKS': False,
        'ERROR_LOG_FILE': '',
    }, services=services)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for testing"""
    yield db.session
    db.session.rollback()


# Callers and tokens

@pytest.fixture
def company_caller():
    return Caller(COMPANY_ID, CallerRole.COMPANY, 'fleetmanager')


@pytest.fixture
def other_company_caller():
    return Caller(OTHER_COMPANY_ID, CallerRole.COMPANY, 'company')


@pytest.fixture
def driver_caller():
    return Caller(DRIVER_ID, CallerRole.DRIVER, 'driver')


def auth_headers(user_id, role_claim):
    return {'Authorization': f'Bearer {issue_token(user_id, role_claim, TEST_SECRET)}'}


@pytest.fixture
def company_headers():
    return auth_headers(COMPANY_ID, 'fleetmanager')


@pytest.fixture
def other_company_headers():
    return auth_headers(OTHER_COMPANY_ID, 'company')


@pytest.fixture
def driver_headers():
    return auth_headers(DRIVER_ID, 'driver')


# Payload builders

@pytest.fixture
def offer_data():
    """Validated offer fields as the service layer receives them"""
    def build(driver_id=DRIVER_ID, **overrides):
        data = {
            'driver_id': driver_id,
            'type': 'DIRECT_OFFER',
            'job_details': {
                'service_type': 'Commercial',
                'vehicle_type': 'Truck',
                'contract_duration': 6,
                'contract_unit': 'Month(s)',
                'accommodation': True,
                'health_insurance': False,
                'description': 'Interstate freight runs',
            },
            'offered_salary': {'amount': 25000.0, 'currency': 'INR', 'frequency': 'PER_MONTH'},
            'expires_at': None,
            'proposed_start_date': None,
            'company_notes': '',
        }
        data.update(overrides)
        return data
    return build


@pytest.fixture
def offer_payload():
    """JSON body for POST /api/drivers/job-requests"""
    def build(driver_id=DRIVER_ID, **overrides):
        payload = {
            'driverId': driver_id,
            'jobDetails': {
                'serviceType': 'Commercial',
                'vehicleType': 'Truck',
                'contractDuration': 6,
                'contractUnit': 'Month(s)',
                'accommodation': True,
            },
            'offeredSalary': {'amount': 25000, 'frequency': 'PER_MONTH'},
        }
        payload.update(overrides)
        return payload
    return build


# Factory classes for test data generation

class JobRequestFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        model = JobRequest
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    company_id = COMPANY_ID
    driver_id = factory.Sequence(lambda n: f"driver-f{n}")
    status = JobRequestStatus.PENDING
    service_type = ServiceType.COMMERCIAL
    vehicle_type = 'Truck'
    contract_duration = 6
    contract_unit = ContractUnit.MONTHS
    salary_amount = 25000.0
    salary_currency = 'INR'
    salary_frequency = SalaryFrequency.PER_MONTH
    expires_at = factory.LazyFunction(lambda: get_local_time_naive() + timedelta(days=30))


class EmploymentFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        model = Employment
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    driver_id = factory.Sequence(lambda n: f"driver-e{n}")
    company_id = COMPANY_ID
    service_type = ServiceType.PASSENGER
    vehicle_type = 'Sedan'
    contract_duration = 1
    contract_unit = ContractUnit.YEARS
    salary_amount = 30000.0
    salary_currency = 'INR'
    salary_frequency = SalaryFrequency.PER_MONTH
    status = EmploymentStatus.ACTIVE
    assignment_status = AssignmentStatus.UNASSIGNED
    start_date = factory.LazyFunction(lambda: get_local_time_naive() - timedelta(days=10))


class DriverRatingFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        model = DriverRating
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    driver_id = DRIVER_ID
    rater_user_id = COMPANY_ID
    rater_company_id = COMPANY_ID
    rater_role = RaterRole.COMPANY
    overall_rating = 4
    review_title = factory.Faker('sentence', nb_words=4)
    review_content = factory.Faker('paragraph')
    is_public = True
    is_approved = True
