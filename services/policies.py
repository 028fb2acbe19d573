"""
Access and state preconditions for hiring operations.

Each check is a pure function of the caller and the entity's ownership
and status fields. A failed check raises the matching service error.
"""

from .caller import CallerRole
from models import EmploymentStatus, RaterRole
from .exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError


# Job requests

def ensure_request_party(caller, job_request):
    """Drivers see requests addressed to them, companies the ones they sent; admins see all"""
    if caller.role == CallerRole.ADMIN:
        return
    if caller.role == CallerRole.DRIVER:
        allowed = job_request.driver_id == caller.user_id
    else:
        allowed = job_request.company_id == caller.user_id
    if not allowed:
        raise ForbiddenError('Access denied to this job request')


def ensure_request_recipient(caller, job_request):
    if caller.role != CallerRole.DRIVER or job_request.driver_id != caller.user_id:
        raise ForbiddenError('This job request is not for you')


def ensure_request_owner(caller, job_request):
    if caller.role == CallerRole.DRIVER or job_request.company_id != caller.user_id:
        raise ForbiddenError('This job request does not belong to you')


def ensure_request_open(job_request, message='This job request cannot be modified'):
    if not job_request.can_be_modified():
        raise ValidationError(message)


def ensure_offerable_driver(driver):
    """The target must exist, be a driver and have no employer"""
    if driver is None:
        raise NotFoundError('Driver')
    if not driver.is_driver:
        raise ValidationError('User is not a driver')
    if not driver.is_free_agent:
        raise ValidationError('Driver is currently employed')


def ensure_no_open_request(existing_request):
    if existing_request is not None:
        raise ConflictError('A pending job request already exists for this driver')


def ensure_license_consent(dl_consent_given):
    if dl_consent_given is not True:
        raise ValidationError('You must consent to sharing your driving license to accept this offer')


def ensure_counter_offer(counter_offer):
    if not counter_offer or not any(value not in (None, '') for value in counter_offer.values()):
        raise ValidationError('Counter offer details required')


# Employments

def ensure_employment_viewer(caller, employment):
    if caller.role == CallerRole.ADMIN:
        return
    if caller.user_id not in (employment.driver_id, employment.company_id):
        raise ForbiddenError('Access denied')


def ensure_employer(caller, employment):
    if caller.role == CallerRole.DRIVER or employment.company_id != caller.user_id:
        raise ForbiddenError('Access denied')


def ensure_employee(caller, employment):
    if caller.role != CallerRole.DRIVER or employment.driver_id != caller.user_id:
        raise ForbiddenError('This employment does not belong to you')


def ensure_employment_active(employment, message='Employment is already terminated'):
    if employment.status != EmploymentStatus.ACTIVE:
        raise ValidationError(message)


def ensure_employment_open(employment):
    """Editable while not terminated or resigned"""
    if employment.is_terminal:
        raise ValidationError('Employment is already terminated')


# Ratings

def ensure_rateable_employment(caller, employment, driver_id):
    if employment is None:
        raise NotFoundError('Employment record')
    if employment.company_id != caller.user_id:
        raise ForbiddenError('You cannot rate for this employment')
    if employment.driver_id != driver_id:
        raise ValidationError('Employment does not belong to this driver')


def ensure_not_rated(existing_rating):
    if existing_rating is not None:
        raise ConflictError('You have already rated this driver for this employment')


def ensure_rating_author(caller, rating, action='update'):
    if rating.rater_user_id != caller.user_id:
        raise ForbiddenError(f'You can only {action} your own ratings')


def ensure_rating_subject(caller, rating):
    if caller.role != CallerRole.DRIVER or rating.driver_id != caller.user_id:
        raise ForbiddenError('This rating is not for you')


def ensure_not_answered(rating):
    if rating.driver_response_content:
        raise ConflictError('You have already responded to this rating')


def rater_role_for(caller):
    return RaterRole.FLEET_MANAGER if caller.role_claim == 'fleetmanager' else RaterRole.COMPANY
