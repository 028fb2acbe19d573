"""
Unit tests for JSON payload helpers and request forms
"""

import pytest
from datetime import datetime

from forms import (
    validate_payload, CreateJobRequestForm, RespondJobRequestForm, CreateRatingForm,
    AvailabilityWindowForm, TerminateEmploymentForm
)
from services.exceptions import ValidationError
from utils.payloads import (
    camel_to_snake, snake_to_camel, flatten_payload, flatten_form_errors, parse_datetime,
    pagination_meta
)


@pytest.mark.unit
class TestPayloadHelpers:

    def test_case_conversion(self):
        assert camel_to_snake('dlConsentGiven') == 'dl_consent_given'
        assert snake_to_camel('vehicle_care') == 'vehicleCare'

    def test_flatten_nested_and_lists(self):
        formdata = flatten_payload({
            'jobDetails': {'serviceType': 'Commercial', 'accommodation': True},
            'tags': ['RELIABLE', 'SKILLED'],
            'companyNotes': None,
        })
        assert formdata['job_details-service_type'] == 'Commercial'
        assert formdata['job_details-accommodation'] == 'true'
        assert formdata.getlist('tags') == ['RELIABLE', 'SKILLED']
        assert 'company_notes' not in formdata

    def test_flatten_form_errors(self):
        errors = flatten_form_errors({'job_details': {'contract_duration': ['Too small']}, 'driver_id': ['Required']})
        assert {'field': 'jobDetails.contractDuration', 'message': 'Too small'} in errors
        assert {'field': 'driverId', 'message': 'Required'} in errors

    def test_parse_datetime_converts_to_local_naive(self):
        parsed = parse_datetime('2026-03-01T04:30:00Z')
        assert parsed == datetime(2026, 3, 1, 10, 0)
        assert parsed.tzinfo is None
        assert parse_datetime('') is None
        with pytest.raises(ValueError):
            parse_datetime('tomorrow')

    def test_pagination_meta(self):
        assert pagination_meta(2, 10, 25) == {'current': 2, 'pages': 3, 'total': 25}
        assert pagination_meta(1, 20, 0) == {'current': 1, 'pages': 0, 'total': 0}


@pytest.mark.unit
class TestRequestForms:

    def test_create_job_request_defaults(self, app, offer_payload):
        data = validate_payload(CreateJobRequestForm, offer_payload())
        assert data['driver_id'] == 'driver-1'
        assert data['type'] == 'DIRECT_OFFER'
        assert data['job_details']['contract_duration'] == 6
        assert data['job_details']['health_insurance'] is False
        assert data['offered_salary']['currency'] == 'INR'

    def test_create_job_request_errors_are_aggregated(self, app, offer_payload):
        payload = offer_payload()
        payload['jobDetails']['contractDuration'] = 0
        payload['jobDetails']['serviceType'] = 'Cargo'
        del payload['offeredSalary']['frequency']

        with pytest.raises(ValidationError) as exc_info:
            validate_payload(CreateJobRequestForm, payload)

        fields = {error['field'] for error in exc_info.value.errors}
        assert exc_info.value.message == 'Validation failed'
        assert {'jobDetails.contractDuration', 'jobDetails.serviceType', 'offeredSalary.frequency'} <= fields

    def test_non_object_body(self, app):
        with pytest.raises(ValidationError, match='JSON object'):
            validate_payload(CreateJobRequestForm, ['not', 'an', 'object'])

    def test_reject_requires_reason(self, app):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(RespondJobRequestForm, {'action': 'reject'})
        assert {'field': 'rejection.reason', 'message': 'Rejection reason is required'} in exc_info.value.errors

    def test_accept_payload(self, app):
        data = validate_payload(RespondJobRequestForm, {'action': 'accept', 'dlConsentGiven': True})
        assert data['dl_consent_given'] is True
        assert data['rejection']['reason'] is None

    @pytest.mark.parametrize('consent', ['no', 'yes', 1, 'false ', 'True'])
    def test_consent_must_be_a_json_boolean(self, app, consent):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(RespondJobRequestForm, {'action': 'accept', 'dlConsentGiven': consent})
        assert {'field': 'dlConsentGiven', 'message': 'Not a valid boolean value.'} in exc_info.value.errors

    def test_explicit_false_consent(self, app):
        data = validate_payload(RespondJobRequestForm, {'action': 'accept', 'dlConsentGiven': False})
        assert data['dl_consent_given'] is False

    def test_rating_visibility_rejects_non_boolean(self, app):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(CreateRatingForm, {'driverId': 'driver-1', 'overallRating': 4, 'isPublic': 'no'})
        assert 'isPublic' in {error['field'] for error in exc_info.value.errors}

    def test_unknown_action(self, app):
        with pytest.raises(ValidationError):
            validate_payload(RespondJobRequestForm, {'action': 'ignore'})

    def test_rating_form(self, app):
        data = validate_payload(CreateRatingForm, {
            'driverId': 'driver-1',
            'overallRating': 5,
            'categoryRatings': {'safety': 4},
            'tags': ['RELIABLE'],
        })
        assert data['overall_rating'] == 5
        assert data['category_ratings']['safety'] == 4
        assert data['category_ratings']['punctuality'] is None
        assert data['is_public'] is True
        assert data['would_rehire'] is None

    def test_rating_form_rejects_out_of_range_and_unknown_tag(self, app):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(CreateRatingForm, {'driverId': 'driver-1', 'overallRating': 6, 'tags': ['FAST']})
        fields = {error['field'] for error in exc_info.value.errors}
        assert {'overallRating', 'tags'} <= fields

    def test_terminate_requires_known_reason(self, app):
        with pytest.raises(ValidationError):
            validate_payload(TerminateEmploymentForm, {})
        assert validate_payload(TerminateEmploymentForm, {'reason': 'REDUNDANCY'})['reason'] == 'REDUNDANCY'

    def test_availability_window_from_query_args(self, app):
        data = validate_payload(AvailabilityWindowForm, {
            'startDateTime': '2026-03-01T09:00:00',
            'endDateTime': '2026-03-01T18:00:00',
        })
        assert data['start_date_time'] == datetime(2026, 3, 1, 9, 0)
        assert data['end_date_time'] == datetime(2026, 3, 1, 18, 0)
