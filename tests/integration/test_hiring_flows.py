"""
Integration tests for the hiring API, end to end through HTTP
"""

import pytest
from datetime import timedelta

from models import db, JobRequest, JobRequestStatus, Employment, EmploymentStatus, IdentitySyncOutbox
from timezone_utils import get_local_time_naive
from conftest import JobRequestFactory, EmploymentFactory, COMPANY_ID, DRIVER_ID, auth_headers

JOB_REQUESTS = '/api/drivers/job-requests'
EMPLOYMENTS = '/api/drivers/employments'
RATINGS = '/api/drivers/ratings'


@pytest.mark.integration
@pytest.mark.workflow
class TestHiringWorkflow:

    def test_offer_to_hire_to_termination(self, client, identity, company_headers, driver_headers, offer_payload):
        # Company browses free agents and sends an offer
        response = client.get(f'{JOB_REQUESTS}/available-drivers', headers=company_headers)
        assert response.status_code == 200
        assert [driver['id'] for driver in response.get_json()['data']['drivers']] == [DRIVER_ID]

        response = client.post(JOB_REQUESTS, json=offer_payload(), headers=company_headers)
        assert response.status_code == 201
        request_id = response.get_json()['data']['id']
        assert response.get_json()['data']['status'] == 'PENDING'

        # Driver opens and accepts it
        response = client.get(f'{JOB_REQUESTS}/{request_id}', headers=driver_headers)
        assert response.get_json()['data']['status'] == 'VIEWED'

        response = client.post(f'{JOB_REQUESTS}/{request_id}/respond',
                               json={'action': 'accept', 'dlConsentGiven': True}, headers=driver_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body['message'] == 'Job request accepted successfully'
        assert body['data']['jobRequest']['status'] == 'HIRED'
        employment = body['data']['employment']
        assert employment['status'] == 'ACTIVE'
        assert employment['sourceJobRequest'] == request_id
        assert identity.users[DRIVER_ID]['companyName'] == 'Acme Logistics'

        # Both parties see the employment
        response = client.get(f'{EMPLOYMENTS}/current', headers=driver_headers)
        assert response.get_json()['data']['id'] == employment['id']
        response = client.get(f'{EMPLOYMENTS}/company', headers=company_headers)
        assert response.get_json()['data']['total'] == 1

        # The driver is no longer a free agent
        response = client.get(f'{JOB_REQUESTS}/available-drivers', headers=company_headers)
        assert response.get_json()['data']['drivers'] == []

        # Company terminates and the driver becomes a free agent again
        response = client.post(f"{EMPLOYMENTS}/{employment['id']}/terminate",
                               json={'reason': 'CONTRACT_END', 'details': 'Season over'},
                               headers=company_headers)
        assert response.status_code == 200
        assert response.get_json()['data']['termination']['initiatedBy'] == 'COMPANY'
        assert identity.users[DRIVER_ID]['companyName'] == 'Unemployed'

        response = client.get(f'{EMPLOYMENTS}/current', headers=driver_headers)
        assert response.get_json()['data'] is None

        response = client.get(f'{EMPLOYMENTS}/history', headers=driver_headers)
        assert response.get_json()['data']['total'] == 1

    def test_duplicate_offer_is_a_conflict(self, client, company_headers, offer_payload):
        assert client.post(JOB_REQUESTS, json=offer_payload(), headers=company_headers).status_code == 201

        response = client.post(JOB_REQUESTS, json=offer_payload(), headers=company_headers)

        assert response.status_code == 409
        assert response.get_json()['success'] is False

    def test_reject_then_reoffer(self, client, company_headers, driver_headers, offer_payload):
        request_id = client.post(JOB_REQUESTS, json=offer_payload(), headers=company_headers).get_json()['data']['id']

        response = client.post(f'{JOB_REQUESTS}/{request_id}/respond',
                               json={'action': 'reject', 'rejection': {'reason': 'LOCATION'}},
                               headers=driver_headers)
        assert response.get_json()['data']['jobRequest']['rejection']['reason'] == 'LOCATION'

        response = client.post(JOB_REQUESTS, json=offer_payload(), headers=company_headers)
        assert response.status_code == 201

        response = client.get(f'{JOB_REQUESTS}/sent', headers=company_headers)
        assert response.get_json()['data']['pagination']['total'] == 2

    def test_expired_offer_cannot_be_accepted(self, app, client, driver_headers):
        job_request = JobRequestFactory(driver_id=DRIVER_ID,
                                        expires_at=get_local_time_naive() - timedelta(hours=2))

        response = client.post(f'{JOB_REQUESTS}/{job_request.id}/respond',
                               json={'action': 'accept', 'dlConsentGiven': True}, headers=driver_headers)

        assert response.status_code == 400
        assert response.get_json()['message'] == 'This job request has expired'
        assert db.session.get(JobRequest, job_request.id).status == JobRequestStatus.EXPIRED
        assert Employment.query.count() == 0

    def test_withdrawn_offer_is_closed(self, app, client, company_headers, driver_headers):
        job_request = JobRequestFactory(driver_id=DRIVER_ID)

        response = client.post(f'{JOB_REQUESTS}/{job_request.id}/withdraw', json={}, headers=company_headers)
        assert response.get_json()['data']['status'] == 'WITHDRAWN'

        response = client.post(f'{JOB_REQUESTS}/{job_request.id}/respond',
                               json={'action': 'accept', 'dlConsentGiven': True}, headers=driver_headers)
        assert response.status_code == 400

    def test_driver_resigns(self, app, client, identity, driver_headers):
        employment = EmploymentFactory(driver_id=DRIVER_ID)

        response = client.post(f'{EMPLOYMENTS}/{employment.id}/resign', json={}, headers=driver_headers)

        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'RESIGNED'
        assert response.get_json()['data']['termination']['reason'] == 'RESIGNATION'
        assert identity.users[DRIVER_ID]['companyName'] == 'Unemployed'


@pytest.mark.integration
class TestAssignmentStatusEndpoint:

    def test_trip_service_marks_driver_busy(self, app, client, identity):
        EmploymentFactory(driver_id=DRIVER_ID)
        url = f'{EMPLOYMENTS}/driver/{DRIVER_ID}/assignment-status'

        first = client.patch(url, json={'assignmentStatus': 'ASSIGNED'})
        second = client.patch(url, json={'assignmentStatus': 'ASSIGNED'})

        assert first.status_code == second.status_code == 200
        assert first.get_json()['data']['changed'] is True
        assert second.get_json()['data']['changed'] is False
        assert identity.users[DRIVER_ID]['assignmentStatus'] == 'ASSIGNED'
        assert IdentitySyncOutbox.query.count() == 1

    def test_invalid_status(self, app, client):
        EmploymentFactory(driver_id=DRIVER_ID)
        response = client.patch(f'{EMPLOYMENTS}/driver/{DRIVER_ID}/assignment-status',
                                json={'assignmentStatus': 'ON_TRIP'})
        assert response.status_code == 400

    def test_driver_without_employment(self, app, client):
        response = client.patch(f'{EMPLOYMENTS}/driver/driver-404/assignment-status',
                                json={'assignmentStatus': 'UNASSIGNED'})
        assert response.status_code == 404


@pytest.mark.integration
class TestEmploymentEndpoints:

    def test_vehicle_assignment_round_trip(self, app, client, company_headers, driver_headers, vehicles):
        employment = EmploymentFactory(driver_id=DRIVER_ID)
        vehicles.vehicles['v-3'] = {'_id': 'v-3', 'model': 'Tata Ace'}

        response = client.post(f'{EMPLOYMENTS}/{employment.id}/assign-vehicle',
                               json={'vehicleId': 'v-3'}, headers=company_headers)
        assert response.get_json()['data']['assignedVehicle']['vehicleId'] == 'v-3'

        response = client.get(f'{EMPLOYMENTS}/my-vehicle', headers=driver_headers)
        assert response.get_json()['data']['vehicle']['model'] == 'Tata Ace'

        response = client.post(f'{EMPLOYMENTS}/{employment.id}/unassign-vehicle',
                               json={'reason': 'Swap'}, headers=company_headers)
        assert response.get_json()['data']['assignedVehicle'] is None

    def test_available_rejects_half_window(self, app, client, company_headers):
        EmploymentFactory()
        response = client.get(f'{EMPLOYMENTS}/available?startDateTime=2026-03-01T09:00:00',
                              headers=company_headers)
        assert response.status_code == 400

    def test_other_company_cannot_terminate(self, app, client, other_company_headers):
        employment = EmploymentFactory(driver_id=DRIVER_ID)
        response = client.post(f'{EMPLOYMENTS}/{employment.id}/terminate',
                               json={'reason': 'OTHER'}, headers=other_company_headers)
        assert response.status_code == 403
        assert db.session.get(Employment, employment.id).status == EmploymentStatus.ACTIVE


@pytest.mark.integration
class TestRatingEndpoints:

    def test_rate_reply_and_list(self, app, client, company_headers, driver_headers):
        employment = EmploymentFactory(driver_id=DRIVER_ID)

        response = client.post(RATINGS, json={
            'driverId': DRIVER_ID,
            'employmentId': employment.id,
            'overallRating': 4,
            'categoryRatings': {'safety': 5, 'communication': 3},
            'review': {'title': 'Solid', 'content': 'Careful on highways'},
            'tags': ['SAFE_DRIVER'],
        }, headers=company_headers)
        assert response.status_code == 201
        rating = response.get_json()['data']['rating']
        assert response.get_json()['data']['driverAggregateRatings']['averageRating'] == 4.0

        response = client.post(f"{RATINGS}/{rating['id']}/respond", json={'content': 'Thanks!'},
                               headers=driver_headers)
        assert response.get_json()['data']['driverResponse']['content'] == 'Thanks!'

        response = client.get(f'{RATINGS}/driver/{DRIVER_ID}')
        data = response.get_json()['data']
        assert data['pagination']['total'] == 1
        assert data['aggregateRatings']['breakdown']['safety'] == 5.0
        assert 'moderationStatus' not in data['ratings'][0]

        response = client.post(f"{RATINGS}/{rating['id']}/helpful", headers=auth_headers('driver-9', 'driver'))
        assert response.status_code == 200

    def test_duplicate_employment_rating(self, app, client, company_headers):
        employment = EmploymentFactory(driver_id=DRIVER_ID)
        payload = {'driverId': DRIVER_ID, 'employmentId': employment.id, 'overallRating': 5}

        assert client.post(RATINGS, json=payload, headers=company_headers).status_code == 201
        assert client.post(RATINGS, json=payload, headers=company_headers).status_code == 409

    def test_invalid_sort(self, app, client):
        response = client.get(f'{RATINGS}/driver/{DRIVER_ID}?sortBy=random')
        assert response.status_code == 400


@pytest.mark.integration
class TestValidationEnvelope:

    def test_field_errors_are_listed(self, client, company_headers, offer_payload):
        payload = offer_payload()
        payload['offeredSalary']['amount'] = -5

        response = client.post(JOB_REQUESTS, json=payload, headers=company_headers)

        assert response.status_code == 400
        body = response.get_json()
        assert body['success'] is False
        assert body['message'] == 'Validation failed'
        assert {'field': 'offeredSalary.amount', 'message': 'Number must be at least 0.'} in body['errors']

    @pytest.mark.parametrize('consent', ['no', 'yes', 1])
    def test_accept_needs_boolean_consent(self, app, client, driver_headers, consent):
        job_request = JobRequestFactory(driver_id=DRIVER_ID)

        response = client.post(f'{JOB_REQUESTS}/{job_request.id}/respond',
                               json={'action': 'accept', 'dlConsentGiven': consent}, headers=driver_headers)

        assert response.status_code == 400
        assert {'field': 'dlConsentGiven', 'message': 'Not a valid boolean value.'} in response.get_json()['errors']
        assert Employment.query.count() == 0
        assert db.session.get(JobRequest, job_request.id).status == JobRequestStatus.PENDING

    def test_health_check(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'ok'

    def test_company_id_comes_from_token(self, client, offer_payload):
        response = client.post(JOB_REQUESTS, json=offer_payload(companyId='company-evil'),
                               headers=auth_headers(COMPANY_ID, 'company'))
        assert response.get_json()['data']['companyId'] == COMPANY_ID
