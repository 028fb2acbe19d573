"""
Unit tests for collaborator clients and their wire mappings
"""

import pytest
from datetime import datetime
from unittest.mock import Mock

import requests

from services.exceptions import CollaboratorError
from services.identity_client import IdentityClient, IdentityUpdate, IdentityUser, normalize_employer_name
from services.trip_client import Trip, TripClient, busy_driver_ids, windows_overlap


def mock_response(status_code=200, payload=None):
    response = Mock()
    response.status_code = status_code
    response.content = b'{}' if payload is not None else b''
    response.json.return_value = payload
    response.text = str(payload)
    return response


def trip(driver_id, start, end=None, status='scheduled', vehicle_id='v-1'):
    return Trip.from_payload({
        '_id': f'trip-{driver_id}-{start.hour}',
        'driverId': driver_id,
        'vehicleId': vehicle_id,
        'status': status,
        'startDateTime': start.isoformat(),
        'endDateTime': end.isoformat() if end else None,
    })


@pytest.mark.unit
class TestEmployerRepresentation:

    @pytest.mark.parametrize('value', [None, '', '   ', 'Unemployed', ' unemployed ', 'UNEMPLOYED'])
    def test_no_employer_normalises_to_none(self, value):
        assert normalize_employer_name(value) is None

    def test_employer_name_is_trimmed(self):
        assert normalize_employer_name('  Acme Logistics ') == 'Acme Logistics'

    def test_free_agent_flag(self):
        assert IdentityUser.from_payload({'_id': 'd', 'role': 'driver', 'companyName': 'Unemployed'}).is_free_agent
        assert not IdentityUser.from_payload({'_id': 'd', 'role': 'driver', 'companyName': 'Acme'}).is_free_agent

    def test_update_wire_format(self):
        assert IdentityUpdate.hired('Acme').to_wire() == {'companyName': 'Acme', 'assignmentStatus': 'UNASSIGNED'}
        assert IdentityUpdate.released().to_wire() == {'companyName': 'Unemployed', 'assignmentStatus': 'UNASSIGNED'}
        assert IdentityUpdate.assignment('ASSIGNED').to_wire() == {'assignmentStatus': 'ASSIGNED'}


@pytest.mark.unit
class TestIdentityClient:

    def test_fetch_user(self):
        session = Mock(spec=requests.Session)
        session.headers = {}
        session.request.return_value = mock_response(200, {'user': {
            '_id': 'driver-1', 'role': 'driver', 'firstName': 'Ravi', 'lastName': 'Kumar',
            'companyName': 'Unemployed', 'dlDetails': {'licenseNumber': 'DL-1'},
        }})
        client = IdentityClient('http://identity.test/', timeout=2, session=session)

        user = client.fetch_user('driver-1')

        assert user.display_name == 'Ravi Kumar'
        assert user.employer_name is None
        assert user.driver_details()['licenseDetails']['licenseNumber'] == 'DL-1'
        session.request.assert_called_once_with('GET', 'http://identity.test/api/users/driver-1', timeout=2)

    def test_missing_user_is_none(self):
        session = Mock(spec=requests.Session)
        session.headers = {}
        session.request.return_value = mock_response(404, {'message': 'User not found'})
        client = IdentityClient('http://identity.test', session=session)

        assert client.fetch_user('ghost') is None

    def test_unreachable_identity_service(self):
        session = Mock(spec=requests.Session)
        session.headers = {}
        session.request.side_effect = requests.exceptions.ConnectionError('refused')
        client = IdentityClient('http://identity.test', session=session)

        with pytest.raises(CollaboratorError):
            client.fetch_user('driver-1')
        assert client.get_user('driver-1') is None

    def test_update_user_fields_uses_internal_endpoint(self):
        session = Mock(spec=requests.Session)
        session.headers = {}
        session.request.return_value = mock_response(200, {'success': True})
        client = IdentityClient('http://identity.test', session=session)

        client.update_user_fields('driver-1', {'assignmentStatus': 'ASSIGNED'})

        session.request.assert_called_once_with(
            'PUT', 'http://identity.test/api/admin/users/driver-1/internal-update',
            json={'assignmentStatus': 'ASSIGNED'}, timeout=5)

    def test_failed_update_raises(self):
        session = Mock(spec=requests.Session)
        session.headers = {}
        session.request.return_value = mock_response(500, {'message': 'boom'})
        client = IdentityClient('http://identity.test', session=session)

        with pytest.raises(CollaboratorError) as exc_info:
            client.update_user_fields('driver-1', {'companyName': 'Unemployed'})
        assert exc_info.value.status_code == 500


@pytest.mark.unit
class TestTripOverlap:

    def test_overlap_is_symmetric(self):
        a = (datetime(2026, 3, 1, 9), datetime(2026, 3, 1, 12))
        b = (datetime(2026, 3, 1, 11), datetime(2026, 3, 1, 14))
        assert windows_overlap(*a, *b) == windows_overlap(*b, *a) is True

    def test_touching_windows_overlap(self):
        assert windows_overlap(datetime(2026, 3, 1, 9), datetime(2026, 3, 1, 10),
                               datetime(2026, 3, 1, 10), datetime(2026, 3, 1, 11))

    def test_disjoint_windows(self):
        assert not windows_overlap(datetime(2026, 3, 1, 9), datetime(2026, 3, 1, 10),
                                   datetime(2026, 3, 1, 11), datetime(2026, 3, 1, 12))

    def test_trip_without_end_occupies_its_start(self):
        open_trip = trip('driver-a', datetime(2026, 3, 1, 10))
        assert open_trip.overlaps(datetime(2026, 3, 1, 9), datetime(2026, 3, 1, 10))
        assert not open_trip.overlaps(datetime(2026, 3, 1, 10, 1), datetime(2026, 3, 1, 12))

    def test_busy_drivers_with_window(self):
        trips = [
            trip('driver-a', datetime(2026, 3, 1, 10), datetime(2026, 3, 1, 12)),
            trip('driver-b', datetime(2026, 3, 1, 15), datetime(2026, 3, 1, 16)),
            trip('driver-c', datetime(2026, 3, 1, 10), datetime(2026, 3, 1, 12), status='completed'),
        ]
        assert busy_driver_ids(trips, datetime(2026, 3, 1, 11), datetime(2026, 3, 1, 13)) == {'driver-a'}

    def test_busy_drivers_without_window(self):
        trips = [
            trip('driver-a', datetime(2026, 3, 1, 10), status='in-progress'),
            trip('driver-b', datetime(2026, 4, 1, 10)),
            trip('driver-c', datetime(2026, 3, 1, 10), status='cancelled'),
        ]
        assert busy_driver_ids(trips) == {'driver-a', 'driver-b'}

    def test_list_trips_passes_company_header(self):
        session = Mock(spec=requests.Session)
        session.headers = {}
        session.request.return_value = mock_response(200, {'trips': [
            {'_id': 't1', 'driverId': 'driver-a', 'vehicleId': 'v-1', 'status': 'scheduled',
             'startDateTime': '2026-03-01T10:00:00'},
        ]})
        client = TripClient('http://trips.test', session=session)

        trips = client.list_trips('company-1', vehicle_id='v-1')

        assert trips[0].driver_id == 'driver-a'
        assert trips[0].end is None
        session.request.assert_called_once_with(
            'GET', 'http://trips.test/api/trips', params={'vehicleId': 'v-1'},
            headers={'x-user-id': 'company-1'}, timeout=5)
