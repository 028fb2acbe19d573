"""
Unit tests for bearer-token authentication and role gating
"""

import pytest
import jwt
from datetime import timedelta

from auth import decode_token, issue_token, JWT_ALGORITHM
from services.caller import CallerRole
from services.exceptions import UnauthorizedError
from conftest import TEST_SECRET, auth_headers


@pytest.mark.unit
class TestDecodeToken:

    def test_flat_payload(self):
        caller = decode_token(issue_token('driver-9', 'driver', TEST_SECRET), TEST_SECRET)
        assert caller.user_id == 'driver-9'
        assert caller.role == CallerRole.DRIVER

    def test_nested_user_payload(self):
        token = issue_token('fm-1', 'fleetmanager', TEST_SECRET, nested=True)
        caller = decode_token(token, TEST_SECRET)
        assert caller.role == CallerRole.COMPANY
        assert caller.role_claim == 'fleetmanager'

    def test_user_id_claim_is_accepted(self):
        token = jwt.encode({'userId': 42, 'role': 'admin'}, TEST_SECRET, algorithm=JWT_ALGORITHM)
        caller = decode_token(token, TEST_SECRET)
        assert caller.user_id == '42'
        assert caller.is_admin

    def test_expired_token(self):
        token = issue_token('driver-1', 'driver', TEST_SECRET, expires_in=timedelta(seconds=-5))
        with pytest.raises(UnauthorizedError, match='Token has expired'):
            decode_token(token, TEST_SECRET)

    def test_wrong_secret(self):
        token = issue_token('driver-1', 'driver', 'another_secret_that_is_long_enough_123')
        with pytest.raises(UnauthorizedError, match='Token is not valid'):
            decode_token(token, TEST_SECRET)

    def test_unknown_role_is_rejected(self):
        token = jwt.encode({'id': 'x', 'role': 'superuser'}, TEST_SECRET, algorithm=JWT_ALGORITHM)
        with pytest.raises(UnauthorizedError, match='Invalid token structure'):
            decode_token(token, TEST_SECRET)

    def test_missing_id_is_rejected(self):
        token = jwt.encode({'role': 'driver'}, TEST_SECRET, algorithm=JWT_ALGORITHM)
        with pytest.raises(UnauthorizedError, match='Invalid token structure'):
            decode_token(token, TEST_SECRET)


@pytest.mark.unit
class TestRouteProtection:

    def test_missing_token(self, client):
        response = client.get('/api/drivers/employments/current')
        assert response.status_code == 401
        assert response.get_json() == {'success': False, 'message': 'No token, authorization denied'}

    def test_x_auth_token_header(self, client):
        token = issue_token('driver-1', 'driver', TEST_SECRET)
        response = client.get('/api/drivers/employments/current', headers={'x-auth-token': token})
        assert response.status_code == 200

    def test_driver_cannot_use_company_route(self, client, driver_headers):
        response = client.get('/api/drivers/employments/company', headers=driver_headers)
        assert response.status_code == 403
        assert 'Access denied. Required role' in response.get_json()['message']

    def test_company_cannot_use_driver_route(self, client, company_headers):
        response = client.get('/api/drivers/job-requests/received', headers=company_headers)
        assert response.status_code == 403

    def test_admin_passes_company_gate(self, client):
        response = client.get('/api/drivers/employments/company', headers=auth_headers('admin-1', 'admin'))
        assert response.status_code == 200

    def test_correlation_id_is_echoed(self, client, driver_headers):
        headers = dict(driver_headers, **{'X-Correlation-ID': 'trace-123'})
        response = client.get('/api/drivers/employments/current', headers=headers)
        assert response.headers['X-Correlation-ID'] == 'trace-123'

    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get('/api/drivers/nowhere')
        assert response.status_code == 404
        assert response.get_json()['success'] is False
