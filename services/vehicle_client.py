"""
Vehicle Service Client
"""

from typing import Any, Dict
import logging
from .http_client import ServiceClient

logger = logging.getLogger(__name__)


class VehicleClient(ServiceClient):
    """Client for the vehicle registry service"""

    service_name = 'vehicle'

    def get_vehicle(self, vehicle_id: str, company_id: str) -> Dict[str, Any]:
        """
        Fetch a vehicle as seen by its owning company.

        Raises:
            CollaboratorError: when the vehicle service cannot be reached
        """
        data = self._make_request('GET', f"/api/vehicles/{vehicle_id}",
                                  headers={'x-user-id': company_id})
        if isinstance(data, dict) and isinstance(data.get('vehicle'), dict):
            return data['vehicle']
        return data
