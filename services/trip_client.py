"""
Trip Service Client

Reads trip schedules to decide which drivers are busy in a time window.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
from utils.payloads import parse_datetime
from .http_client import ServiceClient

logger = logging.getLogger(__name__)

ACTIVE_TRIP_STATUSES = ('scheduled', 'in-progress')


def windows_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Closed-interval overlap test; symmetric in its two windows"""
    return a_start <= b_end and a_end >= b_start


def _safe_datetime(value):
    try:
        return parse_datetime(value)
    except ValueError:
        logger.warning(f"Ignoring unparseable trip timestamp: {value!r}")
        return None


@dataclass
class Trip:
    id: Optional[str]
    status: Optional[str]
    driver_id: Optional[str]
    vehicle_id: Optional[str]
    start: Optional[datetime]
    end: Optional[datetime]
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> 'Trip':
        driver_id = data.get('driverId')
        vehicle_id = data.get('vehicleId')
        return cls(
            id=str(data.get('_id') or data.get('id') or '') or None,
            status=data.get('status'),
            driver_id=str(driver_id) if driver_id else None,
            vehicle_id=str(vehicle_id) if vehicle_id else None,
            start=_safe_datetime(data.get('startDateTime')),
            end=_safe_datetime(data.get('endDateTime')),
            raw=data,
        )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_TRIP_STATUSES

    def overlaps(self, start: datetime, end: datetime) -> bool:
        if self.start is None:
            return False
        # A trip without an end time occupies only its start instant
        return windows_overlap(start, end, self.start, self.end or self.start)


class TripClient(ServiceClient):
    """Client for the trip scheduling service"""

    service_name = 'trip'

    def list_trips(self, company_id: str, vehicle_id: Optional[str] = None) -> List[Trip]:
        """
        List the company's trips, optionally for one vehicle.

        Raises:
            CollaboratorError: when the trip service cannot be reached
        """
        params = {'vehicleId': vehicle_id} if vehicle_id else None
        data = self._make_request('GET', '/api/trips', params=params,
                                  headers={'x-user-id': company_id})
        return [Trip.from_payload(item) for item in data.get('trips') or []]


def busy_driver_ids(trips: List[Trip], start: Optional[datetime] = None,
                    end: Optional[datetime] = None) -> set:
    """
    Drivers on a scheduled or in-progress trip.
    With a window, only trips overlapping it count.
    """
    busy = set()
    for trip in trips:
        if not trip.driver_id or not trip.is_active:
            continue
        if start is not None and end is not None and not trip.overlaps(start, end):
            continue
        busy.add(trip.driver_id)
    return busy
