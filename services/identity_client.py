"""
Identity Service Client

Reads user records from the identity service and writes the denormalised
employment fields it keeps for drivers. The identity service marks a driver
without an employer by storing the string "Unemployed" in ``companyName``;
that string is translated to and from ``None`` here and nowhere else.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import logging
from .exceptions import CollaboratorError
from .http_client import ServiceClient

logger = logging.getLogger(__name__)

UNEMPLOYED_SENTINEL = 'Unemployed'

DRIVER_ROLE = 'driver'


def normalize_employer_name(value: Any) -> Optional[str]:
    """Map the identity service's employer field onto an optional company name"""
    if value is None:
        return None
    name = str(value).strip()
    if not name or name.lower() == UNEMPLOYED_SENTINEL.lower():
        return None
    return name


@dataclass
class IdentityUser:
    """A user record as seen by the hiring service"""
    id: str
    role: Optional[str]
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    employer_name: Optional[str] = None
    assignment_status: Optional[str] = None
    dl_details: Dict[str, Any] = field(default_factory=dict)
    is_profile_complete: bool = False
    created_at: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> 'IdentityUser':
        return cls(
            id=str(data.get('_id') or data.get('id') or data.get('userId')),
            role=data.get('role'),
            email=data.get('email'),
            first_name=data.get('firstName'),
            last_name=data.get('lastName'),
            phone=data.get('phone'),
            profile_image=data.get('profileImage'),
            employer_name=normalize_employer_name(data.get('companyName')),
            assignment_status=data.get('assignmentStatus'),
            dl_details=data.get('dlDetails') or {},
            is_profile_complete=bool(data.get('isProfileComplete', False)),
            created_at=data.get('createdAt'),
        )

    @property
    def is_driver(self) -> bool:
        return self.role == DRIVER_ROLE

    @property
    def is_free_agent(self) -> bool:
        return self.employer_name is None

    @property
    def display_name(self) -> Optional[str]:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or None

    def driver_details(self) -> Dict[str, Any]:
        """Summary attached to job requests and employments listed for a company"""
        return {
            'firstName': self.first_name,
            'lastName': self.last_name,
            'email': self.email,
            'phone': self.phone,
            'profileImage': self.profile_image,
            'employerName': self.employer_name,
            'assignmentStatus': self.assignment_status or 'UNASSIGNED',
            'licenseDetails': {
                'licenseNumber': self.dl_details.get('licenseNumber'),
                'licenseType': self.dl_details.get('vehicleClasses'),
                'issueDate': self.dl_details.get('issueDate'),
                'validUpto': self.dl_details.get('validUpto'),
            },
        }


@dataclass(frozen=True)
class IdentityUpdate:
    """
    Absolute field values to write onto a driver's identity record.

    ``set_employer`` distinguishes "leave the employer alone" from
    "clear the employer" (employer_name None).
    """
    set_employer: bool = False
    employer_name: Optional[str] = None
    assignment_status: Optional[str] = None

    @classmethod
    def hired(cls, employer_name: str) -> 'IdentityUpdate':
        return cls(set_employer=True, employer_name=employer_name, assignment_status='UNASSIGNED')

    @classmethod
    def released(cls) -> 'IdentityUpdate':
        return cls(set_employer=True, employer_name=None, assignment_status='UNASSIGNED')

    @classmethod
    def assignment(cls, assignment_status: str) -> 'IdentityUpdate':
        return cls(assignment_status=assignment_status)

    def to_wire(self) -> Dict[str, str]:
        body = {}
        if self.set_employer:
            body['companyName'] = self.employer_name or UNEMPLOYED_SENTINEL
        if self.assignment_status:
            body['assignmentStatus'] = self.assignment_status
        return body


class IdentityClient(ServiceClient):
    """Client for the identity (user) service"""

    service_name = 'identity'

    def fetch_user(self, user_id: str) -> Optional[IdentityUser]:
        """
        Fetch a user, distinguishing "absent" from "unreachable".

        Returns:
            IdentityUser, or None when the identity service answers 404

        Raises:
            CollaboratorError: when the identity service cannot be reached
        """
        try:
            data = self._make_request('GET', f"/api/users/{user_id}")
        except CollaboratorError as e:
            if e.status_code == 404:
                return None
            raise
        user = data.get('user') if isinstance(data, dict) else None
        if not user:
            return None
        return IdentityUser.from_payload(user)

    def get_user(self, user_id: str) -> Optional[IdentityUser]:
        """Best-effort fetch used for enrichment; failures yield None"""
        try:
            return self.fetch_user(user_id)
        except CollaboratorError as e:
            logger.warning(f"Could not fetch user {user_id}: {str(e)}")
            return None

    def update_user_fields(self, user_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Write denormalised fields through the internal update endpoint.
        The endpoint sets absolute values, so repeating a call is harmless.

        Raises:
            CollaboratorError: if the update was not acknowledged
        """
        logger.info(f"Updating identity fields for user {user_id}: {sorted(body)}")
        return self._make_request('PUT', f"/api/admin/users/{user_id}/internal-update", json=body)

    def list_available_drivers(self, page: int = 1, limit: int = 20) -> Tuple[List[IdentityUser], int]:
        """
        List drivers the identity service reports as unemployed.

        Raises:
            CollaboratorError: when the listing cannot be fetched
        """
        data = self._make_request('GET', '/api/users/drivers/available',
                                  params={'page': page, 'limit': limit})
        drivers = [IdentityUser.from_payload(item) for item in data.get('drivers') or []]
        total = data.get('total', len(drivers))
        return drivers, int(total)
