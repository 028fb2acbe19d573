"""
The authenticated caller as seen by the service layer.
"""

from dataclasses import dataclass
from enum import Enum


class CallerRole(Enum):
    DRIVER = 'driver'
    COMPANY = 'company'
    ADMIN = 'admin'


# Role claims used by the identity service
ROLE_CLAIMS = {
    'driver': CallerRole.DRIVER,
    'fleetmanager': CallerRole.COMPANY,
    'company': CallerRole.COMPANY,
    'admin': CallerRole.ADMIN,
}

COMPANY_ROLES = (CallerRole.COMPANY, CallerRole.ADMIN)

SYSTEM_ACTOR = 'system'


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: CallerRole
    role_claim: str = ''

    @property
    def is_driver(self):
        return self.role == CallerRole.DRIVER

    @property
    def is_admin(self):
        return self.role == CallerRole.ADMIN
