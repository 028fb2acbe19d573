"""
Notification Service

Sends in-app notifications through the identity service's internal
notification endpoint. Notifications are non-critical: every failure is
logged and swallowed so the hiring operation that triggered it stands.
"""

from typing import Optional, Dict, Any, List
import logging
from .exceptions import CollaboratorError
from .http_client import ServiceClient

logger = logging.getLogger(__name__)

HIRE_REQUEST_ACCEPTED = 'HIRE_REQUEST_ACCEPTED'
HIRE_REQUEST_REJECTED = 'HIRE_REQUEST_REJECTED'
CONTRACT_TERMINATED = 'CONTRACT_TERMINATED'
DRIVER_HIRED = 'DRIVER_HIRED'

class NotificationService(ServiceClient):
    """Service class for fire-and-forget notification delivery"""

    service_name = 'notification'

    def create_notification(self, user_id: str, notification_type: str, title: str, message: str,
                            related_entity: Optional[Dict[str, Any]] = None,
                            metadata: Optional[Dict[str, Any]] = None,
                            priority: str = 'medium') -> Optional[Dict[str, Any]]:
        """
        Create a notification for one user.

        Args:
            user_id: Recipient identity id
            notification_type: One of the notification type constants
            title: Short title
            message: Notification body
            related_entity: {'entityType', 'entityId'} of the subject
            metadata: Extra data for the client
            priority: 'low', 'medium' or 'high'

        Returns:
            dict: service response, or None when delivery failed
        """
        body = {
            'userId': user_id,
            'type': notification_type,
            'title': title,
            'message': message,
            'priority': priority,
        }
        if related_entity:
            body['relatedEntity'] = related_entity
        if metadata:
            body['metadata'] = metadata

        try:
            result = self._make_request('POST', '/api/notifications/internal/create', json=body,
                                        headers={'X-Internal-Service': 'true'})
            logger.info(f"Notification {notification_type} created for user {user_id}")
            return result
        except CollaboratorError as e:
            logger.error(f"Failed to create {notification_type} notification for {user_id}: {str(e)}")
            return None

    def notify_hire_request_accepted(self, company_id: str, driver_id: str, driver_name: str,
                                     job_request_id: int) -> Optional[Dict[str, Any]]:
        return self.create_notification(
            company_id, HIRE_REQUEST_ACCEPTED,
            'Hire Request Accepted',
            f"{driver_name} has accepted your hire request",
            related_entity={'entityType': 'jobRequest', 'entityId': job_request_id},
            metadata={'driverId': driver_id, 'driverName': driver_name},
            priority='high'
        )

    def notify_hire_request_rejected(self, company_id: str, driver_id: str, driver_name: str,
                                     job_request_id: int, reason: Optional[str] = None) -> Optional[Dict[str, Any]]:
        suffix = f": {reason}" if reason else ''
        return self.create_notification(
            company_id, HIRE_REQUEST_REJECTED,
            'Hire Request Rejected',
            f"{driver_name} has declined your hire request{suffix}",
            related_entity={'entityType': 'jobRequest', 'entityId': job_request_id},
            metadata={'driverId': driver_id, 'driverName': driver_name, 'reason': reason},
            priority='medium'
        )

    def notify_driver_hired(self, company_id: str, driver_id: str, driver_name: str,
                            employment_id: int) -> Optional[Dict[str, Any]]:
        return self.create_notification(
            company_id, DRIVER_HIRED,
            'Driver Hired Successfully',
            f"{driver_name} has been successfully hired and is now part of your team",
            related_entity={'entityType': 'employment', 'entityId': employment_id},
            metadata={'driverId': driver_id, 'driverName': driver_name},
            priority='high'
        )

    def notify_contract_terminated(self, recipient_ids: List[str], driver_name: str,
                                   reason: Optional[str], employment_id: int) -> List[Optional[Dict[str, Any]]]:
        """One notification per recipient; each delivery fails independently"""
        suffix = f": {reason}" if reason else ''
        return [
            self.create_notification(
                recipient_id, CONTRACT_TERMINATED,
                'Contract Terminated',
                f"Contract with {driver_name} has been terminated{suffix}",
                related_entity={'entityType': 'employment', 'entityId': employment_id},
                metadata={'driverName': driver_name, 'reason': reason or 'Not specified'},
                priority='high'
            )
            for recipient_id in recipient_ids
        ]
