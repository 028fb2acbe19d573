"""
Service Exceptions

Error taxonomy shared by the service layer and the HTTP error handlers.
Each error carries the status code and message surfaced to the client.
"""

from typing import Optional, List, Dict, Any


class ServiceError(Exception):
    """Base class for errors that map onto a client-facing response"""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None,
                 errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {'success': False, 'message': self.message}
        if self.errors:
            body['errors'] = self.errors
        return body


class NotFoundError(ServiceError):
    status_code = 404

    def __init__(self, resource: str = 'Resource'):
        super().__init__(f'{resource} not found')
        self.resource = resource


class ValidationError(ServiceError):
    status_code = 400


class UnauthorizedError(ServiceError):
    status_code = 401


class ForbiddenError(ServiceError):
    status_code = 403


class ConflictError(ServiceError):
    status_code = 409


class CollaboratorError(Exception):
    """Raised by HTTP clients when a collaborating service call fails"""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f'{service}: {message}')
        self.service = service
        self.status_code = status_code
