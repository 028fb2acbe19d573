"""
Bearer-token authentication and role gating.

Tokens are issued by the identity service and verified here with the
shared secret. The verified caller is stored on ``flask.g`` as a
``Caller`` whose role is one of a closed set.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps
import logging
import jwt
from flask import current_app, g, request
from services.caller import Caller, CallerRole, COMPANY_ROLES, ROLE_CLAIMS
from services.exceptions import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = 'HS256'


def _extract_token():
    token = request.headers.get('x-auth-token')
    if token:
        return token.strip()
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):].strip()
    return None


def decode_token(token, secret):
    """
    Verify a token and build the caller it identifies.

    Raises:
        UnauthorizedError: for expired, forged or malformed tokens
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError('Token has expired')
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected token: {str(e)}")
        raise UnauthorizedError('Token is not valid')

    claims = payload.get('user') if isinstance(payload.get('user'), dict) else payload
    user_id = claims.get('id') or claims.get('userId')
    role_claim = str(claims.get('role') or '').lower()
    role = ROLE_CLAIMS.get(role_claim)
    if not user_id or role is None:
        raise UnauthorizedError('Invalid token structure')

    return Caller(user_id=str(user_id), role=role, role_claim=role_claim)


def issue_token(user_id, role_claim, secret, expires_in=timedelta(hours=24), nested=False):
    """Sign a token in the identity service's format; used by tooling and tests"""
    claims = {'id': str(user_id), 'role': role_claim}
    now = datetime.now(timezone.utc)
    payload = {'user': claims} if nested else dict(claims)
    payload.update({'iat': now, 'exp': now + expires_in})
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def authenticate_request():
    token = _extract_token()
    if not token:
        raise UnauthorizedError('No token, authorization denied')
    caller = decode_token(token, current_app.config['JWT_SECRET_KEY'])
    g.caller = caller
    g.current_user_id = caller.user_id
    return caller


def get_current_caller():
    """The authenticated caller for this request"""
    caller = getattr(g, 'caller', None)
    if caller is None:
        raise UnauthorizedError('Authentication required')
    return caller


def login_required(f):
    """Require a valid bearer token"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        authenticate_request()
        return f(*args, **kwargs)
    return decorated_function


def role_required(*roles):
    """Require a valid bearer token whose role is one of ``roles``"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            caller = authenticate_request()
            if caller.role not in roles:
                allowed = ' or '.join(role.value for role in roles)
                raise ForbiddenError(f'Access denied. Required role: {allowed}')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


driver_required = role_required(CallerRole.DRIVER)
company_required = role_required(*COMPANY_ROLES)
