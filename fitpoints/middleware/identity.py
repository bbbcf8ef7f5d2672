"""
Caller identity for member and staff endpoints.

Identity is issued elsewhere; this module only reads it. Requests carry a
bearer JWT signed HS256 with the app's SECRET_KEY:
- sub: Member or staff id
- role: 'member' or 'staff'
- name: Optional display name
- exp: Optional expiry (verified when present)

When IDENTITY_HEADERS_ENABLED is set (development, tests) the X-Member-ID and
X-Staff-ID headers are accepted instead.
"""
import logging
from functools import wraps

import jwt
from flask import current_app, g, request

from ..utils.errors import ErrorCode, forbidden, unauthorized

logger = logging.getLogger(__name__)

ROLE_MEMBER = 'member'
ROLE_STAFF = 'staff'


class InvalidIdentity(Exception):
    """Bearer token present but unusable."""


def decode_identity_token(token: str) -> dict:
    """
    Decode and verify an identity token.

    Raises:
        InvalidIdentity: signature, expiry or claims are invalid
    """
    try:
        payload = jwt.decode(
            token,
            current_app.config['SECRET_KEY'],
            algorithms=['HS256'],
            options={'require': ['sub', 'role']},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidIdentity('Token expired')
    except jwt.InvalidTokenError as e:
        logger.info(f'Invalid identity token: {e}')
        raise InvalidIdentity('Invalid token')

    if payload['role'] not in (ROLE_MEMBER, ROLE_STAFF):
        raise InvalidIdentity(f"Unknown role {payload['role']!r}")
    return payload


def issue_identity_token(subject: str, role: str, name: str = None, secret: str = None) -> str:
    """Sign a token in the format this service accepts (CLI and tests)."""
    payload = {'sub': subject, 'role': role}
    if name:
        payload['name'] = name
    return jwt.encode(payload, secret or current_app.config['SECRET_KEY'], algorithm='HS256')


def get_identity_from_request():
    """
    Resolve (subject, role, name) for the current request.

    Returns:
        Tuple, or None when the request carries no identity

    Raises:
        InvalidIdentity: a bearer token was sent but failed verification
    """
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        payload = decode_identity_token(auth_header[len('Bearer '):].strip())
        return payload['sub'], payload['role'], payload.get('name')

    if current_app.config.get('IDENTITY_HEADERS_ENABLED'):
        staff_id = request.headers.get('X-Staff-ID')
        if staff_id:
            return staff_id, ROLE_STAFF, request.headers.get('X-Staff-Name')
        member_id = request.headers.get('X-Member-ID')
        if member_id:
            return member_id, ROLE_MEMBER, request.headers.get('X-Member-Name')

    return None


def _authenticate():
    try:
        identity = get_identity_from_request()
    except InvalidIdentity as e:
        return None, unauthorized(str(e), ErrorCode.INVALID_TOKEN)
    if identity is None:
        return None, unauthorized()
    return identity, None


def require_member(f):
    """
    Decorator for member endpoints.

    Sets g.member_id and g.member_name.

    Usage:
        @require_member
        def my_endpoint():
            member_id = g.member_id
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity, error = _authenticate()
        if error:
            return error

        subject, role, name = identity
        if role != ROLE_MEMBER:
            return forbidden('Member access required')

        g.member_id = subject
        g.member_name = name
        return f(*args, **kwargs)

    return decorated_function


def require_staff(f):
    """
    Decorator for staff terminal endpoints.

    Sets g.staff_id and g.staff_name.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity, error = _authenticate()
        if error:
            return error

        subject, role, name = identity
        if role != ROLE_STAFF:
            return forbidden('Staff access required')

        g.staff_id = subject
        g.staff_name = name
        return f(*args, **kwargs)

    return decorated_function


def require_identity(f):
    """
    Decorator for endpoints open to members and staff alike.

    Sets g.actor_id and g.is_staff.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity, error = _authenticate()
        if error:
            return error

        subject, role, name = identity
        g.actor_id = subject
        g.is_staff = role == ROLE_STAFF
        if g.is_staff:
            g.staff_id = subject
        else:
            g.member_id = subject
            g.member_name = name
        return f(*args, **kwargs)

    return decorated_function
