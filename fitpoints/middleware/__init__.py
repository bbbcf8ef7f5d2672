"""
Middleware package for FitPoints.
"""
from .identity import (
    require_member,
    require_staff,
    require_identity,
    decode_identity_token,
    issue_identity_token,
)
from .request_id import init_request_id_tracking
from .rate_limit import init_rate_limiter, staff_lookup_limit

__all__ = [
    'require_member',
    'require_staff',
    'require_identity',
    'decode_identity_token',
    'issue_identity_token',
    'init_request_id_tracking',
    'init_rate_limiter',
    'staff_lookup_limit',
]
