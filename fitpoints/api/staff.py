"""
Staff terminal endpoints.

Staff enter (or scan) the member's verification code, see who is redeeming
how much, and confirm. Both routes are rate limited against code guessing.
"""
from flask import Blueprint, g, jsonify

from ..middleware import require_staff, staff_lookup_limit
from ..services import get_redemption_service
from ..utils.errors import outcome_error

staff_bp = Blueprint('staff', __name__)


@staff_bp.route('/redemptions/<code>', methods=['GET'])
@require_staff
@staff_lookup_limit
def lookup_redemption(code):
    """
    Preview a pending request by code.

    Returns:
        member_id, member_name, amount, expires_at and seconds_remaining;
        404 "Invalid or expired code" otherwise
    """
    result = get_redemption_service().get_pending_request(code)
    if not result['success']:
        return outcome_error(result)
    return jsonify(result)


@staff_bp.route('/redemptions/<code>/confirm', methods=['POST'])
@require_staff
@staff_lookup_limit
def confirm_redemption(code):
    """
    Confirm a pending request and debit the member.

    Fails with 404 (unknown code), 409 (already confirmed or cancelled),
    410 (expired) or 422 (balance no longer covers the amount).
    """
    result = get_redemption_service().confirm_usage(code, g.staff_id)
    if not result['success']:
        return outcome_error(result)
    return jsonify(result)
