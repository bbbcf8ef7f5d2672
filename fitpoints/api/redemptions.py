"""
Member-facing redemption endpoints.

A member turns points into a short-lived verification code, shows it at the
front desk, and can cancel it while it is still pending.
"""
from flask import Blueprint, g, jsonify, request

from ..middleware import require_identity, require_member
from ..services import get_redemption_service
from ..utils.errors import ErrorCode, bad_request, outcome_error

redemptions_bp = Blueprint('redemptions', __name__)


@redemptions_bp.route('', methods=['POST'])
@require_member
def create_redemption():
    """
    Create a redemption request.

    Request body:
        amount: Points to redeem (positive integer, at most the balance)

    Returns:
        The pending request with its verification code, expiry and verify URL
    """
    data = request.get_json(silent=True) or {}
    if 'amount' not in data:
        return bad_request('amount is required', ErrorCode.MISSING_FIELD)

    result = get_redemption_service().create_usage_request(
        g.member_id, data['amount'], member_name=g.member_name
    )
    if not result['success']:
        return outcome_error(result)

    return jsonify(result), 201


@redemptions_bp.route('/pending', methods=['GET'])
@require_member
def list_pending_redemptions():
    """The caller's live pending requests, newest first."""
    result = get_redemption_service().get_member_pending_requests(g.member_id)
    if not result['success']:
        return outcome_error(result)
    return jsonify(result)


@redemptions_bp.route('/<int:request_id>/cancel', methods=['POST'])
@require_identity
def cancel_redemption(request_id):
    """Cancel a pending request. Members may only cancel their own."""
    result = get_redemption_service().cancel_request(
        request_id, g.actor_id, is_staff=g.is_staff
    )
    if not result['success']:
        return outcome_error(result)
    return jsonify(result)
