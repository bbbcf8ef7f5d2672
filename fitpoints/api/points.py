"""
Points API endpoints.

Handles:
- Member balance and transaction history
- Point awards posted by staff or by the attendance/workout systems
"""
from flask import Blueprint, g, jsonify, request

from ..middleware import require_member, require_staff
from ..models import PointsSource, TransactionType
from ..services import get_redemption_service
from ..utils.errors import ErrorCode, bad_request, outcome_error

points_bp = Blueprint('points', __name__)

MAX_PAGE_SIZE = 100


# ==============================================================================
# BALANCE & HISTORY (Member-facing)
# ==============================================================================

@points_bp.route('/balance', methods=['GET'])
@require_member
def get_points_balance():
    """
    Get the caller's points balance.

    Returns:
        Balance plus lifetime earned/spent totals
    """
    result = get_redemption_service().get_balance(g.member_id)
    result.pop('success', None)
    return jsonify(result)


@points_bp.route('/history', methods=['GET'])
@require_member
def get_points_history():
    """
    Get the caller's transactions, newest first.

    Query params:
        limit: Max results (default 50, max 100)
        offset: Pagination offset
        type: Filter by type (earn, spend)
    """
    limit = request.args.get('limit', 50, type=int)
    offset = request.args.get('offset', 0, type=int)
    transaction_type = request.args.get('type')

    if limit < 1 or offset < 0:
        return bad_request('limit must be positive and offset non-negative')
    limit = min(limit, MAX_PAGE_SIZE)

    valid_types = [t.value for t in TransactionType]
    if transaction_type and transaction_type not in valid_types:
        return bad_request(f'type must be one of: {valid_types}')

    result = get_redemption_service().get_transactions(
        g.member_id, limit=limit, offset=offset, transaction_type=transaction_type
    )
    result.pop('success', None)
    return jsonify(result)


# ==============================================================================
# AWARDS (Staff / system)
# ==============================================================================

@points_bp.route('/earn', methods=['POST'])
@require_staff
def earn_points():
    """
    Credit points to a member.

    Request body:
        member_id: Member to credit (required)
        amount: Positive integer points (required)
        description: Ledger description (required)
        source: attendance, workout, post, signup or manual (default manual)
    """
    data = request.get_json(silent=True) or {}

    for field in ('member_id', 'amount', 'description'):
        if data.get(field) in (None, ''):
            return bad_request(f'{field} is required', ErrorCode.MISSING_FIELD)

    source = data.get('source', PointsSource.MANUAL.value)
    valid_sources = [s.value for s in PointsSource if s != PointsSource.REDEMPTION]
    if source not in valid_sources:
        return bad_request(f'source must be one of: {valid_sources}')

    result = get_redemption_service().earn_points(
        str(data['member_id']),
        data['amount'],
        data['description'],
        source=source,
        created_by=g.staff_id,
    )
    if not result['success']:
        return outcome_error(result)

    return jsonify(result), 201
