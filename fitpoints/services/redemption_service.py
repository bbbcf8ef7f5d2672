"""
Redemption Service for FitPoints.

Public contract used by the member app and the staff terminal:
- Member creates a usage request and gets a verification code + verify URL
- Staff looks the code up, sees member and amount, and confirms once
- Member may cancel while the request is still pending

Every method returns an outcome dict. Failures never raise; they come back as
{'success': False, 'error': <message>, 'error_code': <ErrorCode value>}.
"""
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from flask import current_app

from ..utils.errors import ErrorCode
from ..utils.exceptions import FitPointsError
from .ledger_service import LedgerService
from .redemption_store import RedemptionStore

INVALID_CODE_MESSAGE = 'Invalid or expired code'


def failure(error: FitPointsError) -> Dict[str, Any]:
    """Outcome dict for a business error."""
    return {'success': False, 'error': error.message, 'error_code': error.code}


class RedemptionService:
    """
    Composes the ledger and the redemption store.

    Usage:
        service = RedemptionService(ledger, store, verify_url='https://gym.example/staff/verify')

        result = service.create_usage_request('user-1', 500)
        if result['success']:
            show_code(result['request']['verification_code'], result['verify_url'])
    """

    def __init__(self, ledger: LedgerService, store: RedemptionStore, verify_url: str = None):
        self.ledger = ledger
        self.store = store
        self.verify_url = verify_url

    # ==================== Member side ====================

    def create_usage_request(self, member_id: str, amount, member_name: str = None) -> Dict[str, Any]:
        """
        Open a redemption request for `amount` points.

        Returns:
            Dict with the full request (including the code) and the verify URL
        """
        try:
            # Backfill the display name; accounts are only created by earning
            if member_name and self.ledger.get_account(member_id) is not None:
                self.ledger.create_account(member_id, member_name)
            request = self.store.create(member_id, amount)
        except FitPointsError as e:
            current_app.logger.info(f"Redemption request rejected for member {member_id}: {e.message}")
            return failure(e)

        return {
            'success': True,
            'request': request.to_dict(now=self.store.clock()),
            'verify_url': self.build_verify_url(request.verification_code),
            'balance': self.ledger.get_balance(member_id),
        }

    def cancel_request(self, request_id: int, actor_id: str, is_staff: bool = False) -> Dict[str, Any]:
        """Cancel a pending request on behalf of its member (or staff)."""
        try:
            request = self.store.cancel(request_id, actor_id, is_staff=is_staff)
        except FitPointsError as e:
            return failure(e)

        return {
            'success': True,
            'request': request.to_dict(now=self.store.clock()),
        }

    def get_member_pending_requests(self, member_id: str) -> Dict[str, Any]:
        try:
            requests = self.store.list_pending_for_member(member_id)
        except FitPointsError as e:
            return failure(e)

        now = self.store.clock()
        return {
            'success': True,
            'requests': [r.to_dict(now=now) for r in requests],
            'count': len(requests),
        }

    # ==================== Staff side ====================

    def get_pending_request(self, code: str) -> Dict[str, Any]:
        """
        Preview a live pending request for a staff terminal.

        Never changes a balance; a stale request is only moved to expired.
        """
        try:
            request = self.store.lookup_by_code(code)
        except FitPointsError as e:
            return failure(e)

        if request is None:
            return {
                'success': False,
                'error': INVALID_CODE_MESSAGE,
                'error_code': ErrorCode.NOT_FOUND.value,
            }

        return {
            'success': True,
            'request': request.to_preview_dict(now=self.store.clock()),
        }

    def confirm_usage(self, code: str, staff_id: str) -> Dict[str, Any]:
        """
        Confirm a request and debit the member's points.

        `success` is True if and only if the debit happened.
        """
        try:
            request, transaction = self.store.confirm(code, staff_id)
        except FitPointsError as e:
            current_app.logger.info(f"Redemption confirm rejected (staff {staff_id}): {e.message}")
            return failure(e)

        return {
            'success': True,
            'request': request.to_dict(now=self.store.clock()),
            'transaction': transaction.to_dict(),
            'new_balance': transaction.balance_after,
        }

    def sweep_expired(self) -> Dict[str, Any]:
        try:
            expired = self.store.expire_stale()
        except FitPointsError as e:
            return failure(e)
        return {'success': True, 'expired': expired}

    # ==================== Ledger passthrough ====================

    def earn_points(
        self,
        member_id: str,
        amount,
        description: str,
        source: str = 'manual',
        created_by: str = 'system'
    ) -> Dict[str, Any]:
        try:
            transaction = self.ledger.earn(
                member_id, amount, description, source=source, created_by=created_by
            )
        except FitPointsError as e:
            return failure(e)

        return {
            'success': True,
            'transaction': transaction.to_dict(),
            'new_balance': transaction.balance_after,
        }

    def get_balance(self, member_id: str) -> Dict[str, Any]:
        account = self.ledger.get_account(member_id)
        return {
            'success': True,
            'member_id': member_id,
            'member_name': account.member_name if account else None,
            'balance': account.balance if account else 0,
            'lifetime_earned': account.lifetime_earned if account else 0,
            'lifetime_spent': account.lifetime_spent if account else 0,
        }

    def get_transactions(
        self,
        member_id: str,
        limit: int = 50,
        offset: int = 0,
        transaction_type: Optional[str] = None
    ) -> Dict[str, Any]:
        transactions = self.ledger.get_transactions(
            member_id, limit=limit, offset=offset, transaction_type=transaction_type
        )
        return {
            'success': True,
            'transactions': [t.to_dict() for t in transactions],
            'total': self.ledger.count_transactions(member_id, transaction_type=transaction_type),
            'limit': limit,
            'offset': offset,
        }

    # ==================== Helpers ====================

    def build_verify_url(self, code: str) -> Optional[str]:
        """URL a staff device opens after scanning the member's code."""
        if not self.verify_url:
            return None
        separator = '&' if '?' in self.verify_url else '?'
        return f"{self.verify_url}{separator}{urlencode({'code': code})}"
