"""
Point awards triggered by the other parts of the membership system.

Attendance check-in, workout logging and verification posts live outside this
service; they call in here once their own rules have passed and the member is
credited through the ledger.
"""
from typing import Any, Dict, Mapping

from flask import current_app

from ..extensions import member_locks
from ..models import PointsSource
from ..utils.exceptions import DuplicateAwardError, FitPointsError
from .ledger_service import LedgerService
from .redemption_service import failure

DEFAULT_AWARD_POINTS = {
    'attendance': 10,
    'workout_record': 20,
    'verification_post': 30,
    'workout_verification': 5,
    'signup': 100,
}


class AwardService:
    """
    Fixed-amount earn triggers.

    Usage:
        awards = AwardService(ledger, current_app.config['AWARD_POINTS'])
        awards.award_attendance('user-1')
    """

    def __init__(self, ledger: LedgerService, award_points: Mapping[str, int] = None):
        self.ledger = ledger
        self.award_points = dict(DEFAULT_AWARD_POINTS)
        if award_points:
            self.award_points.update(award_points)

    def award_attendance(self, member_id: str) -> Dict[str, Any]:
        """Geofenced check-in confirmed."""
        return self._award(
            member_id, 'attendance', PointsSource.ATTENDANCE.value, 'Attendance check-in'
        )

    def award_workout_record(self, member_id: str) -> Dict[str, Any]:
        return self._award(
            member_id, 'workout_record', PointsSource.WORKOUT.value, 'Workout recorded'
        )

    def award_verification_post(self, member_id: str, post_id=None) -> Dict[str, Any]:
        description = 'Workout verification post'
        if post_id is not None:
            description = f'{description} #{post_id}'
        return self._award(member_id, 'verification_post', PointsSource.POST.value, description)

    def award_workout_verification(self, member_id: str) -> Dict[str, Any]:
        """Another member verified this member's workout."""
        return self._award(
            member_id, 'workout_verification', PointsSource.WORKOUT.value, 'Workout verified'
        )

    def award_signup_bonus(self, member_id: str, member_name: str = None) -> Dict[str, Any]:
        """
        Welcome bonus for a new account; granted once per member.

        Creates the points account (with its display name) if needed.
        """
        with member_locks.hold(member_id):
            try:
                self.ledger.create_account(member_id, member_name)
                if self.ledger.has_transaction_from(member_id, PointsSource.SIGNUP.value):
                    raise DuplicateAwardError(member_id, PointsSource.SIGNUP.value)
            except FitPointsError as e:
                return failure(e)

            return self._award(member_id, 'signup', PointsSource.SIGNUP.value, 'Welcome bonus')

    def _award(self, member_id: str, award: str, source: str, description: str) -> Dict[str, Any]:
        amount = self.award_points[award]
        try:
            transaction = self.ledger.earn(member_id, amount, description, source=source)
        except FitPointsError as e:
            current_app.logger.warning(f"{award} award failed for member {member_id}: {e.message}")
            return failure(e)

        return {
            'success': True,
            'award': award,
            'points': amount,
            'new_balance': transaction.balance_after,
            'transaction': transaction.to_dict(),
        }
