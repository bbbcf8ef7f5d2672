"""
Redemption Request Store and state machine.

    pending --confirm--> confirmed
    pending --cancel---> cancelled
    pending --expire---> expired      (noticed lazily on read)

Every transition is a compare-and-set on `status = 'pending'`, executed under
the owning member's lock, so exactly one caller moves a request out of
pending. Confirm commits the transition and the ledger debit together.
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Set, Tuple

from flask import current_app
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db, member_locks
from ..models import PointsTransaction, RedemptionRequest, RedemptionStatus
from ..utils.exceptions import (
    AlreadyConfirmedError,
    AuthorizationError,
    CodeSpaceExhaustedError,
    FitPointsError,
    InsufficientPointsError,
    RequestCancelledError,
    RequestExpiredError,
    RequestNotFoundError,
    StorageError,
)
from . import events
from .code_generator import CodeGenerator
from .ledger_service import LedgerService, validate_amount

DEFAULT_WINDOW = timedelta(minutes=5)

REDEMPTION_DESCRIPTION = 'Points redeemed at front desk'

_STATUS_ERRORS = {
    RedemptionStatus.CONFIRMED.value: AlreadyConfirmedError,
    RedemptionStatus.CANCELLED.value: RequestCancelledError,
    RedemptionStatus.EXPIRED.value: RequestExpiredError,
}


class RedemptionStore:
    """
    Holds redemption requests keyed by id and verification code.

    Usage:
        store = RedemptionStore(ledger, CodeGenerator(), window=timedelta(minutes=5))

        request = store.create('user-1', 500)
        store.lookup_by_code(request.verification_code)
        request, transaction = store.confirm(request.verification_code, 'staff-1')
    """

    def __init__(
        self,
        ledger: LedgerService,
        code_generator: CodeGenerator = None,
        window: timedelta = DEFAULT_WINDOW,
        clock: Callable[[], datetime] = None,
        event_bus: events.EventBus = None
    ):
        self.ledger = ledger
        self.code_generator = code_generator or CodeGenerator()
        self.window = window
        self.clock = clock if clock is not None else ledger.clock
        self.event_bus = event_bus if event_bus is not None else ledger.event_bus

    # ==================== Create ====================

    def create(self, member_id: str, amount: int) -> RedemptionRequest:
        """
        Open a pending request for `amount` points.

        The balance is checked but not reserved; the debit happens on confirm.

        Raises:
            InvalidAmountError: amount is not a positive integer
            InsufficientPointsError: amount exceeds the current balance
            CodeSpaceExhaustedError: no free code could be drawn
            StorageError: the commit failed
        """
        validate_amount(amount)

        with member_locks.hold(member_id):
            balance = self.ledger.get_balance(member_id)
            if amount > balance:
                raise InsufficientPointsError(balance, amount)

            # A concurrent insert in another worker can still take the code
            # between the draw and the commit; the partial unique index
            # rejects it and we draw again.
            for _ in range(self.code_generator.max_attempts):
                now = self.clock()
                code = self.code_generator.generate(exclude=self.pending_codes())
                request = RedemptionRequest(
                    member_id=member_id,
                    amount=amount,
                    verification_code=code,
                    status=RedemptionStatus.PENDING.value,
                    created_at=now,
                    expires_at=now + self.window,
                )
                db.session.add(request)
                try:
                    db.session.commit()
                    break
                except IntegrityError:
                    db.session.rollback()
                    current_app.logger.warning("Verification code collision on insert, redrawing")
                except SQLAlchemyError as e:
                    db.session.rollback()
                    raise StorageError(f"Failed to create redemption request for member {member_id}", e) from e
            else:
                raise CodeSpaceExhaustedError(self.code_generator.max_attempts)

        current_app.logger.info(
            f"Redemption requested: member {member_id} {amount} pts, request {request.id}, "
            f"expires {request.expires_at.isoformat()}"
        )
        self.event_bus.notify(events.REDEMPTION_CREATED, {
            'member_id': member_id,
            'request_id': request.id,
            'amount': amount,
        })
        return request

    def pending_codes(self) -> Set[str]:
        """Codes currently held by pending requests (stale ones included)."""
        rows = db.session.execute(
            select(RedemptionRequest.verification_code)
            .where(RedemptionRequest.status == RedemptionStatus.PENDING.value)
        ).scalars()
        return set(rows)

    # ==================== Lookup ====================

    def get(self, request_id: int) -> Optional[RedemptionRequest]:
        return db.session.get(RedemptionRequest, request_id)

    def lookup_by_code(self, code: str) -> Optional[RedemptionRequest]:
        """
        Return the live pending request holding `code`, else None.

        A pending request whose window has elapsed is moved to expired here.
        Nothing else about the request or the balance changes.
        """
        request = self._find_by_code(code)
        if request is None or not request.is_pending:
            return None

        if request.is_past_window(self.clock()):
            self._expire(request)
            return None

        return request

    def list_pending_for_member(self, member_id: str) -> List[RedemptionRequest]:
        """Member's live pending requests, newest first; stale ones are expired."""
        requests = RedemptionRequest.query.filter_by(
            member_id=member_id,
            status=RedemptionStatus.PENDING.value
        ).order_by(RedemptionRequest.created_at.desc(), RedemptionRequest.id.desc()).all()

        now = self.clock()
        live = []
        for request in requests:
            if request.is_past_window(now):
                self._expire(request)
            else:
                live.append(request)
        return live

    # ==================== Transitions ====================

    def confirm(self, code: str, staff_id: str) -> Tuple[RedemptionRequest, PointsTransaction]:
        """
        Staff confirmation: pending -> confirmed plus the ledger debit.

        Raises:
            RequestNotFoundError: no request holds the code
            RequestExpiredError: the window elapsed
            AlreadyConfirmedError: the request was already confirmed
            RequestCancelledError: the request was cancelled
            InsufficientPointsError: balance dropped below the amount; the
                request stays pending
            StorageError: the commit failed, neither transition nor debit applied
        """
        normalized = self.code_generator.normalize(code)
        request = self._find_by_code(normalized)
        if request is None:
            raise RequestNotFoundError(normalized)

        with member_locks.hold(request.member_id):
            db.session.refresh(request)
            self._ensure_pending(request)

            now = self.clock()
            claimed = db.session.execute(
                update(RedemptionRequest)
                .where(
                    RedemptionRequest.id == request.id,
                    RedemptionRequest.status == RedemptionStatus.PENDING.value,
                    RedemptionRequest.expires_at >= now,
                )
                .values(
                    status=RedemptionStatus.CONFIRMED.value,
                    confirmed_by=staff_id,
                    confirmed_at=now,
                )
                .execution_options(synchronize_session=False)
            )

            if claimed.rowcount != 1:
                db.session.rollback()
                db.session.refresh(request)
                self._ensure_pending(request)
                # Still pending but not claimable: the window closed between
                # the check and the update.
                self._expire(request)
                raise RequestExpiredError(request.id)

            try:
                transaction = self.ledger.spend(
                    request.member_id,
                    request.amount,
                    REDEMPTION_DESCRIPTION,
                    related_request_id=request.id,
                    created_by=staff_id,
                    commit=False,
                )
                db.session.commit()
            except FitPointsError:
                db.session.rollback()
                raise
            except SQLAlchemyError as e:
                db.session.rollback()
                current_app.logger.error(f"Redemption confirm failed for request {request.id}: {e}")
                raise StorageError(f"Failed to confirm redemption request {request.id}", e) from e

        current_app.logger.info(
            f"Redemption confirmed: request {request.id} member {request.member_id} "
            f"-{request.amount} pts by staff {staff_id}"
        )
        self.ledger.announce_spend(transaction)
        self.event_bus.notify(events.REDEMPTION_CONFIRMED, {
            'member_id': request.member_id,
            'request_id': request.id,
            'amount': request.amount,
            'staff_id': staff_id,
        })
        return request, transaction

    def cancel(self, request_id: int, actor_id: str, is_staff: bool = False) -> RedemptionRequest:
        """
        Member (or staff) cancellation: pending -> cancelled.

        Raises:
            RequestNotFoundError: unknown request id
            AuthorizationError: actor is neither the owner nor staff
            RequestExpiredError / AlreadyConfirmedError / RequestCancelledError:
                the request already left pending
            StorageError: the update matched no row or the commit failed
        """
        request = self.get(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        if not is_staff and request.member_id != actor_id:
            raise AuthorizationError(f"Member {actor_id} cannot cancel request {request_id}")

        with member_locks.hold(request.member_id):
            db.session.refresh(request)
            self._ensure_pending(request)

            now = self.clock()
            result = db.session.execute(
                update(RedemptionRequest)
                .where(
                    RedemptionRequest.id == request.id,
                    RedemptionRequest.status == RedemptionStatus.PENDING.value,
                )
                .values(
                    status=RedemptionStatus.CANCELLED.value,
                    cancelled_by=actor_id,
                    cancelled_at=now,
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount != 1:
                db.session.rollback()
                db.session.refresh(request)
                self._ensure_pending(request)
                raise StorageError(f"Failed to cancel redemption request {request.id}: no row updated")

            self._commit(f"Failed to cancel redemption request {request.id}")

        current_app.logger.info(f"Redemption cancelled: request {request.id} by {actor_id}")
        self.event_bus.notify(events.REDEMPTION_CANCELLED, {
            'member_id': request.member_id,
            'request_id': request.id,
            'actor_id': actor_id,
        })
        return request

    def expire_stale(self, now: datetime = None) -> int:
        """
        Move every pending request past its window to expired.

        Bookkeeping only: reads already treat such requests as expired.
        """
        now = now or self.clock()
        result = db.session.execute(
            update(RedemptionRequest)
            .where(
                RedemptionRequest.status == RedemptionStatus.PENDING.value,
                RedemptionRequest.expires_at < now,
            )
            .values(status=RedemptionStatus.EXPIRED.value, expired_at=now)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        self._commit("Failed to expire stale redemption requests")

        if count:
            current_app.logger.info(f"Expired {count} stale redemption requests")
            self.event_bus.notify(events.REDEMPTION_EXPIRED, {'count': count})
        return count

    # ==================== Helpers ====================

    def _find_by_code(self, code: str) -> Optional[RedemptionRequest]:
        """
        Most relevant request for a code.

        Codes are reused once their holder leaves pending, so prefer the
        pending holder, then the most recent terminal one.
        """
        if not self.code_generator.is_well_formed(code):
            return None
        code = self.code_generator.normalize(code)

        pending_first = case(
            (RedemptionRequest.status == RedemptionStatus.PENDING.value, 0),
            else_=1,
        )
        return RedemptionRequest.query.filter_by(verification_code=code).order_by(
            pending_first,
            RedemptionRequest.created_at.desc(),
            RedemptionRequest.id.desc(),
        ).first()

    def _ensure_pending(self, request: RedemptionRequest) -> None:
        """Raise the matching error unless the request is live and pending."""
        error = _STATUS_ERRORS.get(request.status)
        if error:
            raise error(request.id)

        if request.is_past_window(self.clock()):
            self._expire(request)
            raise RequestExpiredError(request.id)

    def _expire(self, request: RedemptionRequest) -> None:
        with member_locks.hold(request.member_id):
            now = self.clock()
            result = db.session.execute(
                update(RedemptionRequest)
                .where(
                    RedemptionRequest.id == request.id,
                    RedemptionRequest.status == RedemptionStatus.PENDING.value,
                )
                .values(status=RedemptionStatus.EXPIRED.value, expired_at=now)
                .execution_options(synchronize_session=False)
            )
            self._commit(f"Failed to expire redemption request {request.id}")

        if result.rowcount == 1:
            current_app.logger.info(f"Redemption expired: request {request.id} member {request.member_id}")
            self.event_bus.notify(events.REDEMPTION_EXPIRED, {
                'member_id': request.member_id,
                'request_id': request.id,
            })

    def _commit(self, failure_message: str) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"{failure_message}: {e}")
            raise StorageError(failure_message, e) from e
