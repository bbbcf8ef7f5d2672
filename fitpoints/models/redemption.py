"""
Redemption request model.

A member turns part of their balance into a single-use verification code that
a staff terminal confirms once within the confirmation window.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional
from ..extensions import db


class RedemptionStatus(str, Enum):
    """Status of a redemption request. Everything except PENDING is terminal."""
    PENDING = 'pending'       # Waiting for staff confirmation
    CONFIRMED = 'confirmed'   # Staff confirmed, points debited
    CANCELLED = 'cancelled'   # Cancelled by member or staff
    EXPIRED = 'expired'       # Window elapsed before confirmation


class RedemptionRequest(db.Model):
    """
    Single-use, time-bounded authorization to spend points.

    Design notes:
    - Points are only debited when the request reaches CONFIRMED
    - Only one PENDING request may hold a verification code; the partial
      unique index enforces it in storage, codes are reused afterwards
    - Expiry is detected lazily on read, `expired_at` records when it was noticed
    """
    __tablename__ = 'redemption_requests'

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.String(64), db.ForeignKey('points_accounts.member_id'), nullable=False)

    amount = db.Column(db.Integer, nullable=False)
    verification_code = db.Column(db.String(16), nullable=False)

    status = db.Column(db.String(20), default=RedemptionStatus.PENDING.value, nullable=False)

    # Window
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    # Terminal transition audit
    confirmed_by = db.Column(db.String(100))
    confirmed_at = db.Column(db.DateTime)
    cancelled_by = db.Column(db.String(100))
    cancelled_at = db.Column(db.DateTime)
    expired_at = db.Column(db.DateTime)

    # Relationships
    account = db.relationship('PointsAccount', backref=db.backref('redemption_requests', lazy='dynamic'))

    __table_args__ = (
        db.CheckConstraint('amount > 0', name='ck_redemption_requests_amount_positive'),
        db.Index(
            'uq_redemption_requests_pending_code',
            'verification_code',
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
        db.Index('ix_redemption_requests_code', 'verification_code'),
        db.Index('ix_redemption_requests_member_status', 'member_id', 'status'),
        db.Index('ix_redemption_requests_status_expires', 'status', 'expires_at'),
    )

    def __repr__(self):
        return f'<RedemptionRequest {self.id} {self.verification_code}: {self.amount} pts ({self.status})>'

    @property
    def is_pending(self) -> bool:
        return self.status == RedemptionStatus.PENDING.value

    def is_past_window(self, now: datetime) -> bool:
        """True once `now` is strictly after the expiry instant."""
        return now > self.expires_at

    def seconds_remaining(self, now: datetime) -> int:
        if not self.is_pending:
            return 0
        return max(0, int((self.expires_at - now).total_seconds()))

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Serialize to dictionary for API responses."""
        now = now or datetime.utcnow()
        return {
            'id': self.id,
            'member_id': self.member_id,
            'member_name': self.account.member_name if self.account else None,
            'amount': self.amount,
            'verification_code': self.verification_code,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'seconds_remaining': self.seconds_remaining(now),
            'confirmed_by': self.confirmed_by,
            'confirmed_at': self.confirmed_at.isoformat() if self.confirmed_at else None,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
        }

    def to_preview_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """What a staff terminal sees before confirming (no code echo)."""
        now = now or datetime.utcnow()
        return {
            'id': self.id,
            'member_id': self.member_id,
            'member_name': self.account.member_name if self.account else None,
            'amount': self.amount,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'seconds_remaining': self.seconds_remaining(now),
        }
