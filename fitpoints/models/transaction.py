"""
Points transaction model - the append-only ledger.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Any
from ..extensions import db


class TransactionType(str, Enum):
    """Types of points transactions."""
    EARN = 'earn'     # Points earned (raises balance)
    SPEND = 'spend'   # Points spent on a confirmed redemption (lowers balance)


class PointsSource(str, Enum):
    """What caused a transaction."""
    ATTENDANCE = 'attendance'
    WORKOUT = 'workout'
    POST = 'post'
    SIGNUP = 'signup'
    MANUAL = 'manual'
    REDEMPTION = 'redemption'


class PointsTransaction(db.Model):
    """
    Immutable ledger entry.

    Every earn and spend is recorded here; rows are never edited or removed.
    `amount` is always positive, the sign comes from `transaction_type`.
    """
    __tablename__ = 'points_transactions'

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.String(64), db.ForeignKey('points_accounts.member_id'), nullable=False)

    # Transaction details
    transaction_type = db.Column(db.String(10), nullable=False)  # TransactionType
    amount = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)  # Running balance after this entry

    # Source tracking
    source = db.Column(db.String(30))  # PointsSource
    description = db.Column(db.String(500))

    # Spend entries link back to the redemption that caused them
    related_request_id = db.Column(db.Integer, db.ForeignKey('redemption_requests.id'), unique=True)

    # Audit
    created_by = db.Column(db.String(100), default='system')
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    account = db.relationship('PointsAccount', backref=db.backref('transactions', lazy='dynamic'))

    __table_args__ = (
        db.CheckConstraint('amount > 0', name='ck_points_transactions_amount_positive'),
        db.Index('ix_points_transactions_member_created', 'member_id', 'created_at'),
    )

    @property
    def signed_amount(self) -> int:
        return self.amount if self.transaction_type == TransactionType.EARN.value else -self.amount

    def __repr__(self):
        return f'<PointsTransaction {self.id}: {self.signed_amount:+d} pts for member {self.member_id}>'

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for API responses."""
        return {
            'id': self.id,
            'member_id': self.member_id,
            'type': self.transaction_type,
            'amount': self.amount,
            'signed_amount': self.signed_amount,
            'balance_after': self.balance_after,
            'source': self.source,
            'description': self.description,
            'related_request_id': self.related_request_id,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
