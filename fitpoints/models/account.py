"""
Points account model.
"""
from datetime import datetime
from typing import Dict, Any
from ..extensions import db


class PointsAccount(db.Model):
    """
    Current points balance for a member.

    The balance is a denormalized value for fast lookups; it always equals
    the sum of the member's PointsTransaction rows (earn minus spend).

    Design notes:
    - One row per member, created on first award or explicit signup
    - Never deleted; only mutated together with a new transaction
    - CHECK constraint keeps the balance non-negative in storage
    """
    __tablename__ = 'points_accounts'

    member_id = db.Column(db.String(64), primary_key=True)
    member_name = db.Column(db.String(100))

    balance = db.Column(db.Integer, default=0, nullable=False)

    # Lifetime statistics
    lifetime_earned = db.Column(db.Integer, default=0, nullable=False)
    lifetime_spent = db.Column(db.Integer, default=0, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('balance >= 0', name='ck_points_accounts_balance_non_negative'),
    )

    def __repr__(self):
        return f'<PointsAccount {self.member_id}: {self.balance} pts>'

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for API responses."""
        return {
            'member_id': self.member_id,
            'member_name': self.member_name,
            'balance': self.balance,
            'lifetime_earned': self.lifetime_earned or 0,
            'lifetime_spent': self.lifetime_spent or 0,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
