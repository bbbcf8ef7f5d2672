"""
Database models for the FitPoints service.
Points accounts, the append-only ledger and redemption requests.
"""
from .account import PointsAccount
from .transaction import PointsTransaction, TransactionType, PointsSource
from .redemption import RedemptionRequest, RedemptionStatus

__all__ = [
    'PointsAccount',
    'PointsTransaction',
    'TransactionType',
    'PointsSource',
    'RedemptionRequest',
    'RedemptionStatus',
]
