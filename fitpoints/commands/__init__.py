"""
CLI Commands for FitPoints.

Usage:
    flask points earn user-1 50             # Credit points manually
    flask points balance user-1             # Show balance (and --history N)
    flask points verify user-1              # Check balance against the ledger

    flask redemptions sweep-expired         # Expire stale pending requests
    flask redemptions pending               # List pending requests
"""
from .points import init_app as init_points_commands
from .redemptions import init_app as init_redemption_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_points_commands(app)
    init_redemption_commands(app)
