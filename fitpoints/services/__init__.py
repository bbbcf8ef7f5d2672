"""
Business logic services for FitPoints.

Services are built once per application by `build_services` and stored on
`app.extensions['fitpoints']`; request handlers and CLI commands reach them
through the accessors below.
"""
from datetime import timedelta

from flask import current_app

from .award_service import AwardService
from .code_generator import CodeGenerator
from .events import EventBus
from .ledger_service import LedgerService
from .redemption_service import RedemptionService
from .redemption_store import RedemptionStore

EXTENSION_KEY = 'fitpoints'


def build_services(app, clock=None) -> dict:
    """Wire the ledger, store and services from the app's configuration."""
    config = app.config
    event_bus = EventBus()
    ledger = LedgerService(event_bus=event_bus, clock=clock)
    generator = CodeGenerator(
        length=config['VERIFICATION_CODE_LENGTH'],
        alphabet=config['VERIFICATION_CODE_ALPHABET'],
        max_attempts=config['VERIFICATION_CODE_MAX_ATTEMPTS'],
    )
    store = RedemptionStore(
        ledger,
        generator,
        window=timedelta(seconds=config['REDEMPTION_WINDOW_SECONDS']),
    )

    services = {
        'events': event_bus,
        'ledger': ledger,
        'store': store,
        'redemptions': RedemptionService(ledger, store, verify_url=config.get('STAFF_VERIFY_URL')),
        'awards': AwardService(ledger, config.get('AWARD_POINTS')),
    }
    app.extensions[EXTENSION_KEY] = services
    return services


def get_redemption_service() -> RedemptionService:
    return current_app.extensions[EXTENSION_KEY]['redemptions']


def get_award_service() -> AwardService:
    return current_app.extensions[EXTENSION_KEY]['awards']


def get_ledger() -> LedgerService:
    return current_app.extensions[EXTENSION_KEY]['ledger']


__all__ = [
    'AwardService',
    'CodeGenerator',
    'EventBus',
    'LedgerService',
    'RedemptionService',
    'RedemptionStore',
    'build_services',
    'get_award_service',
    'get_ledger',
    'get_redemption_service',
]
