"""
Tests for the redemption protocol.

Covers:
- Request creation (validation, balance check, code + verify URL)
- Staff lookup (preview, lazy expiry, no balance change)
- Confirmation (debit, at-most-once, expiry, insufficient balance at confirm)
- Cancellation (owner/staff only, loses to confirm)
- Code uniqueness among pending requests
- Concurrent confirm, cancel and earn against a file-backed database
"""
import itertools
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from fitpoints.extensions import db
from fitpoints.models import PointsTransaction, RedemptionRequest
from fitpoints.services import events
from fitpoints.services.code_generator import CodeGenerator

from .conftest import FakeClock, install_clock


class CyclingRng:
    def __init__(self, chars):
        self._chars = itertools.cycle(chars)

    def choice(self, seq):
        return next(self._chars)


def status_of(request_id):
    return db.session.get(RedemptionRequest, request_id).status


class TestCreateUsageRequest:
    """Tests for RedemptionService.create_usage_request."""

    def test_create_returns_code_and_expiry(self, app, redemption_service, sample_account, clock):
        """Balance 2450, request 500: pending with a 5 minute window."""
        result = redemption_service.create_usage_request('user-1', 500)

        assert result['success'] is True
        request = result['request']
        assert request['status'] == 'pending'
        assert request['amount'] == 500
        assert len(request['verification_code']) == 6
        assert request['expires_at'] == '2026-03-02T09:05:00'
        assert request['seconds_remaining'] == 300
        assert result['verify_url'].endswith(f"?code={request['verification_code']}")

    def test_create_does_not_touch_balance(self, app, redemption_service, ledger, sample_account, clock):
        redemption_service.create_usage_request('user-1', 500)

        assert ledger.get_balance('user-1') == 2450
        assert ledger.count_transactions('user-1', transaction_type='spend') == 0

    def test_create_insufficient_balance(self, app, redemption_service, sample_account, clock):
        """Request 3000 with 2450 points: rejected, nothing stored."""
        result = redemption_service.create_usage_request('user-1', 3000)

        assert result['success'] is False
        assert result['error_code'] == 'INSUFFICIENT_BALANCE'
        assert RedemptionRequest.query.count() == 0

    @pytest.mark.parametrize('amount', [0, -100, 12.5, '500'])
    def test_create_invalid_amount(self, app, redemption_service, sample_account, clock, amount):
        result = redemption_service.create_usage_request('user-1', amount)

        assert result['success'] is False
        assert result['error_code'] == 'INVALID_AMOUNT'

    def test_create_for_member_without_account(self, app, redemption_service, clock):
        result = redemption_service.create_usage_request('newbie', 10)

        assert result['success'] is False
        assert result['error_code'] == 'INSUFFICIENT_BALANCE'

    def test_rejected_request_leaves_no_account(self, app, redemption_service, ledger, clock):
        result = redemption_service.create_usage_request('newbie', 10, member_name='Park Jisoo')

        assert result['error_code'] == 'INSUFFICIENT_BALANCE'
        assert ledger.get_account('newbie') is None

    def test_create_backfills_member_name(self, app, redemption_service, ledger, clock):
        ledger.earn('user-3', 100, 'Signup bonus', source='signup')

        result = redemption_service.create_usage_request('user-3', 50, member_name='Lee Seojun')

        assert result['request']['member_name'] == 'Lee Seojun'
        assert ledger.get_account('user-3').member_name == 'Lee Seojun'

    def test_create_for_whole_balance(self, app, redemption_service, sample_account, clock):
        result = redemption_service.create_usage_request('user-1', 2450)
        assert result['success'] is True

    def test_create_notifies(self, app, services, redemption_service, sample_account, clock):
        listener = MagicMock()
        services['events'].subscribe(listener)

        result = redemption_service.create_usage_request('user-1', 500)

        listener.assert_called_once_with(events.REDEMPTION_CREATED, {
            'member_id': 'user-1',
            'request_id': result['request']['id'],
            'amount': 500,
        })


class TestLookup:
    """Tests for RedemptionService.get_pending_request."""

    def test_preview(self, app, redemption_service, sample_account, clock):
        code = redemption_service.create_usage_request('user-1', 500)['request']['verification_code']
        clock.advance(seconds=60)

        result = redemption_service.get_pending_request(code)

        assert result['success'] is True
        assert result['request']['member_name'] == 'Kim Minji'
        assert result['request']['amount'] == 500
        assert result['request']['seconds_remaining'] == 240
        assert 'verification_code' not in result['request']

    def test_lookup_normalizes_code(self, app, redemption_service, sample_account, clock):
        code = redemption_service.create_usage_request('user-1', 500)['request']['verification_code']

        result = redemption_service.get_pending_request(f'  {code.lower()} ')
        assert result['success'] is True

    def test_unknown_code(self, app, redemption_service):
        result = redemption_service.get_pending_request('ZZZZZZ')

        assert result == {
            'success': False,
            'error': 'Invalid or expired code',
            'error_code': 'NOT_FOUND',
        }

    @pytest.mark.parametrize('code', ['', 'AB12C', 'AB12CDE', 'AB-12C'])
    def test_malformed_code_is_not_found(self, app, redemption_service, code):
        assert redemption_service.get_pending_request(code)['error_code'] == 'NOT_FOUND'
        assert redemption_service.confirm_usage(code, 'staff-7')['error_code'] == 'NOT_FOUND'

    def test_lookup_is_side_effect_free(self, app, redemption_service, ledger, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']

        for _ in range(3):
            assert redemption_service.get_pending_request(created['verification_code'])['success']

        assert ledger.get_balance('user-1') == 2450
        assert status_of(created['id']) == 'pending'

    def test_lookup_expires_stale_request(self, app, redemption_service, ledger, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']
        clock.advance(minutes=5, seconds=1)

        result = redemption_service.get_pending_request(created['verification_code'])

        assert result['error_code'] == 'NOT_FOUND'
        assert status_of(created['id']) == 'expired'
        assert ledger.get_balance('user-1') == 2450


class TestConfirm:
    """Tests for RedemptionService.confirm_usage."""

    def test_confirm_debits_balance(self, app, redemption_service, ledger, sample_account, clock):
        """Balance 2450, confirm 500: 1950 and a linked spend entry."""
        created = redemption_service.create_usage_request('user-1', 500)['request']
        clock.advance(minutes=2)

        result = redemption_service.confirm_usage(created['verification_code'], 'staff-7')

        assert result['success'] is True
        assert result['new_balance'] == 1950
        assert result['request']['status'] == 'confirmed'
        assert result['request']['confirmed_by'] == 'staff-7'
        assert result['transaction']['related_request_id'] == created['id']
        assert ledger.get_balance('user-1') == 1950

        spend = PointsTransaction.query.filter_by(transaction_type='spend').one()
        assert spend.amount == 500
        assert spend.created_by == 'staff-7'

    def test_second_confirm_fails(self, app, redemption_service, ledger, sample_account, clock):
        """Confirming twice debits once; the second sees AlreadyConfirmed."""
        code = redemption_service.create_usage_request('user-1', 500)['request']['verification_code']

        first = redemption_service.confirm_usage(code, 'staff-7')
        second = redemption_service.confirm_usage(code, 'staff-8')

        assert first['success'] is True
        assert second['success'] is False
        assert second['error_code'] == 'ALREADY_CONFIRMED'
        assert ledger.get_balance('user-1') == 1950
        assert ledger.count_transactions('user-1', transaction_type='spend') == 1

    def test_confirm_after_window(self, app, redemption_service, ledger, sample_account, clock):
        """Five minutes and one second later the request is expired."""
        created = redemption_service.create_usage_request('user-1', 500)['request']
        clock.advance(minutes=5, seconds=1)

        result = redemption_service.confirm_usage(created['verification_code'], 'staff-7')

        assert result['success'] is False
        assert result['error_code'] == 'EXPIRED'
        assert status_of(created['id']) == 'expired'
        assert ledger.get_balance('user-1') == 2450

    def test_confirm_at_exact_expiry_instant(self, app, redemption_service, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']
        clock.advance(minutes=5)

        result = redemption_service.confirm_usage(created['verification_code'], 'staff-7')
        assert result['success'] is True

    def test_expired_stays_expired(self, app, redemption_service, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']
        clock.advance(minutes=6)
        redemption_service.get_pending_request(created['verification_code'])

        clock.now = clock.now.replace(minute=1)
        result = redemption_service.confirm_usage(created['verification_code'], 'staff-7')

        assert result['error_code'] == 'EXPIRED'

    def test_confirm_unknown_code(self, app, redemption_service):
        result = redemption_service.confirm_usage('ABC123', 'staff-7')

        assert result['success'] is False
        assert result['error_code'] == 'NOT_FOUND'

    def test_confirm_cancelled(self, app, redemption_service, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']
        redemption_service.cancel_request(created['id'], 'user-1')

        result = redemption_service.confirm_usage(created['verification_code'], 'staff-7')

        assert result['error_code'] == 'CANCELLED'

    def test_balance_dropped_below_amount(self, app, redemption_service, ledger, sample_account, clock):
        """Points are not reserved; confirm re-checks and leaves the request pending."""
        first = redemption_service.create_usage_request('user-1', 2000)['request']
        second = redemption_service.create_usage_request('user-1', 1000)['request']
        assert redemption_service.confirm_usage(first['verification_code'], 'staff-7')['success']

        result = redemption_service.confirm_usage(second['verification_code'], 'staff-7')

        assert result['success'] is False
        assert result['error_code'] == 'INSUFFICIENT_BALANCE'
        assert status_of(second['id']) == 'pending'
        assert ledger.get_balance('user-1') == 450

    def test_storage_failure_applies_nothing(self, app, redemption_service, ledger, sample_account, clock):
        """A failed commit leaves the request pending and the balance untouched."""
        created = redemption_service.create_usage_request('user-1', 500)['request']

        with patch('sqlalchemy.orm.Session.commit', side_effect=OperationalError('COMMIT', {}, Exception('disk I/O error'))):
            result = redemption_service.confirm_usage(created['verification_code'], 'staff-7')

        assert result['success'] is False
        assert result['error_code'] == 'STORAGE_ERROR'
        assert status_of(created['id']) == 'pending'
        assert ledger.get_balance('user-1') == 2450
        assert ledger.count_transactions('user-1', transaction_type='spend') == 0

        retry = redemption_service.confirm_usage(created['verification_code'], 'staff-7')
        assert retry['success'] is True

    def test_confirm_notifies_after_commit(self, app, services, redemption_service, sample_account, clock):
        code = redemption_service.create_usage_request('user-1', 500)['request']['verification_code']
        received = []
        services['events'].subscribe(lambda event, payload: received.append(event))

        redemption_service.confirm_usage(code, 'staff-7')

        assert received == [events.POINTS_SPENT, events.REDEMPTION_CONFIRMED]

    def test_balance_invariant_holds(self, app, redemption_service, ledger, sample_account, clock):
        for amount in (100, 200, 300):
            code = redemption_service.create_usage_request('user-1', amount)['request']['verification_code']
            redemption_service.confirm_usage(code, 'staff-7')
        ledger.earn('user-1', 10, 'Attendance check-in', source='attendance')

        report = ledger.verify_balance('user-1')
        assert report['consistent'] is True
        assert report['balance'] == 2450 - 600 + 10


class TestCancel:
    """Tests for RedemptionService.cancel_request."""

    def test_member_cancels_own_request(self, app, redemption_service, ledger, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']

        result = redemption_service.cancel_request(created['id'], 'user-1')

        assert result['success'] is True
        assert result['request']['status'] == 'cancelled'
        assert ledger.get_balance('user-1') == 2450
        assert redemption_service.get_pending_request(created['verification_code'])['success'] is False

    def test_other_member_cannot_cancel(self, app, redemption_service, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']

        result = redemption_service.cancel_request(created['id'], 'user-2')

        assert result['error_code'] == 'FORBIDDEN'
        assert status_of(created['id']) == 'pending'

    def test_staff_can_cancel(self, app, redemption_service, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']

        result = redemption_service.cancel_request(created['id'], 'staff-7', is_staff=True)
        assert result['success'] is True

    def test_cancel_after_confirm_loses(self, app, redemption_service, ledger, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']
        redemption_service.confirm_usage(created['verification_code'], 'staff-7')

        result = redemption_service.cancel_request(created['id'], 'user-1')

        assert result['error_code'] == 'ALREADY_CONFIRMED'
        assert status_of(created['id']) == 'confirmed'
        assert ledger.get_balance('user-1') == 1950

    def test_cancel_twice(self, app, redemption_service, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']
        redemption_service.cancel_request(created['id'], 'user-1')

        result = redemption_service.cancel_request(created['id'], 'user-1')
        assert result['error_code'] == 'CANCELLED'

    def test_cancel_stale_request(self, app, redemption_service, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']
        clock.advance(minutes=10)

        result = redemption_service.cancel_request(created['id'], 'user-1')

        assert result['error_code'] == 'EXPIRED'
        assert status_of(created['id']) == 'expired'

    def test_cancel_that_updates_no_row_fails(self, app, redemption_service, sample_account, clock):
        created = redemption_service.create_usage_request('user-1', 500)['request']

        with patch.object(db.session, 'execute', return_value=MagicMock(rowcount=0)):
            result = redemption_service.cancel_request(created['id'], 'user-1')

        assert result['success'] is False
        assert result['error_code'] == 'STORAGE_ERROR'
        assert status_of(created['id']) == 'pending'

    def test_cancel_unknown_request(self, app, redemption_service):
        assert redemption_service.cancel_request(999, 'user-1')['error_code'] == 'NOT_FOUND'


class TestPendingAndSweep:
    """Tests for member pending list and the expiry sweep."""

    def test_pending_list_newest_first(self, app, redemption_service, sample_account, clock):
        first = redemption_service.create_usage_request('user-1', 100)['request']
        clock.advance(minutes=1)
        second = redemption_service.create_usage_request('user-1', 200)['request']

        result = redemption_service.get_member_pending_requests('user-1')

        assert result['count'] == 2
        assert [r['id'] for r in result['requests']] == [second['id'], first['id']]

    def test_pending_list_drops_stale(self, app, redemption_service, sample_account, clock):
        stale = redemption_service.create_usage_request('user-1', 100)['request']
        clock.advance(minutes=4)
        live = redemption_service.create_usage_request('user-1', 200)['request']
        clock.advance(minutes=2)

        result = redemption_service.get_member_pending_requests('user-1')

        assert [r['id'] for r in result['requests']] == [live['id']]
        assert status_of(stale['id']) == 'expired'

    def test_sweep_expires_only_stale(self, app, redemption_service, sample_account, clock):
        stale = redemption_service.create_usage_request('user-1', 100)['request']
        clock.advance(minutes=4)
        live = redemption_service.create_usage_request('user-1', 200)['request']
        clock.advance(minutes=2)

        result = redemption_service.sweep_expired()

        assert result == {'success': True, 'expired': 1}
        assert status_of(stale['id']) == 'expired'
        assert status_of(live['id']) == 'pending'


class TestCodeUniqueness:
    """Only one pending request may hold a given code."""

    def test_pending_codes_are_distinct(self, app, redemption_service, sample_account, clock):
        codes = [
            redemption_service.create_usage_request('user-1', 10)['request']['verification_code']
            for _ in range(20)
        ]
        assert len(set(codes)) == 20

    def test_exhausted_code_space(self, app, services, redemption_service, sample_account, clock):
        services['store'].code_generator = CodeGenerator(
            length=1, alphabet='AB', max_attempts=3, rng=CyclingRng('AB')
        )
        assert redemption_service.create_usage_request('user-1', 10)['success']
        assert redemption_service.create_usage_request('user-1', 10)['success']

        result = redemption_service.create_usage_request('user-1', 10)

        assert result['success'] is False
        assert result['error_code'] == 'CODE_SPACE_EXHAUSTED'
        assert RedemptionRequest.query.count() == 2

    def test_code_reused_after_holder_leaves_pending(self, app, services, redemption_service, sample_account, clock):
        services['store'].code_generator = CodeGenerator(
            length=1, alphabet='AB', max_attempts=3, rng=CyclingRng('A')
        )
        first = redemption_service.create_usage_request('user-1', 10)['request']
        redemption_service.cancel_request(first['id'], 'user-1')

        second = redemption_service.create_usage_request('user-1', 20)['request']

        assert second['verification_code'] == first['verification_code'] == 'A'
        preview = redemption_service.get_pending_request('A')
        assert preview['request']['id'] == second['id']

        confirmed = redemption_service.confirm_usage('A', 'staff-7')
        assert confirmed['request']['id'] == second['id']
        assert redemption_service.confirm_usage('A', 'staff-7')['error_code'] == 'ALREADY_CONFIRMED'

    def test_insert_collision_is_redrawn(self, app, services, redemption_service, sample_account, clock):
        """A code taken by another worker between draw and commit is redrawn."""
        store = services['store']
        store.code_generator = CodeGenerator(length=1, alphabet='AB', rng=CyclingRng('A'))
        redemption_service.create_usage_request('user-1', 10)

        store.code_generator = CodeGenerator(length=1, alphabet='AB', rng=CyclingRng('AB'))
        with patch.object(store, 'pending_codes', return_value=set()):
            result = redemption_service.create_usage_request('user-1', 10)

        assert result['success'] is True
        assert result['request']['verification_code'] == 'B'


class TestConcurrency:
    """Races between staff terminals and the member app."""

    def _setup(self, app, amount=500):
        services = app.extensions['fitpoints']
        install_clock(app, FakeClock())
        services['ledger'].create_account('user-1', 'Kim Minji')
        services['ledger'].earn('user-1', 2450, 'Opening balance')
        created = services['redemptions'].create_usage_request('user-1', amount)['request']
        db.session.remove()
        return services, created

    def _in_context(self, app, fn, *args, **kwargs):
        with app.app_context():
            return fn(*args, **kwargs)

    def test_concurrent_confirms_debit_once(self, file_app):
        services, created = self._setup(file_app)
        service = services['redemptions']

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(
                lambda i: self._in_context(file_app, service.confirm_usage, created['verification_code'], f'staff-{i}'),
                range(8),
            ))

        assert sum(1 for r in results if r['success']) == 1
        assert {r['error_code'] for r in results if not r['success']} == {'ALREADY_CONFIRMED'}
        assert services['ledger'].get_balance('user-1') == 1950
        assert services['ledger'].count_transactions('user-1', transaction_type='spend') == 1

    def test_confirm_races_cancel(self, file_app):
        services, created = self._setup(file_app)
        service = services['redemptions']

        with ThreadPoolExecutor(max_workers=2) as pool:
            confirm = pool.submit(self._in_context, file_app, service.confirm_usage,
                                  created['verification_code'], 'staff-7')
            cancel = pool.submit(self._in_context, file_app, service.cancel_request,
                                 created['id'], 'user-1')
            confirm_result, cancel_result = confirm.result(), cancel.result()

        assert confirm_result['success'] != cancel_result['success']

        final = db.session.get(RedemptionRequest, created['id']).status
        balance = services['ledger'].get_balance('user-1')
        if confirm_result['success']:
            assert final == 'confirmed'
            assert cancel_result['error_code'] == 'ALREADY_CONFIRMED'
            assert balance == 1950
        else:
            assert final == 'cancelled'
            assert confirm_result['error_code'] == 'CANCELLED'
            assert balance == 2450

    def test_concurrent_requests_get_distinct_codes(self, file_app):
        services, _ = self._setup(file_app, amount=10)
        service = services['redemptions']

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(
                lambda _: self._in_context(file_app, service.create_usage_request, 'user-1', 10),
                range(12),
            ))

        codes = [r['request']['verification_code'] for r in results]
        assert all(r['success'] for r in results)
        assert len(set(codes)) == len(codes)

    def test_concurrent_earns_and_confirm_keep_ledger_consistent(self, file_app):
        services, created = self._setup(file_app)
        ledger = services['ledger']
        service = services['redemptions']

        def check_in(i):
            with file_app.app_context():
                ledger.earn('user-1', 10, f'Attendance check-in #{i}', source='attendance')

        with ThreadPoolExecutor(max_workers=8) as pool:
            earns = [pool.submit(check_in, i) for i in range(20)]
            confirm = pool.submit(self._in_context, file_app, service.confirm_usage,
                                  created['verification_code'], 'staff-7')
            for future in earns:
                future.result()
            confirm_result = confirm.result()

        assert confirm_result['success'] is True

        report = ledger.verify_balance('user-1')
        assert report['consistent'] is True
        assert report['balance'] == 2450 + 20 * 10 - 500
        assert ledger.count_transactions('user-1', transaction_type='earn') == 21
        assert ledger.count_transactions('user-1', transaction_type='spend') == 1
