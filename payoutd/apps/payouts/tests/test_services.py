import uuid
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from apps.payouts.models import EarningStatus, PayoutStatus
from apps.payouts.services import (
    PayoutNotFoundError,
    PayoutValidationError,
    available_balance,
    earnings_summary,
    find_submittable_payouts,
    get_payout,
    mark_failed,
    mark_processing,
    record_submission,
    validate_bank_details,
)

from .factories import make_earning, make_payout


class PayoutTransitionTests(TestCase):

    def test_mark_processing_moves_requested_and_keeps_processing(self):
        requested = make_payout(status=PayoutStatus.REQUESTED)
        processing = make_payout()

        self.assertTrue(mark_processing(requested.id))
        self.assertTrue(mark_processing(processing.id))
        requested.refresh_from_db()
        self.assertEqual(requested.status, PayoutStatus.PROCESSING)

    def test_mark_processing_does_not_touch_final_states(self):
        failed = make_payout(status=PayoutStatus.FAILED)
        completed = make_payout(status=PayoutStatus.COMPLETED)

        self.assertFalse(mark_processing(failed.id))
        self.assertFalse(mark_processing(completed.id))
        completed.refresh_from_db()
        self.assertEqual(completed.status, PayoutStatus.COMPLETED)

    def test_record_submission_only_first_reference_wins(self):
        payout = make_payout()

        self.assertTrue(record_submission(payout.id, 'REF-1', {'status': 'NEW'}))
        self.assertFalse(record_submission(payout.id, 'REF-2', {'status': 'NEW'}))
        payout.refresh_from_db()
        self.assertEqual(payout.transaction_ref, 'REF-1')
        self.assertEqual(payout.metadata, {'status': 'NEW'})
        self.assertEqual(payout.status, PayoutStatus.PROCESSING)

    def test_mark_failed_sets_reason_and_processed_at(self):
        payout = make_payout()

        self.assertTrue(mark_failed(payout.id, 'x' * 900))
        payout.refresh_from_db()
        self.assertEqual(payout.status, PayoutStatus.FAILED)
        self.assertEqual(len(payout.failure_reason), 500)
        self.assertIsNotNone(payout.processed_at)

    def test_mark_failed_never_overrides_completed(self):
        payout = make_payout(status=PayoutStatus.COMPLETED)

        self.assertFalse(mark_failed(payout.id, 'late failure'))
        payout.refresh_from_db()
        self.assertEqual(payout.status, PayoutStatus.COMPLETED)
        self.assertIsNone(payout.failure_reason)

    def test_get_payout_missing(self):
        with self.assertRaises(PayoutNotFoundError):
            get_payout(uuid.uuid4())


class SubmittableQueryTests(TestCase):

    def test_only_processing_without_reference_oldest_first(self):
        now = timezone.now()
        newer = make_payout(created_at=now - timedelta(minutes=1))
        older = make_payout(created_at=now - timedelta(minutes=10))
        make_payout(transaction_ref='ALREADY-SENT', created_at=now - timedelta(minutes=20))
        make_payout(status=PayoutStatus.REQUESTED, created_at=now - timedelta(minutes=30))
        make_payout(status=PayoutStatus.FAILED, created_at=now - timedelta(minutes=40))

        result = find_submittable_payouts(50)

        self.assertEqual([p.id for p in result], [older.id, newer.id])

    def test_limit(self):
        for _ in range(3):
            make_payout()
        self.assertEqual(len(find_submittable_payouts(2)), 2)


class BankDetailsValidationTests(TestCase):

    def test_complete_details_pass(self):
        validate_bank_details(make_payout())

    def test_missing_account_number(self):
        payout = make_payout(account_number='')
        with self.assertRaises(PayoutValidationError) as ctx:
            validate_bank_details(payout)
        self.assertIn('Incomplete bank details', str(ctx.exception))
        self.assertIn('account number', str(ctx.exception))

    def test_whitespace_only_counts_as_missing(self):
        payout = make_payout(bank_code='   ', account_name='')
        with self.assertRaises(PayoutValidationError) as ctx:
            validate_bank_details(payout)
        self.assertIn('bank code', str(ctx.exception))
        self.assertIn('account name', str(ctx.exception))


class EarningAggregationTests(TestCase):

    def setUp(self):
        self.provider_id = uuid.uuid4()
        make_earning(self.provider_id, '1000.00', EarningStatus.AVAILABLE)
        make_earning(self.provider_id, '500.00', EarningStatus.AVAILABLE)
        make_earning(self.provider_id, '250.00', EarningStatus.PENDING_CLEARANCE)
        make_earning(self.provider_id, '300.00', EarningStatus.PAID_OUT)
        make_earning(uuid.uuid4(), '999.00', EarningStatus.AVAILABLE)

    def test_available_balance_excludes_earnings_attached_to_a_payout(self):
        payout = make_payout(provider_id=self.provider_id)
        make_earning(self.provider_id, '700.00', EarningStatus.AVAILABLE, payout=payout)

        self.assertEqual(available_balance(self.provider_id), Decimal('1500.00'))

    def test_summary(self):
        summary = earnings_summary(self.provider_id)

        self.assertEqual(summary['lifetime'], Decimal('2050.00'))
        self.assertEqual(summary['available'], Decimal('1500.00'))
        self.assertEqual(summary['pending_clearance'], Decimal('250.00'))
        self.assertEqual(summary['paid_out'], Decimal('300.00'))

    def test_summary_for_unknown_provider_is_zero(self):
        summary = earnings_summary(uuid.uuid4())
        self.assertEqual(summary['lifetime'], Decimal('0'))
