from decimal import Decimal
from unittest import mock

import requests
from django.test import SimpleTestCase, override_settings

from apps.payments.gateways import (
    BankDetails,
    DuplicateReferenceError,
    FlutterwaveAdapter,
    GatewayConfigurationError,
    GatewayRejectedError,
    GatewayTransientError,
    TransferRequest,
    UnsupportedProviderError,
    get_gateway,
)


def response(status_code=200, body=None):
    resp = mock.Mock(status_code=status_code, text=str(body))
    resp.json.return_value = body
    return resp


def transfer_request(**overrides):
    values = {
        'amount': Decimal('25000.00'),
        'currency': 'NGN',
        'bank_details': BankDetails(account_number='0123456789', bank_code='044', account_name='Ada Obi'),
        'reference': 'b4c1a6f0-payout',
    }
    values.update(overrides)
    return TransferRequest(**values)


@mock.patch('apps.payments.gateways.flutterwave.requests.request')
class FlutterwaveTransferTests(SimpleTestCase):

    def test_initiate_transfer(self, request):
        request.return_value = response(200, {
            'status': 'success',
            'message': 'Transfer Queued Successfully',
            'data': {'id': 4200, 'reference': 'b4c1a6f0-payout', 'status': 'NEW'},
        })

        result = FlutterwaveAdapter().initiate_transfer(transfer_request())

        self.assertEqual(result.reference_id, 'b4c1a6f0-payout')
        self.assertEqual(result.gateway_status, 'NEW')
        self.assertEqual(result.transfer_id, '4200')
        method, url = request.call_args[0]
        kwargs = request.call_args[1]
        self.assertEqual((method, url), ('POST', 'https://api.flutterwave.com/v3/transfers'))
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer FLWSECK_TEST-unit')
        self.assertEqual(kwargs['timeout'], (5, 30))
        payload = kwargs['json']
        self.assertEqual(payload['account_bank'], '044')
        self.assertEqual(payload['account_number'], '0123456789')
        self.assertEqual(payload['amount'], '25000.00')
        self.assertEqual(payload['debit_currency'], 'NGN')
        self.assertEqual(payload['reference'], 'b4c1a6f0-payout')
        self.assertEqual(payload['narration'], 'Payout to Ada Obi')
        self.assertEqual(payload['callback_url'], 'https://payouts.test/api/webhooks/flutterwave/payout-status')

    @override_settings(FLUTTERWAVE_SECRET_KEY=None)
    def test_missing_secret_fails_at_call_time(self, request):
        adapter = FlutterwaveAdapter()

        with self.assertRaises(GatewayConfigurationError):
            adapter.initiate_transfer(transfer_request())
        request.assert_not_called()

    def test_server_error_is_transient(self, request):
        request.return_value = response(502, {'message': 'Bad gateway'})

        with self.assertRaises(GatewayTransientError) as ctx:
            FlutterwaveAdapter().initiate_transfer(transfer_request())
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertTrue(ctx.exception.retryable)

    def test_rate_limit_is_transient(self, request):
        request.return_value = response(429, {'message': 'Too many requests'})

        with self.assertRaises(GatewayTransientError):
            FlutterwaveAdapter().initiate_transfer(transfer_request())

    def test_client_error_is_rejection(self, request):
        request.return_value = response(400, {'status': 'error', 'message': 'Account number is invalid'})

        with self.assertRaises(GatewayRejectedError) as ctx:
            FlutterwaveAdapter().initiate_transfer(transfer_request())
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn('Account number is invalid', str(ctx.exception))
        self.assertFalse(ctx.exception.retryable)

    def test_amount_keeps_two_decimal_places(self, request):
        request.return_value = response(200, {'status': 'success', 'data': {'id': 1, 'status': 'NEW'}})

        FlutterwaveAdapter().initiate_transfer(transfer_request(amount=Decimal('1234.5')))

        self.assertEqual(request.call_args[1]['json']['amount'], '1234.50')

    def test_duplicate_reference_is_reported_separately(self, request):
        request.return_value = response(400, {
            'status': 'error', 'message': 'Transfer with this reference already exists',
        })

        with self.assertRaises(DuplicateReferenceError) as ctx:
            FlutterwaveAdapter().initiate_transfer(transfer_request())
        self.assertFalse(ctx.exception.retryable)

    def test_unsuccessful_body_is_rejection(self, request):
        request.return_value = response(200, {'status': 'error', 'message': 'Insufficient balance'})

        with self.assertRaises(GatewayRejectedError) as ctx:
            FlutterwaveAdapter().initiate_transfer(transfer_request())
        self.assertIn('unsuccessful: Insufficient balance', str(ctx.exception))

    def test_timeout_is_transient(self, request):
        request.side_effect = requests.Timeout('read timed out')

        with self.assertRaises(GatewayTransientError) as ctx:
            FlutterwaveAdapter().initiate_transfer(transfer_request())
        self.assertIn('timed out', str(ctx.exception))

    def test_connection_error_is_transient(self, request):
        request.side_effect = requests.ConnectionError('dns failure')

        with self.assertRaises(GatewayTransientError):
            FlutterwaveAdapter().initiate_transfer(transfer_request())


@mock.patch('apps.payments.gateways.flutterwave.requests.request')
class FlutterwaveLookupTests(SimpleTestCase):

    def test_verify_transaction(self, request):
        request.return_value = response(200, {
            'status': 'success',
            'data': {'id': 99, 'tx_ref': 'ref-1', 'amount': 1500, 'currency': 'NGN', 'status': 'successful'},
        })

        verified = FlutterwaveAdapter().verify_transaction('99')

        self.assertEqual(request.call_args[0], ('GET', 'https://api.flutterwave.com/v3/transactions/99/verify'))
        self.assertEqual(verified.status, 'success')
        self.assertEqual(verified.amount, Decimal('1500'))
        self.assertEqual(verified.reference, 'ref-1')

    def test_find_transfer_by_reference(self, request):
        request.return_value = response(200, {
            'status': 'success',
            'data': [
                {'id': 7, 'reference': 'other-ref', 'status': 'SUCCESSFUL'},
                {'id': 4200, 'reference': 'b4c1a6f0-payout', 'status': 'PENDING'},
            ],
        })

        found = FlutterwaveAdapter().find_transfer('b4c1a6f0-payout')

        self.assertEqual(request.call_args[0], ('GET', 'https://api.flutterwave.com/v3/transfers'))
        self.assertEqual(request.call_args[1]['params'], {'reference': 'b4c1a6f0-payout'})
        self.assertEqual((found.reference_id, found.transfer_id, found.gateway_status), ('b4c1a6f0-payout', '4200', 'PENDING'))

    def test_find_transfer_missing(self, request):
        request.return_value = response(200, {'status': 'success', 'data': []})

        self.assertIsNone(FlutterwaveAdapter().find_transfer('b4c1a6f0-payout'))

    def test_verify_failed_transaction(self, request):
        request.return_value = response(200, {'status': 'success', 'data': {'id': 99, 'status': 'failed'}})

        self.assertEqual(FlutterwaveAdapter().verify_transaction('99').status, 'failed')

    def test_resolve_account_number(self, request):
        request.return_value = response(200, {
            'status': 'success',
            'data': {'account_number': '0123456789', 'account_name': 'ADA OBI'},
        })

        account = FlutterwaveAdapter().resolve_account_number('0123456789', '044')

        self.assertEqual(account.account_name, 'ADA OBI')
        self.assertEqual(request.call_args[1]['json'], {'account_number': '0123456789', 'account_bank': '044'})

    def test_list_banks(self, request):
        request.return_value = response(200, {
            'status': 'success',
            'data': [{'code': '044', 'name': 'Access Bank'}, {'code': '058', 'name': 'GTBank'}],
        })

        banks = FlutterwaveAdapter().list_banks('NG')

        self.assertEqual([(b.code, b.name) for b in banks], [('044', 'Access Bank'), ('058', 'GTBank')])
        self.assertEqual(request.call_args[0][1], 'https://api.flutterwave.com/v3/banks/NG')


class GatewayRegistryTests(SimpleTestCase):

    def test_flutterwave(self):
        self.assertIsInstance(get_gateway('FLUTTERWAVE'), FlutterwaveAdapter)

    def test_paystack_has_no_adapter(self):
        with self.assertRaises(UnsupportedProviderError):
            get_gateway('PAYSTACK')
