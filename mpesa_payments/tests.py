"""
Test suite for M-Pesa payments module
Tests: callback decoding, callback endpoint, payment status polling, STK push initiation
"""
from unittest import mock

from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from mpesa_payments.models import MpesaCallback
from mpesa_payments.outcome import MalformedCallback, map_stk_callback, parse_callback_envelope
from mpesa_payments.services import normalize_phone_number, parse_amount, process_stk_callback
from mpesa_payments.views import InitiateSTKPushView, MpesaCallbackView, PaymentStatusView
from orders.models import Order
from orders.repository import InMemoryOrderRepository
from orders.signals import payment_status_changed
from orders.test_utils import TestDataFactory

CALLBACK_URL = '/api/payments/mpesa/callback'
STATUS_URL = '/api/payments/mpesa/status'
INITIATE_URL = '/api/payments/mpesa/initiate'


def stk(payload):
    return payload['Body']['stkCallback']


class BrokenRepository(InMemoryOrderRepository):
    def update_status(self, checkout_request_id, status, metadata):
        raise RuntimeError('database is locked')

    def find_by_order_id(self, order_id):
        raise RuntimeError('database is locked')


class RelinkingRepository(InMemoryOrderRepository):
    """The order moves to a new STK push right after the status write."""

    def find_by_checkout_id(self, checkout_request_id):
        return None


class PaymentOutcomeMappingTests(SimpleTestCase):
    """Test map_stk_callback and parse_callback_envelope"""

    def test_success_populates_metadata(self):
        payload = TestDataFactory.stk_callback('ws_CO_1', items=TestDataFactory.receipt_items())
        outcome = map_stk_callback(stk(payload))
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.checkout_request_id, 'ws_CO_1')
        self.assertEqual(outcome.merchant_request_id, '29115-34620561-1')
        self.assertEqual(outcome.amount, 500)
        self.assertEqual(outcome.receipt_number, 'QGR7XXXX')
        self.assertEqual(outcome.transaction_date, '20240615102115')
        self.assertEqual(outcome.phone_number, '254708374149')
        self.assertIsNone(outcome.failure_reason)
        self.assertEqual(outcome.payment_metadata(), {
            'amount': 500,
            'mpesaReceiptNumber': 'QGR7XXXX',
            'transactionDate': '20240615102115',
            'phoneNumber': '254708374149',
        })

    def test_unrecognized_names_are_ignored(self):
        items = [
            {'Name': 'Amount', 'Value': 1.0},
            {'Name': 'Balance', 'Value': 1200},
            {'Name': 'LoyaltyPoints', 'Value': 'gold'},
            'not-an-item',
        ]
        outcome = map_stk_callback(stk(TestDataFactory.stk_callback('ws_CO_1', items=items)))
        self.assertEqual(outcome.payment_metadata(), {'amount': 1.0})

    def test_amount_is_coerced_to_number(self):
        items = [{'Name': 'Amount', 'Value': '750'}]
        outcome = map_stk_callback(stk(TestDataFactory.stk_callback('ws_CO_1', items=items)))
        self.assertEqual(outcome.amount, 750)

    def test_malformed_values_leave_fields_unset(self):
        items = [
            {'Name': 'Amount', 'Value': 'five hundred'},
            {'Name': 'MpesaReceiptNumber'},
        ]
        outcome = map_stk_callback(stk(TestDataFactory.stk_callback('ws_CO_1', items=items)))
        self.assertIsNone(outcome.amount)
        self.assertIsNone(outcome.receipt_number)
        self.assertEqual(outcome.payment_metadata(), {})

    def test_missing_or_odd_metadata(self):
        outcome = map_stk_callback(stk(TestDataFactory.stk_callback('ws_CO_1')))
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.payment_metadata(), {})

        payload = TestDataFactory.stk_callback('ws_CO_1')
        stk(payload)['CallbackMetadata'] = {'Item': 'Amount=500'}
        self.assertEqual(map_stk_callback(stk(payload)).payment_metadata(), {})

    def test_failure_carries_description(self):
        payload = TestDataFactory.stk_callback(
            'ws_CO_1', result_code=1032, result_desc='Request cancelled by user',
            items=TestDataFactory.receipt_items(),
        )
        outcome = map_stk_callback(stk(payload))
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.result_code, 1032)
        self.assertEqual(outcome.failure_reason, 'Request cancelled by user')
        self.assertEqual(outcome.payment_metadata(), {'error': 'Request cancelled by user'})

    def test_result_code_as_string(self):
        outcome = map_stk_callback({'CheckoutRequestID': 'ws_CO_1', 'ResultCode': '0'})
        self.assertTrue(outcome.success)

    def test_non_finite_amount_is_left_unset(self):
        for value in ('NaN', 'inf', '-Infinity', '1e400', float('nan'), float('inf')):
            with self.subTest(value=value):
                items = [
                    {'Name': 'Amount', 'Value': value},
                    {'Name': 'MpesaReceiptNumber', 'Value': 'QGR7XXXX'},
                ]
                outcome = map_stk_callback(stk(TestDataFactory.stk_callback('ws_CO_1', items=items)))
                self.assertIsNone(outcome.amount)
                self.assertEqual(outcome.payment_metadata(), {'mpesaReceiptNumber': 'QGR7XXXX'})

    def test_fractional_result_code_is_not_success(self):
        for code in (0.5, -0.5, 1e-9):
            with self.subTest(code=code):
                outcome = map_stk_callback({'CheckoutRequestID': 'ws_CO_1', 'ResultCode': code})
                self.assertFalse(outcome.success)
                self.assertIsNone(outcome.result_code)
                with self.assertRaises(MalformedCallback):
                    parse_callback_envelope({'Body': {'stkCallback': {'CheckoutRequestID': 'ws_CO_1', 'ResultCode': code}}})

    def test_integral_float_result_code(self):
        outcome = map_stk_callback({'CheckoutRequestID': 'ws_CO_1', 'ResultCode': 0.0})
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.result_code, 0)

    def test_mapper_never_raises_on_empty_input(self):
        outcome = map_stk_callback({})
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.checkout_request_id, '')

    def test_envelope_returns_stk_callback(self):
        payload = TestDataFactory.stk_callback('ws_CO_1')
        self.assertIs(parse_callback_envelope(payload), stk(payload))

    def test_envelope_rejects_malformed_bodies(self):
        bad_payloads = [
            None,
            [],
            {},
            {'Body': 'stkCallback'},
            {'Body': {'stkCallback': {'ResultCode': 0}}},
            {'Body': {'stkCallback': {'CheckoutRequestID': 'ws_CO_1'}}},
            {'Body': {'stkCallback': {'CheckoutRequestID': 'ws_CO_1', 'ResultCode': 'ok'}}},
        ]
        for payload in bad_payloads:
            with self.subTest(payload=payload):
                with self.assertRaises(MalformedCallback):
                    parse_callback_envelope(payload)


class PaymentHelperTests(SimpleTestCase):

    def test_normalize_phone_number(self):
        self.assertEqual(normalize_phone_number('0712345678'), '254712345678')
        self.assertEqual(normalize_phone_number('+254 712 345 678'), '254712345678')
        self.assertEqual(normalize_phone_number('254112345678'), '254112345678')
        self.assertIsNone(normalize_phone_number('0812345678'))
        self.assertIsNone(normalize_phone_number('12345'))

    def test_parse_amount(self):
        self.assertEqual(parse_amount(500), 500)
        self.assertEqual(parse_amount('99.5'), 100)
        self.assertEqual(parse_amount(10.4), 10)
        self.assertIsNone(parse_amount('abc'))
        self.assertIsNone(parse_amount(True))


class MpesaCallbackViewTests(TestCase):
    """Test POST /api/payments/mpesa/callback"""

    def setUp(self):
        self.client = APIClient()
        self.order = TestDataFactory.create_order(order_number='TW-0001', checkout_request_id='ws_CO_001')

    def post_callback(self, payload):
        response = self.client.post(CALLBACK_URL, payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['ResultCode'], 0)
        self.assertIn('ResultDesc', response.data)
        return response

    def test_successful_payment_completes_order(self):
        items = [
            {'Name': 'Amount', 'Value': 500},
            {'Name': 'MpesaReceiptNumber', 'Value': 'QGR7XXXX'},
        ]
        self.post_callback(TestDataFactory.stk_callback('ws_CO_001', items=items))

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.COMPLETED)
        self.assertEqual(self.order.payment_metadata['amount'], 500)
        self.assertEqual(self.order.payment_metadata['mpesaReceiptNumber'], 'QGR7XXXX')

        log = MpesaCallback.objects.get()
        self.assertEqual(log.outcome, MpesaCallback.PROCESSED)
        self.assertEqual(log.checkout_request_id, 'ws_CO_001')
        self.assertEqual(log.result_code, 0)

    def test_cancelled_payment_fails_order(self):
        self.post_callback(TestDataFactory.stk_callback(
            'ws_CO_001', result_code=1032, result_desc='Request cancelled by user',
        ))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.FAILED)
        self.assertEqual(self.order.payment_metadata['error'], 'Request cancelled by user')

    def test_duplicate_delivery_keeps_completed_state(self):
        payload = TestDataFactory.stk_callback('ws_CO_001', items=TestDataFactory.receipt_items())
        self.post_callback(payload)
        self.post_callback(payload)

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.COMPLETED)
        self.assertEqual(self.order.payment_metadata['mpesaReceiptNumber'], 'QGR7XXXX')
        outcomes = sorted(MpesaCallback.objects.values_list('outcome', flat=True))
        self.assertEqual(outcomes, [MpesaCallback.DUPLICATE, MpesaCallback.PROCESSED])

    def test_late_conflicting_callback_is_ignored(self):
        self.post_callback(TestDataFactory.stk_callback('ws_CO_001', items=TestDataFactory.receipt_items()))
        self.post_callback(TestDataFactory.stk_callback('ws_CO_001', result_code=1037, result_desc='DS timeout'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.COMPLETED)

    def test_transition_sends_signal_once(self):
        received = []

        def handler(sender, order, status, **kwargs):
            received.append((order.order_number, status))

        payment_status_changed.connect(handler)
        try:
            payload = TestDataFactory.stk_callback('ws_CO_001', items=TestDataFactory.receipt_items())
            self.post_callback(payload)
            self.post_callback(payload)
        finally:
            payment_status_changed.disconnect(handler)
        self.assertEqual(received, [('TW-0001', Order.COMPLETED)])

    def test_unknown_checkout_id_is_acknowledged(self):
        with self.assertLogs('mpesa_payments.services', level='ERROR'):
            self.post_callback(TestDataFactory.stk_callback('ws_CO_unknown', items=TestDataFactory.receipt_items()))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PENDING)
        self.assertEqual(MpesaCallback.objects.get().outcome, MpesaCallback.UNMATCHED)

    def test_invalid_json_is_acknowledged(self):
        response = self.client.post(CALLBACK_URL, data='{"Body": ', content_type='application/json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['ResultCode'], 0)
        log = MpesaCallback.objects.get()
        self.assertEqual(log.outcome, MpesaCallback.REJECTED)
        self.assertIsNone(log.payload)

    def test_missing_envelope_is_acknowledged(self):
        self.post_callback({'hello': 'world'})
        log = MpesaCallback.objects.get()
        self.assertEqual(log.outcome, MpesaCallback.REJECTED)
        self.assertEqual(log.payload, {'hello': 'world'})
        self.assertIn('stkCallback', log.error_message)

    def test_store_failure_is_acknowledged(self):
        with mock.patch.object(MpesaCallbackView, 'get_order_repository', return_value=BrokenRepository()):
            self.post_callback(TestDataFactory.stk_callback('ws_CO_001', items=TestDataFactory.receipt_items()))
        log = MpesaCallback.objects.get()
        self.assertEqual(log.outcome, MpesaCallback.ERROR)
        self.assertEqual(log.error_message, 'database is locked')
        self.assertEqual(log.checkout_request_id, 'ws_CO_001')

    def test_callback_log_failure_is_swallowed(self):
        with mock.patch('mpesa_payments.views.record_callback', side_effect=RuntimeError('disk full')):
            self.post_callback(TestDataFactory.stk_callback('ws_CO_001'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.COMPLETED)

    def test_non_finite_amount_still_completes_order(self):
        items = [
            {'Name': 'Amount', 'Value': 'NaN'},
            {'Name': 'MpesaReceiptNumber', 'Value': 'QGR7XXXX'},
        ]
        self.post_callback(TestDataFactory.stk_callback('ws_CO_001', items=items))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.COMPLETED)
        self.assertEqual(self.order.payment_metadata, {'mpesaReceiptNumber': 'QGR7XXXX'})
        self.assertEqual(MpesaCallback.objects.get().outcome, MpesaCallback.PROCESSED)

    def test_fractional_result_code_is_rejected(self):
        self.post_callback(TestDataFactory.stk_callback('ws_CO_001', result_code=0.5, result_desc='odd'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PENDING)
        self.assertEqual(MpesaCallback.objects.get().outcome, MpesaCallback.REJECTED)

    def test_order_relinked_during_callback(self):
        order = TestDataFactory.build_order(order_number='TW-MEM', checkout_request_id='ws_CO_mem')
        repository = RelinkingRepository([order])
        received = []

        def handler(sender, order, status, **kwargs):
            received.append(status)

        payment_status_changed.connect(handler)
        try:
            result = process_stk_callback(TestDataFactory.stk_callback('ws_CO_mem'), repository)
        finally:
            payment_status_changed.disconnect(handler)
        self.assertEqual(result, MpesaCallback.PROCESSED)
        self.assertEqual(order.payment_status, Order.COMPLETED)
        self.assertEqual(received, [])

    def test_in_memory_repository(self):
        order = TestDataFactory.build_order(order_number='TW-MEM', checkout_request_id='ws_CO_mem')
        repository = InMemoryOrderRepository([order])
        with mock.patch.object(MpesaCallbackView, 'get_order_repository', return_value=repository):
            self.post_callback(TestDataFactory.stk_callback('ws_CO_mem', result_code=1, result_desc='Insufficient funds'))
        self.assertEqual(order.payment_status, Order.FAILED)
        self.assertEqual(order.payment_metadata, {'error': 'Insufficient funds'})

    def test_get_not_allowed(self):
        response = self.client.get(CALLBACK_URL)
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error']['code'], 'METHOD_NOT_ALLOWED')
        self.assertEqual(response.data['error']['message'], 'Only POST method is allowed')


class PaymentStatusViewTests(TestCase):
    """Test GET /api/payments/mpesa/status"""

    def setUp(self):
        self.client = APIClient()
        self.order = TestDataFactory.create_order(order_number='TW-0001', checkout_request_id='ws_CO_001')

    def test_missing_parameter(self):
        response = self.client.get(STATUS_URL)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error']['code'], 'MISSING_PARAMETER')

    def test_pending_by_order_id(self):
        response = self.client.get(STATUS_URL, {'orderId': 'TW-0001'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        data = response.data['data']
        self.assertEqual(data['orderId'], 'TW-0001')
        self.assertEqual(data['paymentStatus'], 'pending')
        self.assertIn('timestamp', data)
        self.assertNotIn('transactionId', data)
        self.assertNotIn('amount', data)

    def test_completed_by_checkout_request_id(self):
        self.client.post(
            CALLBACK_URL,
            TestDataFactory.stk_callback('ws_CO_001', items=TestDataFactory.receipt_items(amount=1250)),
            format='json',
        )
        response = self.client.get(STATUS_URL, {'checkoutRequestId': 'ws_CO_001'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['orderId'], 'TW-0001')
        self.assertEqual(data['paymentStatus'], 'completed')
        self.assertEqual(data['transactionId'], 'QGR7XXXX')
        self.assertEqual(data['amount'], 1250)

    def test_order_id_takes_precedence(self):
        TestDataFactory.create_order(order_number='TW-0002', checkout_request_id='ws_CO_002')
        response = self.client.get(STATUS_URL, {'orderId': 'TW-0002', 'checkoutRequestId': 'ws_CO_001'})
        self.assertEqual(response.data['data']['orderId'], 'TW-0002')

    def test_unknown_order(self):
        response = self.client.get(STATUS_URL, {'orderId': 'TW-9999'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'ORDER_NOT_FOUND')

    def test_store_failure(self):
        with mock.patch.object(PaymentStatusView, 'get_order_repository', return_value=BrokenRepository()):
            response = self.client.get(STATUS_URL, {'orderId': 'TW-0001'})
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['error']['code'], 'INTERNAL_ERROR')
        self.assertEqual(response.data['error']['details'], 'database is locked')

    def test_post_not_allowed(self):
        response = self.client.post(STATUS_URL, {'orderId': 'TW-0001'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertEqual(response.data['error']['code'], 'METHOD_NOT_ALLOWED')


def daraja_response(raw, **attrs):
    """Stand-in for django_daraja's MpesaResponse"""
    response = mock.Mock(spec=list(attrs) + ['json'])
    for name, value in attrs.items():
        setattr(response, name, value)
    response.json.return_value = raw
    return response


@override_settings(
    BASE_URL='https://shop.example.com/',
    MPESA_CALLBACK_URL='',
    MPESA_CONSUMER_KEY='test-key',
    MPESA_CONSUMER_SECRET='test-secret',
    MPESA_SHORTCODE='174379',
    MPESA_PASSKEY='test-passkey',
)
class InitiateSTKPushViewTests(TestCase):
    """Test POST /api/payments/mpesa/initiate"""

    def setUp(self):
        self.client = APIClient()
        self.order = TestDataFactory.create_order(order_number='TW-0001')
        self.payload = {'phoneNumber': '0712 345 678', 'amount': 499.5, 'orderId': 'TW-0001'}

    @mock.patch('mpesa_payments.views.MpesaClient')
    def test_stk_push_accepted(self, client_class):
        client_class.return_value.stk_push.return_value = daraja_response(
            {'ResponseCode': '0'},
            response_code='0',
            checkout_request_id='ws_CO_191220191020363925',
            response_description='Success. Request accepted for processing',
            customer_message='Success. Request accepted for processing',
        )

        response = self.client.post(INITIATE_URL, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertTrue(data['success'])
        self.assertEqual(data['checkoutRequestId'], 'ws_CO_191220191020363925')
        self.assertEqual(data['responseCode'], '0')
        client_class.return_value.stk_push.assert_called_once_with(
            '254712345678', 500, 'TW-0001', 'Payment for order TW-0001',
            'https://shop.example.com/api/payments/mpesa/callback',
        )
        self.order.refresh_from_db()
        self.assertEqual(self.order.checkout_request_id, 'ws_CO_191220191020363925')
        self.assertEqual(self.order.payment_status, Order.PENDING)

    @override_settings(MPESA_CALLBACK_URL='https://hooks.example.com/mpesa')
    @mock.patch('mpesa_payments.views.MpesaClient')
    def test_explicit_callback_url(self, client_class):
        client_class.return_value.stk_push.return_value = daraja_response(
            {}, response_code='0', checkout_request_id='ws_CO_2',
        )
        self.client.post(INITIATE_URL, dict(self.payload, description='Wine order'), format='json')
        args = client_class.return_value.stk_push.call_args[0]
        self.assertEqual(args[3], 'Wine order')
        self.assertEqual(args[4], 'https://hooks.example.com/mpesa')

    @mock.patch('mpesa_payments.views.MpesaClient')
    def test_stk_push_rejected(self, client_class):
        raw = {'requestId': '1', 'errorCode': '400.002.02', 'errorMessage': 'Bad Request - Invalid Amount'}
        client_class.return_value.stk_push.return_value = daraja_response(
            raw, error_code='400.002.02', error_message='Bad Request - Invalid Amount',
        )
        response = self.client.post(INITIATE_URL, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'MPESA_REQUEST_FAILED')
        self.assertEqual(response.data['error']['message'], 'Bad Request - Invalid Amount')
        self.assertEqual(response.data['error']['details'], raw)
        self.order.refresh_from_db()
        self.assertIsNone(self.order.checkout_request_id)

    @mock.patch('mpesa_payments.views.MpesaClient')
    def test_client_error(self, client_class):
        client_class.return_value.stk_push.side_effect = ConnectionError('sandbox unreachable')
        response = self.client.post(INITIATE_URL, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['error']['code'], 'INTERNAL_ERROR')
        self.assertEqual(response.data['error']['details'], 'sandbox unreachable')

    def test_missing_fields(self):
        response = self.client.post(INITIATE_URL, {'phoneNumber': '0712345678'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'MISSING_FIELDS')

    def test_invalid_phone(self):
        response = self.client.post(INITIATE_URL, dict(self.payload, phoneNumber='+1 555 0100'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'INVALID_PHONE')

    def test_invalid_amount(self):
        for amount in (0, 150001, 'lots'):
            with self.subTest(amount=amount):
                response = self.client.post(INITIATE_URL, dict(self.payload, amount=amount), format='json')
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertEqual(response.data['error']['code'], 'INVALID_AMOUNT')

    def test_unknown_order(self):
        response = self.client.post(INITIATE_URL, dict(self.payload, orderId='TW-9999'), format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'ORDER_NOT_FOUND')

    @override_settings(MPESA_PASSKEY='')
    @mock.patch('mpesa_payments.views.MpesaClient')
    def test_missing_configuration(self, client_class):
        response = self.client.post(INITIATE_URL, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['error']['code'], 'MPESA_CONFIG_MISSING')
        client_class.assert_not_called()

    @mock.patch('mpesa_payments.views.MpesaClient')
    def test_order_paid_while_pushing(self, client_class):
        client_class.return_value.stk_push.return_value = daraja_response(
            {}, response_code='0', checkout_request_id='ws_CO_late',
        )
        order = TestDataFactory.build_order(order_number='TW-0001')
        repository = InMemoryOrderRepository([order])
        with mock.patch.object(repository, 'attach_checkout_request', return_value=None):
            with mock.patch.object(InitiateSTKPushView, 'get_order_repository', return_value=repository):
                response = self.client.post(INITIATE_URL, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error']['code'], 'ORDER_ALREADY_PAID')
        self.assertNotEqual(order.checkout_request_id, 'ws_CO_late')

    def test_get_not_allowed(self):
        response = self.client.get(INITIATE_URL)
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error']['code'], 'METHOD_NOT_ALLOWED')
        self.assertEqual(response.data['error']['message'], 'Only POST method is allowed')

    @mock.patch('mpesa_payments.views.MpesaClient')
    def test_paid_order_is_not_charged_again(self, client_class):
        Order.objects.filter(pk=self.order.pk).update(payment_status=Order.COMPLETED)
        response = self.client.post(INITIATE_URL, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error']['code'], 'ORDER_ALREADY_PAID')
        client_class.return_value.stk_push.assert_not_called()
