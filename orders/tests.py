"""
Test suite for Orders module
Tests: repository transitions, in-memory store, staff payment status override
"""
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from orders.models import Order
from orders.repository import DjangoOrderRepository, InMemoryOrderRepository
from orders.signals import payment_status_changed
from orders.test_utils import TestDataFactory


class DjangoOrderRepositoryTests(TestCase):
    """Test the ORM-backed repository"""

    def setUp(self):
        self.repository = DjangoOrderRepository()
        self.order = TestDataFactory.create_order(checkout_request_id='ws_CO_001')

    def test_find_by_checkout_id(self):
        found = self.repository.find_by_checkout_id('ws_CO_001')
        self.assertEqual(found.pk, self.order.pk)
        self.assertIsNone(self.repository.find_by_checkout_id('ws_CO_missing'))

    def test_find_by_order_id(self):
        found = self.repository.find_by_order_id(self.order.order_number)
        self.assertEqual(found.pk, self.order.pk)
        self.assertIsNone(self.repository.find_by_order_id('TW-MISSING'))

    def test_update_status_from_pending(self):
        applied = self.repository.update_status('ws_CO_001', Order.COMPLETED, {'amount': 500})
        self.assertTrue(applied)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.COMPLETED)
        self.assertEqual(self.order.payment_metadata, {'amount': 500})

    def test_update_status_only_once(self):
        """A finalized order keeps its first terminal status"""
        self.assertTrue(self.repository.update_status('ws_CO_001', Order.COMPLETED, {'amount': 500}))
        self.assertFalse(self.repository.update_status('ws_CO_001', Order.FAILED, {'error': 'late'}))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.COMPLETED)
        self.assertEqual(self.order.payment_metadata, {'amount': 500})

    def test_update_status_unknown_checkout_id(self):
        self.assertFalse(self.repository.update_status('ws_CO_missing', Order.COMPLETED, {}))

    def test_attach_checkout_request_resets_failed_order(self):
        self.repository.update_status('ws_CO_001', Order.FAILED, {'error': 'Request cancelled by user'})
        order = self.repository.attach_checkout_request(self.order.order_number, 'ws_CO_002')
        self.assertEqual(order.checkout_request_id, 'ws_CO_002')
        self.assertEqual(order.payment_status, Order.PENDING)
        self.assertEqual(order.payment_metadata, {})

    def test_attach_checkout_request_skips_paid_order(self):
        self.repository.update_status('ws_CO_001', Order.COMPLETED, {'amount': 500})
        self.assertIsNone(self.repository.attach_checkout_request(self.order.order_number, 'ws_CO_002'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.checkout_request_id, 'ws_CO_001')

    def test_set_payment_status_overrides_terminal_state(self):
        self.repository.update_status('ws_CO_001', Order.FAILED, {'error': 'timeout'})
        order = self.repository.set_payment_status(self.order.order_number, Order.COMPLETED)
        self.assertEqual(order.payment_status, Order.COMPLETED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.COMPLETED)

    def test_set_payment_status_missing_order(self):
        self.assertIsNone(self.repository.set_payment_status('TW-MISSING', Order.COMPLETED))


class InMemoryOrderRepositoryTests(TestCase):
    """The in-memory repository behaves like the ORM one"""

    def setUp(self):
        self.order = TestDataFactory.build_order(order_number='TW-MEM-1', checkout_request_id='ws_CO_mem')
        self.repository = InMemoryOrderRepository([self.order])

    def test_lookups(self):
        self.assertIs(self.repository.find_by_order_id('TW-MEM-1'), self.order)
        self.assertIs(self.repository.find_by_checkout_id('ws_CO_mem'), self.order)
        self.assertIsNone(self.repository.find_by_checkout_id('ws_CO_other'))

    def test_update_status_guard(self):
        self.assertTrue(self.repository.update_status('ws_CO_mem', Order.FAILED, {'error': 'Insufficient funds'}))
        self.assertFalse(self.repository.update_status('ws_CO_mem', Order.COMPLETED, {'amount': 1}))
        self.assertEqual(self.order.payment_status, Order.FAILED)
        self.assertEqual(self.order.payment_metadata, {'error': 'Insufficient funds'})

    def test_attach_and_override(self):
        order = self.repository.attach_checkout_request('TW-MEM-1', 'ws_CO_new')
        self.assertEqual(order.checkout_request_id, 'ws_CO_new')
        self.assertIsNone(self.repository.attach_checkout_request('TW-MISSING', 'ws_CO_x'))
        order = self.repository.set_payment_status('TW-MEM-1', Order.COMPLETED)
        self.assertEqual(order.payment_status, Order.COMPLETED)

    def test_does_not_touch_database(self):
        self.repository.update_status('ws_CO_mem', Order.COMPLETED, {})
        self.assertFalse(Order.objects.exists())


class OrderPaymentStatusViewTests(TestCase):
    """Test PATCH /api/orders/<orderId>/payment-status"""

    def setUp(self):
        self.order = TestDataFactory.create_order(order_number='TW-0001', checkout_request_id='ws_CO_001')
        self.url = '/api/orders/TW-0001/payment-status'
        self.client = APIClient()
        self.staff = TestDataFactory.create_user(is_staff=True)

    def test_staff_can_override_status(self):
        self.client.force_authenticate(user=self.staff)
        response = self.client.patch(self.url, {'status': 'completed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['orderId'], 'TW-0001')
        self.assertEqual(response.data['data']['paymentStatus'], 'completed')
        self.assertIn('updatedAt', response.data['data'])
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.COMPLETED)

    def test_override_sends_signal(self):
        received = []

        def handler(sender, order, status, **kwargs):
            received.append((order.order_number, status))

        payment_status_changed.connect(handler)
        try:
            self.client.force_authenticate(user=self.staff)
            self.client.patch(self.url, {'status': 'failed'}, format='json')
        finally:
            payment_status_changed.disconnect(handler)
        self.assertEqual(received, [('TW-0001', 'failed')])

    def test_invalid_status(self):
        self.client.force_authenticate(user=self.staff)
        response = self.client.patch(self.url, {'status': 'refunded'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'INVALID_STATUS')

    def test_unknown_order(self):
        self.client.force_authenticate(user=self.staff)
        response = self.client.patch('/api/orders/TW-9999/payment-status', {'status': 'completed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'ORDER_NOT_FOUND')

    def test_customer_is_denied(self):
        self.client.force_authenticate(user=TestDataFactory.create_user())
        response = self.client.patch(self.url, {'status': 'completed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error']['code'], 'ACCESS_DENIED')

    def test_anonymous_is_rejected(self):
        response = self.client.patch(self.url, {'status': 'completed'}, format='json')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
        self.assertEqual(response.data['error']['code'], 'NOT_AUTHENTICATED')
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PENDING)

    def test_wrong_method(self):
        self.client.force_authenticate(user=self.staff)
        response = self.client.post(self.url, {'status': 'completed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertEqual(response.data['error']['code'], 'METHOD_NOT_ALLOWED')
        self.assertEqual(response.data['error']['message'], 'Only PATCH method is allowed')
