"""
Order storage as seen by the payment flow.

Views and services take an OrderRepository instead of touching the ORM so
the backing store can be swapped (the in-memory one is used in tests).
Transitions out of ``pending`` are conditional writes: a callback for an
order that is already completed or failed changes nothing.
"""
import abc
import threading

from django.conf import settings
from django.utils import timezone
from django.utils.module_loading import import_string

from .models import Order

TERMINAL_STATUSES = (Order.COMPLETED, Order.FAILED)
PAYMENT_STATUSES = (Order.PENDING,) + TERMINAL_STATUSES


class OrderRepository(abc.ABC):

    @abc.abstractmethod
    def find_by_checkout_id(self, checkout_request_id):
        """Return the order for a Safaricom CheckoutRequestID, or None."""

    @abc.abstractmethod
    def find_by_order_id(self, order_id):
        """Return the order with this public order number, or None."""

    @abc.abstractmethod
    def attach_checkout_request(self, order_id, checkout_request_id):
        """
        Link a new STK push to the order and put it back to pending.

        Returns the updated order, or None if it does not exist.
        """

    @abc.abstractmethod
    def update_status(self, checkout_request_id, status, metadata):
        """
        Move a pending order to ``status``.

        Returns True if the write was applied, False if no pending order
        matches (unknown id, or already finalized).
        """

    @abc.abstractmethod
    def set_payment_status(self, order_id, status):
        """Unconditional override used by staff. Returns the order or None."""


class DjangoOrderRepository(OrderRepository):

    def find_by_checkout_id(self, checkout_request_id):
        return Order.objects.filter(checkout_request_id=checkout_request_id).first()

    def find_by_order_id(self, order_id):
        return Order.objects.filter(order_number=order_id).first()

    def attach_checkout_request(self, order_id, checkout_request_id):
        updated = Order.objects.filter(order_number=order_id).exclude(
            payment_status=Order.COMPLETED
        ).update(
            checkout_request_id=checkout_request_id,
            payment_status=Order.PENDING,
            payment_metadata={},
            updated_at=timezone.now(),
        )
        if not updated:
            return None
        return self.find_by_order_id(order_id)

    def update_status(self, checkout_request_id, status, metadata):
        # Single UPDATE ... WHERE payment_status = 'pending', so concurrent
        # deliveries cannot both win.
        updated = Order.objects.filter(
            checkout_request_id=checkout_request_id, payment_status=Order.PENDING
        ).update(
            payment_status=status,
            payment_metadata=metadata,
            updated_at=timezone.now(),
        )
        return updated > 0

    def set_payment_status(self, order_id, status):
        order = self.find_by_order_id(order_id)
        if order is None:
            return None
        order.payment_status = status
        order.save(update_fields=['payment_status', 'updated_at'])
        return order


class InMemoryOrderRepository(OrderRepository):
    """Dict-backed repository holding unsaved Order instances."""

    def __init__(self, orders=()):
        self._lock = threading.Lock()
        self._orders = {}
        for order in orders:
            self.add(order)

    def add(self, order):
        if order.updated_at is None:
            order.updated_at = timezone.now()
        with self._lock:
            self._orders[order.order_number] = order
        return order

    def find_by_checkout_id(self, checkout_request_id):
        with self._lock:
            for order in self._orders.values():
                if order.checkout_request_id == checkout_request_id:
                    return order
        return None

    def find_by_order_id(self, order_id):
        with self._lock:
            return self._orders.get(order_id)

    def attach_checkout_request(self, order_id, checkout_request_id):
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.payment_status == Order.COMPLETED:
                return None
            order.checkout_request_id = checkout_request_id
            order.payment_status = Order.PENDING
            order.payment_metadata = {}
            order.updated_at = timezone.now()
            return order

    def update_status(self, checkout_request_id, status, metadata):
        with self._lock:
            for order in self._orders.values():
                if order.checkout_request_id != checkout_request_id:
                    continue
                if order.payment_status != Order.PENDING:
                    return False
                order.payment_status = status
                order.payment_metadata = dict(metadata)
                order.updated_at = timezone.now()
                return True
        return False

    def set_payment_status(self, order_id, status):
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            order.payment_status = status
            order.updated_at = timezone.now()
            return order


def get_order_repository():
    """Instantiate the repository class named by settings.ORDER_REPOSITORY."""
    return import_string(settings.ORDER_REPOSITORY)()


class OrderRepositoryMixin:
    """
    For API views. Pass ``order_repository=...`` to ``as_view()`` to use a
    specific store, otherwise the configured one is built per request.
    """
    order_repository = None

    def get_order_repository(self):
        if self.order_repository is not None:
            return self.order_repository
        return get_order_repository()
