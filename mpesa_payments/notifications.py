"""
Customer notifications on payment results.

Nothing is sent yet: the receivers only log what would go out.
"""
import logging

from django.dispatch import receiver

from orders.models import Order
from orders.signals import payment_status_changed

logger = logging.getLogger(__name__)


@receiver(payment_status_changed, dispatch_uid='mpesa_payment_notification')
def notify_customer(sender, order, status, **kwargs):
    if status == Order.COMPLETED:
        receipt = order.payment_metadata.get('mpesaReceiptNumber')
        logger.info(f"Sending payment confirmation for order {order.order_number} (receipt {receipt}) to {order.customer_phone}")
    elif status == Order.FAILED:
        logger.info(f"Sending payment failure notification for order {order.order_number} to {order.customer_phone}")
