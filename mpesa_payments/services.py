import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from orders.models import Order
from orders.signals import payment_status_changed

from .models import MpesaCallback
from .outcome import map_stk_callback, parse_callback_envelope

logger = logging.getLogger(__name__)

KENYAN_PHONE_RE = re.compile(r'^(\+254|254|0)[17]\d{8}$')


def process_stk_callback(payload, repository):
    """
    Apply one STK callback to its order.

    Returns the MpesaCallback outcome (PROCESSED, DUPLICATE or UNMATCHED).
    Raises MalformedCallback for bodies that are not an stkCallback envelope;
    repository errors propagate.
    """
    stk_callback = parse_callback_envelope(payload)
    outcome = map_stk_callback(stk_callback)
    checkout_request_id = outcome.checkout_request_id

    if outcome.success:
        new_status = Order.COMPLETED
        logger.info(f"Payment successful for {checkout_request_id}. Ref: {outcome.receipt_number}")
    else:
        new_status = Order.FAILED
        logger.warning(f"Payment failed for {checkout_request_id} ({outcome.result_code}): {outcome.result_description}")

    applied = repository.update_status(checkout_request_id, new_status, outcome.payment_metadata())
    order = repository.find_by_checkout_id(checkout_request_id)

    if applied:
        if order is None:
            # Re-attached to a new STK push in between; the write stands
            logger.warning(f"Payment status for {checkout_request_id} set to {new_status}, order no longer linked")
            return MpesaCallback.PROCESSED
        logger.info(f"Order {order.order_number} payment status updated to {new_status}")
        payment_status_changed.send(sender=process_stk_callback, order=order, status=new_status)
        return MpesaCallback.PROCESSED

    if order is None:
        logger.error(f"CRITICAL: Order with CheckoutRequestID {checkout_request_id} not found.")
        return MpesaCallback.UNMATCHED

    # Retry or late duplicate: the first terminal status stands
    logger.info(
        f"Ignoring callback for {checkout_request_id}: order {order.order_number} "
        f"is already {order.payment_status}"
    )
    return MpesaCallback.DUPLICATE


def record_callback(payload, outcome, error_message=''):
    """Store the delivery in the callback log. Ids are best effort."""
    stk_callback = {}
    if isinstance(payload, dict) and isinstance(payload.get('Body'), dict):
        candidate = payload['Body'].get('stkCallback')
        if isinstance(candidate, dict):
            stk_callback = candidate
    parsed = map_stk_callback(stk_callback)

    return MpesaCallback.objects.create(
        checkout_request_id=parsed.checkout_request_id[:50],
        merchant_request_id=(parsed.merchant_request_id or '')[:50],
        result_code=parsed.result_code,
        result_desc=parsed.result_description[:255],
        payload=payload if isinstance(payload, (dict, list)) else None,
        outcome=outcome,
        error_message=error_message,
    )


def normalize_phone_number(phone_number):
    """
    Return the number as 254XXXXXXXXX, or None if it is not a Kenyan
    Safaricom/Airtel mobile number.
    """
    clean = re.sub(r'\s', '', str(phone_number))
    if not KENYAN_PHONE_RE.match(clean):
        return None
    if clean.startswith('+254'):
        return clean[1:]
    if clean.startswith('0'):
        return '254' + clean[1:]
    return clean


def parse_amount(amount):
    """Whole shillings, rounded half up, or None if not a number."""
    if isinstance(amount, bool):
        return None
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
