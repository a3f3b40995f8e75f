"""
Decoding of Daraja STK push callbacks.

Safaricom POSTs the result of an STK push as:

    {"Body": {"stkCallback": {
        "MerchantRequestID": "...",
        "CheckoutRequestID": "ws_CO_...",
        "ResultCode": 0,
        "ResultDesc": "The service request is processed successfully.",
        "CallbackMetadata": {"Item": [
            {"Name": "Amount", "Value": 1.0},
            {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
            {"Name": "TransactionDate", "Value": 20191219102115},
            {"Name": "PhoneNumber", "Value": 254708374149}
        ]}
    }}}

CallbackMetadata is only sent for successful payments.
"""
import math
from dataclasses import dataclass
from typing import Optional, Union

SUCCESS_RESULT_CODE = 0


class MalformedCallback(ValueError):
    """The callback body is not an stkCallback envelope we can match to an order."""


@dataclass(frozen=True)
class PaymentOutcome:
    checkout_request_id: str
    result_code: Optional[int]
    result_description: str = ''
    merchant_request_id: Optional[str] = None
    amount: Optional[Union[int, float]] = None
    receipt_number: Optional[str] = None
    transaction_date: Optional[str] = None
    phone_number: Optional[str] = None

    @property
    def success(self):
        return self.result_code == SUCCESS_RESULT_CODE

    @property
    def failure_reason(self):
        return None if self.success else self.result_description

    def payment_metadata(self):
        """The order's paymentMetadata for this outcome."""
        if not self.success:
            return {'error': self.result_description}
        fields = (
            ('amount', self.amount),
            ('mpesaReceiptNumber', self.receipt_number),
            ('transactionDate', self.transaction_date),
            ('phoneNumber', self.phone_number),
        )
        return {key: value for key, value in fields if value is not None}


def _to_int(value):
    if isinstance(value, bool):
        return None
    # int(0.5) would truncate to a success code
    if isinstance(value, float) and not value.is_integer():
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _to_number(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, float):
        try:
            return int(value)
        except (TypeError, ValueError):
            pass
        try:
            value = float(value)
        except (TypeError, ValueError):
            return None
    # NaN and infinities are not valid JSON
    return value if math.isfinite(value) else None


def _to_str(value):
    return None if value is None else str(value)


# Metadata item name -> (PaymentOutcome field, converter)
METADATA_FIELDS = {
    'Amount': ('amount', _to_number),
    'MpesaReceiptNumber': ('receipt_number', _to_str),
    'TransactionDate': ('transaction_date', _to_str),
    'PhoneNumber': ('phone_number', _to_str),
}


def _metadata_items(stk_callback):
    metadata = stk_callback.get('CallbackMetadata')
    if not isinstance(metadata, dict):
        return []
    items = metadata.get('Item')
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def map_stk_callback(stk_callback):
    """
    Build a PaymentOutcome from the ``stkCallback`` object.

    Never raises. Unknown metadata names are ignored, and values that cannot
    be converted leave the matching field unset.
    """
    fields = {}
    for item in _metadata_items(stk_callback):
        target = METADATA_FIELDS.get(item.get('Name'))
        if target is None:
            continue
        field, convert = target
        value = convert(item.get('Value'))
        if value is not None:
            fields[field] = value

    return PaymentOutcome(
        checkout_request_id=_to_str(stk_callback.get('CheckoutRequestID')) or '',
        result_code=_to_int(stk_callback.get('ResultCode')),
        result_description=_to_str(stk_callback.get('ResultDesc')) or '',
        merchant_request_id=_to_str(stk_callback.get('MerchantRequestID')),
        **fields,
    )


def parse_callback_envelope(payload):
    """Return the ``stkCallback`` object, or raise MalformedCallback."""
    if not isinstance(payload, dict):
        raise MalformedCallback('Callback body is not a JSON object')

    body = payload.get('Body')
    stk_callback = body.get('stkCallback') if isinstance(body, dict) else None
    if not isinstance(stk_callback, dict):
        raise MalformedCallback('Missing Body.stkCallback')

    if not stk_callback.get('CheckoutRequestID'):
        raise MalformedCallback('Missing CheckoutRequestID')
    if _to_int(stk_callback.get('ResultCode')) is None:
        raise MalformedCallback(f"Invalid ResultCode: {stk_callback.get('ResultCode')!r}")

    return stk_callback
