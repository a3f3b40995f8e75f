import logging

from django.conf import settings
from django_daraja.mpesa.core import MpesaClient
from rest_framework import status
from rest_framework.exceptions import ParseError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.responses import error_response, success_response
from orders.models import Order
from orders.repository import OrderRepositoryMixin

from .models import MpesaCallback
from .outcome import MalformedCallback
from .serializers import PaymentStatusSerializer
from .services import normalize_phone_number, parse_amount, process_stk_callback, record_callback

# Get an instance of a logger
logger = logging.getLogger(__name__)

REQUIRED_MPESA_SETTINGS = ('MPESA_CONSUMER_KEY', 'MPESA_CONSUMER_SECRET', 'MPESA_SHORTCODE', 'MPESA_PASSKEY')


def get_callback_url():
    if settings.MPESA_CALLBACK_URL:
        return settings.MPESA_CALLBACK_URL
    base_url = settings.BASE_URL.rstrip("/")
    return f"{base_url}/api/payments/mpesa/callback"


class InitiateSTKPushView(OrderRepositoryMixin, APIView):
    """
    Step 1: Send the payment prompt to the customer's phone.
    """
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        data = request.data if isinstance(request.data, dict) else {}
        phone_number = data.get('phoneNumber')
        amount = data.get('amount')
        order_id = data.get('orderId')

        if not phone_number or amount in (None, '') or not order_id:
            return error_response(
                'MISSING_FIELDS',
                'Phone number, amount, and order ID are required',
                status.HTTP_400_BAD_REQUEST,
            )

        formatted_phone = normalize_phone_number(phone_number)
        if formatted_phone is None:
            return error_response(
                'INVALID_PHONE',
                'Please provide a valid Kenyan phone number',
                status.HTTP_400_BAD_REQUEST,
            )

        amount = parse_amount(amount)
        if amount is None or not settings.MPESA_MIN_AMOUNT <= amount <= settings.MPESA_MAX_AMOUNT:
            return error_response(
                'INVALID_AMOUNT',
                f"Amount must be between KSh {settings.MPESA_MIN_AMOUNT:,} and KSh {settings.MPESA_MAX_AMOUNT:,}",
                status.HTTP_400_BAD_REQUEST,
            )

        if not all(getattr(settings, name) for name in REQUIRED_MPESA_SETTINGS):
            logger.error("M-Pesa configuration is incomplete, cannot initiate STK push")
            return error_response(
                'MPESA_CONFIG_MISSING',
                'M-Pesa configuration is not properly set up',
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        repository = self.get_order_repository()
        order = repository.find_by_order_id(order_id)
        if order is None:
            return error_response('ORDER_NOT_FOUND', f"Order {order_id} not found", status.HTTP_404_NOT_FOUND)
        if order.payment_status == Order.COMPLETED:
            return error_response('ORDER_ALREADY_PAID', f"Order {order_id} is already paid", status.HTTP_409_CONFLICT)

        description = data.get('description') or f"Payment for order {order_id}"

        logger.info(f"Initiating STK Push for {formatted_phone} amount: KES {amount} order: {order_id}")

        try:
            cl = MpesaClient()
            response = cl.stk_push(formatted_phone, amount, str(order_id), description, get_callback_url())

            if getattr(response, 'response_code', None) == "0":
                checkout_request_id = response.checkout_request_id
                if repository.attach_checkout_request(order_id, checkout_request_id) is None:
                    logger.warning(f"Order {order_id} was paid while STK push {checkout_request_id} was being sent")
                    return error_response(
                        'ORDER_ALREADY_PAID',
                        f"Order {order_id} is already paid",
                        status.HTTP_409_CONFLICT,
                    )
                logger.info(f"STK Push successful. CheckoutID: {checkout_request_id}")
                return success_response({
                    'success': True,
                    'checkoutRequestId': checkout_request_id,
                    'responseCode': response.response_code,
                    'responseDescription': getattr(response, 'response_description', None),
                    'customerMessage': getattr(response, 'customer_message', None),
                })

            error_message = getattr(response, 'error_message', None) or getattr(response, 'response_description', None)
            logger.warning(f"STK Push failed for order {order_id}: {error_message}")
            return error_response(
                'MPESA_REQUEST_FAILED',
                error_message or 'M-Pesa request failed',
                status.HTTP_400_BAD_REQUEST,
                details=response.json(),
            )

        except Exception as e:
            logger.error(f"STK Push Error: {str(e)}", exc_info=True)
            return error_response(
                'INTERNAL_ERROR',
                'Failed to initiate M-Pesa payment',
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                details=str(e),
            )


class MpesaCallbackView(OrderRepositoryMixin, APIView):
    """
    Step 2: Safaricom sends the payment result here.

    Safaricom retries anything that is not a 200, so every POST is
    acknowledged. Problems end up in the log and the MpesaCallback table.
    """
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        payload = None
        outcome = MpesaCallback.ERROR
        error_message = ''

        try:
            payload = request.data
            logger.info(f"Callback Received: {payload}")
            outcome = process_stk_callback(payload, self.get_order_repository())
        except (MalformedCallback, ParseError) as e:
            outcome = MpesaCallback.REJECTED
            error_message = str(e)
            logger.error(f"Rejected M-Pesa callback: {e}")
        except Exception as e:
            outcome = MpesaCallback.ERROR
            error_message = str(e)
            logger.error(f"Error processing callback: {e}", exc_info=True)

        try:
            record_callback(payload, outcome, error_message)
        except Exception as e:
            logger.error(f"Could not record M-Pesa callback ({outcome}): {e}", exc_info=True)

        # Return Success to Safaricom
        return Response({"ResultCode": 0, "ResultDesc": "Accepted"}, status=status.HTTP_200_OK)


class PaymentStatusView(OrderRepositoryMixin, APIView):
    """Polled by the checkout page while the customer confirms on their phone."""
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        order_id = request.query_params.get('orderId')
        checkout_request_id = request.query_params.get('checkoutRequestId')

        if not order_id and not checkout_request_id:
            return error_response(
                'MISSING_PARAMETER',
                'Either orderId or checkoutRequestId is required',
                status.HTTP_400_BAD_REQUEST,
            )

        try:
            repository = self.get_order_repository()
            if order_id:
                order = repository.find_by_order_id(order_id)
            else:
                order = repository.find_by_checkout_id(checkout_request_id)
        except Exception as e:
            logger.error(f"Payment status check error: {e}", exc_info=True)
            return error_response(
                'INTERNAL_ERROR',
                'Failed to check payment status',
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                details=str(e),
            )

        if order is None:
            return error_response(
                'ORDER_NOT_FOUND',
                f"No order found for {order_id or checkout_request_id}",
                status.HTTP_404_NOT_FOUND,
            )

        return success_response(PaymentStatusSerializer(order).data)
