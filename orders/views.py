import logging

from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.views import APIView

from core.responses import error_response, success_response

from .repository import PAYMENT_STATUSES, OrderRepositoryMixin
from .serializers import PaymentStatusUpdateResultSerializer, PaymentStatusUpdateSerializer
from .signals import payment_status_changed

logger = logging.getLogger(__name__)


class OrderPaymentStatusView(OrderRepositoryMixin, APIView):
    """
    Manual payment status override for staff (e.g. a customer paid at the
    till after the STK push timed out).
    """
    permission_classes = [IsAdminUser]

    def patch(self, request, order_id):
        serializer = PaymentStatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(
                'INVALID_STATUS',
                f"Payment status must be one of: {', '.join(PAYMENT_STATUSES)}",
                status.HTTP_400_BAD_REQUEST,
            )
        new_status = serializer.validated_data['status']

        try:
            order = self.get_order_repository().set_payment_status(order_id, new_status)
        except Exception as e:
            logger.error(f"Payment status update error for order {order_id}: {e}", exc_info=True)
            return error_response(
                'INTERNAL_ERROR',
                'Failed to update payment status',
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                details=str(e),
            )

        if order is None:
            return error_response('ORDER_NOT_FOUND', f"Order {order_id} not found", status.HTTP_404_NOT_FOUND)

        logger.info(f"Order {order_id} payment status set to {new_status} by user {request.user.pk}")
        payment_status_changed.send(sender=self.__class__, order=order, status=new_status)

        return success_response(PaymentStatusUpdateResultSerializer(order).data)
