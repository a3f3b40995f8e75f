from rest_framework import serializers

from .repository import PAYMENT_STATUSES


class PaymentStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=PAYMENT_STATUSES)


class PaymentStatusUpdateResultSerializer(serializers.Serializer):
    orderId = serializers.CharField(source='order_number')
    paymentStatus = serializers.CharField(source='payment_status')
    updatedAt = serializers.DateTimeField(source='updated_at')
