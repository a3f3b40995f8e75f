from rest_framework import serializers


class PaymentStatusSerializer(serializers.Serializer):
    """Order -> PaymentStatusResponse. Unknown optional fields are left out."""

    OPTIONAL_FIELDS = ('transactionId', 'amount', 'timestamp')

    orderId = serializers.CharField(source='order_number')
    paymentStatus = serializers.CharField(source='payment_status')
    transactionId = serializers.SerializerMethodField()
    amount = serializers.SerializerMethodField()
    timestamp = serializers.DateTimeField(source='updated_at', allow_null=True)

    def get_transactionId(self, order):
        return (order.payment_metadata or {}).get('mpesaReceiptNumber')

    def get_amount(self, order):
        return (order.payment_metadata or {}).get('amount')

    def to_representation(self, instance):
        data = super().to_representation(instance)
        for field in self.OPTIONAL_FIELDS:
            if data.get(field) is None:
                data.pop(field, None)
        return data
