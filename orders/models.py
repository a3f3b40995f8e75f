from django.db import models


class Order(models.Model):
    """
    A storefront order, reduced to what the payment flow reads and writes.

    checkout_request_id is indexed: callbacks are matched on it and have to
    be answered before Safaricom times out.
    """

    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'

    PAYMENT_STATUS_CHOICES = (
        (PENDING, 'Pending'),
        (COMPLETED, 'Completed'),
        (FAILED, 'Failed'),
    )

    # The public order id (e.g. TW-20240615-0001)
    order_number = models.CharField(max_length=50, unique=True)

    customer_phone = models.CharField(max_length=15, blank=True)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2)

    # Issued by Safaricom when the STK push is accepted
    checkout_request_id = models.CharField(max_length=50, unique=True, null=True, blank=True, db_index=True)

    payment_status = models.CharField(max_length=15, choices=PAYMENT_STATUS_CHOICES, default=PENDING)

    # Receipt details on success, {"error": ...} on failure
    payment_metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['payment_status'], name='orders_payment_status_idx'),
        ]

    def __str__(self):
        return f"{self.order_number} - {self.payment_status}"
