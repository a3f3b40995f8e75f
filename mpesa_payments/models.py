from django.db import models


class MpesaCallback(models.Model):
    """
    Every STK callback Safaricom delivers, raw payload included.

    Safaricom always gets a 200 back, so this table is the only record of
    callbacks that could not be applied. Rows with outcome UNMATCHED,
    REJECTED or ERROR need a human.
    """

    PROCESSED = 'PROCESSED'
    DUPLICATE = 'DUPLICATE'
    UNMATCHED = 'UNMATCHED'
    REJECTED = 'REJECTED'
    ERROR = 'ERROR'

    OUTCOME_CHOICES = (
        (PROCESSED, 'Processed'),
        (DUPLICATE, 'Duplicate'),
        (UNMATCHED, 'Unmatched'),
        (REJECTED, 'Rejected'),
        (ERROR, 'Error'),
    )

    NEEDS_ATTENTION = (UNMATCHED, REJECTED, ERROR)

    # Not unique: retries deliver the same id again
    checkout_request_id = models.CharField(max_length=50, blank=True, db_index=True)
    merchant_request_id = models.CharField(max_length=50, blank=True)

    result_code = models.IntegerField(null=True, blank=True)
    result_desc = models.CharField(max_length=255, blank=True)

    payload = models.JSONField(null=True, blank=True)

    outcome = models.CharField(max_length=15, choices=OUTCOME_CHOICES)
    error_message = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['outcome'], name='mpesa_callback_outcome_idx'),
        ]

    def __str__(self):
        return f"{self.checkout_request_id or 'unknown'} - {self.outcome}"
