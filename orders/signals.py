from django.dispatch import Signal

# Sent with `order` and `status` after a payment status change is applied.
payment_status_changed = Signal()
