from django.apps import AppConfig


class MpesaPaymentsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'mpesa_payments'

    def ready(self):
        """Connect the payment notification receivers"""
        import mpesa_payments.notifications  # noqa: F401
