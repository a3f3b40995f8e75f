from django.urls import path

from .views import OrderPaymentStatusView

urlpatterns = [
    path('<str:order_id>/payment-status', OrderPaymentStatusView.as_view(), name='order-payment-status'),
]
