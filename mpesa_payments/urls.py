from django.urls import path

from .views import InitiateSTKPushView, MpesaCallbackView, PaymentStatusView

urlpatterns = [
    path('initiate', InitiateSTKPushView.as_view(), name='mpesa-initiate'),
    path('callback', MpesaCallbackView.as_view(), name='mpesa-callback'),
    path('status', PaymentStatusView.as_view(), name='mpesa-payment-status'),
]
