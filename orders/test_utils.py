"""
Test utilities and factories for creating test data
"""
import random
import string
from decimal import Decimal

from django.contrib.auth import get_user_model

from .models import Order

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))

    @staticmethod
    def create_user(username=None, password='testpass123', is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6).lower()}'
        return User.objects.create_user(
            username=username,
            email=f'{username}@test.com',
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser,
        )

    @staticmethod
    def build_order(order_number=None, checkout_request_id=None, payment_status=Order.PENDING,
                    total_amount=Decimal('500.00'), customer_phone='254708374149'):
        """Build an unsaved order (for the in-memory repository)"""
        return Order(
            order_number=order_number or f'TW-{TestDataFactory.random_string(8)}',
            checkout_request_id=checkout_request_id,
            payment_status=payment_status,
            total_amount=total_amount,
            customer_phone=customer_phone,
            payment_metadata={},
        )

    @staticmethod
    def create_order(**kwargs):
        """Create and save a test order"""
        order = TestDataFactory.build_order(**kwargs)
        order.save()
        return order

    @staticmethod
    def stk_callback(checkout_request_id, result_code=0, result_desc=None, items=None,
                     merchant_request_id='29115-34620561-1'):
        """A Daraja STK push callback body"""
        if result_desc is None:
            result_desc = (
                'The service request is processed successfully.' if result_code == 0
                else 'Request cancelled by user'
            )
        stk_callback = {
            'MerchantRequestID': merchant_request_id,
            'CheckoutRequestID': checkout_request_id,
            'ResultCode': result_code,
            'ResultDesc': result_desc,
        }
        if items is not None:
            stk_callback['CallbackMetadata'] = {'Item': items}
        return {'Body': {'stkCallback': stk_callback}}

    @staticmethod
    def receipt_items(amount=500, receipt='QGR7XXXX', transaction_date=20240615102115, phone=254708374149):
        """CallbackMetadata items Safaricom sends with a successful payment"""
        return [
            {'Name': 'Amount', 'Value': amount},
            {'Name': 'MpesaReceiptNumber', 'Value': receipt},
            {'Name': 'Balance'},
            {'Name': 'TransactionDate', 'Value': transaction_date},
            {'Name': 'PhoneNumber', 'Value': phone},
        ]
