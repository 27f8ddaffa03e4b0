"""
Tests for the error envelope, staff permission and rate limiting.
"""
from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from unittest.mock import MagicMock, patch
import redis
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.test import APIRequestFactory, force_authenticate
from rest_framework.views import APIView

from accounts.models import UserProfile
from core.exceptions import (
    OrderValidationError,
    OutOfStockError,
    TransactionConflictError,
    api_exception_handler,
)
from core.permissions import is_staff_principal
from core.rate_limiting import get_client_key, rate_limit

User = get_user_model()


class LimitedView(APIView):
    authentication_classes = []
    permission_classes = []

    @rate_limit(max_requests=2, window_seconds=60)
    def post(self, request):
        return Response({'success': True})


class ExceptionHandlerTestCase(TestCase):

    def test_domain_error_payload(self):
        response = api_exception_handler(OutOfStockError('p1', 1, 2), {})

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data, {
            'success': False,
            'error': 'Insufficient stock for product p1: requested 2, available 1',
            'code': 'out_of_stock',
            'product_id': 'p1',
            'available': 1,
            'requested': 2,
        })

    def test_validation_error_names_field(self):
        response = api_exception_handler(OrderValidationError('size is required', field='size'), {})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'size')

    def test_transaction_conflict_is_retryable(self):
        response = api_exception_handler(TransactionConflictError('retry'), {})

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertTrue(response.data['retryable'])

    def test_drf_validation_error_wrapped(self):
        response = api_exception_handler(ValidationError({'reason': ['This field is required.']}), {})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error'], 'reason: This field is required.')
        self.assertEqual(response.data['details'], {'reason': ['This field is required.']})

    def test_unhandled_exception_passes_through(self):
        self.assertIsNone(api_exception_handler(RuntimeError('boom'), {}))


class StaffPrincipalTestCase(TestCase):

    def test_roles(self):
        customer = User.objects.create_user(username='c')
        UserProfile.objects.create(user=customer)
        designer = User.objects.create_user(username='d')
        UserProfile.objects.create(user=designer, role=UserProfile.Role.DESIGNER)
        no_profile = User.objects.create_user(username='n')
        superuser = User.objects.create_superuser(username='s', email='s@example.com', password='x')

        self.assertFalse(is_staff_principal(customer))
        self.assertTrue(is_staff_principal(designer))
        self.assertFalse(is_staff_principal(no_profile))
        self.assertTrue(is_staff_principal(superuser))
        self.assertFalse(is_staff_principal(None))


@override_settings(RATE_LIMIT_ENABLED=True)
class RateLimitTestCase(TestCase):

    def setUp(self):
        self.factory = APIRequestFactory()
        self.view = LimitedView.as_view()

    def redis_with_count(self, count):
        client = MagicMock()
        client.incr.return_value = count
        client.ttl.return_value = 42
        return client

    def test_under_limit_sets_headers(self):
        client = self.redis_with_count(1)
        with patch('core.rate_limiting.get_redis_client', return_value=client):
            response = self.view(self.factory.post('/limited/'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['X-RateLimit-Limit'], '2')
        self.assertEqual(response['X-RateLimit-Remaining'], '1')
        client.expire.assert_called_once()

    def test_over_limit_returns_429(self):
        with patch('core.rate_limiting.get_redis_client', return_value=self.redis_with_count(3)):
            response = self.view(self.factory.post('/limited/'))

        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(response.data['code'], 'rate_limited')
        self.assertEqual(response['Retry-After'], '42')

    def test_redis_error_fails_open(self):
        client = MagicMock()
        client.incr.side_effect = redis.ConnectionError('down')
        with patch('core.rate_limiting.get_redis_client', return_value=client):
            response = self.view(self.factory.post('/limited/'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_redis_unavailable_skips_limit(self):
        with patch('core.rate_limiting.get_redis_client', return_value=None):
            response = self.view(self.factory.post('/limited/'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_client_key_prefers_user(self):
        user = User.objects.create_user(username='alice')
        request = self.factory.post('/limited/', REMOTE_ADDR='10.0.0.1')
        self.assertEqual(get_client_key(request), 'ip:10.0.0.1')

        request.user = user
        self.assertEqual(get_client_key(request), f'user:{user.pk}')
