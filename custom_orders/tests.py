"""
Tests for custom order status transitions.
"""
from decimal import Decimal
from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from accounts.models import UserProfile
from core.exceptions import (
    CustomOrderMissingError,
    CustomOrderStateError,
    NotAuthorizedError,
    OrderValidationError,
)
from custom_orders.models import CustomOrder
from custom_orders.services import update_custom_order_status

User = get_user_model()


class CustomOrderTransitionTestCase(TestCase):

    def setUp(self):
        self.customer = User.objects.create_user(username='alice', email='alice@example.com')
        UserProfile.objects.create(user=self.customer)
        self.designer = User.objects.create_user(username='dana', email='dana@example.com')
        UserProfile.objects.create(user=self.designer, role=UserProfile.Role.DESIGNER)
        self.custom = CustomOrder.objects.create(
            user=self.customer,
            design_type='Bridal Dress',
            total_price=Decimal('900.00'),
        )

    def test_generated_id_prefix(self):
        self.assertRegex(self.custom.pk, r'^custom_[0-9a-f]{12}$')

    def test_forward_transition(self):
        custom = update_custom_order_status(self.custom.pk, 'design', self.designer)
        self.assertEqual(custom.status, CustomOrder.Status.DESIGN)

        custom = update_custom_order_status(self.custom.pk, 'production', self.designer)
        self.assertEqual(custom.status, CustomOrder.Status.PRODUCTION)

    def test_backward_transition_rejected(self):
        update_custom_order_status(self.custom.pk, 'fitting', self.designer)

        with self.assertRaises(CustomOrderStateError):
            update_custom_order_status(self.custom.pk, 'design', self.designer)

        self.custom.refresh_from_db()
        self.assertEqual(self.custom.status, CustomOrder.Status.FITTING)

    def test_cancel_from_any_live_status(self):
        update_custom_order_status(self.custom.pk, 'measurement', self.designer)
        custom = update_custom_order_status(self.custom.pk, 'cancelled', self.designer)
        self.assertTrue(custom.is_terminal)

    def test_terminal_status_is_final(self):
        update_custom_order_status(self.custom.pk, 'cancelled', self.designer)

        with self.assertRaises(CustomOrderStateError):
            update_custom_order_status(self.custom.pk, 'ready', self.designer)

    def test_same_status_is_a_no_op(self):
        custom = update_custom_order_status(self.custom.pk, 'consultation', self.designer)
        self.assertEqual(custom.status, CustomOrder.Status.CONSULTATION)

    def test_customer_cannot_update(self):
        with self.assertRaises(NotAuthorizedError):
            update_custom_order_status(self.custom.pk, 'design', self.customer)

    def test_unknown_status(self):
        with self.assertRaises(OrderValidationError):
            update_custom_order_status(self.custom.pk, 'sewing', self.designer)

    def test_missing_custom_order(self):
        with self.assertRaises(CustomOrderMissingError):
            update_custom_order_status('custom_000000000000', 'design', self.designer)

    def test_bindable(self):
        self.assertTrue(self.custom.is_bindable)
        self.custom.status = CustomOrder.Status.DELIVERED
        self.assertFalse(self.custom.is_bindable)


class CustomOrderStatusAPITestCase(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.customer = User.objects.create_user(username='alice')
        UserProfile.objects.create(user=self.customer)
        self.admin = User.objects.create_user(username='root')
        UserProfile.objects.create(user=self.admin, role=UserProfile.Role.ADMIN)
        self.custom = CustomOrder.objects.create(user=self.customer, design_type='Kaftan')

    def url(self, pk=None):
        return f'/api/custom-orders/{pk or self.custom.pk}/status/'

    def test_staff_update(self):
        self.client.force_authenticate(self.admin)
        response = self.client.put(self.url(), {'status': 'design'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['status'], 'design')

    def test_customer_forbidden(self):
        self.client.force_authenticate(self.customer)
        response = self.client.put(self.url(), {'status': 'design'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(response.data['success'])

    def test_backward_is_conflict(self):
        self.client.force_authenticate(self.admin)
        self.client.put(self.url(), {'status': 'ready'}, format='json')
        response = self.client.put(self.url(), {'status': 'design'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'custom_order_state_conflict')
        self.assertEqual(response.data['status'], 'ready')

    def test_missing_is_404(self):
        self.client.force_authenticate(self.admin)
        response = self.client.put(self.url('custom_missing'), {'status': 'design'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
