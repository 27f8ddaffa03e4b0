"""
API tests for the order endpoints and the failure envelope.
"""
from decimal import Decimal
from django.test import TestCase
from unittest.mock import patch
from rest_framework import status
from rest_framework.test import APIClient

from accounts.models import UserProfile
from orders.models import Order
from orders.tests import OrderTestMixin, line, order_payload


class OrderAPITestCase(OrderTestMixin, TestCase):

    def setUp(self):
        self.client = APIClient()
        self.user = self.make_user('alice')
        self.other = self.make_user('bob')
        self.staff = self.make_user('designer', role=UserProfile.Role.DESIGNER)
        self.product = self.make_product('p1', stock=5)

    def create(self, payload, user=None):
        self.client.force_authenticate(user or self.user)
        return self.client.post('/api/orders/', payload, format='json')

    def test_create_order(self):
        response = self.create(order_payload([line(self.product, 2)], shipping_price='500'))

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        data = response.data['data']
        self.assertEqual(data['status'], 'confirmed')
        self.assertEqual(data['order_type'], 'standard')
        self.assertEqual(data['total_price'], '2500.00')
        self.assertEqual(len(data['items']), 1)
        self.assertEqual(data['items'][0]['product_id'], 'p1')
        self.product.refresh_from_db()
        self.assertEqual(self.product.count_in_stock, 3)

    def test_create_requires_authentication(self):
        response = self.client.post('/api/orders/', order_payload([line(self.product, 1)]), format='json')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
        self.assertFalse(response.data['success'])
        self.assertEqual(Order.objects.count(), 0)

    def test_out_of_stock_envelope(self):
        response = self.create(order_payload([line(self.product, 9)]))

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['success'], False)
        self.assertEqual(response.data['code'], 'out_of_stock')
        self.assertEqual(response.data['product_id'], 'p1')
        self.assertEqual(response.data['available'], 5)
        self.assertEqual(response.data['requested'], 9)

    def test_validation_envelope(self):
        response = self.create(order_payload([line(self.product, 1)], total_price='1.00'))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'validation_error')
        self.assertEqual(response.data['field'], 'total_price')

    def test_out_of_range_amount_is_a_validation_error(self):
        response = self.create(order_payload([line(self.product, 1)], tax_price='1e30'))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'validation_error')
        self.assertEqual(response.data['field'], 'tax_price')

    def test_ownership_envelope(self):
        foreign = self.make_custom_order(self.other)

        response = self.create(order_payload(custom_orders=[foreign.pk]))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['code'], 'custom_order_ownership_mismatch')

    def test_unexpected_error_returns_500_envelope(self):
        with patch('orders.services.create_order', side_effect=RuntimeError('boom')):
            response = self.create(order_payload([line(self.product, 1)]))

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['success'], False)
        self.assertNotIn('boom', response.data['error'])

    def test_list_orders_staff_only(self):
        self.create(order_payload([line(self.product, 1)]))

        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.get('/api/orders/').status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.staff)
        response = self.client.get('/api/orders/', {'status': 'confirmed'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_my_orders(self):
        self.create(order_payload([line(self.product, 1)]))

        self.client.force_authenticate(self.other)
        self.assertEqual(self.client.get('/api/orders/mine/').data['count'], 0)
        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.get('/api/orders/mine/').data['count'], 1)

    def test_order_detail_access(self):
        order_id = self.create(order_payload([line(self.product, 1)])).data['data']['id']

        self.client.force_authenticate(self.other)
        response = self.client.get(f'/api/orders/{order_id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.staff)
        response = self.client.get(f'/api/orders/{order_id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['id'], order_id)

    def test_unknown_order_is_404(self):
        self.client.force_authenticate(self.staff)
        response = self.client.get('/api/orders/missing/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

    def test_status_tracking_and_delivery(self):
        order_id = self.create(order_payload([line(self.product, 1)])).data['data']['id']

        self.client.force_authenticate(self.staff)
        response = self.client.put(
            f'/api/orders/{order_id}/status/', {'status': 'processing'}, format='json'
        )
        self.assertEqual(response.data['data']['status'], 'processing')

        response = self.client.put(
            f'/api/orders/{order_id}/tracking/',
            {'carrier': 'DHL', 'tracking_number': 'TRK1'},
            format='json'
        )
        self.assertEqual(response.data['data']['status'], 'shipped')
        self.assertEqual(response.data['data']['tracking_number'], 'TRK1')

        response = self.client.put(f'/api/orders/{order_id}/deliver/')
        self.assertEqual(response.data['data']['status'], 'delivered')
        self.assertTrue(response.data['data']['is_delivered'])

    def test_status_route_is_staff_only(self):
        order_id = self.create(order_payload([line(self.product, 1)])).data['data']['id']

        self.client.force_authenticate(self.user)
        response = self.client.put(
            f'/api/orders/{order_id}/status/', {'status': 'cancelled'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_tracking_missing_fields(self):
        order_id = self.create(order_payload([line(self.product, 1)])).data['data']['id']

        self.client.force_authenticate(self.staff)
        response = self.client.put(f'/api/orders/{order_id}/tracking/', {'carrier': 'DHL'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('tracking_number', response.data['details'])

    def test_request_return(self):
        order_id = self.create(order_payload([line(self.product, 1)])).data['data']['id']

        self.client.force_authenticate(self.other)
        response = self.client.post(f'/api/orders/{order_id}/return/', {'reason': 'Too big'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.user)
        response = self.client.post(f'/api/orders/{order_id}/return/', {'reason': 'Too big'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['data']['return_requested'])
        self.assertEqual(response.data['data']['return_status'], 'requested')

    def test_custom_orders_rendered_as_ids(self):
        custom = self.make_custom_order(self.user, total_price=Decimal('450.00'))

        response = self.create(order_payload(custom_orders=[custom.pk]))

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['custom_orders'], [custom.pk])
        self.assertEqual(response.data['data']['priority'], 'high')
