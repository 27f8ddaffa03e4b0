"""
Tests for order transaction logic.

Test Cases:
1. Order confirmed with sufficient stock, stock decremented exactly
2. Order rejected with insufficient stock, no stock deduction
3. Custom order binding, ownership and state checks
4. Price breakdown and request validation before any write
5. Post-commit confirmation dispatch and email
6. Staff actions: status timestamps, tracking, delivery, returns
7. Concurrent order race condition prevention
"""
from datetime import timedelta
from decimal import Decimal
from django.contrib.auth import get_user_model
from django.core import mail
from django.db import DatabaseError, DataError, connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from unittest.mock import patch
import threading

from accounts.models import UserProfile
from catalog.models import Product
from core.exceptions import (
    CustomOrderNotFoundError,
    CustomOrderOwnershipError,
    CustomOrderStateError,
    NotAuthorizedError,
    OrderNotFoundError,
    OrderValidationError,
    OutOfStockError,
    ProductNotFoundError,
    TransactionConflictError,
)
from custom_orders.models import CustomOrder
from orders.models import Order, OrderItem
from orders import services
from orders.services import create_order
from orders.stores import run_in_transaction
from orders.tasks import send_order_confirmation

User = get_user_model()


def order_payload(items=None, custom_orders=None, shipping_price='0', **overrides):
    """Build a create-order payload whose price breakdown adds up."""
    items = items or []
    custom_orders = custom_orders or []
    items_price = sum(
        (Decimal(str(item['price'])) * item['quantity'] for item in items), Decimal('0')
    )
    custom_price = sum(
        (c.total_price for c in CustomOrder.objects.filter(pk__in=custom_orders)), Decimal('0')
    )
    total = items_price + custom_price + Decimal(shipping_price)
    payload = {
        'items': items,
        'custom_orders': custom_orders,
        'shipping_address': {
            'address': '12 Rose Lane',
            'city': 'Lagos',
            'postal_code': '100001',
            'country': 'NG',
            'email': 'ship@example.com',
        },
        'payment_method': 'card',
        'payment_result': {'id': 'pay_1', 'amount': str(total)},
        'items_price': str(items_price),
        'custom_orders_price': str(custom_price),
        'shipping_price': shipping_price,
        'tax_price': '0',
        'discount_amount': '0',
        'total_price': str(total),
    }
    payload.update(overrides)
    return payload


def line(product, quantity, price='1000', size='M', color='Black'):
    return {
        'product_id': product.pk,
        'quantity': quantity,
        'price': price,
        'size': size,
        'color': color,
    }


class OrderTestMixin:

    def make_user(self, username, role=UserProfile.Role.CUSTOMER):
        user = User.objects.create_user(
            username=username, email=f'{username}@example.com', password='secret'
        )
        UserProfile.objects.create(user=user, role=role)
        return user

    def make_product(self, pk, stock, price='1000.00', **kwargs):
        return Product.objects.create(
            id=pk, name=f'Product {pk}', price=Decimal(price),
            count_in_stock=stock, sizes=['S', 'M', 'L'], colors=['Black'], **kwargs
        )

    def make_custom_order(self, user, **kwargs):
        kwargs.setdefault('design_type', 'Evening Gown')
        kwargs.setdefault('total_price', Decimal('300.00'))
        return CustomOrder.objects.create(user=user, user_email=user.email, **kwargs)


class OrderTransactionTestCase(OrderTestMixin, TestCase):
    """Test cases for order transaction logic."""

    def setUp(self):
        """Set up test data."""
        self.user = self.make_user('alice')
        self.other = self.make_user('bob')
        self.p1 = self.make_product('p1', stock=5)
        self.p2 = self.make_product('p2', stock=50, price='25.00')
        self.p3 = self.make_product('p3', stock=10, price='15.50')

    def test_order_confirmed_with_sufficient_stock(self):
        """
        Test: Order is confirmed and stock drops by the requested quantity.

        Given: p1 with 5 units in stock
        When: Ordering 2 units of p1 at 1000 with 500 shipping
        Then: Order is confirmed and standard, p1 has 3 units left
        """
        payload = order_payload([line(self.p1, 2)], shipping_price='500')
        self.assertEqual(payload['total_price'], '2500')

        order = create_order(payload, self.user)

        self.assertEqual(order.status, Order.Status.CONFIRMED)
        self.assertEqual(order.order_type, Order.OrderType.STANDARD)
        self.assertEqual(order.priority, Order.Priority.NORMAL)
        self.assertEqual(order.total_price, Decimal('2500.00'))
        self.assertTrue(order.is_paid)
        self.assertIsNotNone(order.confirmed_at)
        self.assertEqual(order.items.count(), 1)

        self.p1.refresh_from_db()
        self.p2.refresh_from_db()
        self.assertEqual(self.p1.count_in_stock, 3)
        self.assertEqual(self.p2.count_in_stock, 50)

    def test_order_items_snapshot_price_and_name(self):
        order = create_order(
            order_payload([line(self.p2, 3, price='20.00', size='S', color='Black')]),
            self.user
        )

        item = order.items.get()
        self.assertEqual(item.product_id, 'p2')
        self.assertEqual(item.product_name, 'Product p2')
        self.assertEqual(item.price, Decimal('20.00'))
        self.assertEqual(item.subtotal, Decimal('60.00'))
        self.assertEqual((item.size, item.color), ('S', 'Black'))

    def test_order_rejected_with_insufficient_stock(self):
        """
        Test: OutOfStockError names the product, available and requested.

        Given: p1 has only 1 unit
        When: Requesting 2 units of p1
        Then: OutOfStockError, p1 still has 1 unit
        """
        self.p1.count_in_stock = 1
        self.p1.save()

        with self.assertRaises(OutOfStockError) as ctx:
            create_order(order_payload([line(self.p1, 2)], shipping_price='500'), self.user)

        self.assertEqual(ctx.exception.product_id, 'p1')
        self.assertEqual(ctx.exception.available, 1)
        self.assertEqual(ctx.exception.requested, 2)
        self.p1.refresh_from_db()
        self.assertEqual(self.p1.count_in_stock, 1)
        self.assertEqual(Order.objects.count(), 0)

    def test_no_stock_deduction_on_rejection(self):
        """
        Test: Stock unchanged for every product after a rejected order.

        Given: Insufficient stock for the last item only
        When: Order is rejected
        Then: No product quantities are changed
        """
        items = [line(self.p2, 5, '25.00'), line(self.p1, 1), line(self.p3, 15, '15.50')]

        with self.assertRaises(OutOfStockError):
            create_order(order_payload(items), self.user)

        for product, expected in ((self.p1, 5), (self.p2, 50), (self.p3, 10)):
            product.refresh_from_db()
            self.assertEqual(product.count_in_stock, expected)
        self.assertEqual(OrderItem.objects.count(), 0)
        self.assertEqual(self.user.profile.order_ids, [])

    def test_order_with_exact_stock(self):
        """Test: Ordering exactly the available stock leaves it at zero."""
        create_order(order_payload([line(self.p3, 10, '15.50')]), self.user)

        self.p3.refresh_from_db()
        self.assertEqual(self.p3.count_in_stock, 0)
        self.assertTrue(self.p3.is_out_of_stock)

    def test_duplicate_lines_checked_against_combined_quantity(self):
        items = [line(self.p1, 3, size='S'), line(self.p1, 3, size='M')]

        with self.assertRaises(OutOfStockError) as ctx:
            create_order(order_payload(items), self.user)

        self.assertEqual(ctx.exception.requested, 6)
        self.p1.refresh_from_db()
        self.assertEqual(self.p1.count_in_stock, 5)

    def test_duplicate_lines_decrement_combined_quantity(self):
        items = [line(self.p1, 2, size='S'), line(self.p1, 3, size='M')]

        order = create_order(order_payload(items), self.user)

        self.assertEqual(order.items.count(), 2)
        self.p1.refresh_from_db()
        self.assertEqual(self.p1.count_in_stock, 0)

    def test_order_invalid_product(self):
        """Test: Unknown product id fails with ProductNotFoundError."""
        payload = order_payload([line(self.p1, 1)])
        payload['items'][0]['product_id'] = 'missing'

        with self.assertRaises(ProductNotFoundError) as ctx:
            create_order(payload, self.user)

        self.assertEqual(ctx.exception.product_id, 'missing')
        self.assertEqual(Order.objects.count(), 0)

    def test_inactive_product_is_not_found(self):
        self.p2.is_active = False
        self.p2.save()

        with self.assertRaises(ProductNotFoundError):
            create_order(order_payload([line(self.p1, 1), line(self.p2, 1, '25.00')]), self.user)

        self.p1.refresh_from_db()
        self.assertEqual(self.p1.count_in_stock, 5)

    def test_order_appended_to_user_profile(self):
        first = create_order(order_payload([line(self.p2, 1, '25.00')]), self.user)
        second = create_order(order_payload([line(self.p2, 1, '25.00')]), self.user)

        profile = UserProfile.objects.get(user=self.user)
        self.assertEqual(profile.order_ids, [first.pk, second.pk])

    def test_profile_created_when_missing(self):
        carol = User.objects.create_user(username='carol', email='carol@example.com')

        order = create_order(order_payload([line(self.p2, 1, '25.00')]), carol)

        self.assertEqual(UserProfile.objects.get(user=carol).order_ids, [order.pk])

    def test_estimated_delivery_for_standard_shipping(self):
        order = create_order(order_payload([line(self.p2, 1, '25.00')]), self.user)

        expected = timezone.localdate(order.created_at) + timedelta(days=5)
        self.assertEqual(order.estimated_delivery_date, expected)

    def test_estimated_delivery_for_express_shipping(self):
        order = create_order(
            order_payload([line(self.p2, 1, '25.00')], shipping_method='express'), self.user
        )

        expected = timezone.localdate(order.created_at) + timedelta(days=2)
        self.assertEqual(order.estimated_delivery_date, expected)

    def test_order_numbers_are_unique(self):
        numbers = {
            create_order(order_payload([line(self.p2, 1, '25.00')]), self.user).order_number
            for _ in range(5)
        }
        self.assertEqual(len(numbers), 5)
        for number in numbers:
            self.assertRegex(number, r'^ORD-\d+-[0-9A-Z]{4}$')

    def test_user_email_falls_back_to_account_email(self):
        order = create_order(order_payload([line(self.p2, 1, '25.00')]), self.user)
        self.assertEqual(order.user_email, 'alice@example.com')
        self.assertEqual(order.user_name, 'alice')


class CustomOrderBindingTestCase(OrderTestMixin, TestCase):
    """Custom orders referenced by a purchase order."""

    def setUp(self):
        self.user = self.make_user('alice')
        self.other = self.make_user('bob')
        self.product = self.make_product('p1', stock=5)
        self.custom = self.make_custom_order(self.user)

    def test_custom_only_order_is_custom_and_high_priority(self):
        order = create_order(order_payload(custom_orders=[self.custom.pk]), self.user)

        self.assertEqual(order.order_type, Order.OrderType.CUSTOM)
        self.assertEqual(order.priority, Order.Priority.HIGH)
        self.custom.refresh_from_db()
        self.assertEqual(self.custom.status, CustomOrder.Status.CONFIRMED)
        self.assertEqual(self.custom.order_id, order.pk)

    def test_mixed_order(self):
        order = create_order(
            order_payload([line(self.product, 1)], custom_orders=[self.custom.pk]), self.user
        )

        self.assertEqual(order.order_type, Order.OrderType.MIXED)
        self.assertEqual(order.priority, Order.Priority.NORMAL)
        self.assertEqual(list(order.custom_orders.values_list('pk', flat=True)), [self.custom.pk])
        expected = timezone.localdate(order.created_at) + timedelta(days=19)
        self.assertEqual(order.estimated_delivery_date, expected)

    def test_client_order_type_is_ignored(self):
        order = create_order(
            order_payload([line(self.product, 1)], order_type='custom'), self.user
        )
        self.assertEqual(order.order_type, Order.OrderType.STANDARD)

    def test_custom_order_of_another_user_is_rejected(self):
        """Test: No stock or custom order changes when ownership fails."""
        foreign = self.make_custom_order(self.other)

        with self.assertRaises(CustomOrderOwnershipError) as ctx:
            create_order(
                order_payload([line(self.product, 2)], custom_orders=[foreign.pk]), self.user
            )

        self.assertEqual(ctx.exception.custom_order_id, foreign.pk)
        self.product.refresh_from_db()
        foreign.refresh_from_db()
        self.assertEqual(self.product.count_in_stock, 5)
        self.assertEqual(foreign.status, CustomOrder.Status.CONSULTATION)
        self.assertIsNone(foreign.order_id)
        self.assertEqual(Order.objects.count(), 0)

    def test_unknown_custom_order(self):
        with self.assertRaises(CustomOrderNotFoundError):
            create_order(order_payload(custom_orders=['custom_missing']), self.user)

    def test_cancelled_custom_order_cannot_be_bound(self):
        self.custom.status = CustomOrder.Status.CANCELLED
        self.custom.save()

        with self.assertRaises(CustomOrderStateError):
            create_order(order_payload(custom_orders=[self.custom.pk]), self.user)

    def test_custom_order_cannot_be_bound_twice(self):
        create_order(order_payload(custom_orders=[self.custom.pk]), self.user)

        with self.assertRaises(CustomOrderStateError):
            create_order(order_payload(custom_orders=[self.custom.pk]), self.user)
        self.assertEqual(Order.objects.count(), 1)

    def test_advanced_custom_order_keeps_its_status(self):
        self.custom.status = CustomOrder.Status.DESIGN
        self.custom.save()

        create_order(order_payload(custom_orders=[self.custom.pk]), self.user)

        self.custom.refresh_from_db()
        self.assertEqual(self.custom.status, CustomOrder.Status.DESIGN)
        self.assertIsNotNone(self.custom.order_id)


class OrderValidationTestCase(OrderTestMixin, TestCase):
    """Requests rejected before any read or write."""

    def setUp(self):
        self.user = self.make_user('alice')
        self.product = self.make_product('p1', stock=5)

    def assertRejected(self, payload, field=None):
        with self.assertRaises(OrderValidationError) as ctx:
            create_order(payload, self.user)
        if field:
            self.assertEqual(ctx.exception.field, field)
        self.product.refresh_from_db()
        self.assertEqual(self.product.count_in_stock, 5)
        self.assertEqual(Order.objects.count(), 0)
        return ctx.exception

    def test_validation_error_empty_order(self):
        self.assertRejected(order_payload(), field='items')

    def test_validation_error_invalid_quantity(self):
        for quantity in (0, -1, 1.5, 'two', True, None):
            payload = order_payload([line(self.product, 1)])
            payload['items'][0]['quantity'] = quantity
            self.assertRejected(payload, field='items[0].quantity')

    def test_validation_error_missing_size(self):
        payload = order_payload([line(self.product, 1)])
        del payload['items'][0]['size']
        self.assertRejected(payload, field='items[0].size')

    def test_total_price_mismatch(self):
        payload = order_payload([line(self.product, 1, price='150')], total_price='100')
        error = self.assertRejected(payload, field='total_price')
        self.assertIn('does not match', str(error))

    def test_total_price_within_tolerance(self):
        payload = order_payload([line(self.product, 1, price='100')], total_price='100.01')
        order = create_order(payload, self.user)
        self.assertEqual(order.total_price, Decimal('100.01'))

    def test_discount_is_subtracted(self):
        payload = order_payload(
            [line(self.product, 1, price='100')], discount_amount='20', total_price='80'
        )
        order = create_order(payload, self.user)
        self.assertEqual(order.discount_amount, Decimal('20.00'))

    def test_negative_price_rejected(self):
        self.assertRejected(
            order_payload([line(self.product, 1)], shipping_price='-5'), field='shipping_price'
        )

    def test_missing_payment_verification(self):
        payload = order_payload([line(self.product, 1)])
        payload['payment_result'] = {'amount': payload['total_price']}
        self.assertRejected(payload, field='payment_result.id')

    def test_missing_shipping_address(self):
        self.assertRejected(
            order_payload([line(self.product, 1)], shipping_address=None), field='shipping_address'
        )

    def test_invalid_shipping_method(self):
        self.assertRejected(
            order_payload([line(self.product, 1)], shipping_method='teleport'),
            field='shipping_method'
        )

    def test_user_id_must_match_principal(self):
        with self.assertRaises(NotAuthorizedError):
            create_order(order_payload([line(self.product, 1)], user_id='someone-else'), self.user)
        self.product.refresh_from_db()
        self.assertEqual(self.product.count_in_stock, 5)

    def test_user_id_matching_principal_is_accepted(self):
        order = create_order(
            order_payload([line(self.product, 1)], user_id=str(self.user.pk)), self.user
        )
        self.assertEqual(order.user, self.user)

    def test_billing_address_defaults_to_shipping(self):
        order = create_order(order_payload([line(self.product, 1)]), self.user)
        self.assertEqual(order.billing_address, order.shipping_address)

    def test_amount_with_large_exponent_rejected(self):
        self.assertRejected(
            order_payload([line(self.product, 1)], tax_price='1e30'), field='tax_price'
        )

    def test_amount_wider_than_price_column_rejected(self):
        self.assertRejected(
            order_payload([line(self.product, 1)], total_price='12345678901.00'),
            field='total_price'
        )

    def test_item_price_wider_than_price_column_rejected(self):
        self.assertRejected(
            order_payload([line(self.product, 1, price='123456789.00')]),
            field='items[0].price'
        )

    def test_duplicate_custom_order_ids_bind_once(self):
        custom_order = self.make_custom_order(self.user)
        order = create_order(
            order_payload(custom_orders=[custom_order.pk, custom_order.pk]), self.user
        )
        self.assertEqual(list(order.custom_orders.values_list('pk', flat=True)), [custom_order.pk])


class OrderConfirmationTestCase(OrderTestMixin, TestCase):
    """Post-commit confirmation dispatch."""

    def setUp(self):
        self.user = self.make_user('alice')
        self.product = self.make_product('p1', stock=5)

    def test_confirmation_email_sent_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            order = create_order(order_payload([line(self.product, 2)]), self.user)

        self.assertEqual(len(callbacks), 1)
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['alice@example.com'])
        self.assertEqual(message.subject, f'Your Zeph Fashion Order #{order.order_number}')
        self.assertIn('2x Product p1 (M/Black)', message.body)

    def test_no_dispatch_when_order_fails(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(OutOfStockError):
                create_order(order_payload([line(self.product, 9)]), self.user)

        self.assertEqual(callbacks, [])
        self.assertEqual(mail.outbox, [])

    def test_dispatch_failure_does_not_fail_order(self):
        with patch('orders.tasks.send_order_confirmation.delay', side_effect=RuntimeError('broker down')):
            with self.captureOnCommitCallbacks(execute=True):
                order = create_order(order_payload([line(self.product, 1)]), self.user)

        self.assertTrue(Order.objects.filter(pk=order.pk).exists())
        self.product.refresh_from_db()
        self.assertEqual(self.product.count_in_stock, 4)

    def test_email_falls_back_to_shipping_address(self):
        order = create_order(order_payload([line(self.product, 1)]), self.user)
        Order.objects.filter(pk=order.pk).update(user_email='')

        result = send_order_confirmation.apply(args=[order.pk]).get()

        self.assertEqual(result['status'], 'success')
        self.assertEqual(mail.outbox[0].to, ['ship@example.com'])

    def test_task_skips_cancelled_orders(self):
        order = create_order(order_payload([line(self.product, 1)]), self.user)
        Order.objects.filter(pk=order.pk).update(status=Order.Status.CANCELLED)

        result = send_order_confirmation.apply(args=[order.pk]).get()

        self.assertEqual(result['status'], 'skipped')
        self.assertEqual(mail.outbox, [])

    def test_task_handles_missing_order(self):
        result = send_order_confirmation.apply(args=['missing']).get()
        self.assertEqual(result['status'], 'error')

    def test_mail_failure_does_not_fail_order(self):
        with patch('orders.notifications.send_mail', side_effect=OSError('smtp down')) as send_mail:
            with self.captureOnCommitCallbacks(execute=True):
                order = create_order(order_payload([line(self.product, 1)]), self.user)

        self.assertTrue(Order.objects.filter(pk=order.pk).exists())
        self.product.refresh_from_db()
        self.assertEqual(self.product.count_in_stock, 4)
        self.assertEqual(send_mail.call_count, send_order_confirmation.max_retries + 1)

    def test_order_without_recipient_is_skipped(self):
        User.objects.filter(pk=self.user.pk).update(email='')
        self.user.refresh_from_db()
        payload = order_payload([line(self.product, 1)])
        del payload['shipping_address']['email']

        with patch('orders.notifications.send_mail') as send_mail:
            with self.captureOnCommitCallbacks(execute=True):
                order = create_order(payload, self.user)
            result = send_order_confirmation.apply(args=[order.pk]).get()

        self.assertEqual(order.user_email, '')
        self.assertEqual(result['status'], 'skipped')
        send_mail.assert_not_called()
        self.product.refresh_from_db()
        self.assertEqual(self.product.count_in_stock, 4)


class OrderActionsTestCase(OrderTestMixin, TestCase):
    """Status updates, tracking, delivery and returns."""

    def setUp(self):
        self.user = self.make_user('alice')
        self.other = self.make_user('bob')
        self.staff = self.make_user('admin', role=UserProfile.Role.ADMIN)
        self.product = self.make_product('p1', stock=5)
        self.order = create_order(order_payload([line(self.product, 1)]), self.user)

    def test_shipped_timestamp_set_once(self):
        """Test: Re-entering shipped keeps the original shipped_at."""
        first = services.update_status(self.order.pk, 'shipped', self.staff)
        shipped_at = first.shipped_at
        self.assertIsNotNone(shipped_at)

        second = services.update_status(self.order.pk, 'shipped', self.staff)

        self.assertEqual(second.shipped_at, shipped_at)
        self.order.refresh_from_db()
        self.assertEqual(self.order.shipped_at, shipped_at)

    def test_status_without_timestamp(self):
        order = services.update_status(self.order.pk, 'ready_to_ship', self.staff)
        self.assertEqual(order.status, Order.Status.READY_TO_SHIP)

    def test_invalid_status(self):
        with self.assertRaises(OrderValidationError):
            services.update_status(self.order.pk, 'lost', self.staff)

    def test_owner_may_update_own_order(self):
        order = services.update_status(self.order.pk, 'cancelled', self.user)
        self.assertIsNotNone(order.cancelled_at)

    def test_other_user_cannot_update_status(self):
        with self.assertRaises(NotAuthorizedError):
            services.update_status(self.order.pk, 'cancelled', self.other)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.CONFIRMED)

    def test_update_unknown_order(self):
        with self.assertRaises(OrderNotFoundError):
            services.update_status('missing', 'shipped', self.staff)

    def test_add_tracking_marks_shipped(self):
        order = services.add_tracking(self.order.pk, 'DHL', 'TRK123', self.staff)

        self.assertEqual(order.status, Order.Status.SHIPPED)
        self.assertEqual((order.shipping_carrier, order.tracking_number), ('DHL', 'TRK123'))
        self.assertIsNotNone(order.shipped_at)

    def test_add_tracking_requires_staff(self):
        with self.assertRaises(NotAuthorizedError):
            services.add_tracking(self.order.pk, 'DHL', 'TRK123', self.user)

    def test_add_tracking_requires_fields(self):
        with self.assertRaises(OrderValidationError):
            services.add_tracking(self.order.pk, 'DHL', '  ', self.staff)

    def test_mark_delivered(self):
        order = services.mark_delivered(self.order.pk, self.staff)

        self.assertEqual(order.status, Order.Status.DELIVERED)
        self.assertTrue(order.is_delivered)
        self.assertIsNotNone(order.delivered_at)

    def test_request_return_by_owner(self):
        order = services.request_return(self.order.pk, 'Wrong size', self.user)

        self.assertTrue(order.return_requested)
        self.assertEqual(order.return_reason, 'Wrong size')
        self.assertEqual(order.return_status, Order.ReturnStatus.REQUESTED)
        self.assertEqual(order.status, Order.Status.CONFIRMED)

    def test_request_return_by_non_owner(self):
        """Test: Non-owners cannot request a return, even staff."""
        for principal in (self.other, self.staff):
            with self.assertRaises(NotAuthorizedError):
                services.request_return(self.order.pk, 'Changed my mind', principal)

        self.order.refresh_from_db()
        self.assertFalse(self.order.return_requested)

    def test_request_return_requires_reason(self):
        with self.assertRaises(OrderValidationError):
            services.request_return(self.order.pk, '', self.user)

    def test_get_order_access(self):
        self.assertEqual(services.get_order(self.order.pk, self.user), self.order)
        self.assertEqual(services.get_order(self.order.pk, self.staff), self.order)
        with self.assertRaises(NotAuthorizedError):
            services.get_order(self.order.pk, self.other)

    def test_list_orders_with_filters(self):
        custom = self.make_custom_order(self.user)
        create_order(order_payload(custom_orders=[custom.pk]), self.user)

        self.assertEqual(len(services.list_orders(self.staff)), 2)
        self.assertEqual(len(services.list_orders(self.staff, {'order_type': 'custom'})), 1)
        self.assertEqual(len(services.list_orders(self.staff, {'priority': 'all'})), 2)
        self.assertEqual(len(services.list_user_orders(self.other)), 0)
        with self.assertRaises(NotAuthorizedError):
            services.list_orders(self.user)


class RunInTransactionTestCase(TestCase):

    @override_settings(ORDER_TRANSACTION_ATTEMPTS=3, ORDER_TRANSACTION_RETRY_DELAY=0)
    def test_retries_then_reports_conflict(self):
        calls = []

        def fn():
            calls.append(1)
            raise DatabaseError('database is locked')

        with self.assertRaises(TransactionConflictError) as ctx:
            run_in_transaction(fn)

        self.assertEqual(len(calls), 3)
        self.assertEqual(ctx.exception.details(), {'retryable': True})

    @override_settings(ORDER_TRANSACTION_RETRY_DELAY=0)
    def test_recovers_after_transient_error(self):
        calls = []

        def fn():
            calls.append(1)
            if len(calls) == 1:
                raise DatabaseError('deadlock detected')
            return 'ok'

        self.assertEqual(run_in_transaction(fn), 'ok')
        self.assertEqual(len(calls), 2)

    def test_domain_errors_are_not_retried(self):
        calls = []

        def fn():
            calls.append(1)
            raise OutOfStockError('p1', 0, 1)

        with self.assertRaises(OutOfStockError):
            run_in_transaction(fn)
        self.assertEqual(len(calls), 1)

    @override_settings(ORDER_TRANSACTION_ATTEMPTS=3, ORDER_TRANSACTION_RETRY_DELAY=0)
    def test_out_of_range_values_are_not_retried(self):
        calls = []

        def fn():
            calls.append(1)
            raise DataError('numeric field overflow')

        with self.assertRaises(OrderValidationError):
            run_in_transaction(fn)
        self.assertEqual(len(calls), 1)


class ConcurrentOrderTestCase(OrderTestMixin, TransactionTestCase):
    """
    Test concurrent order handling to verify stock is never oversold.
    Uses TransactionTestCase for proper multi-threading support.
    """

    def setUp(self):
        """Set up test data for concurrent testing."""
        self.users = [self.make_user(f'buyer{i}') for i in range(5)]
        # Only 1 unit available
        self.product = self.make_product('p1', stock=1)

    def test_sequential_orders_for_last_unit(self):
        """
        Test: Exactly one of N orders for the last unit succeeds.
        """
        outcomes = []
        for user in self.users:
            try:
                create_order(order_payload([line(self.product, 1)]), user)
                outcomes.append('confirmed')
            except OutOfStockError:
                outcomes.append('out_of_stock')

        self.assertEqual(outcomes.count('confirmed'), 1)
        self.assertEqual(outcomes.count('out_of_stock'), len(self.users) - 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.count_in_stock, 0)

    @override_settings(ORDER_TRANSACTION_RETRY_DELAY=0.01)
    def test_concurrent_orders_no_overselling(self):
        """
        Test: Concurrent orders don't oversell stock.

        Given: 1 unit in stock
        When: Five orders of 1 unit each start together
        Then: Exactly one succeeds, the rest fail with OutOfStock,
              stock ends at 0
        """
        results = {}
        barrier = threading.Barrier(len(self.users))

        payload = order_payload([line(self.product, 1)])

        def place_order(user):
            try:
                barrier.wait()
                create_order(payload, user)
                results[user.username] = 'confirmed'
            except OutOfStockError:
                results[user.username] = 'out_of_stock'
            except TransactionConflictError:
                results[user.username] = 'conflict'
            finally:
                connection.close()

        threads = [threading.Thread(target=place_order, args=(user,)) for user in self.users]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.product.refresh_from_db()
        outcomes = list(results.values())

        self.assertEqual(len(outcomes), len(self.users))
        self.assertEqual(outcomes.count('confirmed'), 1)
        self.assertEqual(outcomes.count('out_of_stock'), len(self.users) - 1)
        self.assertEqual(self.product.count_in_stock, 0)
        self.assertEqual(Order.objects.count(), 1)


class OrderModelTestCase(TestCase):
    """Test cases for Order model helpers."""

    def test_derive_order_type(self):
        self.assertEqual(Order.derive_order_type(True, False), Order.OrderType.STANDARD)
        self.assertEqual(Order.derive_order_type(False, True), Order.OrderType.CUSTOM)
        self.assertEqual(Order.derive_order_type(True, True), Order.OrderType.MIXED)

    def test_derive_priority(self):
        self.assertEqual(Order.derive_priority(Order.OrderType.CUSTOM), Order.Priority.HIGH)
        self.assertEqual(Order.derive_priority(Order.OrderType.MIXED), Order.Priority.NORMAL)

    def test_estimate_delivery_date(self):
        today = timezone.localdate()
        self.assertEqual(
            Order.estimate_delivery_date('standard', 'overnight', today), today + timedelta(days=1)
        )
        self.assertEqual(
            Order.estimate_delivery_date('custom', 'standard', today), today + timedelta(days=19)
        )

    def test_apply_status_stamps_first_entry(self):
        order = Order(status=Order.Status.CONFIRMED)
        now = timezone.now()

        changed = order.apply_status('delivered', now=now)

        self.assertEqual(set(changed), {'status', 'delivered_at', 'is_delivered'})
        self.assertEqual(order.delivered_at, now)
        self.assertEqual(order.apply_status('delivered', now=now + timedelta(hours=1)), ['status'])
        self.assertEqual(order.delivered_at, now)
