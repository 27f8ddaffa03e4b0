"""
Tests for catalog products and the seed command.
"""
from decimal import Decimal
from io import StringIO
from django.core.management import call_command
from django.test import TestCase

from accounts.models import UserProfile
from catalog.models import Product
from custom_orders.models import CustomOrder
from orders.stores import ProductStore
from core.exceptions import OutOfStockError


class ProductTestCase(TestCase):

    def setUp(self):
        self.product = Product.objects.create(
            id='p1', name='Wrap Dress', price=Decimal('120.00'), count_in_stock=6
        )

    def test_generated_defaults(self):
        product = Product.objects.create(name='Silk Scarf', price=Decimal('30.00'))
        self.assertEqual(len(product.pk), 32)
        self.assertTrue(product.sku.startswith('ZEPH-'))
        self.assertTrue(product.is_out_of_stock)

    def test_low_stock(self):
        self.assertFalse(self.product.is_low_stock)
        self.product.count_in_stock = 5
        self.assertTrue(self.product.is_low_stock)

    def test_decrement_stock(self):
        ProductStore.decrement_stock('p1', 4)
        self.product.refresh_from_db()
        self.assertEqual(self.product.count_in_stock, 2)

    def test_decrement_never_goes_negative(self):
        with self.assertRaises(OutOfStockError) as ctx:
            ProductStore.decrement_stock('p1', 7)

        self.assertEqual(ctx.exception.available, 6)
        self.product.refresh_from_db()
        self.assertEqual(self.product.count_in_stock, 6)

    def test_read_stock_omits_unknown_and_inactive(self):
        Product.objects.create(id='p2', name='Old Coat', price=Decimal('80.00'), is_active=False)

        stock = ProductStore.read_stock(['p1', 'p2', 'p3'])

        self.assertEqual(list(stock), ['p1'])
        self.assertEqual(stock['p1'].count_in_stock, 6)


class SeedDataCommandTestCase(TestCase):

    def test_seed_data(self):
        out = StringIO()
        call_command('seed_data', products=10, custom_orders=2, stdout=out)

        self.assertEqual(Product.objects.count(), 10)
        self.assertEqual(CustomOrder.objects.count(), 2)
        self.assertEqual(
            set(UserProfile.objects.values_list('role', flat=True)),
            set(UserProfile.Role.values)
        )
        self.assertIn('completed successfully', out.getvalue())

    def test_seed_data_clear(self):
        call_command('seed_data', products=5, custom_orders=1, stdout=StringIO())
        call_command('seed_data', products=3, custom_orders=1, clear=True, stdout=StringIO())

        self.assertEqual(Product.objects.count(), 3)
        self.assertEqual(CustomOrder.objects.count(), 1)
