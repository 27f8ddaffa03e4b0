"""
Management command to seed the database with sample data.

Generates:
- Catalog products with sizes, colors and stock
- Demo users (customer, admin, designer) with profiles
- Custom design requests in consultation for the demo customer

Usage:
    python manage.py seed_data
    python manage.py seed_data --clear  # Clear existing data first
"""
import random
from decimal import Decimal
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from accounts.models import UserProfile
from catalog.models import Product
from custom_orders.models import CustomOrder

DEMO_PASSWORD = 'zeph-demo-123'


class Command(BaseCommand):
    help = 'Seed the database with sample products, users, and custom orders'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding',
        )
        parser.add_argument(
            '--products',
            type=int,
            default=60,
            help='Number of products to create (default: 60)',
        )
        parser.add_argument(
            '--custom-orders',
            type=int,
            default=3,
            help='Number of custom orders for the demo customer (default: 3)',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self._clear_data()

        self.stdout.write('Starting database seeding...')

        with transaction.atomic():
            users = self._create_users()
            self._create_products(options['products'])
            self._create_custom_orders(options['custom_orders'], users['customer'])

        self.stdout.write(self.style.SUCCESS('Database seeding completed successfully!'))
        self.stdout.write(f'Demo users share the password "{DEMO_PASSWORD}"')

    def _clear_data(self):
        """Clear all existing data."""
        from orders.models import OrderItem, Order

        OrderItem.objects.all().delete()
        CustomOrder.objects.all().delete()
        Order.objects.all().delete()
        Product.objects.all().delete()
        UserProfile.objects.update(order_ids=[])

        self.stdout.write(self.style.WARNING('All existing data cleared.'))

    def _create_users(self):
        """Create one demo principal per role."""
        User = get_user_model()
        users = {}
        for role in UserProfile.Role.values:
            username = f'demo_{role}'
            user, created = User.objects.get_or_create(
                username=username,
                defaults={'email': f'{username}@zephfashion.com'}
            )
            if created:
                user.set_password(DEMO_PASSWORD)
                user.save()
                self.stdout.write(f'  Created user: {username}')
            UserProfile.objects.update_or_create(user=user, defaults={'role': role})
            users[role] = user

        self.stdout.write(self.style.SUCCESS(f'Created {len(users)} demo users'))
        return users

    def _create_products(self, count):
        """Create sample products with realistic data."""
        product_templates = {
            'Dresses': ['Wrap Dress', 'Maxi Dress', 'Slip Dress', 'Shirt Dress', 'Cocktail Dress'],
            'Tops': ['Silk Blouse', 'Linen Shirt', 'Cropped Tee', 'Ribbed Tank', 'Peplum Top'],
            'Bottoms': ['Wide-Leg Trousers', 'Pleated Skirt', 'Tailored Shorts', 'Denim Jeans'],
            'Outerwear': ['Trench Coat', 'Cropped Blazer', 'Wool Coat', 'Denim Jacket'],
            'Accessories': ['Leather Belt', 'Silk Scarf', 'Woven Tote', 'Beaded Clutch'],
        }
        size_runs = [['XS', 'S', 'M', 'L', 'XL'], ['S', 'M', 'L'], ['One Size']]
        colors = ['black', 'ivory', 'navy', 'emerald', 'blush', 'camel', 'burgundy']
        price_ranges = {
            'Dresses': (60, 320),
            'Tops': (25, 140),
            'Bottoms': (40, 180),
            'Outerwear': (90, 450),
            'Accessories': (15, 120),
        }

        products = []
        for i in range(count):
            category = random.choice(list(product_templates))
            base_name = random.choice(product_templates[category])
            low, high = price_ranges[category]
            sizes = size_runs[2] if category == 'Accessories' else random.choice(size_runs[:2])

            products.append(Product(
                name=f'{base_name} {i + 1:03d}',
                description=f'{base_name} from the Zeph {category.lower()} collection',
                category=category,
                price=Decimal(str(round(random.uniform(low, high), 2))),
                sizes=sizes,
                colors=random.sample(colors, k=3),
                # Some products start out of stock
                count_in_stock=0 if random.random() < 0.1 else random.randint(1, 40),
                low_stock_threshold=random.choice([3, 5, 10]),
            ))

        Product.objects.bulk_create(products, batch_size=500)
        self.stdout.write(self.style.SUCCESS(f'Created {len(products)} products'))
        return products

    def _create_custom_orders(self, count, customer):
        """Create custom design requests awaiting purchase."""
        design_types = ['Evening Gown', 'Bridal Dress', 'Tailored Suit', 'Kaftan', 'Lehenga']
        occasions = ['Wedding', 'Gala', 'Graduation', 'Anniversary']

        custom_orders = [
            CustomOrder(
                user=customer,
                user_email=customer.email,
                design_type=random.choice(design_types),
                occasion=random.choice(occasions),
                fabric_type=random.choice(['silk', 'chiffon', 'velvet', 'linen']),
                fabric_color=random.choice(['ivory', 'gold', 'midnight blue']),
                measurements={'bust': 34, 'waist': 28, 'hips': 38},
                total_price=Decimal(random.randint(250, 1500)),
            )
            for _ in range(count)
        ]
        CustomOrder.objects.bulk_create(custom_orders)
        self.stdout.write(self.style.SUCCESS(f'Created {len(custom_orders)} custom orders'))
        return custom_orders
