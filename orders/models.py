"""
Order Models - Order and OrderItem entities with status tracking.

Order Status Flow:
    created as CONFIRMED (payment verified upstream)
    CONFIRMED -> PROCESSING -> READY_TO_SHIP -> SHIPPED -> DELIVERED
    any -> CANCELLED / RETURNED (staff actions)

Each status with a timestamp field records the first time the order
entered it; later re-entries keep the original timestamp.
"""
import secrets
import string
import time
import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from catalog.models import Product

BASE36_ALPHABET = string.digits + string.ascii_uppercase


def generate_order_id() -> str:
    return uuid.uuid4().hex


def generate_order_number() -> str:
    """Human-readable number: ORD-<epoch millis>-<4 base36 chars>."""
    suffix = ''.join(secrets.choice(BASE36_ALPHABET) for _ in range(4))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


class Order(models.Model):
    """
    Purchase order for catalog items and/or custom designs.

    order_type and priority are always derived from the order contents.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        CONFIRMED = 'confirmed', 'Confirmed'
        PROCESSING = 'processing', 'Processing'
        READY_TO_SHIP = 'ready_to_ship', 'Ready to ship'
        SHIPPED = 'shipped', 'Shipped'
        DELIVERED = 'delivered', 'Delivered'
        CANCELLED = 'cancelled', 'Cancelled'
        RETURNED = 'returned', 'Returned'

    class OrderType(models.TextChoices):
        STANDARD = 'standard', 'Standard'
        CUSTOM = 'custom', 'Custom'
        MIXED = 'mixed', 'Mixed'

    class Priority(models.TextChoices):
        LOW = 'low', 'Low'
        NORMAL = 'normal', 'Normal'
        HIGH = 'high', 'High'

    class ShippingMethod(models.TextChoices):
        STANDARD = 'standard', 'Standard'
        EXPRESS = 'express', 'Express'
        OVERNIGHT = 'overnight', 'Overnight'

    class ReturnStatus(models.TextChoices):
        REQUESTED = 'requested', 'Requested'
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'
        COMPLETED = 'completed', 'Completed'

    # First-entry timestamp recorded for each status
    STATUS_TIMESTAMP_FIELDS = {
        'confirmed': 'confirmed_at',
        'processing': 'processing_at',
        'shipped': 'shipped_at',
        'delivered': 'delivered_at',
        'cancelled': 'cancelled_at',
    }

    SHIPPING_DAYS = {
        'overnight': 1,
        'express': 2,
    }
    DEFAULT_SHIPPING_DAYS = 5
    CUSTOM_PRODUCTION_DAYS = 14

    id = models.CharField(
        primary_key=True,
        max_length=64,
        default=generate_order_id,
        editable=False
    )
    order_number = models.CharField(
        max_length=40,
        unique=True,
        default=generate_order_number,
        help_text="Customer-facing order number"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='orders',
        help_text="Customer who placed the order"
    )
    user_email = models.EmailField(blank=True, default='')
    user_name = models.CharField(max_length=150, blank=True, default='')

    order_type = models.CharField(
        max_length=20,
        choices=OrderType.choices,
        default=OrderType.STANDARD,
        db_index=True
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
        help_text="Current order status"
    )
    priority = models.CharField(
        max_length=10,
        choices=Priority.choices,
        default=Priority.NORMAL,
        db_index=True
    )

    # Shipping
    shipping_address = models.JSONField(default=dict)
    billing_address = models.JSONField(default=dict, blank=True)
    shipping_method = models.CharField(
        max_length=20,
        choices=ShippingMethod.choices,
        default=ShippingMethod.STANDARD
    )
    shipping_carrier = models.CharField(max_length=100, blank=True, default='')
    tracking_number = models.CharField(max_length=100, blank=True, default='')
    delivery_instructions = models.TextField(blank=True, default='')
    estimated_delivery_date = models.DateField(null=True, blank=True)

    # Payment (verified upstream)
    payment_method = models.CharField(max_length=50)
    payment_result = models.JSONField(default=dict)
    payment_status = models.CharField(max_length=20, default='pending')
    is_paid = models.BooleanField(default=False)
    paid_at = models.DateTimeField(null=True, blank=True)

    # Pricing breakdown
    items_price = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    custom_orders_price = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    shipping_price = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    tax_price = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    total_price = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    promo_code = models.CharField(max_length=50, blank=True, default='')
    customer_notes = models.TextField(blank=True, default='')

    # Timeline
    confirmed_at = models.DateTimeField(null=True, blank=True)
    processing_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    is_delivered = models.BooleanField(default=False)

    # Returns
    return_requested = models.BooleanField(default=False)
    return_reason = models.TextField(blank=True, default='')
    return_status = models.CharField(
        max_length=20,
        choices=ReturnStatus.choices,
        blank=True,
        default=''
    )

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Order'
        verbose_name_plural = 'Orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'status'], name='order_user_status_idx'),
            models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
        ]

    def __str__(self):
        return f"Order {self.order_number} ({self.status})"

    @staticmethod
    def derive_order_type(has_items: bool, has_custom_orders: bool) -> str:
        if has_items and has_custom_orders:
            return Order.OrderType.MIXED
        if has_custom_orders:
            return Order.OrderType.CUSTOM
        return Order.OrderType.STANDARD

    @staticmethod
    def derive_priority(order_type: str) -> str:
        if order_type == Order.OrderType.CUSTOM:
            return Order.Priority.HIGH
        return Order.Priority.NORMAL

    @classmethod
    def estimate_delivery_date(cls, order_type: str, shipping_method: str, today=None):
        today = today or timezone.localdate()
        days = cls.SHIPPING_DAYS.get(shipping_method, cls.DEFAULT_SHIPPING_DAYS)
        if order_type in (cls.OrderType.CUSTOM, cls.OrderType.MIXED):
            days += cls.CUSTOM_PRODUCTION_DAYS
        return today + timedelta(days=days)

    def apply_status(self, new_status: str, now=None) -> list:
        """
        Set status and stamp its first-entry timestamp if still unset.

        Returns the list of changed field names.
        """
        now = now or timezone.now()
        changed = ['status']
        self.status = new_status

        timestamp_field = self.STATUS_TIMESTAMP_FIELDS.get(new_status)
        if timestamp_field and getattr(self, timestamp_field) is None:
            setattr(self, timestamp_field, now)
            changed.append(timestamp_field)

        if new_status == self.Status.DELIVERED and not self.is_delivered:
            self.is_delivered = True
            changed.append('is_delivered')
        return changed

    @property
    def is_confirmed(self) -> bool:
        return self.status == self.Status.CONFIRMED

    @property
    def item_count(self) -> int:
        return self.items.count()


class OrderItem(models.Model):
    """
    OrderItem entity representing a catalog product in an order.

    Stores the unit price and product name at time of order to preserve
    historical pricing.
    """
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='items',
        help_text="Parent order"
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,  # Prevent deletion of products with orders
        related_name='order_items',
        help_text="Ordered product"
    )
    product_name = models.CharField(max_length=200, blank=True, default='')
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Quantity ordered"
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Price per unit at time of order"
    )
    size = models.CharField(max_length=20)
    color = models.CharField(max_length=50)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Order Item'
        verbose_name_plural = 'Order Items'
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity}x {self.product_name or self.product_id} ({self.size}/{self.color}) @ ${self.price}"

    @property
    def subtotal(self) -> Decimal:
        """Calculate item subtotal."""
        return self.quantity * self.price
