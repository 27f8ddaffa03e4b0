"""
Catalog Models - products sold in the storefront.

Models:
    - Product: Ready-to-wear item with sizes, colors and a stock counter

Stock is decremented only by the order transaction and never drops below 0.
"""
import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models


def generate_product_id() -> str:
    return uuid.uuid4().hex


def generate_sku() -> str:
    return f"ZEPH-{uuid.uuid4().hex[:8].upper()}"


class Product(models.Model):
    """
    Product entity representing items available for sale.
    """
    id = models.CharField(
        primary_key=True,
        max_length=64,
        default=generate_product_id,
        editable=False
    )
    name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Product name for display and search"
    )
    description = models.TextField(
        blank=True,
        default='',
        help_text="Optional product description"
    )
    sku = models.CharField(max_length=32, unique=True, default=generate_sku)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Unit price"
    )
    category = models.CharField(
        max_length=100,
        blank=True,
        default='',
        db_index=True,
        help_text="e.g. Dresses, Tops, Accessories"
    )
    sizes = models.JSONField(default=list, blank=True)
    colors = models.JSONField(default=list, blank=True)
    count_in_stock = models.PositiveIntegerField(
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Units available for sale"
    )
    low_stock_threshold = models.PositiveIntegerField(
        default=5,
        help_text="Threshold for low stock alerts"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether product is available for ordering"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Product'
        verbose_name_plural = 'Products'
        ordering = ['name']
        indexes = [
            models.Index(fields=['name', 'is_active'], name='product_name_active_idx'),
            models.Index(fields=['category', 'is_active'], name='product_category_active_idx'),
        ]

    def __str__(self):
        return f"{self.name} (${self.price})"

    @property
    def is_low_stock(self) -> bool:
        """Check if stock is at or below the low stock threshold."""
        return self.count_in_stock <= self.low_stock_threshold

    @property
    def is_out_of_stock(self) -> bool:
        return self.count_in_stock == 0
