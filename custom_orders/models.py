"""
Custom Order Models - bespoke design requests.

Status Flow (forward only):
    consultation -> confirmed -> design -> measurement -> production
        -> fitting -> ready -> shipped -> delivered
    any non-terminal status -> cancelled

A custom order moves to CONFIRMED when it is bound into a purchase order.
CANCELLED and DELIVERED are terminal.
"""
import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models


def generate_custom_order_id() -> str:
    return f"custom_{uuid.uuid4().hex[:12]}"


class CustomOrder(models.Model):
    """
    Custom design request owned by a single user.
    """

    class Status(models.TextChoices):
        CONSULTATION = 'consultation', 'Consultation'
        CONFIRMED = 'confirmed', 'Confirmed'
        DESIGN = 'design', 'Design'
        MEASUREMENT = 'measurement', 'Measurement'
        PRODUCTION = 'production', 'Production'
        FITTING = 'fitting', 'Fitting'
        READY = 'ready', 'Ready'
        SHIPPED = 'shipped', 'Shipped'
        DELIVERED = 'delivered', 'Delivered'
        CANCELLED = 'cancelled', 'Cancelled'

    FORWARD_FLOW = [
        Status.CONSULTATION,
        Status.CONFIRMED,
        Status.DESIGN,
        Status.MEASUREMENT,
        Status.PRODUCTION,
        Status.FITTING,
        Status.READY,
        Status.SHIPPED,
        Status.DELIVERED,
    ]
    TERMINAL_STATUSES = (Status.DELIVERED, Status.CANCELLED)

    id = models.CharField(
        primary_key=True,
        max_length=64,
        default=generate_custom_order_id,
        editable=False
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='custom_orders',
        help_text="Customer who requested the design"
    )
    user_email = models.EmailField(blank=True, default='')
    design_type = models.CharField(max_length=100)
    occasion = models.CharField(max_length=100, blank=True, default='')
    style_description = models.TextField(blank=True, default='')
    fabric_type = models.CharField(max_length=100, blank=True, default='')
    fabric_color = models.CharField(max_length=50, blank=True, default='')
    measurements = models.JSONField(default=dict, blank=True)
    special_requests = models.TextField(blank=True, default='')
    event_date = models.DateField(null=True, blank=True)
    total_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.CONSULTATION,
        db_index=True
    )
    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='custom_orders',
        help_text="Purchase order this design was bound into"
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Custom Order'
        verbose_name_plural = 'Custom Orders'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.id} - {self.design_type} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def is_bindable(self) -> bool:
        """Only live designs that no purchase order holds yet can be bought."""
        return not self.is_terminal and self.order_id is None

    def can_transition_to(self, new_status: str) -> bool:
        """Transitions never move backwards and never leave a terminal state."""
        if self.is_terminal:
            return new_status == self.status
        if new_status == self.Status.CANCELLED:
            return True
        return self.FORWARD_FLOW.index(new_status) >= self.FORWARD_FLOW.index(self.status)
