"""
Serializers for order models.

Output serializers render orders; input serializers validate the order
creation payload and the staff action payloads.
"""
from collections import OrderedDict
from decimal import Decimal

from rest_framework import serializers
from .models import Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    """Serializer for OrderItem with pricing at time of order."""
    product_id = serializers.CharField(read_only=True)
    subtotal = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        read_only=True
    )

    class Meta:
        model = OrderItem
        fields = ['id', 'product_id', 'product_name', 'quantity', 'price', 'size', 'color', 'subtotal']


class OrderSerializer(serializers.ModelSerializer):
    """
    Serializer for Order model with nested items.
    Expects items and custom_orders to be prefetched.
    """
    user_id = serializers.CharField(read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)
    custom_orders = serializers.PrimaryKeyRelatedField(many=True, read_only=True)
    is_confirmed = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'user_id', 'user_email', 'user_name',
            'order_type', 'status', 'priority', 'is_confirmed',
            'items', 'custom_orders',
            'shipping_address', 'billing_address', 'shipping_method',
            'shipping_carrier', 'tracking_number', 'delivery_instructions',
            'estimated_delivery_date',
            'payment_method', 'payment_result', 'payment_status', 'is_paid', 'paid_at',
            'items_price', 'custom_orders_price', 'shipping_price', 'tax_price',
            'discount_amount', 'total_price', 'promo_code', 'customer_notes',
            'confirmed_at', 'processing_at', 'shipped_at', 'delivered_at',
            'cancelled_at', 'is_delivered',
            'return_requested', 'return_reason', 'return_status',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Compact serializer for order listings."""
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'user_name', 'order_type', 'status',
            'priority', 'total_price', 'item_count', 'tracking_number',
            'estimated_delivery_date', 'created_at'
        ]

    def get_item_count(self, obj):
        # Use prefetched items count if available
        if hasattr(obj, '_prefetched_objects_cache') and 'items' in obj._prefetched_objects_cache:
            return len(obj.items.all())
        return obj.items.count()


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.CharField()


class OrderTrackingSerializer(serializers.Serializer):
    carrier = serializers.CharField(max_length=100)
    tracking_number = serializers.CharField(max_length=100)


class OrderReturnSerializer(serializers.Serializer):
    reason = serializers.CharField()


# =============================================================================
# Order creation input
# =============================================================================

ZERO = Decimal('0.00')
TOTAL_PRICE_TOLERANCE = Decimal('0.01')

PRICE_FIELDS = (
    'items_price',
    'custom_orders_price',
    'shipping_price',
    'tax_price',
    'discount_amount',
)


def price_field(**kwargs):
    """Money amount bounded like the Order price columns."""
    return serializers.DecimalField(max_digits=12, decimal_places=2, min_value=ZERO, **kwargs)


class OrderItemCreateSerializer(serializers.Serializer):
    """Serializer for creating order items in order creation request."""
    product_id = serializers.CharField(max_length=64)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=ZERO)
    size = serializers.CharField(max_length=20)
    color = serializers.CharField(max_length=50)


class PaymentResultSerializer(serializers.Serializer):
    """Payment verified upstream; other provider keys are kept as sent."""
    id = serializers.CharField(max_length=200)
    amount = price_field()


class OrderCreateSerializer(serializers.Serializer):
    """
    Serializer for creating orders via POST /orders/

    order_type is not a field: it is always derived from items and
    custom_orders.

    Request format:
    {
        "items": [{"product_id": "p1", "quantity": 2, "price": "1000",
                   "size": "M", "color": "Black"}],
        "custom_orders": [],
        "shipping_address": {"address": "...", "city": "...", "email": "..."},
        "payment_method": "card",
        "payment_result": {"id": "pay_1", "amount": "2500"},
        "items_price": "2000", "shipping_price": "500",
        "total_price": "2500"
    }
    """
    user_id = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    items = OrderItemCreateSerializer(many=True, required=False)
    custom_orders = serializers.ListField(
        child=serializers.CharField(max_length=64),
        required=False,
        default=list
    )
    shipping_address = serializers.DictField()
    billing_address = serializers.DictField(required=False, allow_null=True)
    payment_method = serializers.CharField(max_length=50)
    payment_result = PaymentResultSerializer()
    items_price = price_field(required=False, default=ZERO)
    custom_orders_price = price_field(required=False, default=ZERO)
    shipping_price = price_field(required=False, default=ZERO)
    tax_price = price_field(required=False, default=ZERO)
    discount_amount = price_field(required=False, default=ZERO)
    total_price = price_field()
    shipping_method = serializers.ChoiceField(
        choices=Order.ShippingMethod.choices,
        required=False,
        default=Order.ShippingMethod.STANDARD
    )
    promo_code = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    delivery_instructions = serializers.CharField(required=False, allow_blank=True, default='')
    customer_notes = serializers.CharField(required=False, allow_blank=True, default='')
    user_email = serializers.EmailField(required=False, allow_blank=True, default='')
    user_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')

    def validate_shipping_address(self, value):
        if not value:
            raise serializers.ValidationError("Shipping address is required")
        return value

    def validate_custom_orders(self, value):
        # Referencing the same design twice binds it once
        return list(OrderedDict.fromkeys(value))

    def validate(self, attrs):
        attrs.setdefault('items', [])
        if not attrs['items'] and not attrs['custom_orders']:
            raise serializers.ValidationError(
                {'items': "Order must contain at least one item or custom order"}
            )

        expected_total = (
            attrs['items_price'] + attrs['custom_orders_price']
            + attrs['shipping_price'] + attrs['tax_price']
            - attrs['discount_amount']
        )
        if abs(attrs['total_price'] - expected_total) > TOTAL_PRICE_TOLERANCE:
            raise serializers.ValidationError({
                'total_price': (
                    f"total_price {attrs['total_price']} does not match "
                    f"price breakdown {expected_total}"
                )
            })

        if not attrs.get('billing_address'):
            attrs['billing_address'] = attrs['shipping_address']

        raw_payment = self.initial_data.get('payment_result')
        payment_result = dict(raw_payment) if isinstance(raw_payment, dict) else {}
        payment_result.update(
            id=attrs['payment_result']['id'],
            amount=str(attrs['payment_result']['amount'])
        )
        attrs['payment_result'] = payment_result
        attrs['user_id'] = attrs.get('user_id') or None
        return attrs
