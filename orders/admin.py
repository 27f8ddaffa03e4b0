"""
Django Admin configuration for order models.
"""
from django.contrib import admin
from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ['product', 'product_name', 'quantity', 'price', 'size', 'color', 'subtotal']
    can_delete = False

    def subtotal(self, obj):
        return f"${obj.subtotal}"
    subtotal.short_description = 'Subtotal'


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        'order_number', 'user', 'order_type', 'status', 'priority',
        'total_price', 'item_count', 'return_requested', 'created_at'
    ]
    list_filter = ['status', 'order_type', 'priority', 'return_requested', 'created_at']
    search_fields = ['order_number', 'user__username', 'user_email', 'tracking_number']
    ordering = ['-created_at']
    readonly_fields = [
        'id', 'order_number', 'order_type', 'priority', 'payment_result',
        'total_price', 'confirmed_at', 'processing_at', 'shipped_at',
        'delivered_at', 'cancelled_at', 'created_at', 'updated_at'
    ]
    inlines = [OrderItemInline]

    def item_count(self, obj):
        return obj.items.count()
    item_count.short_description = 'Items'
