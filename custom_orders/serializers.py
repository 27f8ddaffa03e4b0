"""
Serializers for custom orders.
"""
from rest_framework import serializers
from .models import CustomOrder


class CustomOrderSerializer(serializers.ModelSerializer):
    order_id = serializers.CharField(read_only=True, allow_null=True)

    class Meta:
        model = CustomOrder
        fields = [
            'id', 'user', 'design_type', 'occasion', 'fabric_type',
            'fabric_color', 'event_date', 'total_price', 'status',
            'order_id', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class CustomOrderStatusSerializer(serializers.Serializer):
    status = serializers.CharField()
