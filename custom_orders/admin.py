"""
Django Admin configuration for custom orders.
"""
from django.contrib import admin
from .models import CustomOrder


@admin.register(CustomOrder)
class CustomOrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'design_type', 'occasion', 'status', 'total_price', 'order', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['id', 'user__username', 'user_email', 'design_type']
    ordering = ['-created_at']
    readonly_fields = ['order', 'created_at', 'updated_at']
    raw_id_fields = ['user']
