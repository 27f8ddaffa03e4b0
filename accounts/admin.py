"""
Django Admin configuration for account profiles.
"""
from django.contrib import admin
from .models import UserProfile


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'role', 'phone', 'order_count', 'created_at']
    list_filter = ['role', 'created_at']
    search_fields = ['user__username', 'user__email', 'phone']
    readonly_fields = ['order_ids', 'created_at', 'updated_at']
    raw_id_fields = ['user']

    def order_count(self, obj):
        return len(obj.order_ids or [])
    order_count.short_description = 'Orders'
