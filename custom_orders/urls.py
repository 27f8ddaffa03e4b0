"""
URL routing for custom order API endpoints.
"""
from django.urls import path
from . import views

app_name = 'custom_orders'

urlpatterns = [
    path('custom-orders/<str:pk>/status/', views.CustomOrderStatusView.as_view(), name='custom-order-status'),
]
