"""
URL routing for order API endpoints.
"""
from django.urls import path
from . import views

app_name = 'orders'

urlpatterns = [
    path('orders/', views.OrderListCreateView.as_view(), name='order-list'),
    path('orders/mine/', views.MyOrdersView.as_view(), name='order-mine'),
    path('orders/<str:pk>/', views.OrderDetailView.as_view(), name='order-detail'),
    path('orders/<str:pk>/status/', views.OrderStatusView.as_view(), name='order-status'),
    path('orders/<str:pk>/tracking/', views.OrderTrackingView.as_view(), name='order-tracking'),
    path('orders/<str:pk>/deliver/', views.OrderDeliverView.as_view(), name='order-deliver'),
    path('orders/<str:pk>/return/', views.OrderReturnView.as_view(), name='order-return'),
]
