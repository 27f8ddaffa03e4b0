"""
Order API Views.

Implements:
- POST /orders/ - Create order with atomic transaction
- GET /orders/ - List all orders (staff)
- GET /orders/mine/ - Orders of the current user
- GET /orders/{id}/ - Order detail (owner or staff)
- PUT /orders/{id}/status/ - Update status (staff)
- PUT /orders/{id}/tracking/ - Add tracking, marks shipped (staff)
- PUT /orders/{id}/deliver/ - Mark delivered (staff)
- POST /orders/{id}/return/ - Request a return (owner)

Domain errors propagate to core.exceptions.api_exception_handler, which
renders the failure envelope.
"""
import logging
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import StorefrontError
from core.permissions import IsStaffPrincipal
from core.rate_limiting import rate_limit
from .serializers import (
    OrderListSerializer,
    OrderReturnSerializer,
    OrderSerializer,
    OrderStatusSerializer,
    OrderTrackingSerializer,
)
from .stores import OrderStore
from . import services

logger = logging.getLogger(__name__)

FILTER_PARAMS = ('status', 'order_type', 'priority')


def _filters(request):
    return {
        key: request.query_params[key]
        for key in FILTER_PARAMS
        if key in request.query_params
    }


def _order_response(order, status_code=status.HTTP_200_OK):
    order = OrderStore.read(order.pk)
    return Response({'success': True, 'data': OrderSerializer(order).data}, status=status_code)


class OrderListCreateView(APIView):
    """
    GET: List all orders (staff only)
    POST: Create a new order with atomic transaction handling

    Query Parameters (GET):
        - status, order_type, priority: exact filters ('all' is ignored)

    Request Body (POST):
    {
        "items": [{"product_id": "p1", "quantity": 2, "price": "49.99",
                   "size": "M", "color": "black"}],
        "custom_orders": ["custom_1a2b3c4d5e6f"],
        "shipping_address": {...},
        "payment_method": "card",
        "payment_result": {"id": "pay_123", "amount": "107.98"},
        "items_price": "99.98", "shipping_price": "8.00",
        "total_price": "107.98"
    }
    """
    permission_classes = [IsAuthenticated]

    def get_permissions(self):
        if self.request.method == 'GET':
            return [IsAuthenticated(), IsStaffPrincipal()]
        return super().get_permissions()

    def get(self, request):
        orders = services.list_orders(request.user, _filters(request))
        return Response({
            'success': True,
            'count': len(orders),
            'data': OrderListSerializer(orders, many=True).data,
        })

    @rate_limit(max_requests=10, window_seconds=60)
    def post(self, request):
        """
        Create order with atomic transaction handling.

        Returns:
            - 201: Order created and confirmed
            - 400/403/409/503: Domain error envelope
            - 500: Unexpected failure, nothing committed
        """
        try:
            order = services.create_order(request.data, request.user)
        except (StorefrontError, APIException):
            raise
        except Exception as e:
            logger.exception(f"Unexpected error creating order: {e}")
            return Response(
                {
                    'success': False,
                    'error': 'Order creation failed',
                    'code': 'server_error',
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        return _order_response(order, status.HTTP_201_CREATED)


class MyOrdersView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        orders = services.list_user_orders(request.user, _filters(request))
        return Response({
            'success': True,
            'count': len(orders),
            'data': OrderListSerializer(orders, many=True).data,
        })


class OrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        order = services.get_order(pk, request.user)
        return Response({'success': True, 'data': OrderSerializer(order).data})


class OrderStatusView(APIView):
    permission_classes = [IsAuthenticated, IsStaffPrincipal]

    def put(self, request, pk):
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.update_status(pk, serializer.validated_data['status'], request.user)
        return _order_response(order)


class OrderTrackingView(APIView):
    permission_classes = [IsAuthenticated, IsStaffPrincipal]

    def put(self, request, pk):
        serializer = OrderTrackingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.add_tracking(
            pk,
            serializer.validated_data['carrier'],
            serializer.validated_data['tracking_number'],
            request.user
        )
        return _order_response(order)


class OrderDeliverView(APIView):
    permission_classes = [IsAuthenticated, IsStaffPrincipal]

    def put(self, request, pk):
        order = services.mark_delivered(pk, request.user)
        return _order_response(order)


class OrderReturnView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        serializer = OrderReturnSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.request_return(pk, serializer.validated_data['reason'], request.user)
        return _order_response(order)
