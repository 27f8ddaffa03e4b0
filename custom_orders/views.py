"""
Custom Order API Views.

Implements:
- PUT /custom-orders/{id}/status/ - Staff status update (forward only)
"""
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.permissions import IsStaffPrincipal
from .serializers import CustomOrderSerializer, CustomOrderStatusSerializer
from .services import update_custom_order_status


class CustomOrderStatusView(APIView):
    permission_classes = [IsAuthenticated, IsStaffPrincipal]

    def put(self, request, pk):
        serializer = CustomOrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        custom_order = update_custom_order_status(
            pk, serializer.validated_data['status'], request.user
        )
        return Response({'success': True, 'data': CustomOrderSerializer(custom_order).data})
