"""
Storefront error taxonomy and the DRF exception handler that renders it.

Every domain error carries an HTTP status and a short machine code; the
handler turns them (and DRF's own API exceptions) into the standard
failure envelope: {"success": false, "error": "<message>", "code": ...}.
"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Base class for errors that map onto an API response."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'error'

    def details(self) -> dict:
        return {}

    def as_payload(self) -> dict:
        payload = {'success': False, 'error': str(self), 'code': self.code}
        payload.update(self.details())
        return payload


class OrderValidationError(StorefrontError):
    """Raised when a request field is missing or malformed."""
    code = 'validation_error'

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message)

    def details(self):
        return {'field': self.field} if self.field else {}


class ProductNotFoundError(StorefrontError):
    code = 'product_not_found'

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found or inactive: {product_id}")

    def details(self):
        return {'product_id': self.product_id}


class OutOfStockError(StorefrontError):
    """Raised when there's not enough stock for an order item."""
    status_code = status.HTTP_409_CONFLICT
    code = 'out_of_stock'

    def __init__(self, product_id: str, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )

    def details(self):
        return {
            'product_id': self.product_id,
            'available': self.available,
            'requested': self.requested,
        }


class CustomOrderNotFoundError(StorefrontError):
    code = 'custom_order_not_found'

    def __init__(self, custom_order_id: str):
        self.custom_order_id = custom_order_id
        super().__init__(f"Custom order not found: {custom_order_id}")

    def details(self):
        return {'custom_order_id': self.custom_order_id}


class CustomOrderOwnershipError(StorefrontError):
    status_code = status.HTTP_403_FORBIDDEN
    code = 'custom_order_ownership_mismatch'

    def __init__(self, custom_order_id: str):
        self.custom_order_id = custom_order_id
        super().__init__(f"Custom order does not belong to user: {custom_order_id}")

    def details(self):
        return {'custom_order_id': self.custom_order_id}


class CustomOrderStateError(StorefrontError):
    """Raised when a custom order cannot move into the requested state."""
    status_code = status.HTTP_409_CONFLICT
    code = 'custom_order_state_conflict'

    def __init__(self, custom_order_id: str, current_status: str, message: str = None):
        self.custom_order_id = custom_order_id
        self.current_status = current_status
        super().__init__(
            message or f"Custom order {custom_order_id} cannot be used in status '{current_status}'"
        )

    def details(self):
        return {'custom_order_id': self.custom_order_id, 'status': self.current_status}


class NotAuthorizedError(StorefrontError):
    status_code = status.HTTP_403_FORBIDDEN
    code = 'not_authorized'


class NotFoundError(StorefrontError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'not_found'


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class CustomOrderMissingError(NotFoundError):
    def __init__(self, custom_order_id):
        self.custom_order_id = custom_order_id
        super().__init__(f"Custom order not found: {custom_order_id}")


class TransactionConflictError(StorefrontError):
    """The store could not commit; the caller may retry."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = 'transaction_conflict'

    def details(self):
        return {'retryable': True}


class NotificationError(Exception):
    """Delivery of a customer notification failed. Never reaches clients."""
    pass


def _first_message(detail):
    if isinstance(detail, dict):
        for key, value in detail.items():
            message = _first_message(value)
            if key in ('detail', 'non_field_errors'):
                return message
            return f"{key}: {message}"
        return ''
    if isinstance(detail, (list, tuple)):
        return _first_message(detail[0]) if detail else ''
    return str(detail)


def api_exception_handler(exc, context):
    """Render storefront and DRF errors in the standard envelope."""
    if isinstance(exc, StorefrontError):
        view = context.get('view')
        logger.warning(
            f"{type(exc).__name__} in {type(view).__name__ if view else 'view'}: {exc}"
        )
        return Response(exc.as_payload(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        return None

    payload = {
        'success': False,
        'error': _first_message(response.data),
        'code': getattr(exc, 'default_code', 'error'),
    }
    if isinstance(response.data, dict) and 'detail' not in response.data:
        payload['details'] = response.data
    response.data = payload
    return response
