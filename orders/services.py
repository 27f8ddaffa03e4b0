"""
Order Service Layer - Atomic order creation and staff order actions.

create_order implements a read-then-write transaction:
1. Validate the payload with OrderCreateSerializer (no I/O, fail fast)
2. Lock and read stock for every product, and every referenced custom order
3. Validate ALL invariants against those reads
4. If ANY fails: raise, the transaction rolls back, nothing is written
5. If ALL pass: decrement stock, confirm custom orders, persist the order,
   append it to the user's profile
6. After commit: dispatch the confirmation task (failures are only logged)
"""
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from django.db import transaction
from django.utils import timezone

from core.exceptions import (
    CustomOrderNotFoundError,
    CustomOrderOwnershipError,
    CustomOrderStateError,
    NotAuthorizedError,
    OrderNotFoundError,
    OrderValidationError,
    OutOfStockError,
    ProductNotFoundError,
)
from core.permissions import is_staff_principal
from custom_orders.models import CustomOrder
from .models import Order, OrderItem
from .serializers import PRICE_FIELDS, OrderCreateSerializer
from .stores import CustomOrderStore, OrderStore, ProductStore, UserStore, run_in_transaction

logger = logging.getLogger(__name__)


# =============================================================================
# Request validation
# =============================================================================

def _first_error(errors, path: str = '') -> Tuple[Optional[str], str]:
    """Walk DRF serializer errors to the first message and its field path."""
    if isinstance(errors, dict):
        for key, value in errors.items():
            if not value:
                continue
            if key == 'non_field_errors':
                return _first_error(value, path)
            if isinstance(key, int):
                return _first_error(value, f"{path}[{key}]")
            return _first_error(value, f"{path}.{key}" if path else key)
        return path or None, 'Invalid data'
    if isinstance(errors, (list, tuple)):
        for index, value in enumerate(errors):
            if isinstance(value, (dict, list, tuple)):
                if value:
                    return _first_error(value, f"{path}[{index}]")
                continue
            return path or None, str(value)
    return path or None, str(errors)


def validate_order_request(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a raw create-order payload.

    Raises:
        OrderValidationError: naming the first offending field
    """
    serializer = OrderCreateSerializer(data=data)
    if not serializer.is_valid():
        field, message = _first_error(serializer.errors)
        raise OrderValidationError(f"{field}: {message}" if field else message, field=field)
    return serializer.validated_data


def requested_quantities(items) -> Dict[str, int]:
    """Sum quantities per product; duplicate lines share one stock check."""
    totals = OrderedDict()
    for item in items:
        totals[item['product_id']] = totals.get(item['product_id'], 0) + item['quantity']
    return totals


# =============================================================================
# Order creation
# =============================================================================

def _check_stock(requested: Dict[str, int], stock) -> None:
    for product_id, quantity in requested.items():
        record = stock.get(product_id)
        if record is None:
            raise ProductNotFoundError(product_id)
        if record.count_in_stock < quantity:
            raise OutOfStockError(product_id, record.count_in_stock, quantity)


def _check_custom_orders(custom_order_ids, custom_orders: Dict[str, CustomOrder], user) -> None:
    for custom_order_id in custom_order_ids:
        custom_order = custom_orders.get(custom_order_id)
        if custom_order is None:
            raise CustomOrderNotFoundError(custom_order_id)
        if custom_order.user_id != user.pk:
            raise CustomOrderOwnershipError(custom_order_id)
        if not custom_order.is_bindable:
            raise CustomOrderStateError(custom_order_id, custom_order.status)


def _build_order(request: Dict[str, Any], user, now) -> Order:
    order_type = Order.derive_order_type(bool(request['items']), bool(request['custom_orders']))
    return Order(
        user=user,
        user_email=request['user_email'] or user.email or '',
        user_name=request['user_name'] or user.get_full_name() or user.get_username(),
        order_type=order_type,
        priority=Order.derive_priority(order_type),
        status=Order.Status.CONFIRMED,
        shipping_address=request['shipping_address'],
        billing_address=request['billing_address'],
        shipping_method=request['shipping_method'],
        delivery_instructions=request['delivery_instructions'],
        estimated_delivery_date=Order.estimate_delivery_date(
            order_type, request['shipping_method'], today=timezone.localdate(now)
        ),
        payment_method=request['payment_method'],
        payment_result=request['payment_result'],
        payment_status='paid',
        is_paid=True,
        paid_at=now,
        total_price=request['total_price'],
        promo_code=request['promo_code'],
        customer_notes=request['customer_notes'],
        confirmed_at=now,
        created_at=now,
        **{name: request[name] for name in PRICE_FIELDS}
    )


def dispatch_order_confirmation(order_id: str) -> None:
    """Queue the confirmation task. Never raises."""
    try:
        from .tasks import send_order_confirmation
        send_order_confirmation.delay(order_id)
        logger.info(f"Triggered confirmation task for order {order_id}")
    except Exception as e:
        # Don't fail the order if task queuing fails
        logger.error(f"Failed to queue confirmation task for order {order_id}: {e}")


def create_order(data: Dict[str, Any], user) -> Order:
    """
    Create an order, reserving stock and binding custom orders atomically.

    Args:
        data: Raw create-order payload (see OrderCreateSerializer)
        user: Authenticated principal placing the order

    Returns:
        The persisted, confirmed Order

    Raises:
        OrderValidationError, NotAuthorizedError: before any read or write
        ProductNotFoundError, OutOfStockError, CustomOrderNotFoundError,
        CustomOrderOwnershipError, CustomOrderStateError: transaction aborted
        TransactionConflictError: store could not commit, retryable
    """
    request = validate_order_request(data)
    custom_order_ids = request['custom_orders']

    if request['user_id'] is not None and request['user_id'] != str(user.pk):
        raise NotAuthorizedError("Cannot create orders for another user")

    requested = requested_quantities(request['items'])

    def _apply() -> Order:
        # Reads first: every invariant is checked before any write
        stock = ProductStore.read_stock(requested.keys())
        custom_orders = CustomOrderStore.read(custom_order_ids)

        _check_stock(requested, stock)
        _check_custom_orders(custom_order_ids, custom_orders, user)

        now = timezone.now()
        for product_id, quantity in requested.items():
            ProductStore.decrement_stock(product_id, quantity)

        order = _build_order(request, user, now)
        items = [
            OrderItem(
                product_id=item['product_id'],
                product_name=stock[item['product_id']].name,
                quantity=item['quantity'],
                price=item['price'],
                size=item['size'],
                color=item['color'],
            )
            for item in request['items']
        ]
        OrderStore.write(order, items)

        for custom_order_id in custom_order_ids:
            CustomOrderStore.set_status(
                custom_orders[custom_order_id], CustomOrder.Status.CONFIRMED, order
            )

        UserStore.append_order_id(user, order.pk)

        order_id = order.pk
        transaction.on_commit(lambda: dispatch_order_confirmation(order_id))
        return order

    try:
        order = run_in_transaction(_apply)
    except (ProductNotFoundError, OutOfStockError, CustomOrderNotFoundError,
            CustomOrderOwnershipError, CustomOrderStateError) as e:
        logger.warning(f"Order rejected for user {user.pk}: {e}")
        raise

    logger.info(
        f"Order {order.order_number} confirmed: {len(request['items'])} items, "
        f"{len(custom_order_ids)} custom orders, total ${order.total_price}"
    )
    return order


# =============================================================================
# Reads
# =============================================================================

def get_order(order_id: str, user) -> Order:
    order = OrderStore.read(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    if order.user_id != user.pk and not is_staff_principal(user):
        raise NotAuthorizedError("Not authorized to access this order")
    return order


def list_user_orders(user, filters: Optional[Dict[str, str]] = None) -> List[Order]:
    return list(OrderStore.query_by_user(user, filters))


def list_orders(user, filters: Optional[Dict[str, str]] = None) -> List[Order]:
    if not is_staff_principal(user):
        raise NotAuthorizedError("Staff role required to list all orders")
    return list(OrderStore.query_all(filters))


# =============================================================================
# Staff actions and returns
# =============================================================================

def _locked_order(order_id: str) -> Order:
    order = OrderStore.read(order_id, for_update=True)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def _require_staff(user, action: str) -> None:
    if not is_staff_principal(user):
        raise NotAuthorizedError(f"Not authorized to {action}")


def update_status(order_id: str, new_status: str, user) -> Order:
    """
    Set an order's status, stamping the first-entry timestamp.

    Staff may update any order; other principals only their own.
    """
    if new_status not in Order.Status.values:
        raise OrderValidationError(f"Invalid status: {new_status}", field='status')

    with transaction.atomic():
        order = _locked_order(order_id)
        if order.user_id != user.pk and not is_staff_principal(user):
            raise NotAuthorizedError("Not authorized to update this order")

        previous = order.status
        changed = order.apply_status(new_status)
        order.save(update_fields=changed + ['updated_at'])

    logger.info(f"Order {order.order_number}: {previous} -> {new_status}")
    return order


def add_tracking(order_id: str, carrier: str, tracking_number: str, user) -> Order:
    carrier = (carrier or '').strip()
    tracking_number = (tracking_number or '').strip()
    if not carrier:
        raise OrderValidationError("Carrier is required", field='carrier')
    if not tracking_number:
        raise OrderValidationError("Tracking number is required", field='tracking_number')
    _require_staff(user, 'add tracking information')

    with transaction.atomic():
        order = _locked_order(order_id)
        order.shipping_carrier = carrier
        order.tracking_number = tracking_number
        changed = order.apply_status(Order.Status.SHIPPED)
        order.save(update_fields=changed + ['shipping_carrier', 'tracking_number', 'updated_at'])

    logger.info(f"Order {order.order_number} shipped via {carrier} ({tracking_number})")
    return order


def mark_delivered(order_id: str, user) -> Order:
    _require_staff(user, 'mark orders as delivered')

    with transaction.atomic():
        order = _locked_order(order_id)
        changed = order.apply_status(Order.Status.DELIVERED)
        order.save(update_fields=changed + ['updated_at'])

    logger.info(f"Order {order.order_number} delivered")
    return order


def request_return(order_id: str, reason: str, user) -> Order:
    """Record a return request by the order's owner. Status is unchanged."""
    reason = (reason or '').strip()
    if not reason:
        raise OrderValidationError("Return reason is required", field='reason')

    with transaction.atomic():
        order = _locked_order(order_id)
        if order.user_id != user.pk:
            raise NotAuthorizedError("Not authorized to return this order")

        order.return_requested = True
        order.return_reason = reason
        order.return_status = Order.ReturnStatus.REQUESTED
        order.save(update_fields=['return_requested', 'return_reason', 'return_status', 'updated_at'])

    logger.info(f"Return requested for order {order.order_number}")
    return order
