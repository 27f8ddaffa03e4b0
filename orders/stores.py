"""
Persistence collaborators used by the order transaction.

Each store is a thin layer over the Django ORM. Reads meant for invariant
checks lock their rows with select_for_update() in primary key order, so
concurrent transactions touching the same products or custom orders
serialize instead of deadlocking. run_in_transaction() is the single entry
point that gives the service its atomic, retried unit of work.
"""
import logging
import time
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, TypeVar

from django.conf import settings
from django.db import DatabaseError, DataError, transaction
from django.db.models import F
from django.utils import timezone

from accounts.models import UserProfile
from catalog.models import Product
from core.exceptions import OrderValidationError, OutOfStockError, TransactionConflictError
from custom_orders.models import CustomOrder
from .models import Order, OrderItem

logger = logging.getLogger(__name__)

T = TypeVar('T')


def run_in_transaction(fn: Callable[[], T], attempts: Optional[int] = None) -> T:
    """
    Run fn inside transaction.atomic(), retrying on store conflicts.

    Domain errors raised by fn roll the transaction back and propagate
    unchanged. DataError means a value the column cannot hold and is
    reported once as OrderValidationError. Any other DatabaseError (lock
    timeouts, serialization failures, connectivity) is retried with linear
    backoff, then reported as TransactionConflictError.
    """
    attempts = attempts or settings.ORDER_TRANSACTION_ATTEMPTS
    delay = settings.ORDER_TRANSACTION_RETRY_DELAY

    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                return fn()
        except DataError as e:
            logger.warning(f"Transaction rejected by the database: {e}")
            raise OrderValidationError("Order contains a value out of range") from e
        except DatabaseError as e:
            last_error = e
            logger.warning(f"Transaction attempt {attempt}/{attempts} failed: {e}")
            if attempt < attempts:
                time.sleep(delay * attempt)

    raise TransactionConflictError(
        "Order could not be committed, please retry"
    ) from last_error


class StockRecord(NamedTuple):
    product_id: str
    name: str
    count_in_stock: int


class ProductStore:

    @staticmethod
    def read_stock(product_ids: Iterable[str]) -> Dict[str, StockRecord]:
        """Lock and read stock for active products; absent ids are omitted."""
        rows = (
            Product.objects.select_for_update()
            .filter(pk__in=list(product_ids), is_active=True)
            .order_by('pk')
            .values_list('pk', 'name', 'count_in_stock')
        )
        return {pk: StockRecord(pk, name, count) for pk, name, count in rows}

    @staticmethod
    def decrement_stock(product_id: str, amount: int) -> None:
        """Conditionally decrement; never lets count_in_stock go negative."""
        updated = Product.objects.filter(
            pk=product_id,
            count_in_stock__gte=amount
        ).update(
            count_in_stock=F('count_in_stock') - amount,
            updated_at=timezone.now()
        )
        if not updated:
            available = (
                Product.objects.filter(pk=product_id)
                .values_list('count_in_stock', flat=True)
                .first()
            )
            raise OutOfStockError(product_id, available or 0, amount)


class CustomOrderStore:

    @staticmethod
    def read(custom_order_ids: Iterable[str]) -> Dict[str, CustomOrder]:
        """Lock and read custom orders; absent ids are omitted."""
        rows = (
            CustomOrder.objects.select_for_update()
            .filter(pk__in=list(custom_order_ids))
            .order_by('pk')
        )
        return {custom_order.pk: custom_order for custom_order in rows}

    @staticmethod
    def set_status(custom_order: CustomOrder, status: str, order: Optional[Order] = None) -> None:
        fields = ['updated_at']
        if custom_order.status != status and custom_order.can_transition_to(status):
            custom_order.status = status
            fields.append('status')
        if order is not None:
            custom_order.order = order
            fields.append('order')
        custom_order.save(update_fields=fields)


class UserStore:

    @staticmethod
    def append_order_id(user, order_id: str) -> None:
        """Append order_id to the user's profile unless already present."""
        profile, _ = UserProfile.objects.get_or_create(user=user)
        profile = UserProfile.objects.select_for_update().get(pk=profile.pk)
        if order_id not in profile.order_ids:
            profile.order_ids = [*profile.order_ids, order_id]
            profile.save(update_fields=['order_ids', 'updated_at'])


class OrderStore:

    @staticmethod
    def write(order: Order, items: List[OrderItem]) -> Order:
        order.save(force_insert=True)
        for item in items:
            item.order = order
        OrderItem.objects.bulk_create(items)
        return order

    @staticmethod
    def base_queryset():
        return Order.objects.select_related('user').prefetch_related(
            'items', 'custom_orders'
        )

    @staticmethod
    def read(order_id: str, for_update: bool = False) -> Optional[Order]:
        queryset = Order.objects.select_for_update() if for_update else OrderStore.base_queryset()
        return queryset.filter(pk=order_id).first()

    @staticmethod
    def _apply_filters(queryset, filters: Dict[str, str], allowed: Iterable[str]):
        for field in allowed:
            value = (filters.get(field) or '').strip().lower()
            if value and value != 'all':
                queryset = queryset.filter(**{field: value})
        return queryset.order_by('-created_at')

    @staticmethod
    def query_by_user(user, filters: Optional[Dict[str, str]] = None):
        queryset = OrderStore.base_queryset().filter(user=user)
        return OrderStore._apply_filters(queryset, filters or {}, ('status', 'order_type'))

    @staticmethod
    def query_all(filters: Optional[Dict[str, str]] = None):
        return OrderStore._apply_filters(
            OrderStore.base_queryset(), filters or {}, ('status', 'order_type', 'priority')
        )
