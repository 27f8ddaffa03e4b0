"""
Custom order staff actions.
"""
import logging

from django.db import transaction

from core.exceptions import (
    CustomOrderMissingError,
    CustomOrderStateError,
    NotAuthorizedError,
    OrderValidationError,
)
from core.permissions import is_staff_principal
from .models import CustomOrder

logger = logging.getLogger(__name__)


def update_custom_order_status(custom_order_id: str, new_status: str, user) -> CustomOrder:
    """
    Move a custom order along its production flow.

    Raises:
        OrderValidationError: Unknown status
        NotAuthorizedError: Caller is not staff
        CustomOrderMissingError: No such custom order
        CustomOrderStateError: Transition would move backwards or leave a
            terminal state
    """
    if new_status not in CustomOrder.Status.values:
        raise OrderValidationError(f"Invalid status: {new_status}", field='status')
    if not is_staff_principal(user):
        raise NotAuthorizedError("Not authorized to update custom orders")

    with transaction.atomic():
        try:
            custom_order = CustomOrder.objects.select_for_update().get(pk=custom_order_id)
        except CustomOrder.DoesNotExist:
            raise CustomOrderMissingError(custom_order_id)

        if not custom_order.can_transition_to(new_status):
            raise CustomOrderStateError(
                custom_order.id,
                custom_order.status,
                f"Custom order {custom_order.id} cannot move from "
                f"'{custom_order.status}' to '{new_status}'"
            )

        if custom_order.status != new_status:
            previous = custom_order.status
            custom_order.status = new_status
            custom_order.save(update_fields=['status', 'updated_at'])
            logger.info(f"Custom order {custom_order.id}: {previous} -> {new_status}")

    return custom_order
