"""
Celery tasks for order processing.

Tasks:
    - send_order_confirmation: Async notification after order confirmation
"""
import logging
from celery import shared_task

from core.exceptions import NotificationError

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(NotificationError,),
    retry_backoff=True
)
def send_order_confirmation(self, order_id: str):
    """
    Async task triggered after an order commits.

    Emails the customer a summary of the order. Delivery failures are
    retried with backoff; they never affect the order itself.

    Args:
        order_id: Primary key of the confirmed order

    Returns:
        Dict with confirmation details
    """
    from orders.models import Order
    from orders.notifications import confirmation_recipient, send_order_confirmation_email

    try:
        order = Order.objects.prefetch_related('items', 'custom_orders').get(pk=order_id)
    except Order.DoesNotExist:
        logger.error(f"Order {order_id} not found for confirmation")
        return {'status': 'error', 'message': f'Order {order_id} not found'}

    if order.status == Order.Status.CANCELLED:
        logger.warning(f"Order {order.order_number} was cancelled, skipping confirmation")
        return {
            'status': 'skipped',
            'message': f'Order {order_id} is cancelled'
        }

    recipient = confirmation_recipient(order)
    if not recipient:
        logger.warning(f"Order {order.order_number} has no recipient, skipping confirmation")
        return {
            'status': 'skipped',
            'message': f'Order {order_id} has no recipient'
        }

    logger.info(f"[CELERY] Processing confirmation for Order {order.order_number}")
    try:
        send_order_confirmation_email(order, recipient)
    except NotificationError as e:
        logger.error(
            f"Confirmation email for order {order.order_number} failed "
            f"(attempt {self.request.retries + 1}): {e}"
        )
        raise

    return {
        'status': 'success',
        'order_id': order.pk,
        'recipient': recipient,
        'message': f'Confirmation sent for order {order.order_number}'
    }
