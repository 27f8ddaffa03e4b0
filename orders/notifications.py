"""
Customer notifications for orders.
"""
import logging
from typing import Optional

from django.conf import settings
from django.core.mail import send_mail

from core.exceptions import NotificationError

logger = logging.getLogger(__name__)


def confirmation_recipient(order) -> Optional[str]:
    """Account email first, then the email on the shipping address."""
    if order.user_email:
        return order.user_email
    email = (order.shipping_address or {}).get('email')
    return email or None


def render_confirmation_body(order) -> str:
    lines = [
        f"Thank you for shopping with {settings.STORE_NAME}!",
        "",
        f"Order number: {order.order_number}",
        f"Order type: {order.get_order_type_display()}",
        f"Total: ${order.total_price}",
    ]
    if order.estimated_delivery_date:
        lines.append(f"Estimated delivery: {order.estimated_delivery_date.isoformat()}")

    items = list(order.items.all())
    if items:
        lines += ["", "Items:"]
        lines += [
            f"  - {item.quantity}x {item.product_name or item.product_id} "
            f"({item.size}/{item.color}) @ ${item.price}"
            for item in items
        ]

    custom_orders = list(order.custom_orders.all())
    if custom_orders:
        lines += ["", "Custom designs:"]
        lines += [f"  - {c.design_type} ({c.id})" for c in custom_orders]

    address = order.shipping_address or {}
    address_line = ', '.join(
        str(address[key]) for key in ('address', 'city', 'postal_code', 'country')
        if address.get(key)
    )
    if address_line:
        lines += ["", f"Shipping to: {address_line}"]
    return '\n'.join(lines)


def send_order_confirmation_email(order, recipient: str) -> str:
    """
    Send the order confirmation email.

    Returns:
        The recipient address

    Raises:
        NotificationError: The mail backend failed
    """
    try:
        send_mail(
            subject=f"Your {settings.STORE_NAME} Order #{order.order_number}",
            message=render_confirmation_body(order),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
        )
    except Exception as exc:
        raise NotificationError(str(exc)) from exc

    logger.info(f"Confirmation email for order {order.order_number} sent to {recipient}")
    return recipient
