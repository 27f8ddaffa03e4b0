"""
Account Models - storefront profile attached to each auth user.

The profile carries the principal's role and the list of order ids the
user has placed.
"""
from django.conf import settings
from django.db import models


class UserProfile(models.Model):
    """
    Storefront profile for an authenticated principal.

    Roles:
        - CUSTOMER: Places and views their own orders
        - ADMIN / DESIGNER: Staff, may manage every order
    """

    class Role(models.TextChoices):
        CUSTOMER = 'customer', 'Customer'
        ADMIN = 'admin', 'Admin'
        DESIGNER = 'designer', 'Designer'

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='profile'
    )
    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.CUSTOMER,
        db_index=True
    )
    phone = models.CharField(max_length=30, blank=True, default='')
    order_ids = models.JSONField(
        default=list,
        blank=True,
        help_text="Ids of orders placed by this user, oldest first"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'User Profile'
        verbose_name_plural = 'User Profiles'

    def __str__(self):
        return f"{self.user.get_username()} ({self.role})"

    @property
    def is_staff_role(self) -> bool:
        return self.role in (self.Role.ADMIN, self.Role.DESIGNER)
