"""
Tenant directory models.

A Company is the root of isolation: every other row in Warden either
belongs to exactly one Company or is global.
"""
from django.db import models

from apps.core.models import BaseModel


class CompanyManager(models.Manager):
    """Manager for company lookups."""

    def by_name(self, name):
        return self.filter(name__iexact=name).first()


class Company(BaseModel):
    """
    A tenant.

    Companies are provisioned by the platform operator (see the
    ``create_company`` management command), never through the tenant API.
    """
    name = models.CharField(
        max_length=255,
        unique=True,
        help_text="Company display name"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive companies cannot authenticate"
    )

    objects = CompanyManager()

    class Meta:
        db_table = 'companies'
        verbose_name_plural = 'companies'
        ordering = ['name']

    def __str__(self):
        return self.name
