"""
Tests for the seed_catalog management command.
"""
from io import StringIO

import pytest
from django.core.management import call_command

from apps.rbac.models import Module, Permission, Submodule


def _seed():
    out = StringIO()
    call_command('seed_catalog', stdout=out)
    return out.getvalue()


@pytest.mark.django_db
def test_seed_creates_global_rows():
    """Test that seeding creates the global catalog."""
    output = _seed()

    assert Module.objects.global_only().count() == 2
    assert Submodule.objects.global_only().count() == 2
    assert Permission.objects.global_only().count() == 9
    assert 'Created: sales.orders.submit' in output


@pytest.mark.django_db
def test_seed_is_idempotent():
    """Test that seeding twice creates nothing new."""
    _seed()
    output = _seed()

    assert Permission.objects.global_only().count() == 9
    assert '0 rows created' in output


@pytest.mark.django_db
def test_seeded_rows_are_visible_to_every_tenant(company, other_company):
    """Test that seeded rows are visible to every company."""
    _seed()

    mine = set(Permission.objects.visible_to(company).values_list('id', flat=True))
    theirs = set(Permission.objects.visible_to(other_company).values_list('id', flat=True))

    assert mine == theirs
    assert len(mine) == 9
