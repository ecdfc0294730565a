"""
Sales order workflow.

Orders move along ``draft -> submitted -> processed -> completed``;
``completed`` and ``cancelled`` are terminal. Two policies decide whether
a transition is allowed, evaluated in a fixed order:

1. AdminOverride: a tenant administrator may move a draft or submitted
   order to any status, skipping steps or cancelling.
2. RoleBased: everyone else follows the transition table, where each edge
   needs a capability (a permission key) or, for submission, authorship.

A terminal order is never moved, not even by an administrator.
"""
import logging
from collections import namedtuple
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

from apps.core.exceptions import (
    ConflictError, InvalidTransition, NotFoundError, PermissionDeniedError, ValidationError,
)
from apps.orders.models import OrderStatus, OrderStatusHistory, SalesOrder, TERMINAL_STATUSES
from apps.rbac.models import AuditLog
from apps.rbac.resolver import PermissionResolver

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITIES = {
    'create': 'sales.orders.create',
    'submit': 'sales.orders.submit',
    'process': 'sales.orders.process',
    'complete': 'sales.orders.complete',
}


def capability(name):
    """Permission key configured for a workflow capability."""
    configured = getattr(settings, 'ORDER_WORKFLOW_CAPABILITIES', None) or {}
    return configured.get(name, DEFAULT_CAPABILITIES[name])


TransitionRule = namedtuple('TransitionRule', ['to_status', 'capability', 'creator_may'])

TRANSITIONS = {
    OrderStatus.DRAFT: TransitionRule(OrderStatus.SUBMITTED, 'submit', True),
    OrderStatus.SUBMITTED: TransitionRule(OrderStatus.PROCESSED, 'process', False),
    OrderStatus.PROCESSED: TransitionRule(OrderStatus.COMPLETED, 'complete', False),
}


class PolicyCheck:
    """One authorization path for status transitions."""

    name = None

    def applies(self, actor, order, to_status) -> bool:
        raise NotImplementedError

    def permits(self, actor, order, to_status) -> bool:
        raise NotImplementedError


class AdminOverride(PolicyCheck):
    """Break-glass path for tenant administrators."""

    name = 'admin_override'
    source_statuses = frozenset({OrderStatus.DRAFT, OrderStatus.SUBMITTED})

    def applies(self, actor, order, to_status):
        return bool(actor.is_active and actor.is_super_admin) and order.status in self.source_statuses

    def permits(self, actor, order, to_status):
        return True


class RoleBased(PolicyCheck):
    """Transition table gated by capabilities resolved for the actor."""

    name = 'role_based'

    def __init__(self, transitions):
        self.transitions = transitions

    def applies(self, actor, order, to_status):
        return True

    def permits(self, actor, order, to_status):
        rule = self.transitions.get(order.status)
        if rule is None or rule.to_status != to_status:
            return False
        if rule.creator_may and order.created_by_id == actor.id:
            return True
        return PermissionResolver.resolve_key(actor, capability(rule.capability)).allowed


class OrderWorkflowService:
    """Apply status transitions to sales orders."""

    policies = (AdminOverride(), RoleBased(TRANSITIONS))

    @classmethod
    def _load_document(cls, actor, order_id) -> SalesOrder:
        try:
            return SalesOrder.objects.for_tenant(actor.tenant_id).get(id=order_id)
        except (SalesOrder.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            raise NotFoundError('Order not found')

    @staticmethod
    def _validate_status(value, field):
        if value not in OrderStatus.values:
            raise ValidationError(
                f'Unknown status: {value}',
                details={field: [f'Must be one of: {", ".join(OrderStatus.values)}.']},
            )
        return OrderStatus(value)

    @classmethod
    def authorize(cls, actor, order, to_status) -> str:
        """
        Return the name of the policy that permits the transition.

        Raises:
            InvalidTransition: the order is terminal or already in ``to_status``
            PermissionDeniedError: no policy permits the transition
        """
        if order.status in TERMINAL_STATUSES:
            raise InvalidTransition(
                f'Order is {order.status} and cannot change status',
                details={'status': order.status},
            )
        if order.status == to_status:
            raise InvalidTransition(
                f'Order is already {to_status}',
                details={'status': order.status},
            )

        for policy in cls.policies:
            if policy.applies(actor, order, to_status):
                if policy.permits(actor, order, to_status):
                    return policy.name
                break

        logger.warning(
            f"Transition {order.status} -> {to_status} denied for user {actor.id}",
            extra={
                'tenant_id': str(actor.tenant_id),
                'order_id': str(order.id),
                'user_id': str(actor.id),
            },
        )
        raise PermissionDeniedError(
            f'You are not allowed to move this order from {order.status} to {to_status}',
            details={'from_status': order.status, 'to_status': str(to_status)},
        )

    @classmethod
    def transition(cls, actor, order_id, new_status, expected_status: Optional[str] = None,
                   request=None):
        """
        Move an order to ``new_status``.

        The status is swapped with a conditional UPDATE on the status that
        was read; if another writer got there first no row matches and the
        call raises ConflictError. The update and its history row commit
        together.

        Returns:
            (order, history) with ``order.status`` already set to the new value
        """
        to_status = cls._validate_status(new_status, 'status')
        if expected_status is not None:
            expected_status = cls._validate_status(expected_status, 'expected_status')

        order = cls._load_document(actor, order_id)

        if expected_status is not None and order.status != expected_status:
            raise ConflictError(
                f'Order status is {order.status}, expected {expected_status}',
                details={'status': order.status, 'expected_status': str(expected_status)},
            )

        policy = cls.authorize(actor, order, to_status)
        from_status = order.status

        with transaction.atomic():
            updated = SalesOrder.objects.filter(
                id=order.id,
                tenant_id=actor.tenant_id,
                status=from_status,
            ).update(status=to_status)

            if updated == 0:
                raise ConflictError(
                    'Order status was changed by another request',
                    details={'expected_status': from_status},
                )

            history = OrderStatusHistory.objects.create(
                order=order,
                tenant_id=actor.tenant_id,
                from_status=from_status,
                to_status=to_status,
                changed_by=actor,
                description=f'Status changed from {from_status} to {to_status}',
            )

        order.status = to_status

        AuditLog.log_action(
            action='order_status_changed',
            user=actor,
            tenant=actor.tenant,
            target_type='SalesOrder',
            target_id=order.id,
            diff={'status': {'old': str(from_status), 'new': str(to_status)}},
            metadata={'policy': policy},
            request=request,
        )
        logger.info(
            f"Order {order.reference} moved from {from_status} to {to_status}",
            extra={
                'tenant_id': str(actor.tenant_id),
                'order_id': str(order.id),
                'user_id': str(actor.id),
                'policy': policy,
            },
        )
        return order, history


class OrderService:
    """Create sales orders."""

    @classmethod
    @transaction.atomic
    def create_order(cls, actor, reference, supplier_name='', total_amount=0,
                     currency='USD', notes='', request=None) -> SalesOrder:
        reference = (reference or '').strip()
        if not reference:
            raise ValidationError('reference is required', details={'reference': ['This field is required.']})
        if SalesOrder.objects.for_tenant(actor.tenant_id).filter(reference__iexact=reference).exists():
            raise ValidationError(
                'An order with this reference already exists',
                details={'reference': ['An order with this reference already exists.']},
            )

        order = SalesOrder.objects.create(
            tenant_id=actor.tenant_id,
            reference=reference,
            supplier_name=supplier_name or '',
            total_amount=total_amount,
            currency=(currency or 'USD').upper(),
            notes=notes or '',
            created_by=actor,
        )
        AuditLog.log_action(
            action='order_created',
            user=actor,
            tenant=actor.tenant,
            target_type='SalesOrder',
            target_id=order.id,
            diff={'reference': reference, 'status': order.status},
            request=request,
        )
        return order
