"""
Tenant directory API views.
"""
import logging

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.permissions import IsTenantAdminForWrites
from apps.rbac.models import AuditLog
from apps.tenants.serializers import CompanySerializer

logger = logging.getLogger(__name__)


@extend_schema_view(
    get=extend_schema(
        tags=['Tenant Directory'],
        summary="Get the caller's company",
        responses={200: CompanySerializer},
    ),
    patch=extend_schema(
        tags=['Tenant Directory'],
        summary="Rename the caller's company",
        description='Requires the tenant administrator flag.',
        request=CompanySerializer,
        responses={200: CompanySerializer, 400: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT},
    ),
)
class CurrentCompanyView(APIView):
    """
    GET /v1/company
    PATCH /v1/company

    A tenant only ever sees and edits its own company; there is no company
    id in the URL to tamper with.
    """
    permission_classes = [IsTenantAdminForWrites]

    def get(self, request):
        return Response(CompanySerializer(request.user.tenant).data)

    def patch(self, request):
        company = request.user.tenant
        serializer = CompanySerializer(company, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        old_name = company.name
        serializer.save()

        AuditLog.log_action(
            action='company_updated',
            user=request.user,
            tenant=company,
            target_type='Company',
            target_id=company.id,
            diff={'name': {'old': old_name, 'new': company.name}},
            request=request,
        )
        logger.info("Company updated", extra={'tenant_id': str(company.id)})

        return Response(CompanySerializer(company).data)
