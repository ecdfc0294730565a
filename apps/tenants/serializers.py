"""
Serializers for the tenant directory API.
"""
from rest_framework import serializers

from apps.tenants.models import Company


class CompanySerializer(serializers.ModelSerializer):
    """Serializer for the caller's own company."""

    class Meta:
        model = Company
        fields = ['id', 'name', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'is_active', 'created_at', 'updated_at']

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Company name cannot be blank")

        clash = Company.objects.filter(name__iexact=value)
        if self.instance is not None:
            clash = clash.exclude(id=self.instance.id)
        if clash.exists():
            raise serializers.ValidationError("A company with this name already exists")
        return value
