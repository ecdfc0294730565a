"""
Serializer helpers shared by the Warden apps.
"""
from collections.abc import Mapping

from rest_framework import serializers


class AliasedFieldsMixin:
    """
    Accept legacy spellings of request fields.

    ``field_aliases`` maps each alias to its canonical field. Aliases are
    folded into the canonical field before validation and then dropped,
    so nothing past ``to_internal_value`` ever sees them. Sending an alias
    and its canonical field with different values is a validation error.

        class RoleCreateSerializer(AliasedFieldsMixin, serializers.Serializer):
            field_aliases = {'role_name': 'name'}
            name = serializers.CharField()
    """
    field_aliases = {}

    def to_internal_value(self, data):
        if isinstance(data, Mapping) and self.field_aliases:
            data = {key: data[key] for key in data}
            errors = {}
            for alias, canonical in self.field_aliases.items():
                if alias not in data:
                    continue
                value = data.pop(alias)
                if canonical in data and data[canonical] != value:
                    errors[alias] = [f'Conflicts with "{canonical}".']
                else:
                    data[canonical] = value
            if errors:
                raise serializers.ValidationError(errors)
        return super().to_internal_value(data)
