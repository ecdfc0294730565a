# Generated migration for per-company module access flags

import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('tenants', '0001_initial'),
        ('rbac', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='ModuleAccess',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('is_enabled', models.BooleanField(default=True)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='module_access', to='tenants.company')),
                ('module', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='access_flags', to='rbac.module')),
            ],
            options={
                'db_table': 'module_access',
                'unique_together': {('tenant', 'module')},
            },
        ),
    ]
