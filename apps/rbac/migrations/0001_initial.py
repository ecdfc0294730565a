# Generated migration for the RBAC schema

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


def _base_fields():
    return [
        ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
        ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='Timestamp when the record was created')),
        ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
    ]


def _catalog_tenant():
    return ('tenant', models.ForeignKey(blank=True, help_text='Owning company; null marks a global row', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='+', to='tenants.company'))


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('tenants', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=_base_fields() + [
                ('email', models.EmailField(help_text='Login email (unique across the platform)', max_length=254, unique=True)),
                ('password_hash', models.CharField(help_text='Hashed password', max_length=255)),
                ('first_name', models.CharField(blank=True, max_length=100)),
                ('last_name', models.CharField(blank=True, max_length=100)),
                ('is_active', models.BooleanField(db_index=True, default=True, help_text='Inactive users cannot authenticate')),
                ('is_super_admin', models.BooleanField(default=False, help_text='Tenant-scoped administrator flag')),
                ('is_staff', models.BooleanField(default=False, help_text='Platform operator with Django admin access')),
                ('last_login', models.DateTimeField(blank=True, null=True)),
                ('tenant', models.ForeignKey(blank=True, help_text='Owning company (null only for platform staff accounts)', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='users', to='tenants.company')),
            ],
            options={
                'db_table': 'users',
                'ordering': ['email'],
                'indexes': [models.Index(fields=['tenant', 'is_active'], name='users_tenant_active_idx')],
            },
        ),
        migrations.CreateModel(
            name='Module',
            fields=_base_fields() + [
                _catalog_tenant(),
                ('name', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True)),
            ],
            options={
                'db_table': 'modules',
                'ordering': ['name'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant', 'name'), name='uniq_module_name_per_tenant'),
                    models.UniqueConstraint(condition=models.Q(('tenant__isnull', True)), fields=('name',), name='uniq_global_module_name'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Submodule',
            fields=_base_fields() + [
                _catalog_tenant(),
                ('name', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True)),
                ('module', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='submodules', to='rbac.module')),
            ],
            options={
                'db_table': 'submodules',
                'ordering': ['name'],
                'indexes': [models.Index(fields=['tenant', 'module'], name='submodules_tenant_module_idx')],
            },
        ),
        migrations.CreateModel(
            name='Permission',
            fields=_base_fields() + [
                _catalog_tenant(),
                ('action', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True)),
                ('module', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='permissions', to='rbac.module')),
                ('submodule', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='permissions', to='rbac.submodule')),
            ],
            options={
                'db_table': 'permissions',
                'ordering': ['module__name', 'submodule__name', 'action'],
                'indexes': [
                    models.Index(fields=['tenant', 'module', 'submodule'], name='permissions_tenant_parts_idx'),
                    models.Index(fields=['action'], name='permissions_action_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Role',
            fields=_base_fields() + [
                ('name', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='roles', to='tenants.company')),
            ],
            options={
                'db_table': 'roles',
                'ordering': ['name'],
                'unique_together': {('tenant', 'name')},
            },
        ),
        migrations.CreateModel(
            name='RoleAssignment',
            fields=_base_fields() + [
                ('assigned_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='+', to='tenants.company')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='role_assignments', to=settings.AUTH_USER_MODEL)),
                ('role', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assignments', to='rbac.role')),
                ('assigned_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'role_assignments',
                'ordering': ['-assigned_at'],
                'unique_together': {('user', 'role')},
                'indexes': [models.Index(fields=['tenant', 'user'], name='role_assign_tenant_user_idx')],
            },
        ),
        migrations.CreateModel(
            name='RoleGrant',
            fields=_base_fields() + [
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='+', to='tenants.company')),
                ('role', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='grants', to='rbac.role')),
                ('permission', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='grants', to='rbac.permission')),
            ],
            options={
                'db_table': 'role_grants',
                'unique_together': {('role', 'permission')},
                'indexes': [models.Index(fields=['tenant', 'permission'], name='role_grants_tenant_perm_idx')],
            },
        ),
        migrations.CreateModel(
            name='PermissionOverride',
            fields=_base_fields() + [
                ('is_allowed', models.BooleanField()),
                ('reason', models.TextField(blank=True)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='+', to='tenants.company')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='permission_overrides', to=settings.AUTH_USER_MODEL)),
                ('permission', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='overrides', to='rbac.permission')),
                ('granted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'permission_overrides',
                'unique_together': {('user', 'permission')},
                'indexes': [models.Index(fields=['tenant', 'user'], name='overrides_tenant_user_idx')],
            },
        ),
        migrations.CreateModel(
            name='AuditLog',
            fields=_base_fields() + [
                ('action', models.CharField(db_index=True, max_length=100)),
                ('target_type', models.CharField(db_index=True, max_length=50)),
                ('target_id', models.UUIDField(blank=True, null=True)),
                ('diff', models.JSONField(blank=True, default=dict)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.TextField(blank=True)),
                ('request_id', models.CharField(blank=True, db_index=True, max_length=64)),
                ('tenant', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='audit_logs', to='tenants.company')),
                ('user', models.ForeignKey(blank=True, help_text='Acting user (null for platform tooling)', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'audit_logs',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['tenant', 'created_at'], name='audit_logs_tenant_created_idx'),
                    models.Index(fields=['target_type', 'target_id'], name='audit_logs_target_idx'),
                ],
            },
        ),
    ]
