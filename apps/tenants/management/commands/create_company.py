"""
Management command to provision a company and its first administrator.

Companies are never created through the tenant API; this command is the
platform operator's entry point.
"""
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from apps.rbac.models import User, AuditLog
from apps.tenants.models import Company


class Command(BaseCommand):
    help = 'Create a company with an initial tenant administrator'

    def add_arguments(self, parser):
        parser.add_argument('--name', type=str, required=True, help='Company name')
        parser.add_argument('--admin-email', type=str, required=True, help='Administrator email')
        parser.add_argument('--admin-password', type=str, required=True, help='Administrator password')
        parser.add_argument('--first-name', type=str, default='', help='Administrator first name')
        parser.add_argument('--last-name', type=str, default='', help='Administrator last name')

    def handle(self, *args, **options):
        name = options['name'].strip()
        email = options['admin_email'].strip().lower()
        password = options['admin_password']

        if not name:
            raise CommandError('--name cannot be blank')
        if len(password) < 8:
            raise CommandError('--admin-password must be at least 8 characters')
        if Company.objects.by_name(name):
            raise CommandError(f'Company already exists: {name}')
        if User.objects.by_email(email):
            raise CommandError(f'User already exists: {email}')

        with transaction.atomic():
            company = Company.objects.create(name=name)
            admin = User.objects.create_user(
                email=email,
                password=password,
                tenant=company,
                first_name=options['first_name'],
                last_name=options['last_name'],
                is_super_admin=True,
            )
            AuditLog.log_action(
                action='company_created',
                user=None,
                tenant=company,
                target_type='Company',
                target_id=company.id,
                metadata={'admin_user_id': str(admin.id)},
            )

        self.stdout.write(self.style.SUCCESS(f'Created company: {company.name} ({company.id})'))
        self.stdout.write(self.style.SUCCESS(f'Created administrator: {admin.email}'))
