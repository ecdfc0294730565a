"""
Management command to seed the global permission catalog.

Creates the global Module, Submodule and Permission rows (tenant null)
shared by every company. This command is idempotent and safe to re-run.
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from apps.rbac.models import Module, Permission, Submodule


class Command(BaseCommand):
    help = 'Seed the global permission catalog (idempotent)'

    # module -> submodule (None for module-level) -> [(action, description)]
    CATALOG = {
        'Sales': {
            None: [
                ('view', 'View the sales area'),
                ('export', 'Export sales data'),
            ],
            'Orders': [
                ('view', 'View sales orders'),
                ('create', 'Create draft sales orders'),
                ('submit', 'Submit draft orders for processing'),
                ('process', 'Process submitted orders'),
                ('complete', 'Complete processed orders'),
            ],
        },
        'Administration': {
            None: [
                ('view', 'View administration settings'),
            ],
            'Users': [
                ('view', 'View users'),
            ],
        },
    }

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Seeding global catalog...\n')
        created_count = 0

        for module_name, submodules in self.CATALOG.items():
            module, created = Module.objects.get_or_create(tenant=None, name=module_name)
            created_count += created

            for submodule_name, actions in submodules.items():
                submodule = None
                if submodule_name:
                    submodule, created = Submodule.objects.get_or_create(
                        tenant=None, module=module, name=submodule_name,
                    )
                    created_count += created

                for action, description in actions:
                    permission, created = Permission.objects.get_or_create(
                        tenant=None,
                        module=module,
                        submodule=submodule,
                        action=action,
                        defaults={'description': description},
                    )
                    if created:
                        created_count += 1
                        self.stdout.write(self.style.SUCCESS(f'Created: {permission.key}'))
                    else:
                        self.stdout.write(self.style.HTTP_INFO(f'  Exists: {permission.key}'))

        self.stdout.write(
            self.style.SUCCESS(
                f'\nSeeding complete: {created_count} rows created, '
                f'{Permission.objects.global_only().count()} global permissions in total'
            )
        )
