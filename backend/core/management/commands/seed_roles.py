from django.core.management.base import BaseCommand
from django.contrib.auth.models import Group, Permission

from backend.core.permissions import (
    ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT,
    ROLE_TECHNICIAN_IN_SHOP, ROLE_TECHNICIAN_ON_SITE, ROLE_CUSTOMER,
)


class Command(BaseCommand):
    help = 'Create the role groups: Admin, Manager, Accountant, TechnicianInShop, TechnicianOnSite, Customer'

    def handle(self, *args, **options):
        groups_config = [
            {'name': ROLE_ADMIN, 'apps': '*'},
            {'name': ROLE_MANAGER, 'apps': ['catalog', 'content', 'sales', 'repair', 'warranty', 'accounting']},
            {'name': ROLE_ACCOUNTANT, 'apps': ['accounting']},
            {'name': ROLE_TECHNICIAN_IN_SHOP, 'apps': ['repair']},
            {'name': ROLE_TECHNICIAN_ON_SITE, 'apps': ['repair']},
            {'name': ROLE_CUSTOMER, 'apps': []},
        ]

        created_count = 0
        existing_count = 0

        for group_config in groups_config:
            group, created = Group.objects.get_or_create(name=group_config['name'])
            if created:
                self.stdout.write(self.style.SUCCESS(f'Created group: {group.name}'))
                created_count += 1
            else:
                self.stdout.write(f'  Group already exists: {group.name}')
                existing_count += 1

            # Django admin permissions mirror the API roles
            if group_config['apps'] == '*':
                permissions = Permission.objects.all()
            else:
                permissions = Permission.objects.filter(content_type__app_label__in=group_config['apps'])
            group.permissions.set(permissions)
            self.stdout.write(f'  {permissions.count()} permissions set for {group.name}')

        self.stdout.write(self.style.SUCCESS(
            f'\nCompleted: {created_count} groups created, {existing_count} groups already existed'
        ))
