"""
Check that the configured cache backend answers get/set/remove and pattern removal.

Usage:
    python manage.py cache_check
"""
from django.conf import settings
from django.core.management.base import BaseCommand

from backend.core.cache_service import cache_service


class Command(BaseCommand):
    help = 'Verify the cache configuration is working'

    def handle(self, *args, **options):
        self.stdout.write(f"Cache Backend: {settings.CACHES['default']['BACKEND']}")
        self.stdout.write(f"Cache Location: {settings.CACHES['default'].get('LOCATION', 'N/A')}")
        self.stdout.write(f"Default TTL: {cache_service.default_ttl}s")

        key = 'cache:healthcheck:ping'
        cache_service.set(key, 'ok', 60)
        if cache_service.get(key) == 'ok':
            self.stdout.write(self.style.SUCCESS("SET/GET: OK"))
        else:
            self.stdout.write(self.style.ERROR("SET/GET: FAILED"))

        removed = cache_service.remove_by_pattern('cache:healthcheck*')
        if not cache_service.exists(key):
            self.stdout.write(self.style.SUCCESS(f"REMOVE BY PATTERN: OK ({removed} keys)"))
        else:
            self.stdout.write(self.style.ERROR("REMOVE BY PATTERN: FAILED"))
