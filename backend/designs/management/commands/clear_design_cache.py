"""
Django management command to drop cached design payloads.

Usage:
    python manage.py clear_design_cache
"""
from django.core.management.base import BaseCommand
from django.conf import settings

from backend.core.cache_utils import DESIGN_KEY_PREFIX, invalidate_cache_pattern


class Command(BaseCommand):
    help = 'Remove all cached design detail payloads'

    def handle(self, *args, **options):
        self.stdout.write(f"Cache Backend: {settings.CACHES['default']['BACKEND']}")
        deleted = invalidate_cache_pattern(DESIGN_KEY_PREFIX)
        self.stdout.write(self.style.SUCCESS(f"Cleared design cache ({deleted} keys)"))
