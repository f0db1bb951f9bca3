"""
Management command to insert default store settings
"""
from django.core.management.base import BaseCommand

from commerce.core.settings_store import seed_defaults


class Command(BaseCommand):
    help = "Inserts default values for every store setting that is not set yet"

    def handle(self, *args, **options):
        created = seed_defaults()
        for key in created:
            self.stdout.write(f"  + {key}")
        self.stdout.write(self.style.SUCCESS(f"Created {len(created)} setting(s)"))
