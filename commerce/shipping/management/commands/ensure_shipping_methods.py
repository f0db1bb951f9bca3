"""
Management command to make sure the default shipping methods exist
"""
from django.core.management.base import BaseCommand

from commerce.shipping.services import ensure_default_methods


class Command(BaseCommand):
    help = "Creates the 'standard' and 'express' shipping methods when they are missing"

    def handle(self, *args, **options):
        created = ensure_default_methods()
        if created:
            self.stdout.write(self.style.SUCCESS(f"Created shipping methods: {', '.join(created)}"))
        else:
            self.stdout.write("All default shipping methods already exist")
