from django.conf import settings
from django.core.cache import cache
from django.core.management.base import BaseCommand
from django.utils import timezone

from billing.services.range_health import RangeHealthMonitor
from billing.services.ranges import RANGE_STATUS_CACHE_KEY


class Command(BaseCommand):
    help = "Print the health of the active invoice range and warm the range status cache."

    def add_arguments(self, parser):
        parser.add_argument("--no-cache", action="store_true", help="do not write the cache")

    def handle(self, *args, **options):
        status = RangeHealthMonitor().status()
        if not options["no_cache"]:
            cache.set(RANGE_STATUS_CACHE_KEY, {'ok': True, **status.to_dict()},
                      settings.BILLING_RANGE_STATUS_CACHE_SECONDS)

        if status.has_active_range:
            info = status.range_info
            self.stdout.write(
                f"CAI {info['authorizationCode']}: {status.remaining_numbers} numbers left, "
                f"{status.days_to_expiry} days to deadline {info['deadline']}"
            )
        for w in status.warnings:
            self.stdout.write(self.style.WARNING(f"[{w['code']}] {w['message']}"))
        if not status.warnings:
            self.stdout.write(self.style.SUCCESS(f"Invoice range healthy at {timezone.now()}"))
