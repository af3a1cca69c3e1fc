from django.conf import settings
from django.core.management.base import BaseCommand

from allocations.scheduler import get_or_start_allocation_jobs


class Command(BaseCommand):
    help = "Run the allocation job scheduler in the foreground until interrupted."

    def add_arguments(self, parser):
        parser.add_argument(
            "--fast-interval",
            type=int,
            default=getattr(settings, "ALLOCATION_FAST_INTERVAL", 30),
            help="Seconds between alert expiry / start checks (default: 30).",
        )
        parser.add_argument(
            "--slow-interval",
            type=int,
            default=getattr(settings, "ALLOCATION_SLOW_INTERVAL", 60),
            help="Seconds between pending expiry / completion checks (default: 60).",
        )

    def handle(self, *args, **options):
        scheduler = get_or_start_allocation_jobs(
            fast_interval=options["fast_interval"],
            slow_interval=options["slow_interval"],
        )
        self.stdout.write(self.style.SUCCESS("Allocation jobs started. Press Ctrl+C to stop."))

        try:
            while scheduler.is_running:
                scheduler.join(timeout=1)
        except KeyboardInterrupt:
            self.stdout.write("Stopping allocation jobs...")
        finally:
            scheduler.stop()
            scheduler.join(timeout=5)
