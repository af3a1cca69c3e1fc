from django.core.management.base import BaseCommand

from services.allocation_engine import AllocationJobs


class Command(BaseCommand):
    help = "Run one pass of every allocation check (expire alerts/pending, start, complete)."

    def handle(self, *args, **options):
        jobs = AllocationJobs()
        expired_alerts = jobs.expire_old_alerts() or 0
        expired = jobs.expire_pending_allocations() or 0
        started = jobs.start_accepted_allocations() or 0
        completed = jobs.auto_complete_allocations() or 0

        self.stdout.write(
            self.style.SUCCESS(
                f"Expired {expired_alerts} alert(s) and {expired} allocation(s); "
                f"started {started}; completed {completed}."
            )
        )
