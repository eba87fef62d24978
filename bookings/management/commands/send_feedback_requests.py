from django.core.management.base import BaseCommand

from bookings.workflow import send_due_feedback


class Command(BaseCommand):
    help = "Send WhatsApp feedback prompts for completed sessions whose feedback is due"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=100, help="Max bookings to process")

    def handle(self, *args, **opts):
        result = send_due_feedback(limit=opts["max"])
        if result["failed"]:
            self.stdout.write(self.style.WARNING(f"{result['failed']} feedback prompt(s) not delivered; will retry next run."))
        self.stdout.write(self.style.SUCCESS(f"Sent {result['sent']} feedback prompt(s)."))
