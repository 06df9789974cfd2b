"""Management command to send overdue payment reminders for final invoices."""

from collections import Counter

from django.core.management.base import BaseCommand

from winetours.invoicing.reminders import send_payment_reminders


class Command(BaseCommand):
    help = "Send the next escalation reminder for each overdue, unpaid final invoice"

    def handle(self, *args, **options):
        sent = send_payment_reminders()
        if not sent:
            self.stdout.write("No payment reminders due")
            return
        by_urgency = Counter(reminder.urgency for reminder in sent)
        summary = ", ".join(f"{count} {urgency}" for urgency, count in sorted(by_urgency.items()))
        self.stdout.write(self.style.SUCCESS(f"Sent {len(sent)} payment reminder(s): {summary}"))
