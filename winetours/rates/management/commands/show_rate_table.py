"""Management command to print the rate table in effect."""

from django.core.management.base import BaseCommand, CommandError

from winetours.rates.exceptions import NoActiveRateTable
from winetours.rates.schema import WeekdayGroup
from winetours.rates.services import get_active_version, load_rate_table


class Command(BaseCommand):
    help = "Show the rate table version currently in effect"

    def handle(self, *args, **options):
        try:
            version = get_active_version()
        except NoActiveRateTable as e:
            raise CommandError(str(e)) from e

        table = load_rate_table(version)

        self.stdout.write(self.style.NOTICE(f"\n{version} by {version.created_by}"))
        self.stdout.write(f"Reason: {version.reason}")
        self.stdout.write("-" * 50)
        for group in WeekdayGroup:
            self.stdout.write(self.style.NOTICE(f"[{group.value}]"))
            for tier in table.tiers:
                if tier.weekday_group == group:
                    self.stdout.write(f"  {tier.label:>6} guests  ${tier.hourly_rate}/hr")
        self.stdout.write("-" * 50)
        self.stdout.write(f"Minimum hours:    {table.minimum_hours}")
        self.stdout.write(f"Tax rate:         {table.tax_rate}")
        self.stdout.write(f"Deposit:          {table.default_deposit_pct}")
        self.stdout.write(
            f"Shared tours:     ${table.shared_tour_base_rate} / "
            f"${table.shared_tour_lunch_rate} with lunch, max {table.shared_tour_max_party}"
        )
