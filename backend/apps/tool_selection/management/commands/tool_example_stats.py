"""
Show counts of stored tool example queries.

Usage:
    python manage.py tool_example_stats
"""
from django.core.management.base import BaseCommand
from django.db.models import Count, Q

from apps.tool_selection.models import ToolExampleQuery


class Command(BaseCommand):
    help = "Show how many example queries exist per domain (pre-seeded vs learned)"

    def handle(self, *args, **options):
        total = ToolExampleQuery.objects.count()
        self.stdout.write("Tool Examples Statistics")
        self.stdout.write("========================")
        self.stdout.write(f"Total examples: {total}")
        self.stdout.write("By domain:")

        rows = (
            ToolExampleQuery.objects
            .values('domain')
            .annotate(
                total=Count('id'),
                learned=Count('id', filter=Q(is_learned=True)),
                tools=Count('tool_name', distinct=True),
            )
            .order_by('domain')
        )
        for row in rows:
            self.stdout.write(
                f"  {row['domain']}: {row['total']} examples "
                f"({row['learned']} learned) across {row['tools']} tools"
            )
