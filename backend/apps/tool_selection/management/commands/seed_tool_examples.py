"""
Seed tool example queries for embedding-based tool selection.

Usage:
    python manage.py seed_tool_examples                         # bundled examples
    python manage.py seed_tool_examples path/to/examples.yaml
    python manage.py seed_tool_examples --clear                 # replace pre-seeded rows
    python manage.py seed_tool_examples --dry-run               # validate and count only
"""
import logging
from pathlib import Path

from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from apps.tool_selection.errors import SeedValidationError
from apps.tool_selection.seeder import DEFAULT_SEED_FILE, load_config, seed_from_config

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Embed and store example queries for each tool from a YAML file"

    def add_arguments(self, parser):
        parser.add_argument(
            'path',
            nargs='?',
            default=str(DEFAULT_SEED_FILE),
            help="YAML file mapping tool name to {domain, examples} (default: bundled file)",
        )
        parser.add_argument(
            '--clear',
            action='store_true',
            help="Delete existing pre-seeded (non-learned) examples first",
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help="Validate and report counts without embedding or writing",
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=None,
            help="Examples per embedding request (default: TOOL_EMBEDDING_BATCH_SIZE)",
        )

    def handle(self, *args, **options):
        path = Path(options['path'])
        if not path.exists():
            raise CommandError(f"File not found: {path}")

        try:
            config = load_config(path)
            result = async_to_sync(seed_from_config)(
                config,
                clear_existing=options['clear'],
                batch_size=options['batch_size'],
                dry_run=options['dry_run'],
            )
        except SeedValidationError as e:
            for problem in e.problems:
                self.stderr.write(self.style.ERROR(f"  - {problem}"))
            raise CommandError(f"{len(e.problems)} validation errors found")

        prefix = "[dry run] " if options['dry_run'] else ""
        self.stdout.write(self.style.SUCCESS(f"{prefix}Seeding complete"))
        self.stdout.write(f"  Tools processed: {result.tools_processed}")
        self.stdout.write(f"  Examples inserted: {result.inserted}")
        self.stdout.write(f"  Examples skipped (already exist): {result.skipped}")

        if result.errors:
            self.stderr.write(self.style.ERROR(f"  Errors: {len(result.errors)}"))
            for tool_name, error in result.errors:
                self.stderr.write(f"    - {tool_name}: {error}")
