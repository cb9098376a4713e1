"""
Tests for seeding example queries from YAML.
"""
import tempfile
from io import StringIO
from pathlib import Path
from unittest.mock import patch

from asgiref.sync import async_to_sync
from django.core.management import CommandError, call_command
from django.test import TestCase

from apps.tool_selection.errors import SeedValidationError
from apps.tool_selection.models import ToolExampleQuery
from apps.tool_selection.seeder import (
    DEFAULT_SEED_FILE,
    ToolExampleConfig,
    load_config,
    parse_config,
    seed_from_config,
    validate_config,
)
from apps.tools.registry import ToolCatalog

from .helpers import FakeEmbedder, make_example, vec

SAMPLE_YAML = """
get_orders:
  domain: orders
  examples:
    - "Show me recent orders"
    - "What orders came in today?"
cancel_order:
  domain: orders
  examples:
    - "Cancel order #1001"
"""


def _write_yaml(text):
    handle = tempfile.NamedTemporaryFile('w', suffix='.yaml', delete=False, encoding='utf-8')
    handle.write(text)
    handle.close()
    return handle.name


class SeedConfigTest(TestCase):

    def test_parse_config(self):
        config = parse_config({"get_orders": {"domain": "orders", "examples": ["  Show orders  ", ""]}})
        self.assertEqual(config["get_orders"].examples, ["Show orders"])

    def test_parse_rejects_bad_shapes(self):
        with self.assertRaises(SeedValidationError):
            parse_config(["get_orders"])
        with self.assertRaises(SeedValidationError) as ctx:
            parse_config({"get_orders": {"domain": "orders", "examples": "Show orders"}})
        self.assertIn("get_orders", ctx.exception.problems[0])

    def test_validate_reports_unknown_tool_and_domain(self):
        problems = validate_config({
            "launch_rockets": ToolExampleConfig(domain="orders", examples=["go"]),
            "get_orders": ToolExampleConfig(domain="warehouse", examples=["x"]),
            "get_products": ToolExampleConfig(domain="orders", examples=["x"]),
        })

        self.assertIn("Unknown tool: launch_rockets", problems)
        self.assertIn("Invalid domain 'warehouse' for tool 'get_orders'", problems)
        self.assertTrue(any("get_products" in p and "catalog domain" in p for p in problems))

    def test_bundled_file_is_valid_and_covers_catalog(self):
        config = load_config(DEFAULT_SEED_FILE)
        self.assertEqual(validate_config(config), [])
        self.assertEqual(set(config), set(ToolCatalog.names()))


class SeedFromConfigTest(TestCase):

    def setUp(self):
        self.config = parse_config({
            "get_orders": {"domain": "orders", "examples": ["Show me recent orders", "What orders came in today?"]},
            "cancel_order": {"domain": "orders", "examples": ["Cancel order #1001"]},
        })

    def test_inserts_new_examples(self):
        embedder = FakeEmbedder()
        result = async_to_sync(seed_from_config)(self.config, embedder=embedder)

        self.assertEqual(result.inserted, 3)
        self.assertEqual(result.skipped, 0)
        self.assertEqual(result.tools_processed, 2)
        self.assertEqual(result.errors, [])
        self.assertEqual(ToolExampleQuery.objects.filter(is_learned=False).count(), 3)

    def test_rerun_skips_existing_pairs(self):
        async_to_sync(seed_from_config)(self.config, embedder=FakeEmbedder())
        embedder = FakeEmbedder()

        result = async_to_sync(seed_from_config)(self.config, embedder=embedder)

        self.assertEqual(result.inserted, 0)
        self.assertEqual(result.skipped, 3)
        self.assertEqual(embedder.batches, [])
        self.assertEqual(ToolExampleQuery.objects.count(), 3)

    def test_batches_by_size(self):
        embedder = FakeEmbedder()
        async_to_sync(seed_from_config)(self.config, embedder=embedder, batch_size=2)
        self.assertEqual([len(b) for b in embedder.batches], [2, 1])

    def test_dry_run_writes_nothing(self):
        embedder = FakeEmbedder()
        result = async_to_sync(seed_from_config)(self.config, embedder=embedder, dry_run=True)

        self.assertEqual(result.inserted, 3)
        self.assertEqual(embedder.batches, [])
        self.assertFalse(ToolExampleQuery.objects.exists())

    def test_validation_happens_before_any_write(self):
        make_example("get_orders", "orders", "old preseeded", vec(1.0))
        config = dict(self.config)
        config["launch_rockets"] = ToolExampleConfig(domain="orders", examples=["go"])

        with self.assertRaises(SeedValidationError):
            async_to_sync(seed_from_config)(config, embedder=FakeEmbedder(), clear_existing=True)

        self.assertEqual(ToolExampleQuery.objects.count(), 1)

    def test_clear_removes_only_preseeded(self):
        make_example("get_orders", "orders", "old preseeded", vec(1.0))
        make_example("get_orders", "orders", "learned phrasing", vec(1.0), is_learned=True)

        async_to_sync(seed_from_config)(self.config, embedder=FakeEmbedder(), clear_existing=True)

        queries = set(ToolExampleQuery.objects.values_list('example_query', flat=True))
        self.assertNotIn("old preseeded", queries)
        self.assertIn("learned phrasing", queries)
        self.assertEqual(len(queries), 4)

    def test_failed_batch_is_reported_and_others_continue(self):
        embedder = FakeEmbedder()
        calls = {"n": 0}
        original = embedder.embed_batch

        async def flaky(texts):
            calls["n"] += 1
            if calls["n"] == 1:
                embedder.fail = True
                try:
                    return await original(texts)
                finally:
                    embedder.fail = False
            return await original(texts)

        embedder.embed_batch = flaky
        result = async_to_sync(seed_from_config)(self.config, embedder=embedder, batch_size=2)

        self.assertEqual(result.inserted, 1)
        self.assertEqual(len(result.errors), 2)
        self.assertEqual(ToolExampleQuery.objects.get().example_query, "Cancel order #1001")


class SeedCommandTest(TestCase):

    def test_dry_run(self):
        path = _write_yaml(SAMPLE_YAML)
        out = StringIO()
        try:
            call_command('seed_tool_examples', path, '--dry-run', stdout=out)
        finally:
            Path(path).unlink()

        self.assertIn("Examples inserted: 3", out.getvalue())
        self.assertFalse(ToolExampleQuery.objects.exists())

    def test_seeds_with_configured_embedder(self):
        path = _write_yaml(SAMPLE_YAML)
        out = StringIO()
        try:
            with patch('apps.tool_selection.seeder.EmbeddingClient', return_value=FakeEmbedder()):
                call_command('seed_tool_examples', path, stdout=out)
        finally:
            Path(path).unlink()

        self.assertEqual(ToolExampleQuery.objects.count(), 3)
        self.assertIn("Tools processed: 2", out.getvalue())

    def test_validation_errors(self):
        path = _write_yaml("launch_rockets:\n  domain: orders\n  examples: [go]\n")
        try:
            with self.assertRaises(CommandError):
                call_command('seed_tool_examples', path, stdout=StringIO(), stderr=StringIO())
        finally:
            Path(path).unlink()

    def test_missing_file(self):
        with self.assertRaises(CommandError):
            call_command('seed_tool_examples', '/nonexistent/examples.yaml')

    def test_stats(self):
        make_example("get_orders", "orders", "a", vec(1.0))
        make_example("cancel_order", "orders", "b", vec(1.0), is_learned=True)
        out = StringIO()

        call_command('tool_example_stats', stdout=out)

        self.assertIn("Total examples: 2", out.getvalue())
        self.assertIn("orders: 2 examples (1 learned) across 2 tools", out.getvalue())
