"""
Tests for similarity search, the selector pipeline and the learning path.
"""
from asgiref.sync import async_to_sync
from django.test import TestCase

from apps.tool_selection.models import ToolExampleQuery
from apps.tool_selection.search import NumpySearch, get_search_backend, popular_tool_names
from apps.tool_selection.selector import ToolSelector
from apps.tools.domains import Domain

from .helpers import FakeClassifier, FakeEmbedder, make_example, vec


# ═══════════════════════════════════════════════════════════════════
# Search backend
# ═══════════════════════════════════════════════════════════════════

class NumpySearchTest(TestCase):

    def _search(self, embedding, domains=(Domain.ORDERS,), limit=10, threshold=0.5):
        return async_to_sync(NumpySearch().search)(embedding, list(domains), limit, threshold)

    def test_best_example_per_tool_sorted_by_similarity(self):
        make_example("get_orders", "orders", "show me recent orders", vec(0.9, 0.1), minutes_ago=3)
        make_example("get_order", "orders", "show me order 1001", vec(1.0, 0.0), minutes_ago=2)
        make_example("get_orders", "orders", "list todays orders", vec(0.8, 0.6), minutes_ago=1)

        matches = self._search(vec(1.0, 0.0))

        self.assertEqual([m.tool_name for m in matches], ["get_order", "get_orders"])
        self.assertAlmostEqual(matches[0].similarity, 1.0, places=4)
        # the better of the two get_orders examples wins
        self.assertGreater(matches[1].similarity, 0.99)

    def test_threshold_excludes_weak_matches(self):
        make_example("get_orders", "orders", "recent orders", vec(0.6, 0.8))
        make_example("cancel_order", "orders", "cancel it", vec(0.4, 0.9165))

        matches = self._search(vec(1.0, 0.0))

        self.assertEqual([m.tool_name for m in matches], ["get_orders"])

    def test_restricted_to_domains(self):
        make_example("get_products", "products", "show products", vec(1.0))
        self.assertEqual(self._search(vec(1.0), domains=[Domain.ORDERS]), [])
        self.assertEqual(
            [m.tool_name for m in self._search(vec(1.0), domains=[Domain.ORDERS, Domain.PRODUCTS])],
            ["get_products"],
        )

    def test_ties_keep_insertion_order(self):
        make_example("get_order", "orders", "order details", vec(1.0), minutes_ago=5)
        make_example("get_orders", "orders", "order list", vec(1.0), minutes_ago=1)

        self.assertEqual([m.tool_name for m in self._search(vec(1.0))], ["get_order", "get_orders"])

    def test_limit(self):
        for i, name in enumerate(["get_order", "get_orders", "cancel_order"]):
            make_example(name, "orders", f"query {i}", vec(1.0, 0.1 * i), minutes_ago=10 - i)

        self.assertEqual(len(self._search(vec(1.0), limit=2)), 2)

    def test_empty_corpus(self):
        self.assertEqual(self._search(vec(1.0)), [])

    def test_backend_lookup(self):
        self.assertIsInstance(get_search_backend('numpy'), NumpySearch)
        with self.assertRaises(ValueError):
            get_search_backend('elasticsearch')


class PopularToolNamesTest(TestCase):

    def test_ordered_by_max_usage(self):
        make_example("get_discounts", "discounts", "list codes", vec(1.0), usage_count=1)
        make_example("create_discount", "discounts", "make a code", vec(1.0), usage_count=7)
        make_example("create_discount", "discounts", "new code", vec(1.0), usage_count=2)
        make_example("deactivate_discount", "discounts", "turn off code", vec(1.0), usage_count=3)
        make_example("get_orders", "orders", "orders", vec(1.0), usage_count=50)

        names = async_to_sync(popular_tool_names)([Domain.DISCOUNTS], 10)

        self.assertEqual(names, ["create_discount", "deactivate_discount", "get_discounts"])


# ═══════════════════════════════════════════════════════════════════
# Selector pipeline
# ═══════════════════════════════════════════════════════════════════

class ToolSelectorTest(TestCase):

    def _selector(self, domains, embedder=None):
        return ToolSelector(
            classifier=FakeClassifier(domains),
            embedder=embedder or FakeEmbedder(default=vec(1.0, 0.0)),
            search=NumpySearch(),
            threshold=0.5,
        )

    def test_retrieval_hit(self):
        make_example("cancel_order", "orders", "cancel order 1001", vec(1.0, 0.0))
        make_example("get_orders", "orders", "show recent orders", vec(0.0, 1.0))

        result = async_to_sync(self._selector([Domain.ORDERS]).select)("please cancel #1002", 10)

        self.assertEqual(result.tool_names, ["cancel_order"])
        self.assertEqual(result.domains, [Domain.ORDERS])
        self.assertFalse(result.used_fallback)
        self.assertEqual(result.to_dict()['domains'], ["orders"])

    def test_empty_corpus_falls_back_to_catalog_tools_for_domains(self):
        result = async_to_sync(self._selector([Domain.GIFT_CARDS]).select)("gift card stuff", 10)

        self.assertTrue(result.used_fallback)
        self.assertEqual(
            result.tool_names,
            ["get_gift_cards", "create_gift_card", "credit_gift_card", "debit_gift_card", "deactivate_gift_card"],
        )

    def test_fallback_prefers_popular_tools(self):
        make_example("deactivate_discount", "discounts", "turn off code", vec(0.0, 1.0), usage_count=9)
        make_example("create_discount", "discounts", "make a code", vec(0.0, 1.0), usage_count=2)

        result = async_to_sync(self._selector([Domain.DISCOUNTS]).select)("discount question", 10)

        self.assertTrue(result.used_fallback)
        self.assertEqual(result.tool_names, ["deactivate_discount", "create_discount", "get_discounts"])

    def test_fallback_respects_limit(self):
        result = async_to_sync(self._selector([Domain.ORDERS, Domain.CUSTOMERS]).select)("help", 3)
        self.assertEqual(len(result.tools), 3)
        self.assertTrue(result.used_fallback)

    def test_embedding_failure_falls_back(self):
        make_example("cancel_order", "orders", "cancel order 1001", vec(1.0, 0.0))
        selector = self._selector([Domain.ORDERS], embedder=FakeEmbedder(fail=True))

        result = async_to_sync(selector.select)("cancel order 1001", 10)

        self.assertTrue(result.used_fallback)
        self.assertEqual(result.tool_names[0], "cancel_order")

    def test_unknown_tool_names_in_corpus_are_skipped(self):
        make_example("retired_tool", "orders", "old query", vec(1.0, 0.0), minutes_ago=2)
        make_example("get_order", "orders", "order details", vec(0.9, 0.1), minutes_ago=1)

        result = async_to_sync(self._selector([Domain.ORDERS]).select)("order 1001", 10)

        self.assertEqual(result.tool_names, ["get_order"])
        self.assertFalse(result.used_fallback)


# ═══════════════════════════════════════════════════════════════════
# Learning
# ═══════════════════════════════════════════════════════════════════

class RecordSuccessTest(TestCase):

    def test_new_pair_is_learned(self):
        embedder = FakeEmbedder()
        selector = ToolSelector(classifier=FakeClassifier([]), embedder=embedder, search=NumpySearch())

        async_to_sync(selector.record_success)("cancel order 1001", "cancel_order", Domain.ORDERS)

        row = ToolExampleQuery.objects.get()
        self.assertEqual(row.tool_name, "cancel_order")
        self.assertEqual(row.domain, "orders")
        self.assertTrue(row.is_learned)
        self.assertEqual(row.usage_count, 1)
        self.assertEqual(embedder.calls, ["cancel order 1001"])

    def test_repeat_pair_increments_instead_of_inserting(self):
        embedder = FakeEmbedder()
        selector = ToolSelector(classifier=FakeClassifier([]), embedder=embedder, search=NumpySearch())

        async_to_sync(selector.record_success)("cancel order 1001", "cancel_order", "orders")
        async_to_sync(selector.record_success)("cancel order 1001", "cancel_order", "orders")

        self.assertEqual(ToolExampleQuery.objects.count(), 1)
        self.assertEqual(ToolExampleQuery.objects.get().usage_count, 2)
        self.assertEqual(len(embedder.calls), 1)

    def test_preseeded_pair_is_incremented(self):
        make_example("get_orders", "orders", "show me recent orders", vec(1.0))
        embedder = FakeEmbedder()
        selector = ToolSelector(classifier=FakeClassifier([]), embedder=embedder, search=NumpySearch())

        async_to_sync(selector.record_success)("show me recent orders", "get_orders", "orders")

        row = ToolExampleQuery.objects.get()
        self.assertEqual(row.usage_count, 2)
        self.assertFalse(row.is_learned)
        self.assertEqual(embedder.calls, [])

    def test_embedding_failure_drops_the_event(self):
        selector = ToolSelector(
            classifier=FakeClassifier([]), embedder=FakeEmbedder(fail=True), search=NumpySearch(),
        )

        async_to_sync(selector.record_success)("cancel order 1001", "cancel_order", "orders")

        self.assertFalse(ToolExampleQuery.objects.exists())

    def test_unknown_domain_is_ignored(self):
        embedder = FakeEmbedder()
        selector = ToolSelector(classifier=FakeClassifier([]), embedder=embedder, search=NumpySearch())

        async_to_sync(selector.record_success)("do a thing", "cancel_order", "warehouse")

        self.assertFalse(ToolExampleQuery.objects.exists())
        self.assertEqual(embedder.calls, [])
