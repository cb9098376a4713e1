"""
Tests for the domain classifier.
"""
import asyncio
from unittest import TestCase
from unittest.mock import AsyncMock, MagicMock

from django.test import override_settings

from apps.tool_selection.classifier import (
    CLASSIFIER_MAX_TOKENS,
    DomainClassifier,
    build_system_prompt,
    build_user_message,
    parse_domains,
)
from apps.tools.domains import Domain


def _provider(response=None, error=None):
    provider = MagicMock()
    provider.generate = AsyncMock(return_value=response, side_effect=error)
    return provider


class ParseDomainsTest(TestCase):

    def test_single(self):
        self.assertEqual(parse_domains("orders"), [Domain.ORDERS])

    def test_multiple_in_order(self):
        self.assertEqual(
            parse_domains("orders, customers, products"),
            [Domain.ORDERS, Domain.CUSTOMERS, Domain.PRODUCTS],
        )

    def test_whitespace_and_case(self):
        self.assertEqual(parse_domains("  ORDERS  ,  Customers "), [Domain.ORDERS, Domain.CUSTOMERS])

    def test_unknown_tokens_dropped(self):
        self.assertEqual(
            parse_domains("orders, invalid_domain, customers"),
            [Domain.ORDERS, Domain.CUSTOMERS],
        )

    def test_capped_at_three(self):
        result = parse_domains("orders, customers, products, inventory, discounts")
        self.assertEqual(result, [Domain.ORDERS, Domain.CUSTOMERS, Domain.PRODUCTS])

    def test_duplicates_do_not_use_up_the_cap(self):
        result = parse_domains("orders, orders, finance, gift_cards")
        self.assertEqual(result, [Domain.ORDERS, Domain.FINANCE, Domain.GIFT_CARDS])

    def test_nothing_valid(self):
        self.assertEqual(parse_domains("I'm not sure what you mean"), [])
        self.assertEqual(parse_domains(""), [])


class PromptTest(TestCase):

    def test_system_prompt_lists_every_domain(self):
        prompt = build_system_prompt()
        for domain in Domain:
            self.assertIn(f"- {domain.value}:", prompt)

    def test_user_message_carries_query(self):
        self.assertIn("Query: refund order 1001", build_user_message("refund order 1001"))


class DomainClassifierTest(TestCase):

    def test_classify_parses_response(self):
        provider = _provider("finance, orders")
        domains = asyncio.run(DomainClassifier(provider).classify("capture payment for #1001"))

        self.assertEqual(domains, [Domain.FINANCE, Domain.ORDERS])
        kwargs = provider.generate.await_args.kwargs
        self.assertEqual(kwargs['max_tokens'], CLASSIFIER_MAX_TOKENS)
        self.assertIn("capture payment for #1001", kwargs['messages'][0]['content'])

    def test_empty_answer_uses_default_domains(self):
        domains = asyncio.run(DomainClassifier(_provider("none of these")).classify("hello"))
        self.assertEqual(domains, [Domain.ORDERS, Domain.CUSTOMERS])

    def test_provider_failure_uses_default_domains(self):
        provider = _provider(error=RuntimeError("overloaded"))
        domains = asyncio.run(DomainClassifier(provider).classify("hello"))
        self.assertEqual(domains, [Domain.ORDERS, Domain.CUSTOMERS])

    @override_settings(TOOL_DEFAULT_DOMAINS=['analytics'])
    def test_default_domains_come_from_settings(self):
        domains = asyncio.run(DomainClassifier(_provider("")).classify("hello"))
        self.assertEqual(domains, [Domain.ANALYTICS])
