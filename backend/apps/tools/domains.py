"""
Tool domains: the fixed vocabulary used to tag tools and filter retrieval.
"""
from enum import Enum
from typing import Dict, Optional


class Domain(str, Enum):
    ANALYTICS = "analytics"
    ORDERS = "orders"
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    INVENTORY = "inventory"
    COLLECTIONS = "collections"
    DISCOUNTS = "discounts"
    GIFT_CARDS = "gift_cards"
    FULFILLMENT = "fulfillment"
    FINANCE = "finance"
    ORDER_EDITING = "order_editing"

    @classmethod
    def parse(cls, value: str) -> Optional["Domain"]:
        """Case-insensitive lookup; unknown names return None."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


DOMAIN_DESCRIPTIONS: Dict[Domain, str] = {
    Domain.ANALYTICS: "Business analytics: sales summaries, revenue trends, top products, customer insights, inventory reports",
    Domain.ORDERS: "Order management: viewing, searching, updating, canceling, refunding orders",
    Domain.CUSTOMERS: "Customer management: profiles, addresses, marketing, segments, merging",
    Domain.PRODUCTS: "Product catalog: products, variants, pricing, media, publishing",
    Domain.INVENTORY: "Inventory tracking: stock levels, adjustments, transfers between locations",
    Domain.COLLECTIONS: "Collection management: smart/manual collections, product organization",
    Domain.DISCOUNTS: "Promotions: discount codes, automatic discounts, bulk operations",
    Domain.GIFT_CARDS: "Gift card operations: issuing, crediting, debiting, notifications",
    Domain.FULFILLMENT: "Shipping: fulfillment orders, tracking, holds, returns",
    Domain.FINANCE: "Financial: payouts, disputes, bank accounts, payment capture",
    Domain.ORDER_EDITING: "Order modifications: adding/removing items, adjusting quantities, editing",
}

DOMAIN_EMOJIS: Dict[Domain, str] = {
    Domain.ORDERS: "📦",
    Domain.CUSTOMERS: "👤",
    Domain.PRODUCTS: "🏷️",
    Domain.INVENTORY: "📊",
    Domain.COLLECTIONS: "📁",
    Domain.DISCOUNTS: "🎟️",
    Domain.GIFT_CARDS: "🎁",
    Domain.FULFILLMENT: "🚚",
    Domain.FINANCE: "💰",
    Domain.ORDER_EDITING: "✏️",
}

DEFAULT_EMOJI = "🔧"


def emoji_for(domain: Optional[Domain]) -> str:
    return DOMAIN_EMOJIS.get(domain, DEFAULT_EMOJI)
