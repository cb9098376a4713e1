"""
Tool definitions, grouped by domain.

Read tools run immediately; write tools (requires_confirmation=True) are queued
for human approval before the store is touched.
"""

from . import inputs as i
from .domains import Domain
from .registry import ToolCatalog, ToolDefinition


def _tool(name, domain, description, input_model, requires_confirmation=False, display_name=""):
    return ToolCatalog.register(ToolDefinition(
        name=name,
        description=description,
        domain=domain,
        input_model=input_model,
        requires_confirmation=requires_confirmation,
        display_name=display_name,
    ))


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

_tool("get_sales_summary", Domain.ANALYTICS,
      "Get total sales, order count, average order value and trend for a period.",
      i.SalesSummaryInput)
_tool("get_top_products", Domain.ANALYTICS,
      "Rank best-selling products by revenue for a period.",
      i.TopProductsInput)
_tool("get_customer_insights", Domain.ANALYTICS,
      "Summarize new vs returning customers, top spenders and repeat purchase rate.",
      i.CustomerInsightsInput)
_tool("get_inventory_report", Domain.ANALYTICS,
      "Report low-stock and out-of-stock items across all locations.",
      i.InventoryReportInput)

# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

_tool("get_orders", Domain.ORDERS,
      "Search orders by status, customer, or free text. Returns a summary list.",
      i.GetOrdersInput)
_tool("get_order", Domain.ORDERS,
      "Get one order with line items, payment, fulfillment status and notes.",
      i.OrderRef)
_tool("cancel_order", Domain.ORDERS,
      "Cancel an order, optionally restocking items and notifying the customer.",
      i.CancelOrderInput, requires_confirmation=True)
_tool("update_order_note", Domain.ORDERS,
      "Replace the internal note on an order.",
      i.UpdateOrderNoteInput, requires_confirmation=True)
_tool("add_order_tags", Domain.ORDERS,
      "Add tags to an order.",
      i.OrderTagsInput, requires_confirmation=True)
_tool("mark_order_as_paid", Domain.ORDERS,
      "Mark an order with a pending payment as paid.",
      i.OrderRef, requires_confirmation=True)
_tool("create_refund", Domain.ORDERS,
      "Refund an order fully or partially.",
      i.CreateRefundInput, requires_confirmation=True)

# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

_tool("get_customers", Domain.CUSTOMERS,
      "Search customers by name, email or tag.",
      i.Paging)
_tool("get_customer", Domain.CUSTOMERS,
      "Get a customer profile with addresses, order count and total spent.",
      i.CustomerRef)
_tool("create_customer", Domain.CUSTOMERS,
      "Create a new customer.",
      i.CreateCustomerInput, requires_confirmation=True)
_tool("update_customer", Domain.CUSTOMERS,
      "Update a customer's contact details or note.",
      i.UpdateCustomerInput, requires_confirmation=True)
_tool("add_customer_tags", Domain.CUSTOMERS,
      "Add tags to a customer.",
      i.CustomerTagsInput, requires_confirmation=True)
_tool("update_customer_marketing", Domain.CUSTOMERS,
      "Subscribe or unsubscribe a customer from email marketing.",
      i.CustomerMarketingInput, requires_confirmation=True)

# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

_tool("get_products", Domain.PRODUCTS,
      "Search products by title, vendor, type or tag.",
      i.Paging)
_tool("get_product", Domain.PRODUCTS,
      "Get a product with its variants, prices and status.",
      i.ProductRef)
_tool("update_product", Domain.PRODUCTS,
      "Update a product's title, description, status or tags.",
      i.UpdateProductInput, requires_confirmation=True)
_tool("update_variant_price", Domain.PRODUCTS,
      "Change a variant's price and compare-at price.",
      i.UpdateVariantPriceInput, requires_confirmation=True)
_tool("publish_product", Domain.PRODUCTS,
      "Publish a product to the online store.",
      i.ProductRef, requires_confirmation=True)

# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

_tool("get_inventory_levels", Domain.INVENTORY,
      "Get available quantities by SKU and location.",
      i.InventoryLevelsInput)
_tool("get_locations", Domain.INVENTORY,
      "List store locations that hold inventory.",
      i.Paging)
_tool("adjust_inventory", Domain.INVENTORY,
      "Adjust available quantity by a delta at one location.",
      i.AdjustInventoryInput, requires_confirmation=True)
_tool("set_inventory", Domain.INVENTORY,
      "Set the available quantity at one location to an exact number.",
      i.SetInventoryInput, requires_confirmation=True)
_tool("transfer_inventory", Domain.INVENTORY,
      "Move stock from one location to another.",
      i.TransferInventoryInput, requires_confirmation=True)

# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

_tool("get_collections", Domain.COLLECTIONS,
      "List smart and manual collections.",
      i.Paging)
_tool("create_collection", Domain.COLLECTIONS,
      "Create a manual collection, optionally with products.",
      i.CreateCollectionInput, requires_confirmation=True)
_tool("add_products_to_collection", Domain.COLLECTIONS,
      "Add products to a manual collection.",
      i.CollectionProductsInput, requires_confirmation=True)

# ---------------------------------------------------------------------------
# Discounts
# ---------------------------------------------------------------------------

_tool("get_discounts", Domain.DISCOUNTS,
      "List discount codes and automatic discounts with usage.",
      i.Paging)
_tool("create_discount", Domain.DISCOUNTS,
      "Create a percentage or fixed-amount discount code.",
      i.CreateDiscountInput, requires_confirmation=True)
_tool("deactivate_discount", Domain.DISCOUNTS,
      "Deactivate a discount immediately.",
      i.DiscountRef, requires_confirmation=True)

# ---------------------------------------------------------------------------
# Gift cards
# ---------------------------------------------------------------------------

_tool("get_gift_cards", Domain.GIFT_CARDS,
      "Search gift cards by code suffix or customer.",
      i.Paging)
_tool("create_gift_card", Domain.GIFT_CARDS,
      "Issue a new gift card.",
      i.CreateGiftCardInput, requires_confirmation=True)
_tool("credit_gift_card", Domain.GIFT_CARDS,
      "Add balance to a gift card.",
      i.GiftCardAmountInput, requires_confirmation=True)
_tool("debit_gift_card", Domain.GIFT_CARDS,
      "Remove balance from a gift card.",
      i.GiftCardAmountInput, requires_confirmation=True)
_tool("deactivate_gift_card", Domain.GIFT_CARDS,
      "Permanently deactivate a gift card.",
      i.GiftCardRef, requires_confirmation=True)

# ---------------------------------------------------------------------------
# Fulfillment
# ---------------------------------------------------------------------------

_tool("get_fulfillment_orders", Domain.FULFILLMENT,
      "Get fulfillment orders (and their holds) for an order.",
      i.OrderRef)
_tool("create_fulfillment", Domain.FULFILLMENT,
      "Fulfill a fulfillment order, optionally with tracking.",
      i.CreateFulfillmentInput, requires_confirmation=True)
_tool("hold_fulfillment_order", Domain.FULFILLMENT,
      "Put a fulfillment order on hold.",
      i.HoldFulfillmentInput, requires_confirmation=True)
_tool("update_tracking", Domain.FULFILLMENT,
      "Update tracking information on a fulfillment.",
      i.UpdateTrackingInput, requires_confirmation=True)

# ---------------------------------------------------------------------------
# Finance
# ---------------------------------------------------------------------------

_tool("get_payouts", Domain.FINANCE,
      "List recent payouts with status and amounts.",
      i.PayoutsInput)
_tool("get_disputes", Domain.FINANCE,
      "List chargebacks and inquiries with their deadlines.",
      i.DisputesInput)
_tool("capture_payment", Domain.FINANCE,
      "Capture an authorized payment on an order.",
      i.CapturePaymentInput, requires_confirmation=True)

# ---------------------------------------------------------------------------
# Order editing
# ---------------------------------------------------------------------------

_tool("order_edit_begin", Domain.ORDER_EDITING,
      "Start an edit session on an order. Returns an edit_id.",
      i.OrderRef, requires_confirmation=True)
_tool("order_edit_add_variant", Domain.ORDER_EDITING,
      "Add a variant to an order being edited.",
      i.OrderEditAddVariantInput, requires_confirmation=True)
_tool("order_edit_set_quantity", Domain.ORDER_EDITING,
      "Change the quantity of a line item in an order being edited.",
      i.OrderEditSetQuantityInput, requires_confirmation=True)
_tool("order_edit_commit", Domain.ORDER_EDITING,
      "Commit an order edit session, applying all changes.",
      i.OrderEditCommitInput, requires_confirmation=True)
