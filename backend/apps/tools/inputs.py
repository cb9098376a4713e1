"""
Typed input parameters for every tool.

Each model doubles as the tool's JSON Schema (model_json_schema) and as the
validated, typed value the executor hands to the Store.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolInput(BaseModel):
    """Base for tool inputs: unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid")


class Period(str, Enum):
    TODAY = "today"
    LAST_7_DAYS = "last_7_days"
    LAST_30_DAYS = "last_30_days"
    LAST_90_DAYS = "last_90_days"


class Paging(ToolInput):
    query: Optional[str] = Field(default=None, description="Free-text search filter")
    limit: int = Field(default=10, ge=1, le=50, description="Maximum results to return")


# ─── Analytics ──────────────────────────────────────────────────────────────

class SalesSummaryInput(ToolInput):
    period: Period = Field(default=Period.LAST_30_DAYS, description="Reporting window")


class TopProductsInput(ToolInput):
    period: Period = Field(default=Period.LAST_30_DAYS, description="Reporting window")
    limit: int = Field(default=10, ge=1, le=50, description="How many products to rank")


class CustomerInsightsInput(ToolInput):
    period: Period = Field(default=Period.LAST_30_DAYS, description="Reporting window")


class InventoryReportInput(ToolInput):
    low_stock_threshold: int = Field(default=5, ge=0, description="Units at or below which stock is low")


# ─── Orders ─────────────────────────────────────────────────────────────────

class OrderStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    ANY = "any"


class CancelReason(str, Enum):
    CUSTOMER = "CUSTOMER"
    FRAUD = "FRAUD"
    INVENTORY = "INVENTORY"
    DECLINED = "DECLINED"
    STAFF = "STAFF"
    OTHER = "OTHER"


class GetOrdersInput(Paging):
    status: OrderStatus = Field(default=OrderStatus.ANY, description="Order status filter")


class OrderRef(ToolInput):
    order_id: str = Field(min_length=1, description="Order ID or order number (e.g. '1001')")


class CancelOrderInput(OrderRef):
    reason: CancelReason = Field(default=CancelReason.OTHER, description="Cancellation reason")
    notify_customer: bool = Field(default=True, description="Email the customer about the cancellation")
    restock: bool = Field(default=True, description="Return line items to inventory")
    staff_note: Optional[str] = Field(default=None, max_length=500, description="Internal note")


class UpdateOrderNoteInput(OrderRef):
    note: str = Field(max_length=5000, description="New order note (replaces the existing note)")


class OrderTagsInput(OrderRef):
    tags: List[str] = Field(min_length=1, description="Tags to add")


class CreateRefundInput(OrderRef):
    amount: Optional[str] = Field(default=None, pattern=r"^\d+(\.\d{1,2})?$", description="Amount to refund; omit for a full refund")
    reason: Optional[str] = Field(default=None, max_length=500, description="Reason shown to staff")
    notify_customer: bool = Field(default=True, description="Email the customer a refund receipt")


# ─── Customers ──────────────────────────────────────────────────────────────

class CustomerRef(ToolInput):
    customer_id: str = Field(min_length=1, description="Customer ID")


class CreateCustomerInput(ToolInput):
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="Customer email")
    first_name: Optional[str] = Field(default=None, description="First name")
    last_name: Optional[str] = Field(default=None, description="Last name")
    phone: Optional[str] = Field(default=None, description="Phone number in E.164 format")
    tags: List[str] = Field(default_factory=list, description="Tags to apply")


class UpdateCustomerInput(CustomerRef):
    email: Optional[str] = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="New email")
    first_name: Optional[str] = Field(default=None, description="New first name")
    last_name: Optional[str] = Field(default=None, description="New last name")
    phone: Optional[str] = Field(default=None, description="New phone number")
    note: Optional[str] = Field(default=None, description="Internal note")


class CustomerTagsInput(CustomerRef):
    tags: List[str] = Field(min_length=1, description="Tags to add")


class CustomerMarketingInput(CustomerRef):
    email_marketing: bool = Field(description="Whether the customer is subscribed to email marketing")


# ─── Products ───────────────────────────────────────────────────────────────

class ProductStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DRAFT = "DRAFT"
    ARCHIVED = "ARCHIVED"


class ProductRef(ToolInput):
    product_id: str = Field(min_length=1, description="Product ID")


class UpdateProductInput(ProductRef):
    title: Optional[str] = Field(default=None, max_length=255, description="New title")
    description_html: Optional[str] = Field(default=None, description="New description (HTML)")
    status: Optional[ProductStatus] = Field(default=None, description="New status")
    tags: Optional[List[str]] = Field(default=None, description="Replacement tag list")


class UpdateVariantPriceInput(ToolInput):
    variant_id: str = Field(min_length=1, description="Variant ID")
    price: str = Field(pattern=r"^\d+(\.\d{1,2})?$", description="New price")
    compare_at_price: Optional[str] = Field(default=None, pattern=r"^\d+(\.\d{1,2})?$", description="Compare-at price")


# ─── Inventory ──────────────────────────────────────────────────────────────

class InventoryLevelsInput(ToolInput):
    sku: Optional[str] = Field(default=None, description="Filter by SKU")
    location_id: Optional[str] = Field(default=None, description="Filter by location")
    limit: int = Field(default=20, ge=1, le=100, description="Maximum rows")


class AdjustInventoryInput(ToolInput):
    inventory_item_id: str = Field(min_length=1, description="Inventory item ID")
    location_id: str = Field(min_length=1, description="Location ID")
    delta: int = Field(description="Change in available quantity (negative to remove)")
    reason: str = Field(default="correction", description="Adjustment reason (e.g. 'correction', 'damaged')")


class SetInventoryInput(ToolInput):
    inventory_item_id: str = Field(min_length=1, description="Inventory item ID")
    location_id: str = Field(min_length=1, description="Location ID")
    quantity: int = Field(ge=0, description="New available quantity")


class TransferInventoryInput(ToolInput):
    inventory_item_id: str = Field(min_length=1, description="Inventory item ID")
    from_location_id: str = Field(min_length=1, description="Source location")
    to_location_id: str = Field(min_length=1, description="Destination location")
    quantity: int = Field(gt=0, description="Units to move")


# ─── Collections ────────────────────────────────────────────────────────────

class CreateCollectionInput(ToolInput):
    title: str = Field(min_length=1, max_length=255, description="Collection title")
    description_html: Optional[str] = Field(default=None, description="Collection description (HTML)")
    product_ids: List[str] = Field(default_factory=list, description="Products to include (manual collection)")


class CollectionProductsInput(ToolInput):
    collection_id: str = Field(min_length=1, description="Collection ID")
    product_ids: List[str] = Field(min_length=1, description="Products to add")


# ─── Discounts ──────────────────────────────────────────────────────────────

class CreateDiscountInput(ToolInput):
    code: str = Field(min_length=1, max_length=64, description="Discount code customers enter")
    percentage: Optional[float] = Field(default=None, gt=0, le=100, description="Percent off")
    amount: Optional[str] = Field(default=None, pattern=r"^\d+(\.\d{1,2})?$", description="Fixed amount off")
    starts_at: Optional[str] = Field(default=None, description="ISO-8601 start time (defaults to now)")
    ends_at: Optional[str] = Field(default=None, description="ISO-8601 end time")
    usage_limit: Optional[int] = Field(default=None, ge=1, description="Total redemptions allowed")


class DiscountRef(ToolInput):
    discount_id: str = Field(min_length=1, description="Discount ID")


# ─── Gift cards ─────────────────────────────────────────────────────────────

class CreateGiftCardInput(ToolInput):
    initial_value: str = Field(pattern=r"^\d+(\.\d{1,2})?$", description="Starting balance")
    customer_id: Optional[str] = Field(default=None, description="Customer to assign the card to")
    note: Optional[str] = Field(default=None, description="Internal note")
    expires_on: Optional[str] = Field(default=None, description="Expiry date (YYYY-MM-DD)")


class GiftCardAmountInput(ToolInput):
    gift_card_id: str = Field(min_length=1, description="Gift card ID")
    amount: str = Field(pattern=r"^\d+(\.\d{1,2})?$", description="Amount")
    note: Optional[str] = Field(default=None, description="Reason for the transaction")


class GiftCardRef(ToolInput):
    gift_card_id: str = Field(min_length=1, description="Gift card ID")


# ─── Fulfillment ────────────────────────────────────────────────────────────

class HoldReason(str, Enum):
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    HIGH_RISK_OF_FRAUD = "HIGH_RISK_OF_FRAUD"
    INCORRECT_ADDRESS = "INCORRECT_ADDRESS"
    INVENTORY_OUT_OF_STOCK = "INVENTORY_OUT_OF_STOCK"
    OTHER = "OTHER"


class CreateFulfillmentInput(ToolInput):
    fulfillment_order_id: str = Field(min_length=1, description="Fulfillment order ID")
    tracking_number: Optional[str] = Field(default=None, description="Carrier tracking number")
    tracking_company: Optional[str] = Field(default=None, description="Carrier name")
    notify_customer: bool = Field(default=True, description="Send a shipping confirmation")


class HoldFulfillmentInput(ToolInput):
    fulfillment_order_id: str = Field(min_length=1, description="Fulfillment order ID")
    reason: HoldReason = Field(description="Why the fulfillment is held")
    reason_notes: Optional[str] = Field(default=None, description="Extra detail")


class UpdateTrackingInput(ToolInput):
    fulfillment_id: str = Field(min_length=1, description="Fulfillment ID")
    tracking_number: str = Field(min_length=1, description="Carrier tracking number")
    tracking_company: Optional[str] = Field(default=None, description="Carrier name")
    notify_customer: bool = Field(default=False, description="Email the customer the new tracking info")


# ─── Finance ────────────────────────────────────────────────────────────────

class PayoutsInput(ToolInput):
    limit: int = Field(default=10, ge=1, le=50, description="Maximum payouts")


class DisputesInput(ToolInput):
    status: Optional[str] = Field(default=None, description="Filter by dispute status")
    limit: int = Field(default=10, ge=1, le=50, description="Maximum disputes")


class CapturePaymentInput(OrderRef):
    amount: Optional[str] = Field(default=None, pattern=r"^\d+(\.\d{1,2})?$", description="Amount to capture; omit for the full authorization")


# ─── Order editing ──────────────────────────────────────────────────────────

class OrderEditRef(ToolInput):
    edit_id: str = Field(min_length=1, description="Order edit session ID from order_edit_begin")


class OrderEditAddVariantInput(OrderEditRef):
    variant_id: str = Field(min_length=1, description="Variant to add")
    quantity: int = Field(default=1, gt=0, description="Units to add")


class OrderEditSetQuantityInput(OrderEditRef):
    line_item_id: str = Field(min_length=1, description="Calculated line item ID")
    quantity: int = Field(ge=0, description="New quantity (0 removes the item)")


class OrderEditCommitInput(OrderEditRef):
    notify_customer: bool = Field(default=True, description="Send the customer an updated invoice")
    staff_note: Optional[str] = Field(default=None, description="Internal note")
