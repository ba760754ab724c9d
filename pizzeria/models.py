"""
Pydantic models for the catalog, cart lines, orders, requests, and responses.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, ClassVar, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Catalog (read-only, authored elsewhere)
# ---------------------------------------------------------------------------

class Variation(BaseModel):
    """An optional add-on with its own price"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str] = None
    additional_price: Decimal = Field(Decimal("0"), ge=0)
    available: bool = True
    category_ids: List[str] = Field(default_factory=list, description="Empty means every category")


class VariationGroup(BaseModel):
    """A set of variations with selection bounds"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    internal_name: Optional[str] = None
    min_required: int = Field(0, ge=0)
    max_allowed: int = Field(1, ge=0)
    variation_ids: List[str] = Field(default_factory=list)
    custom_message: Optional[str] = Field(None, description="Template with {min}, {max}, {count}")
    apply_to_half_pizza: bool = False
    allow_per_half: bool = False

    @model_validator(mode="after")
    def check_bounds(self) -> "VariationGroup":
        if self.min_required > self.max_allowed:
            raise ValueError("min_required cannot exceed max_allowed")
        return self


class Border(BaseModel):
    """Pizza-only single-choice topping"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    additional_price: Decimal = Field(Decimal("0"), ge=0)
    available: bool = True


class FlavorRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class Combination(BaseModel):
    """The two flavors of a half-and-half product"""
    model_config = ConfigDict(frozen=True)

    flavor1: FlavorRef
    flavor2: FlavorRef
    size: str = "large"


class CatalogItem(BaseModel):
    """Catalog item model"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    price: Decimal = Field(Decimal("0"), ge=0)
    category: Optional[str] = None
    available: bool = True
    price_from: bool = Field(False, description="Base price is informational only")
    is_pizza: bool = False
    allows_combination: bool = False
    max_flavors: int = Field(2, ge=1)
    free_shipping: bool = False
    variation_groups: List[VariationGroup] = Field(default_factory=list)
    borders: List[Border] = Field(default_factory=list)
    borders_position: Optional[int] = None
    combination: Optional[Combination] = Field(None, description="Set only on synthesized half-and-half items")

    @property
    def is_half_pizza(self) -> bool:
        return self.combination is not None

    def group(self, group_id: str) -> Optional[VariationGroup]:
        for group in self.variation_groups:
            if group.id == group_id:
                return group
        return None

    def border(self, border_id: str) -> Optional[Border]:
        for border in self.borders:
            if border.id == border_id:
                return border
        return None


class CatalogSnapshot(BaseModel):
    """Everything the core reads from the catalog store at one point in time"""
    items: List[CatalogItem] = Field(default_factory=list)
    variations: List[Variation] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Selections and cart lines
# ---------------------------------------------------------------------------

class HalfSelection(str, Enum):
    HALF1 = "half1"
    HALF2 = "half2"
    WHOLE = "whole"


class SelectedVariation(BaseModel):
    variation_id: str
    quantity: int = Field(0, ge=0)
    name: Optional[str] = None
    additional_price: Optional[Decimal] = None
    half_selection: Optional[HalfSelection] = None


class SelectedVariationGroup(BaseModel):
    group_id: str
    group_name: str = ""
    variations: List[SelectedVariation] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(v.quantity for v in self.variations)


class _LineBase(BaseModel):
    item: CatalogItem
    quantity: int = Field(1, ge=1)
    selected_variations: List[SelectedVariationGroup] = Field(default_factory=list)
    selected_border: Optional[Border] = None

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def free_shipping(self) -> bool:
        return self.item.free_shipping


class StandardLine(_LineBase):
    """A line for a regular catalog item"""
    kind: Literal["standard"] = "standard"
    is_half_pizza: ClassVar[bool] = False


class HalfPizzaLine(_LineBase):
    """A line for a synthesized half-and-half item"""
    kind: Literal["half_pizza"] = "half_pizza"
    combination: Combination
    is_half_pizza: ClassVar[bool] = True


CartLine = Annotated[Union[StandardLine, HalfPizzaLine], Field(discriminator="kind")]


class CouponType(str, Enum):
    PERCENT = "percent"
    FIXED = "fixed"


class Coupon(BaseModel):
    """Coupon descriptor already validated by the coupon service"""
    code: Optional[str] = None
    type: CouponType
    value: Decimal = Field(..., ge=0)


# Persisted cart snapshot: ids and quantities only, never prices or names

class SavedVariation(BaseModel):
    variation_id: str
    quantity: int = Field(..., ge=0)
    half_selection: Optional[HalfSelection] = None


class SavedVariationGroup(BaseModel):
    group_id: str
    variations: List[SavedVariation] = Field(default_factory=list)


class SavedLine(BaseModel):
    id: str
    quantity: int = Field(..., ge=1)
    selections: List[SavedVariationGroup] = Field(default_factory=list)
    border_id: Optional[str] = None
    is_half_pizza: bool = False
    combination: Optional[Combination] = None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class PaymentMethod(str, Enum):
    CARD = "card"
    CASH = "cash"
    PIX = "pix"
    PAYROLL_DISCOUNT = "payroll_discount"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERING = "delivering"
    RECEIVED = "received"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    TO_DEDUCT = "to_deduct"
    PAID = "paid"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    TO_RECEIVE = "to_receive"
    RECEIVED = "received"


class OrderVariation(BaseModel):
    model_config = ConfigDict(frozen=True)

    variation_id: str
    quantity: int
    name: str
    additional_price: Decimal
    half_selection: Optional[HalfSelection] = None


class OrderVariationGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    group_id: str
    group_name: str
    variations: List[OrderVariation]


class OrderBorder(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    additional_price: Decimal


class OrderLine(BaseModel):
    """Resolved snapshot of one cart line"""
    model_config = ConfigDict(frozen=True)

    menu_item_id: str
    name: str
    price: Decimal = Field(..., ge=0, description="Charged unit base price")
    quantity: int = Field(..., ge=1)
    selected_variations: List[OrderVariationGroup] = Field(default_factory=list)
    selected_border: Optional[OrderBorder] = None
    price_from: bool = False
    is_half_pizza: bool = False
    is_pizza: bool = False
    combination: Optional[Combination] = None
    free_shipping: bool = False
    subtotal: Decimal = Field(..., ge=0)


class OrderRecord(BaseModel):
    """Immutable order record"""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    customer_name: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    payment_method: PaymentMethod
    observations: str = ""
    items: List[OrderLine] = Field(..., min_length=1)
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.TO_RECEIVE
    subtotal: Decimal = Field(..., ge=0)
    freight: Decimal = Field(Decimal("0"), ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)
    coupon_code: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# HTTP requests / responses
# ---------------------------------------------------------------------------

class SelectionRequest(BaseModel):
    """Desired quantity of one variation"""
    group_id: str
    variation_id: str
    quantity: int = Field(1, ge=0)
    half_selection: Optional[HalfSelection] = None


class AddLineRequest(BaseModel):
    """Request model for configuring and adding a line"""
    item_id: str = Field(..., description="Catalog item (first flavor for half-and-half)")
    flavor2_id: Optional[str] = Field(None, description="Second flavor; makes the line half-and-half")
    selections: List[SelectionRequest] = Field(default_factory=list)
    border_id: Optional[str] = None
    quantity: int = Field(1, ge=1)


class EditLineRequest(BaseModel):
    """Request model for re-selecting an existing line"""
    selections: List[SelectionRequest] = Field(default_factory=list)
    border_id: Optional[str] = None


class CombinationPreviewRequest(BaseModel):
    item_id: str
    flavor2_id: Optional[str] = None


class FlavorOption(BaseModel):
    id: str
    name: str
    large_price: Decimal
    free_shipping: bool = False


class GroupStatus(BaseModel):
    total: int
    min: int
    max: int
    valid: bool


class GroupView(BaseModel):
    group: VariationGroup
    variations: List[Variation]
    status: GroupStatus
    message: str


class CartLineView(BaseModel):
    index: int
    line: CartLine
    line_total: Decimal


class CartResponse(BaseModel):
    """Response model for cart retrieval"""
    cart_id: str
    lines: List[CartLineView] = Field(default_factory=list)
    item_count: int = 0
    subtotal: Decimal = Decimal("0.00")
    coupon: Optional[Coupon] = None
    discount_amount: Decimal = Decimal("0.00")
    final_total: Decimal = Decimal("0.00")


class CheckoutRequest(BaseModel):
    """Request model for checkout"""
    customer_name: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    payment_method: PaymentMethod
    observations: str = ""
    status: OrderStatus = Field(OrderStatus.PENDING, description="Point-of-sale may submit 'completed'")

    @field_validator("customer_phone")
    @classmethod
    def normalize_phone(cls, v: str) -> str:
        digits = "".join(ch for ch in v if ch.isdigit())
        if not digits:
            raise ValueError("Phone must contain digits")
        return digits


class StatusUpdateRequest(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
