"""
Domain models defined as Pydantic models.
These are pure data structures with validation.

Money is expressed in whole won (int). Refund rates are Decimals so that
``floor(amount * rate)`` is exact.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    """Fulfilment state of an order."""

    PENDING = "pending"
    PREPARING = "preparing"
    SHIPPING = "shipping"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    CANCELLED_BEFORE_ACCEPT = "cancelled_before_accept"


TERMINAL_ORDER_STATUSES = frozenset(
    {
        OrderStatus.COMPLETED,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
        OrderStatus.CANCELLED_BEFORE_ACCEPT,
    }
)

CANCELLED_ORDER_STATUSES = frozenset(
    {
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
        OrderStatus.CANCELLED_BEFORE_ACCEPT,
    }
)


class PaymentStatus(str, Enum):
    """Aggregate payment state of an order."""

    UNPAID = "unpaid"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentGroupStatus(str, Enum):
    """State of a single gateway charge."""

    PAID = "paid"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ActorRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    SYSTEM = "system"


class DeliveryMethod(str, Enum):
    QUICK = "quick"
    PARCEL = "parcel"
    PICKUP = "pickup"


class ConfirmationType(str, Enum):
    """How a shipped order reached ``completed``."""

    MANUAL = "manual"
    AUTO = "auto"


class CancellationScopeKind(str, Enum):
    ALL = "all"
    ONE = "one"


class Actor(BaseModel):
    """Who is acting on an order. Authentication happens upstream."""

    role: ActorRole
    id: str

    @field_validator("id")
    @classmethod
    def id_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Actor id must not be blank")
        return v

    @classmethod
    def buyer(cls, uid: str) -> "Actor":
        return cls(role=ActorRole.BUYER, id=uid)

    @classmethod
    def seller(cls, store_id: str) -> "Actor":
        return cls(role=ActorRole.SELLER, id=store_id)

    @classmethod
    def admin(cls, admin_id: str) -> "Actor":
        return cls(role=ActorRole.ADMIN, id=admin_id)

    @classmethod
    def system(cls, name: str = "system") -> "Actor":
        return cls(role=ActorRole.SYSTEM, id=name)


class Discount(BaseModel):
    discount_percent: Decimal = Decimal("0")
    discount_amount: int = 0
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_always_active: bool = False

    @field_validator("discount_percent")
    @classmethod
    def percent_must_be_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("Discount percent must be between 0 and 100")
        return v

    def is_active_on(self, day: date) -> bool:
        if self.is_always_active:
            return True
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True


class OrderItem(BaseModel):
    product_id: str
    product_name: str = ""
    quantity: int
    price: int
    item_price: Optional[int] = None
    options: Dict[str, str] = Field(default_factory=dict)
    discount: Optional[Discount] = None
    is_add_item: bool = False
    payment_id: str

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v

    @field_validator("price")
    @classmethod
    def price_must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Price must not be negative")
        return v

    @field_validator("item_price")
    @classmethod
    def item_price_must_not_be_negative(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("Item price must not be negative")
        return v

    @property
    def line_total(self) -> int:
        """Resolved line total; falls back to unit price times quantity."""
        if self.item_price is not None:
            return self.item_price
        return self.price * self.quantity


class PaymentGroup(BaseModel):
    """One discrete charge against the payment gateway."""

    payment_id: str
    amount: int
    status: PaymentGroupStatus = PaymentGroupStatus.PAID
    point_amount: int = 0
    carries_delivery_fee: bool = False
    paid_at: datetime = Field(default_factory=utc_now)
    cancelled_at: Optional[datetime] = None

    @field_validator("amount", "point_amount")
    @classmethod
    def amount_must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Amount must not be negative")
        return v

    @property
    def is_active(self) -> bool:
        return self.status != PaymentGroupStatus.CANCELLED


class QuickDelivery(BaseModel):
    kind: Literal["quick"] = "quick"
    courier_order_no: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None


class ParcelDelivery(BaseModel):
    kind: Literal["parcel"] = "parcel"
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None

    @property
    def has_tracking(self) -> bool:
        return bool(self.carrier) and bool(self.tracking_number)


class PickupDelivery(BaseModel):
    kind: Literal["pickup"] = "pickup"
    pickup_location: Optional[str] = None


DeliveryDetails = Annotated[
    Union[QuickDelivery, ParcelDelivery, PickupDelivery],
    Field(discriminator="kind"),
]


class TrackingInfo(BaseModel):
    carrier: str
    tracking_number: str

    @field_validator("carrier", "tracking_number")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Carrier and tracking number are required")
        return v


class Order(BaseModel):
    order_id: str
    buyer_id: str
    store_id: str
    store_name: str = ""
    items: List[OrderItem]
    order_status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    delivery: DeliveryDetails = Field(default_factory=PickupDelivery)
    delivery_date: date
    delivery_time: Optional[str] = None
    delivery_fee: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    payment_info: List[PaymentGroup] = Field(default_factory=list)
    allow_additional_order: bool = False
    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    confirmation_type: Optional[ConfirmationType] = None
    review_eligible: bool = False
    # bumped by the repository on every successful save
    version: int = 0

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(cls, v: List[OrderItem]) -> List[OrderItem]:
        if not v:
            raise ValueError("Order must contain at least one item")
        return v

    @field_validator("delivery_fee")
    @classmethod
    def delivery_fee_must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Delivery fee must not be negative")
        return v

    @model_validator(mode="after")
    def payment_groups_must_be_consistent(self) -> "Order":
        carriers = [g for g in self.payment_info if g.carries_delivery_fee]
        if len(carriers) > 1:
            raise ValueError(
                "At most one payment group may carry the delivery fee"
            )
        ids = [g.payment_id for g in self.payment_info]
        if len(ids) != len(set(ids)):
            raise ValueError("Payment group ids must be unique")
        if self.payment_info:
            known = set(ids)
            orphans = {
                i.payment_id for i in self.items if i.payment_id not in known
            }
            if orphans:
                raise ValueError(
                    "Items reference unknown payment groups: "
                    f"{sorted(orphans)}"
                )
        return self

    @property
    def delivery_method(self) -> DeliveryMethod:
        return DeliveryMethod(self.delivery.kind)

    @property
    def is_terminal(self) -> bool:
        return self.order_status in TERMINAL_ORDER_STATUSES

    def payment_group(self, payment_id: str) -> Optional[PaymentGroup]:
        for group in self.payment_info:
            if group.payment_id == payment_id:
                return group
        return None

    def items_for(self, payment_id: str) -> List[OrderItem]:
        return [i for i in self.items if i.payment_id == payment_id]


class CancellationScope(BaseModel):
    """Breadth of a cancellation: the whole order or one payment group."""

    kind: CancellationScopeKind
    payment_id: Optional[str] = None

    @model_validator(mode="after")
    def payment_id_matches_kind(self) -> "CancellationScope":
        if self.kind == CancellationScopeKind.ONE and not self.payment_id:
            raise ValueError("Scope 'one' requires a payment_id")
        if self.kind == CancellationScopeKind.ALL and self.payment_id:
            raise ValueError("Scope 'all' does not take a payment_id")
        return self

    @classmethod
    def whole_order(cls) -> "CancellationScope":
        return cls(kind=CancellationScopeKind.ALL)

    @classmethod
    def single(cls, payment_id: str) -> "CancellationScope":
        return cls(kind=CancellationScopeKind.ONE, payment_id=payment_id)

    @property
    def is_whole_order(self) -> bool:
        return self.kind == CancellationScopeKind.ALL


class CancelOrderCommand(BaseModel):
    order_id: str
    scope: CancellationScope = Field(
        default_factory=CancellationScope.whole_order
    )
    reason: str = ""
    actor: Actor
    acknowledge_refund_policy: bool = False


class GatewayCancelRequest(BaseModel):
    """Arguments for cancelling one gateway transaction."""

    order_id: str
    transaction_id: str
    reason: str
    refund_amount: int
    is_partial: bool = False
    is_partner_cancel: bool = False
    # balance still refundable on the transaction; the gateway refuses the
    # cancellation when its own balance differs
    checksum: Optional[int] = None

    @field_validator("refund_amount")
    @classmethod
    def refund_amount_must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Refund amount must not be negative")
        return v


class GatewayCancelOutcome(BaseModel):
    """Result of a gateway cancellation attempt."""

    success: bool
    error: Optional[str] = None
    already_cancelled: bool = False

    @field_validator("error")
    @classmethod
    def error_must_be_present_if_failed(
        cls, v: Optional[str], info
    ) -> Optional[str]:
        if info.data.get("success") is False and not v:
            raise ValueError("Error must be present if success is false")
        return v


class GroupRefund(BaseModel):
    payment_id: str
    refund_amount: int
    gateway_called: bool = True


class CancellationResult(BaseModel):
    order_id: str
    scope: CancellationScopeKind
    success: bool = True
    refund_amount: int = 0
    refund_rate: Decimal = Decimal("0")
    order_status: Optional[OrderStatus] = None
    cancelled_groups: List[GroupRefund] = Field(default_factory=list)
    remaining_payment_ids: List[str] = Field(default_factory=list)
    no_op: bool = False
    error: Optional[str] = None
    error_code: Optional[str] = None


class CheckoutItemRequest(BaseModel):
    product_id: str
    product_name: str = ""
    quantity: int
    price: int
    item_price: Optional[int] = None
    options: Dict[str, str] = Field(default_factory=dict)
    discount: Optional[Discount] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v


class CheckoutRequest(BaseModel):
    """A completed checkout: the initial gateway charge and its items."""

    buyer_id: str
    store_id: str
    store_name: str = ""
    payment_id: str
    payment_result: Literal["paid", "failed"] = "paid"
    items: List[CheckoutItemRequest]
    delivery: DeliveryDetails = Field(default_factory=PickupDelivery)
    delivery_date: date
    delivery_time: Optional[str] = None
    delivery_fee: int = 0
    point_amount: int = 0

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CheckoutItemRequest]
    ) -> List[CheckoutItemRequest]:
        if not v:
            raise ValueError("Order must contain at least one item")
        return v


class AdditionalOrderRequest(BaseModel):
    """A further purchase attached to an order that is being prepared."""

    payment_id: str
    items: List[CheckoutItemRequest]
    point_amount: int = 0
    paid_at: Optional[datetime] = None

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CheckoutItemRequest]
    ) -> List[CheckoutItemRequest]:
        if not v:
            raise ValueError("Additional order must contain at least one item")
        return v


class GatewayEvent(BaseModel):
    """Asynchronous confirmation pushed by the payment gateway."""

    order_id: str
    transaction_id: str
    status: Literal["paid", "failed", "cancelled"]
    occurred_at: Optional[datetime] = None
