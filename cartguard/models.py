"""
Typed records shared by the registry, resolver, extractor and diff engine.

Selector definitions are frozen: once a page set is published it is never
edited in place. Snapshot records are plain dataclasses created per
extraction call.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, TypeVar

CENT = Decimal("0.01")


def round2(value: Decimal) -> Decimal:
    """Round a money value to cents, half away from zero."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money(value: Decimal) -> float:
    return float(round2(value))


# ─────────────────────────────────────────────────────────────
# Selector definitions
# ─────────────────────────────────────────────────────────────

class StrategyKind(str, Enum):
    ID = "id"
    ATTRIBUTE = "attribute"
    ROLE = "role"
    CLASS = "class"
    TEXT = "text"
    STRUCTURAL = "structural"


@dataclass(frozen=True)
class SelectorStrategy:
    """
    One way of locating an element.

    stability_score (0-100) estimates how well the strategy survives markup
    churn; higher is more durable.
    """
    expression: str
    kind: StrategyKind
    stability_score: int

    def label(self) -> str:
        return f"{self.kind.value}:{self.expression}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expression": self.expression,
            "kind": self.kind.value,
            "score": self.stability_score,
        }


@dataclass(frozen=True)
class SelectorEntry:
    name: str
    primary: SelectorStrategy
    fallbacks: Tuple[SelectorStrategy, ...] = ()
    verified: bool = True
    description: str = ""

    def chain(self) -> Tuple[SelectorStrategy, ...]:
        """Primary followed by fallbacks, in resolution order."""
        return (self.primary,) + tuple(self.fallbacks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "primary": self.primary.to_dict(),
            "fallbacks": [s.to_dict() for s in self.fallbacks],
            "verified": self.verified,
            "reason": self.description,
        }


@dataclass(frozen=True)
class PageSelectorSet:
    page_id: str
    version: int
    url_pattern: str
    entries: Mapping[str, SelectorEntry]
    notes: str = ""
    last_validated: Optional[str] = None

    def __post_init__(self):
        # freeze the mapping so published sets cannot be edited at runtime
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    def __hash__(self):
        return hash((self.page_id, self.version))

    def same_content(self, other: "PageSelectorSet") -> bool:
        return (
            self.page_id == other.page_id
            and self.version == other.version
            and self.url_pattern == other.url_pattern
            and dict(self.entries) == dict(other.entries)
            and self.notes == other.notes
            and self.last_validated == other.last_validated
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page_id,
            "version": self.version,
            "urlPattern": self.url_pattern,
            "lastValidated": self.last_validated,
            "notes": self.notes,
            "selectors": {n: e.to_dict() for n, e in self.entries.items()},
        }


# ─────────────────────────────────────────────────────────────
# Snapshot records
# ─────────────────────────────────────────────────────────────

class Availability(str, Enum):
    AVAILABLE = "available"
    LOW_STOCK = "low-stock"
    OUT_OF_STOCK = "out-of-stock"
    UNKNOWN = "unknown"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


@dataclass
class OrderItem:
    product_id: str
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    category: Optional[str] = None
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": money(self.unit_price),
            "line_total": money(self.line_total),
            "category": self.category,
            "image_url": self.image_url,
        }


@dataclass
class CartItem:
    product_id: str
    name: str
    quantity: int
    price: Decimal
    availability: Availability = Availability.UNKNOWN
    from_original_order: Optional[bool] = None
    original_quantity: Optional[int] = None
    item_id: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    price_per_unit: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "price": money(self.price),
            "availability": self.availability.value,
        }
        if self.from_original_order is not None:
            out["from_original_order"] = self.from_original_order
        if self.original_quantity is not None:
            out["original_quantity"] = self.original_quantity
        for key in ("item_id", "image_url", "category", "unit"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        if self.price_per_unit is not None:
            out["price_per_unit"] = money(self.price_per_unit)
        return out


@dataclass
class OrderSummary:
    order_id: str
    date: str
    total: Decimal
    item_count: int
    status: OrderStatus = OrderStatus.UNKNOWN
    delivery_date: Optional[str] = None
    detail_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "date": self.date,
            "total": money(self.total),
            "item_count": self.item_count,
            "status": self.status.value,
            "delivery_date": self.delivery_date,
            "detail_url": self.detail_url,
        }


def _money_or_none(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else money(value)


@dataclass
class DeliveryInfo:
    type: str = ""
    address: str = ""
    date_time: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "address": self.address, "date_time": self.date_time}


@dataclass
class OrderCostSummary:
    subtotal: Optional[Decimal] = None
    delivery_fee: Optional[Decimal] = None
    total: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": _money_or_none(self.subtotal),
            "delivery_fee": _money_or_none(self.delivery_fee),
            "total": _money_or_none(self.total),
        }


@dataclass
class OrderHeader:
    """
    Page-level facts of an order detail page.

    Fields the page does not show stay None (or empty for delivery text).
    """
    date: Optional[str] = None
    product_count: Optional[int] = None
    total_price: Optional[Decimal] = None
    delivery: DeliveryInfo = field(default_factory=DeliveryInfo)
    cost_summary: OrderCostSummary = field(default_factory=OrderCostSummary)
    all_products_loaded: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "product_count": self.product_count,
            "total_price": _money_or_none(self.total_price),
            "delivery": self.delivery.to_dict(),
            "cost_summary": self.cost_summary.to_dict(),
            "all_products_loaded": self.all_products_loaded,
        }


T = TypeVar("T")


@dataclass
class Extraction(Generic[T]):
    """
    Output of one extraction call.

    warnings must travel with any diff built from these items so consumers
    know the data may be incomplete.
    """
    items: List[T] = field(default_factory=list)
    total_available: int = 0
    warnings: List[str] = field(default_factory=list)
    strategies: Dict[str, str] = field(default_factory=dict)
    header: Optional[OrderHeader] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "items": [i.to_dict() for i in self.items],
            "total_available": self.total_available,
            "warnings": list(self.warnings),
            "strategies": dict(self.strategies),
        }
        if self.header is not None:
            out["header"] = self.header.to_dict()
        return out


# ─────────────────────────────────────────────────────────────
# Diff records
# ─────────────────────────────────────────────────────────────

@dataclass
class QuantityChange:
    item: CartItem
    original_quantity: int
    new_quantity: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item": self.item.to_dict(),
            "original_quantity": self.original_quantity,
            "new_quantity": self.new_quantity,
        }


@dataclass
class PriceChange:
    item: CartItem
    original_price: Decimal
    new_price: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item": self.item.to_dict(),
            "original_price": money(self.original_price),
            "new_price": money(self.new_price),
        }


@dataclass
class DiffSummary:
    added_count: int = 0
    removed_count: int = 0
    quantity_changed_count: int = 0
    price_changed_count: int = 0
    unavailable_count: int = 0
    price_difference: Decimal = Decimal("0.00")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added_count": self.added_count,
            "removed_count": self.removed_count,
            "quantity_changed_count": self.quantity_changed_count,
            "price_changed_count": self.price_changed_count,
            "unavailable_count": self.unavailable_count,
            "price_difference": money(self.price_difference),
        }


@dataclass
class CartDiff:
    added: List[CartItem] = field(default_factory=list)
    removed: List[CartItem] = field(default_factory=list)
    quantity_changed: List[QuantityChange] = field(default_factory=list)
    price_changed: List[PriceChange] = field(default_factory=list)
    now_unavailable: List[CartItem] = field(default_factory=list)
    summary: DiffSummary = field(default_factory=DiffSummary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": [i.to_dict() for i in self.added],
            "removed": [i.to_dict() for i in self.removed],
            "quantity_changed": [c.to_dict() for c in self.quantity_changed],
            "price_changed": [c.to_dict() for c in self.price_changed],
            "now_unavailable": [i.to_dict() for i in self.now_unavailable],
            "summary": self.summary.to_dict(),
        }
