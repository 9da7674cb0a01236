"""
Cart reconciliation.

Pure, deterministic comparison of a baseline order against the current
cart, keyed by product id. No I/O and no exceptions: every function here
is total over well-typed inputs and safe to call from any thread.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List

from cartguard.models import (
    Availability,
    CartDiff,
    CartItem,
    DiffSummary,
    OrderItem,
    PriceChange,
    QuantityChange,
    round2,
)

PRICE_TOLERANCE = Decimal("0.001")
DEFAULT_PRICE_THRESHOLD = Decimal("5.00")


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def is_unavailable(item: CartItem) -> bool:
    return item.availability == Availability.OUT_OF_STOCK or item.quantity == 0


def prices_differ(a, b) -> bool:
    """Sub-cent deltas are never a real price change."""
    return abs(_as_decimal(a) - _as_decimal(b)) > PRICE_TOLERANCE


def order_item_to_cart_item(item: OrderItem) -> CartItem:
    """CartItem-shaped record for a baseline item missing from the cart."""
    return CartItem(
        product_id=item.product_id,
        name=item.name,
        quantity=item.quantity,
        price=item.unit_price,
        availability=Availability.UNKNOWN,
        from_original_order=True,
        original_quantity=item.quantity,
        item_id=f"removed-{item.product_id}",
        image_url=item.image_url,
        category=item.category,
    )


def order_total(items: Iterable[OrderItem]) -> Decimal:
    return sum((_as_decimal(i.line_total) for i in items), Decimal("0"))


def cart_total(items: Iterable[CartItem]) -> Decimal:
    return sum((_as_decimal(i.price) * i.quantity for i in items), Decimal("0"))


def calculate_cart_diff(baseline: List[OrderItem], current: List[CartItem]) -> CartDiff:
    """
    Compare a baseline order with the current cart.

    Items in both snapshots may land in several categories at once:
    now_unavailable is checked first but does not suppress the quantity
    and price checks.
    """
    diff = CartDiff()
    if not baseline and not current:
        return diff

    original: Dict[str, OrderItem] = {i.product_id: i for i in baseline}
    cart: Dict[str, CartItem] = {i.product_id: i for i in current}

    # baseline order first, then new ids in cart order
    for product_id in dict.fromkeys(list(original) + list(cart)):
        before = original.get(product_id)
        after = cart.get(product_id)

        if before is None:
            diff.added.append(after)
            continue
        if after is None:
            diff.removed.append(order_item_to_cart_item(before))
            continue

        if is_unavailable(after):
            diff.now_unavailable.append(after)
        if before.quantity != after.quantity:
            diff.quantity_changed.append(QuantityChange(after, before.quantity, after.quantity))
        if prices_differ(before.unit_price, after.price):
            diff.price_changed.append(
                PriceChange(after, _as_decimal(before.unit_price), _as_decimal(after.price))
            )

    diff.summary = DiffSummary(
        added_count=len(diff.added),
        removed_count=len(diff.removed),
        quantity_changed_count=len(diff.quantity_changed),
        price_changed_count=len(diff.price_changed),
        unavailable_count=len(diff.now_unavailable),
        price_difference=round2(cart_total(current) - order_total(baseline)),
    )
    return diff


# ─────────────────────────────────────────────────────────────
# Predicates and summaries over a computed diff
# ─────────────────────────────────────────────────────────────

def has_changes(diff: CartDiff) -> bool:
    s = diff.summary
    return bool(
        s.added_count or s.removed_count or s.quantity_changed_count
        or s.price_changed_count or s.unavailable_count
    )


def requires_user_attention(diff: CartDiff, price_threshold=DEFAULT_PRICE_THRESHOLD) -> bool:
    """Unavailable or removed items, or a total increase above the threshold."""
    return (
        diff.summary.unavailable_count > 0
        or diff.summary.removed_count > 0
        or diff.summary.price_difference > _as_decimal(price_threshold)
    )


def get_items_needing_substitution(diff: CartDiff) -> List[CartItem]:
    """Unavailable items that came from the baseline order."""
    return [i for i in diff.now_unavailable if i.from_original_order is not False]


def calculate_availability_percentage(baseline: List[OrderItem], diff: CartDiff) -> int:
    """Share (0-100) of baseline items still present and available."""
    if not baseline:
        return 100
    missing = len(get_items_needing_substitution(diff)) + diff.summary.removed_count
    available = max(len(baseline) - missing, 0)
    pct = Decimal(available * 100) / len(baseline)
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def generate_diff_summary(diff: CartDiff) -> str:
    s = diff.summary
    parts = []
    if s.added_count:
        parts.append(f"{s.added_count} item(s) added")
    if s.removed_count:
        parts.append(f"{s.removed_count} item(s) removed")
    if s.quantity_changed_count:
        parts.append(f"{s.quantity_changed_count} quantity change(s)")
    if s.price_changed_count:
        parts.append(f"{s.price_changed_count} price change(s)")
    if s.unavailable_count:
        parts.append(f"{s.unavailable_count} unavailable")

    if not parts:
        return "No changes detected"

    total = ""
    if s.price_difference != 0:
        sign = "+" if s.price_difference > 0 else ""
        total = f" ({sign}{s.price_difference:.2f} total)"
    return ", ".join(parts) + total
