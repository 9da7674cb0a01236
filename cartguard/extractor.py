"""
Snapshot extraction: resolved elements -> typed records.

Item-level noise is tolerated (the item is skipped and a warning is
recorded) but a missing container fails the whole call with a
SELECTOR_ERROR: without it the page is not in the expected state at all.
"""

import logging
import re
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin

from cartguard.diff import order_total, prices_differ
from cartguard.document import DocumentContext
from cartguard.errors import SelectorError, ValidationError
from cartguard.models import (
    Availability,
    CartItem,
    DeliveryInfo,
    Extraction,
    OrderCostSummary,
    OrderHeader,
    OrderItem,
    OrderStatus,
    OrderSummary,
    PageSelectorSet,
    round2,
)
from cartguard.parsing import (
    availability_from_text,
    category_from_url,
    detect_order_status,
    parse_count,
    parse_order_date,
    parse_price,
    parse_quantity,
    product_id_from_url,
    unit_from_price_per_unit,
)
from cartguard.registry import SelectorRegistry
from cartguard.resolver import SelectorResolver

logger = logging.getLogger(__name__)

ORDER_DETAIL_PAGE = "order-detail"
CART_PAGE = "cart"
ORDER_HISTORY_PAGE = "order-history"


class SnapshotExtractor:
    """
    Pulls order and cart snapshots out of a document context.

    One extractor serves one page session at a time; it keeps no state
    between calls apart from the resolver's telemetry counters.
    """

    def __init__(self, registry: SelectorRegistry,
                 resolver: Optional[SelectorResolver] = None):
        self.registry = registry
        self.resolver = resolver or SelectorResolver()

    # ───────────────────────── HELPERS ─────────────────────────

    def _page(self, page_id: str, ctx: DocumentContext) -> PageSelectorSet:
        page_set = self.registry.load_page(page_id)
        url = getattr(ctx, "url", None)
        if url and page_set.url_pattern and not re.search(page_set.url_pattern, url):
            raise ValidationError(
                f"{url} is not a {page_id} page (expected /{page_set.url_pattern}/)",
                field="url", value=url,
            )
        return page_set

    async def _cards(self, page_set: PageSelectorSet, ctx: DocumentContext,
                     container: str, card: str,
                     out: Extraction) -> List[Tuple[int, DocumentContext]]:
        """Resolve the container (fatal if absent) and its repeated cards."""
        found = await self.resolver.resolve(self.registry.get_entry(page_set.page_id, container), ctx)
        out.strategies[container] = found.label()

        scope = ctx.within(found.element)
        cards = await self.resolver.try_resolve_all(
            self.registry.get_entry(page_set.page_id, card), scope
        )
        if cards is None:
            return []
        out.strategies[card] = cards.label()
        return [(i, scope.within(el)) for i, el in enumerate(cards.elements)]

    async def _field(self, page_set: PageSelectorSet, ctx: DocumentContext, name: str,
                     attr: Optional[str] = None, required: bool = True) -> Optional[str]:
        """
        Text (or ``attr``) of a per-card element.

        Optional names absent from the page set read as None. A required
        field that cannot be located raises ValueError.
        """
        entry = page_set.entries.get(name)
        if entry is None:
            if required:
                self.registry.get_entry(page_set.page_id, name)
            return None

        found = await self.resolver.try_resolve(entry, ctx)
        if found is None:
            if required:
                raise ValueError(f"{name} not found")
            return None

        if attr:
            value = await ctx.attribute(found.element, attr)
        else:
            value = await ctx.text(found.element)
        if required and not value:
            raise ValueError(f"{name} is empty")
        return value or None

    def _skip(self, out: Extraction, page_id: str, index: int, err: Exception):
        msg = f"{page_id} item #{index} skipped: {err}"
        out.warnings.append(msg)
        logger.warning(msg, extra={"page": page_id, "step": "extract"})

    def _absolute(self, ctx: DocumentContext, href: Optional[str]) -> Optional[str]:
        if not href:
            return None
        base = getattr(ctx, "url", None)
        return urljoin(base, href) if base else href

    # ───────────────────────── ORDER DETAIL ─────────────────────────

    async def extract_order_items(self, ctx: DocumentContext,
                                  page_id: str = ORDER_DETAIL_PAGE) -> Extraction:
        """Items of a past order: the reconciliation baseline."""
        page_set = self._page(page_id, ctx)
        out: Extraction = Extraction()

        cards = await self._cards(page_set, ctx, "product_list", "product_card", out)
        for i, card in cards:
            try:
                out.items.append(await self._order_item(page_set, card))
            except (ValueError, SelectorError) as e:
                self._skip(out, page_id, i, e)

        out.total_available = len(cards)
        out.header = await self._order_header(page_set, ctx, out)
        if out.header.product_count is not None:
            out.total_available = out.header.product_count

        if not out.header.all_products_loaded:
            out.warnings.append(f"{page_id}: product list is collapsed, not all items loaded")

        self._check_order_total(out, page_id)
        self._finish(out, page_id)
        return out

    async def _order_header(self, page_set: PageSelectorSet, ctx: DocumentContext,
                            out: Extraction) -> OrderHeader:
        """
        Date, totals and delivery details shown above and below the items.

        Every field is optional: an absent element leaves it unset, an
        unreadable one also adds a warning.
        """
        page_id = page_set.page_id
        header = OrderHeader()

        iso = await self._field(page_set, ctx, "order_date", attr="data-date", required=False)
        shown = None if iso else await self._page_field(page_set, ctx, "order_date")
        if iso or shown:
            parts = (shown or "").split()
            try:
                header.date = parse_order_date(
                    iso=iso,
                    day=parts[0] if parts else None,
                    month=parts[1] if len(parts) > 1 else None,
                )
            except ValueError as e:
                out.warnings.append(f"{page_id} order date unreadable: {e}")

        count_text = await self._page_field(page_set, ctx, "product_count")
        if count_text:
            try:
                header.product_count = parse_count(count_text)
            except ValueError as e:
                out.warnings.append(f"{page_id} product count unreadable: {e}")

        header.total_price = await self._money(page_set, ctx, "order_total", out)
        header.delivery = DeliveryInfo(
            type=await self._page_field(page_set, ctx, "delivery_type") or "",
            address=await self._page_field(page_set, ctx, "delivery_address") or "",
            date_time=await self._page_field(page_set, ctx, "delivery_datetime") or "",
        )
        header.cost_summary = OrderCostSummary(
            subtotal=await self._money(page_set, ctx, "summary_products_total", out),
            delivery_fee=await self._money(page_set, ctx, "summary_delivery_fee", out),
            total=await self._money(page_set, ctx, "summary_total", out),
        )
        header.all_products_loaded = not await self._present(page_set, ctx, "view_all_button")
        return header

    async def _money(self, page_set: PageSelectorSet, ctx: DocumentContext,
                     name: str, out: Extraction) -> Optional[Decimal]:
        text = await self._page_field(page_set, ctx, name)
        if not text:
            return None
        try:
            return parse_price(text)
        except ValueError as e:
            out.warnings.append(f"{page_set.page_id} {name} unreadable: {e}")
            return None

    def _check_order_total(self, out: Extraction, page_id: str):
        """Warn when the extracted items do not add up to the page's own subtotal."""
        cost = out.header.cost_summary
        expected, label = cost.subtotal, "products subtotal"
        if expected is None and cost.total is not None:
            expected, label = cost.total - (cost.delivery_fee or Decimal("0")), "order total"
        if expected is None or not out.items:
            return

        extracted = order_total(out.items)
        if prices_differ(extracted, expected):
            msg = (f"{page_id}: items total {round2(extracted)} does not match "
                   f"{label} {round2(expected)}")
            out.warnings.append(msg)
            logger.warning(msg, extra={"page": page_id, "step": "extract"})

    async def _order_item(self, page_set: PageSelectorSet, card: DocumentContext) -> OrderItem:
        href = await self._field(page_set, card, "product_link", attr="href")
        link = self._absolute(card, href)
        product_id = product_id_from_url(link)

        name = await self._field(page_set, card, "product_name", required=False) or ""
        qty_text = await self._field(page_set, card, "product_quantity", required=False)
        quantity = parse_quantity(qty_text) if qty_text else 1
        unit_price = parse_price(await self._field(page_set, card, "product_price"))
        image = await self._field(page_set, card, "product_image", attr="src", required=False)

        return OrderItem(
            product_id=product_id,
            name=name,
            quantity=quantity,
            unit_price=unit_price,
            line_total=unit_price * quantity,
            category=category_from_url(link),
            image_url=self._absolute(card, image),
        )

    # ───────────────────────── CART ─────────────────────────

    async def extract_cart_items(self, ctx: DocumentContext,
                                 page_id: str = CART_PAGE) -> Extraction:
        """Current cart contents."""
        page_set = self._page(page_id, ctx)
        out: Extraction = Extraction()

        if await self._present(page_set, ctx, "empty_cart"):
            logger.info("cart is empty", extra={"page": page_id, "step": "extract"})
            return out

        cards = await self._cards(page_set, ctx, "product_list", "product_card", out)
        out.total_available = len(cards)
        for i, card in cards:
            try:
                out.items.append(await self._cart_item(page_set, card, i))
            except (ValueError, SelectorError) as e:
                self._skip(out, page_id, i, e)

        self._finish(out, page_id)
        return out

    async def _availability(self, page_set: PageSelectorSet, card: DocumentContext) -> Availability:
        if await self._present(page_set, card, "unavailable_marker"):
            return Availability.OUT_OF_STOCK
        if await self._present(page_set, card, "low_stock_marker"):
            return Availability.LOW_STOCK
        text = await self._field(page_set, card, "availability_text", required=False)
        if text:
            return availability_from_text(text)
        return Availability.AVAILABLE

    async def _cart_item(self, page_set: PageSelectorSet, card: DocumentContext,
                         index: int) -> CartItem:
        product_id = await self._field(page_set, card, "remove_button", attr="data-pid")
        item_id = await self._field(page_set, card, "remove_button", attr="data-uuid", required=False)
        name = await self._field(page_set, card, "product_title", required=False) or ""
        href = await self._field(page_set, card, "product_link", attr="href", required=False)

        qty_value = await self._field(page_set, card, "quantity_input", attr="value", required=False)
        quantity = parse_quantity(qty_value) if qty_value else 1

        # the cart renders line totals; derive the unit price
        line_total = parse_price(await self._field(page_set, card, "product_price"))
        price = (line_total / quantity) if quantity > 0 else Decimal("0")

        ppu_text = await self._field(page_set, card, "price_per_unit", required=False)
        price_per_unit = None
        if ppu_text:
            try:
                price_per_unit = parse_price(ppu_text)
            except ValueError:
                price_per_unit = None
        image = await self._field(page_set, card, "product_image", attr="src", required=False)

        return CartItem(
            product_id=product_id,
            name=name,
            quantity=quantity,
            price=price,
            availability=await self._availability(page_set, card),
            item_id=item_id or product_id or f"item-{index}",
            image_url=self._absolute(card, image),
            category=category_from_url(self._absolute(card, href)),
            unit=unit_from_price_per_unit(ppu_text),
            price_per_unit=price_per_unit,
        )

    # ───────────────────────── ORDER HISTORY ─────────────────────────

    async def extract_order_history(self, ctx: DocumentContext, limit: Optional[int] = None,
                                    page_id: str = ORDER_HISTORY_PAGE) -> Extraction:
        """Order summaries from the order history list."""
        page_set = self._page(page_id, ctx)
        out: Extraction = Extraction()

        cards = await self._cards(page_set, ctx, "order_list", "order_card", out)
        out.total_available = len(cards)
        for i, card in cards:
            if limit is not None and len(out.items) >= limit:
                break
            try:
                out.items.append(await self._order_summary(page_set, card))
            except (ValueError, SelectorError) as e:
                self._skip(out, page_id, i, e)

        self._finish(out, page_id)
        return out

    async def _order_summary(self, page_set: PageSelectorSet, card: DocumentContext) -> OrderSummary:
        order_id = await self._field(page_set, card, "order_number")

        iso = await self._field(page_set, card, "order_date", attr="data-date", required=False)
        day = month = None
        if not iso:
            day = await self._field(page_set, card, "order_day", required=False)
            month = await self._field(page_set, card, "order_month", required=False)
        date = parse_order_date(iso=iso, day=day, month=month)

        products = await self._field(page_set, card, "order_products", required=False)
        status = await self._field(page_set, card, "order_status", required=False)
        link = await self._field(page_set, card, "order_link", attr="href", required=False)

        return OrderSummary(
            order_id=order_id,
            date=date,
            total=parse_price(await self._field(page_set, card, "order_price")),
            item_count=parse_count(products) if products else 0,
            # the list only shows a badge for orders still in flight
            status=detect_order_status(status) if status else OrderStatus.DELIVERED,
            detail_url=self._absolute(card, link),
        )

    # ───────────────────────── SHARED ─────────────────────────

    async def _page_field(self, page_set: PageSelectorSet, ctx: DocumentContext,
                          name: str) -> Optional[str]:
        entry = page_set.entries.get(name)
        if entry is None:
            return None
        found = await self.resolver.try_resolve(entry, ctx)
        return await ctx.text(found.element) if found else None

    async def _present(self, page_set: PageSelectorSet, ctx: DocumentContext, name: str) -> bool:
        """Whether an optional marker element exists at all (any match count)."""
        entry = page_set.entries.get(name)
        if entry is None:
            return False
        return await self.resolver.try_resolve_all(entry, ctx) is not None

    def _finish(self, out: Extraction, page_id: str):
        seen: Dict[str, int] = {}
        for item in out.items:
            key = getattr(item, "product_id", None) or getattr(item, "order_id", None)
            seen[key] = seen.get(key, 0) + 1
        for key, n in seen.items():
            if n > 1:
                out.warnings.append(f"{page_id}: id {key} appears {n} times")

        logger.info(
            "extracted %d/%d items", len(out.items), out.total_available,
            extra={"page": page_id, "step": "extract", "warnings": len(out.warnings)},
        )
