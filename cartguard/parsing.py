"""
Locale-aware parsing of values scraped from the storefront.

The site renders Portuguese formats: decimal comma, "." thousands
separator, trailing "€", quantities like "x2" and counts like
"38 Produtos". Every parser raises ValueError on input it cannot read so
the extractor can skip the item and record a warning.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import urlparse

from cartguard.models import Availability, OrderStatus

_NUMBER = re.compile(r"-?\d[\d.,\s]*")
_PT_MONTHS = {
    "jan": 1, "fev": 2, "mar": 3, "abr": 4, "mai": 5, "jun": 6,
    "jul": 7, "ago": 8, "set": 9, "out": 10, "nov": 11, "dez": 12,
}


def parse_price(text: Optional[str]) -> Decimal:
    """
    "162,51 €" -> 162.51, "€ 1.234,56" -> 1234.56, "1.39" -> 1.39.

    A lone "." followed by exactly three digits is a thousands separator.
    """
    if not text:
        raise ValueError("empty price")

    match = _NUMBER.search(text.replace("\xa0", " "))
    if not match:
        raise ValueError(f"no number in price {text!r}")
    raw = re.sub(r"\s", "", match.group(0)).rstrip(".,")

    if "," in raw:
        raw = raw.replace(".", "").replace(",", ".")
    elif raw.count(".") > 1 or re.fullmatch(r"-?\d{1,3}\.\d{3}", raw):
        raw = raw.replace(".", "")

    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"unreadable price {text!r}") from None
    if value < 0:
        raise ValueError(f"negative price {text!r}")
    return value


def parse_quantity(text: Optional[str]) -> int:
    """ "x2" -> 2, "2 un" -> 2, "Qtd: 3" -> 3."""
    if not text:
        raise ValueError("empty quantity")
    match = re.search(r"(?:^|[^\d])x?\s*(\d+)", text.strip(), re.I)
    if not match:
        raise ValueError(f"no quantity in {text!r}")
    return int(match.group(1))


def parse_count(text: Optional[str]) -> int:
    """ "38 Produtos" -> 38."""
    if not text:
        raise ValueError("empty count")
    match = re.search(r"\d+", text)
    if not match:
        raise ValueError(f"no count in {text!r}")
    return int(match.group(0))


def parse_order_date(iso: Optional[str] = None, day: Optional[str] = None,
                     month: Optional[str] = None, year: Optional[int] = None) -> str:
    """
    Normalize an order date to ISO-8601.

    Prefers the machine-readable ``data-date`` value; otherwise builds the
    date from the displayed day and Portuguese month abbreviation.
    """
    if iso:
        value = iso.strip().replace("Z", "+00:00")
        try:
            return datetime.fromisoformat(value).isoformat()
        except ValueError:
            raise ValueError(f"malformed date {iso!r}") from None

    if not (day and month):
        raise ValueError("missing order date")

    month_num = _PT_MONTHS.get(month.strip().lower()[:3])
    if month_num is None:
        raise ValueError(f"unknown month {month!r}")
    year = year or datetime.now(timezone.utc).year
    try:
        return datetime(year, month_num, int(day.strip()), tzinfo=timezone.utc).isoformat()
    except ValueError:
        raise ValueError(f"malformed date {day!r} {month!r}") from None


def product_id_from_url(url: Optional[str]) -> str:
    """ ".../leite-mimosa/p/123456?x=1" -> "123456"."""
    if not url:
        raise ValueError("missing product url")
    match = re.search(r"/p/([^/?#]+)", urlparse(url).path or url)
    if not match:
        # some product links carry the id as the final path segment
        match = re.search(r"/(\d{4,})(?:\.html)?/?$", urlparse(url).path)
    if not match:
        raise ValueError(f"no product id in {url!r}")
    return match.group(1)


def category_from_url(url: Optional[str]) -> Optional[str]:
    """Aisle segment of a product url: the one before the product slug."""
    if not url:
        return None
    parts = [p for p in urlparse(url).path.split("/") if p]
    if "p" in parts:
        i = parts.index("p")
        if i > 2:
            return parts[i - 2]
    return None


def unit_from_price_per_unit(text: Optional[str]) -> Optional[str]:
    """ "5,89 €/Kg" -> "Kg"."""
    if not text:
        return None
    match = re.search(r"€\s*/\s*(\w+)", text)
    return match.group(1) if match else None


_STATUS_WORDS = (
    (OrderStatus.CANCELLED, ("cancelad", "cancelled")),
    (OrderStatus.DELIVERED, ("entregue", "delivered", "concluída", "concluida")),
    (OrderStatus.DELIVERING, ("em entrega", "delivering", "a caminho")),
    (OrderStatus.READY, ("pronta", "ready")),
    (OrderStatus.PROCESSING, ("processando", "processing", "a preparar")),
    (OrderStatus.PENDING, ("pendente", "pending")),
)


def detect_order_status(text: Optional[str]) -> OrderStatus:
    if not text:
        return OrderStatus.UNKNOWN
    lowered = text.lower()
    for status, words in _STATUS_WORDS:
        if any(w in lowered for w in words):
            return status
    return OrderStatus.UNKNOWN


def availability_from_text(text: Optional[str]) -> Availability:
    if not text:
        return Availability.UNKNOWN
    lowered = text.lower()
    if any(w in lowered for w in ("indisponível", "indisponivel", "esgotado", "out of stock")):
        return Availability.OUT_OF_STOCK
    if any(w in lowered for w in ("últimas unidades", "ultimas unidades", "low stock")):
        return Availability.LOW_STOCK
    return Availability.AVAILABLE
