"""
Order-vs-cart reconciliation pipeline.

Loads an order-detail page and a cart page (saved captures or live URLs),
extracts both snapshots through the selector registry, diffs them and
writes:
- a reconciliation report (diff + extraction warnings + selector telemetry)
- a health file flagging degraded selectors and markup drift
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from cartguard.config import config
from cartguard.diff import calculate_cart_diff, generate_diff_summary
from cartguard.diffwatch import drift_summary
from cartguard.errors import CartGuardError, categorize_error
from cartguard.extractor import CART_PAGE, ORDER_DETAIL_PAGE, SnapshotExtractor
from cartguard.fetch import load_document
from cartguard.health import build_report, write_report, write_status
from cartguard.loader import load_registry
from cartguard.registry import SelectorRegistry
from cartguard.resolver import SelectorResolver, StrategyTelemetry

log = logging.getLogger(__name__)


def _snapshot_path(cache_dir: Path, page_id: str) -> Path:
    return cache_dir / f"snap_{page_id}.html"


def check_drift(cache_dir: Path, page_id: str, html: str) -> Dict[str, Any]:
    """Compare with the previous capture of ``page_id`` and store this one."""
    cache_dir.mkdir(parents=True, exist_ok=True)
    snap = _snapshot_path(cache_dir, page_id)
    prev = snap.read_text(encoding="utf-8") if snap.exists() else ""
    report = drift_summary(page_id, prev, html)
    snap.write_text(html, encoding="utf-8")
    if report.changed:
        log.warning("page markup changed since last run", extra={"page": page_id, "step": "drift"})
    return report.to_dict()


async def reconcile(order_source: str, cart_source: str,
                    registry: SelectorRegistry,
                    telemetry: Optional[StrategyTelemetry] = None,
                    strategy_timeout: Optional[float] = None,
                    order_url: Optional[str] = None,
                    cart_url: Optional[str] = None,
                    cache_dir: Optional[Path] = None,
                    price_threshold=None) -> Dict[str, Any]:
    """
    Extract both snapshots and build the reconciliation report.

    The two pages are independent sessions: each gets its own document,
    resolver and extractor and they run concurrently. Their selector
    telemetry is merged into ``telemetry`` once both are done. When one
    session fails the other is cancelled and the first error is raised.
    """
    telemetry = telemetry if telemetry is not None else StrategyTelemetry()
    timeout = strategy_timeout or config.strategy_timeout

    async def session(source: str, url: Optional[str], extract):
        resolver = SelectorResolver(strategy_timeout=timeout)
        extractor = SnapshotExtractor(registry, resolver)
        try:
            doc, html = await load_document(source, url=url)
            return await extract(extractor, doc), html
        finally:
            telemetry.merge(resolver.telemetry)

    tasks = [
        asyncio.ensure_future(session(order_source, order_url, SnapshotExtractor.extract_order_items)),
        asyncio.ensure_future(session(cart_source, cart_url, SnapshotExtractor.extract_cart_items)),
    ]
    try:
        (orders, order_html), (cart, cart_html) = await asyncio.gather(*tasks)
    except BaseException:
        # one session failed; stop the other and collect its outcome before re-raising
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    diff = calculate_cart_diff(orders.items, cart.items)
    report = build_report(
        diff,
        warnings=orders.warnings + cart.warnings,
        telemetry=telemetry.snapshot(),
        price_threshold=price_threshold if price_threshold is not None else config.price_threshold,
    )
    report["extraction"] = {
        ORDER_DETAIL_PAGE: {"items": len(orders.items), "total_available": orders.total_available,
                            "strategies": orders.strategies,
                            "header": orders.header.to_dict() if orders.header else None},
        CART_PAGE: {"items": len(cart.items), "total_available": cart.total_available,
                    "strategies": cart.strategies},
    }
    if cache_dir is not None:
        report["drift"] = [
            check_drift(cache_dir, ORDER_DETAIL_PAGE, order_html),
            check_drift(cache_dir, CART_PAGE, cart_html),
        ]

    log.info(generate_diff_summary(diff), extra={"step": "diff"})
    return report


async def run(order_source: str, cart_source: str, out: Path, health_path: Path,
              selectors_dir: Optional[Path] = None,
              order_url: Optional[str] = None, cart_url: Optional[str] = None,
              cache_dir: Path = Path(".cache"),
              strategy_timeout: Optional[float] = None) -> int:
    """
    Run the reconciliation end to end. Returns a process exit code.

    Errors are categorized into the health file rather than raised, so a
    scheduler can decide from ``recoverable`` whether to retry the run.
    """
    telemetry = StrategyTelemetry()
    try:
        registry = load_registry(selectors_dir or config.selectors_dir)
        report = await reconcile(
            order_source, cart_source, registry, telemetry,
            strategy_timeout=strategy_timeout,
            order_url=order_url, cart_url=cart_url, cache_dir=cache_dir,
        )
    except Exception as e:
        cat = categorize_error(e)
        log.error("reconcile failed: %s", cat.message,
                  exc_info=not isinstance(e, (CartGuardError, FileNotFoundError)),
                  extra={"step": "reconcile", "error_code": cat.code, "recoverable": cat.recoverable})
        write_status(health_path, ok=False, error_code=cat.code,
                     recoverable=cat.recoverable, error=cat.message,
                     selectors=telemetry.snapshot())
        return 1

    write_report(out, report)
    write_status(
        health_path,
        ok=True,
        complete=report["complete"],
        warnings=len(report["warnings"]),
        degraded=telemetry.degraded(),
        drift=[d["page_id"] for d in report.get("drift", []) if d["changed"]],
    )
    log.info("pipeline complete", extra={"step": "done", "items": report["diff"]["summary"]})
    return 0
