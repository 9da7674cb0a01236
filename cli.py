#!/usr/bin/env python3
"""
Cart Guardrails CLI
Reconcile an order against the current cart, check selector health, and
inspect the selector registry.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from cartguard.config import config
from cartguard.errors import CartGuardError, categorize_error
from cartguard.fetch import load_document
from cartguard.loader import load_registry
from cartguard.logs import setup as setup_logs
from cartguard.resolver import SelectorResolver
from cartguard.validation import INVALID, validate_page
from pipelines.reconcile import run as run_reconcile


async def _validate(args) -> int:
    registry = load_registry(args.selectors)
    page_set = registry.load_page(args.page, version=args.version)
    doc, _ = await load_document(args.source, url=args.url)
    resolver = SelectorResolver(strategy_timeout=args.timeout)
    report = await validate_page(page_set, doc, resolver, only=args.only or None)
    print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    return 1 if report.status == INVALID else 0


def _pages(args) -> int:
    registry = load_registry(args.selectors)
    for page_id in sorted(registry.list_pages()):
        active = registry.load_page(page_id)
        versions = ", ".join(f"v{v}" for v in registry.versions(page_id))
        print(f"{page_id:<16} active=v{active.version}  versions=[{versions}]  "
              f"entries={len(active.entries)}")
    return 0


def _drift(args) -> int:
    cache = args.cache
    if not cache.exists():
        print("No cache directory found. Run a reconciliation first.")
        return 0

    snaps = sorted(cache.glob("snap_*.html"))
    print(f"Cached page captures: {len(snaps)}")
    for s in snaps[:25]:
        print("  -", s.name)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="cart-guardrails",
        description="Resilient order/cart extraction and reconciliation."
    )
    parser.add_argument("--selectors", type=Path, default=config.selectors_dir,
                        help="selector registry directory")
    parser.add_argument("--timeout", type=float, default=config.strategy_timeout,
                        help="per-strategy wait in seconds")
    sub = parser.add_subparsers(dest="cmd", required=True)

    # ───────────────────────── RECONCILE ─────────────────────────
    pr = sub.add_parser("reconcile", help="Diff an order against the current cart")
    pr.add_argument("--order", required=True, help="order-detail capture (file or URL)")
    pr.add_argument("--cart", required=True, help="cart capture (file or URL)")
    pr.add_argument("--order-url", help="address a local order capture was saved from")
    pr.add_argument("--cart-url", help="address a local cart capture was saved from")
    pr.add_argument("--out", type=Path, default=Path("out/reconcile.json"))
    pr.add_argument("--health", type=Path, default=Path("out/health.json"))
    pr.add_argument("--cache", type=Path, default=Path(".cache"))

    # ───────────────────────── VALIDATE SELECTORS ─────────────────────────
    pv = sub.add_parser("validate", help="Grade a page's selectors against a capture")
    pv.add_argument("--page", required=True)
    pv.add_argument("--version", type=int)
    pv.add_argument("--source", required=True, help="page capture (file or URL)")
    pv.add_argument("--url", help="address a local capture was saved from")
    pv.add_argument("--only", nargs="*", help="entry names to check")

    # ───────────────────────── REGISTRY / CACHE ─────────────────────────
    sub.add_parser("pages", help="List registered pages and versions")
    pd = sub.add_parser("drift", help="List cached page captures used for drift checks")
    pd.add_argument("--cache", type=Path, default=Path(".cache"))

    args = parser.parse_args(argv)
    log = setup_logs(level=config.level, step=args.cmd)

    try:
        if args.cmd == "reconcile":
            return asyncio.run(
                run_reconcile(
                    args.order, args.cart, args.out, args.health,
                    selectors_dir=args.selectors,
                    order_url=args.order_url, cart_url=args.cart_url,
                    cache_dir=args.cache, strategy_timeout=args.timeout,
                )
            )
        if args.cmd == "validate":
            return asyncio.run(_validate(args))
        if args.cmd == "pages":
            return _pages(args)
        if args.cmd == "drift":
            return _drift(args)
    except (CartGuardError, FileNotFoundError) as e:
        cat = categorize_error(e)
        log.error(cat.message, extra={"error_code": cat.code, "recoverable": cat.recoverable})
        return 2

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
