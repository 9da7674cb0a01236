"""
Run health and reconciliation reports.

Reports are JSON files meant for the downstream review surface and for
alerting on selector degradation.
"""

import json
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from cartguard.diff import generate_diff_summary, has_changes, requires_user_attention
from cartguard.models import CartDiff


def _write_json(path: Path, payload: Dict[str, Any]):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False, default=str), encoding="utf-8")


def write_status(path: Path, **kv: Any):
    """
    Write a JSON file containing run health info.

    Example:
        write_status(Path("out/health.json"), ok=True, degraded=["product_price"])
    """
    _write_json(path, {"ts": int(time.time()), **kv})


def build_report(diff: CartDiff, warnings: Iterable[str] = (),
                 telemetry: Optional[Dict[str, Any]] = None,
                 price_threshold=None) -> Dict[str, Any]:
    """
    Diff plus provenance. Extraction warnings ride along so consumers know
    when the diff rests on incomplete data.
    """
    warnings = list(warnings)
    attention = (
        requires_user_attention(diff) if price_threshold is None
        else requires_user_attention(diff, price_threshold)
    )
    return {
        "ts": int(time.time()),
        "summary_text": generate_diff_summary(diff),
        "has_changes": has_changes(diff),
        "requires_attention": attention,
        "complete": not warnings,
        "warnings": warnings,
        "diff": diff.to_dict(),
        "selectors": telemetry or {},
    }


def write_report(path: Path, report: Dict[str, Any]):
    _write_json(path, report)
