"""
Selector health checks against a captured page.

Resolves every entry of a page set and grades it: ``valid`` when the
primary strategy is unique, ``degraded`` when only a fallback is, and
``invalid`` when nothing in the chain yields a single match.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from cartguard.document import DocumentContext
from cartguard.models import PageSelectorSet
from cartguard.resolver import SelectorResolver

VALID = "valid"
DEGRADED = "degraded"
INVALID = "invalid"

_RANK = {VALID: 0, DEGRADED: 1, INVALID: 2}


@dataclass
class SelectorCheck:
    name: str
    status: str
    matched: Optional[str] = None
    matched_using: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass
class ValidationReport:
    page_id: str
    version: int
    status: str = VALID
    results: List[SelectorCheck] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def summary(self) -> Dict[str, int]:
        counts = {"total": len(self.results), VALID: 0, DEGRADED: 0, INVALID: 0}
        for r in self.results:
            counts[r.status] += 1
        return counts

    def failed(self) -> List[str]:
        return [r.name for r in self.results if r.status == INVALID]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page_id": self.page_id,
            "version": self.version,
            "timestamp": self.timestamp,
            "status": self.status,
            "summary": self.summary,
            "results": [r.to_dict() for r in self.results],
        }


async def validate_page(page_set: PageSelectorSet, ctx: DocumentContext,
                        resolver: Optional[SelectorResolver] = None,
                        only: Optional[List[str]] = None) -> ValidationReport:
    """
    Grade each selector entry against ``ctx``.

    ``only`` restricts the check to page-level entries; per-card entries
    resolve inside a card and would read as invalid at page scope.
    """
    resolver = resolver or SelectorResolver()
    report = ValidationReport(page_set.page_id, page_set.version)

    for name, entry in page_set.entries.items():
        if only is not None and name not in only:
            continue
        found = await resolver.try_resolve(entry, ctx)
        if found is None:
            report.results.append(SelectorCheck(name, INVALID, note="no unique match"))
            continue

        status = DEGRADED if found.used_fallback else VALID
        skipped = [
            f"{len(found.ambiguous)} ambiguous" if found.ambiguous else None,
            f"{len(found.invalid)} malformed" if found.invalid else None,
        ]
        skipped = [s for s in skipped if s]
        note = f"skipped {', '.join(skipped)}" if skipped else None
        report.results.append(SelectorCheck(
            name, status,
            matched=found.strategy_used.expression,
            matched_using=found.label(),
            note=note,
        ))

    if report.results:
        report.status = max((r.status for r in report.results), key=_RANK.__getitem__)
    return report
