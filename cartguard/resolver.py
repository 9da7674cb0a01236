"""
Selector resolution with ranked fallbacks.

Strategies are tried primary-first. A strategy wins only when it matches
exactly one element: zero matches, a timeout or a malformed expression
moves on, and several matches are treated as ambiguous and skipped
rather than guessed at.

Worst-case latency is (1 + len(fallbacks)) * strategy_timeout.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from cartguard.document import DocumentContext
from cartguard.errors import InvalidSelectorError, ResolutionError
from cartguard.models import SelectorEntry, SelectorStrategy

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY_TIMEOUT = 2.0


@dataclass
class Resolution:
    """
    A located element and the provenance needed for degradation tracking.

    index is 0 for the primary strategy and n for fallbacks[n - 1].
    """
    element: Any
    strategy_used: SelectorStrategy
    index: int
    ambiguous: List[SelectorStrategy] = field(default_factory=list)
    timed_out: List[SelectorStrategy] = field(default_factory=list)
    invalid: List[SelectorStrategy] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.index > 0

    def label(self) -> str:
        return "primary" if self.index == 0 else f"fallback:{self.index - 1}"


@dataclass
class MultiResolution:
    elements: List[Any]
    strategy_used: SelectorStrategy
    index: int

    @property
    def used_fallback(self) -> bool:
        return self.index > 0

    def label(self) -> str:
        return "primary" if self.index == 0 else f"fallback:{self.index - 1}"


class StrategyTelemetry:
    """In-memory counters of which strategy located each entry."""

    def __init__(self):
        self.counts: Counter = Counter()

    def record(self, entry_name: str, label: str):
        self.counts[(entry_name, label)] += 1

    def merge(self, other: "StrategyTelemetry"):
        self.counts.update(other.counts)

    def degraded(self) -> List[str]:
        """Entries that were located by a fallback at least once."""
        return sorted({name for (name, label) in self.counts if label != "primary"})

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        out: Dict[str, Dict[str, int]] = {}
        for (name, label), n in sorted(self.counts.items()):
            out.setdefault(name, {})[label] = n
        return out


class SelectorResolver:
    def __init__(self, strategy_timeout: float = DEFAULT_STRATEGY_TIMEOUT,
                 telemetry: Optional[StrategyTelemetry] = None):
        self.strategy_timeout = strategy_timeout
        self.telemetry = telemetry if telemetry is not None else StrategyTelemetry()

    async def _attempt(self, ctx: DocumentContext,
                       strategy: SelectorStrategy) -> Optional[List[Any]]:
        """
        Run one strategy. Returns None when it exceeded its wait; a
        malformed expression raises InvalidSelectorError.
        """
        try:
            return await asyncio.wait_for(
                ctx.query(strategy.expression, strategy.kind),
                timeout=self.strategy_timeout,
            )
        except asyncio.TimeoutError:
            return None

    def _rejected(self, entry: SelectorEntry, strategy: SelectorStrategy,
                  exc: InvalidSelectorError):
        logger.warning(
            "selector strategy rejected: %s", exc.message,
            extra={"selector": entry.name, "strategy": strategy.label()},
        )

    def _report(self, entry: SelectorEntry, label: str, strategy: SelectorStrategy):
        self.telemetry.record(entry.name, label)
        extra = {
            "selector": entry.name,
            "strategy": strategy.label(),
            "verified": entry.verified,
        }
        if label == "primary":
            logger.debug("selector resolved", extra=extra)
        else:
            logger.warning("selector degraded to %s", label, extra=extra)

    async def try_resolve(self, entry: SelectorEntry,
                          ctx: DocumentContext) -> Optional[Resolution]:
        """Return the first single-match strategy, or None."""
        result, _ = await self._walk(entry, ctx)
        return result

    async def resolve(self, entry: SelectorEntry, ctx: DocumentContext) -> Resolution:
        """Like try_resolve, but absence raises ResolutionError."""
        result, skipped = await self._walk(entry, ctx)
        if result is None:
            detail = [
                f"{len(strategies)} {reason.replace('_', ' ')}"
                for reason, strategies in skipped.items() if strategies
            ]
            suffix = f" ({', '.join(detail)})" if detail else ""
            raise ResolutionError(
                f"no unique match for selector {entry.name!r}{suffix}",
                attempted=list(entry.chain()),
                selector=entry.name,
                **skipped,
            )
        return result

    async def _walk(self, entry: SelectorEntry, ctx: DocumentContext
                    ) -> Tuple[Optional[Resolution], Dict[str, List[SelectorStrategy]]]:
        skipped: Dict[str, List[SelectorStrategy]] = {
            "ambiguous": [], "timed_out": [], "invalid": [],
        }

        for index, strategy in enumerate(entry.chain()):
            try:
                matches = await self._attempt(ctx, strategy)
            except InvalidSelectorError as e:
                skipped["invalid"].append(strategy)
                self._rejected(entry, strategy, e)
                continue
            if matches is None:
                skipped["timed_out"].append(strategy)
                continue
            if len(matches) > 1:
                skipped["ambiguous"].append(strategy)
                logger.debug(
                    "ambiguous selector skipped (%d matches)", len(matches),
                    extra={"selector": entry.name, "strategy": strategy.label()},
                )
                continue
            if len(matches) == 1:
                result = Resolution(matches[0], strategy, index, **skipped)
                self._report(entry, result.label(), strategy)
                return result, skipped

        return None, skipped

    async def resolve_all(self, entry: SelectorEntry, ctx: DocumentContext) -> MultiResolution:
        """
        Locate a repeated element (e.g. product cards).

        The first strategy with one or more matches wins; ambiguity does
        not apply here.
        """
        timed_out: List[SelectorStrategy] = []
        invalid: List[SelectorStrategy] = []
        for index, strategy in enumerate(entry.chain()):
            try:
                matches = await self._attempt(ctx, strategy)
            except InvalidSelectorError as e:
                invalid.append(strategy)
                self._rejected(entry, strategy, e)
                continue
            if matches is None:
                timed_out.append(strategy)
                continue
            if matches:
                result = MultiResolution(list(matches), strategy, index)
                self._report(entry, result.label(), strategy)
                return result

        raise ResolutionError(
            f"no match for repeated selector {entry.name!r}",
            attempted=list(entry.chain()),
            timed_out=timed_out,
            invalid=invalid,
            selector=entry.name,
        )

    async def try_resolve_all(self, entry: SelectorEntry,
                              ctx: DocumentContext) -> Optional[MultiResolution]:
        try:
            return await self.resolve_all(entry, ctx)
        except ResolutionError:
            return None
