"""
Selector registry.

Indexes versioned, immutable page selector sets. Publishing is append-only:
a page's versions must be registered as 1, 2, 3, ... and a published
version can only be re-registered with identical content. Corrections are
new versions.

The registry does no I/O; see ``cartguard.loader`` for reading definitions
from disk.
"""

import logging
import re
from typing import Dict, List, Optional, Set

from cartguard.errors import ConflictError, NotFoundError
from cartguard.models import PageSelectorSet, SelectorEntry, SelectorStrategy

logger = logging.getLogger(__name__)


def _check_strategy(page_id: str, name: str, strategy: SelectorStrategy):
    if not strategy.expression:
        raise ConflictError(f"{page_id}.{name}: empty selector expression")
    if not 0 <= strategy.stability_score <= 100:
        raise ConflictError(
            f"{page_id}.{name}: stability score {strategy.stability_score} "
            f"outside 0-100"
        )


def validate_entry(page_id: str, entry: SelectorEntry):
    """Reject entries whose fallbacks are not ranked by descending stability."""
    if not entry.name:
        raise ConflictError(f"{page_id}: selector entry without a name")

    for strategy in entry.chain():
        _check_strategy(page_id, entry.name, strategy)

    scores = [s.stability_score for s in entry.fallbacks]
    if any(a < b for a, b in zip(scores, scores[1:])):
        raise ConflictError(
            f"{page_id}.{entry.name}: fallbacks must be ordered by "
            f"non-increasing stability score, got {scores}"
        )


class SelectorRegistry:
    """
    In-memory index of page selector sets.

    Populated once at startup, then read concurrently without locking:
    nothing mutates a published set, and pins only choose which published
    version ``load_page`` hands out.
    """

    def __init__(self):
        self._pages: Dict[str, Dict[int, PageSelectorSet]] = {}
        self._pins: Dict[str, int] = {}

    # ───────────────────────── PUBLISHING ─────────────────────────

    def register(self, page_set: PageSelectorSet) -> PageSelectorSet:
        """
        Publish a page selector set.

        Re-registering an identical (page_id, version) is a no-op. Raises
        ConflictError for differing content under an existing version, for
        a version that is not current max + 1, or for invalid entries.
        """
        page_id = page_set.page_id
        if not page_id:
            raise ConflictError("page selector set without a page id")
        if page_set.version < 1:
            raise ConflictError(f"{page_id}: version must be >= 1, got {page_set.version}")

        versions = self._pages.get(page_id, {})
        existing = versions.get(page_set.version)
        if existing is not None:
            if existing.same_content(page_set):
                return existing
            raise ConflictError(
                f"{page_id} v{page_set.version} already published with different content"
            )

        expected = max(versions, default=0) + 1
        if page_set.version != expected:
            raise ConflictError(
                f"{page_id}: next version must be v{expected}, got v{page_set.version}"
            )

        for name, entry in page_set.entries.items():
            if name != entry.name:
                raise ConflictError(f"{page_id}: entry key {name!r} != entry name {entry.name!r}")
            validate_entry(page_id, entry)

        if page_set.url_pattern:
            try:
                re.compile(page_set.url_pattern)
            except re.error as e:
                raise ConflictError(f"{page_id}: bad url pattern: {e}") from e

        self._pages.setdefault(page_id, {})[page_set.version] = page_set
        logger.info(
            "selector set registered",
            extra={"page": page_id, "version": page_set.version},
        )
        return page_set

    def pin(self, page_id: str, version: int):
        """Expose ``version`` instead of the highest one for ``page_id``."""
        if version not in self._pages.get(page_id, {}):
            raise NotFoundError(f"{page_id} v{version} is not registered")
        self._pins[page_id] = version

    def unpin(self, page_id: str):
        self._pins.pop(page_id, None)

    # ───────────────────────── LOOKUP ─────────────────────────

    def load_page(self, page_id: str, version: Optional[int] = None) -> PageSelectorSet:
        versions = self._pages.get(page_id)
        if not versions:
            raise NotFoundError(f"no selector set registered for page {page_id!r}")

        if version is None:
            version = self._pins.get(page_id, max(versions))

        try:
            return versions[version]
        except KeyError:
            raise NotFoundError(f"{page_id} v{version} is not registered") from None

    def get_entry(self, page_id: str, name: str) -> SelectorEntry:
        page_set = self.load_page(page_id)
        try:
            return page_set.entries[name]
        except KeyError:
            raise NotFoundError(
                f"page {page_id!r} v{page_set.version} has no selector {name!r}"
            ) from None

    def list_pages(self) -> Set[str]:
        return set(self._pages)

    def versions(self, page_id: str) -> List[int]:
        if page_id not in self._pages:
            raise NotFoundError(f"no selector set registered for page {page_id!r}")
        return sorted(self._pages[page_id])

    def match_url(self, url: str) -> Optional[str]:
        """Return the page id whose exposed url pattern matches ``url``."""
        for page_id in sorted(self._pages):
            pattern = self.load_page(page_id).url_pattern
            if pattern and re.search(pattern, url):
                return page_id
        return None
