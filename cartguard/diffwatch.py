"""
Markup drift detection.

Fingerprint the tag/class skeleton of a captured page and compare it with
the previous capture of the same page. A changed fingerprint is an early
hint that selectors may start degrading, before extraction actually fails.
"""

import hashlib
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from bs4 import BeautifulSoup

# generated class suffixes (css modules, hashed builds) churn on every deploy
_VOLATILE_CLASS = re.compile(r"^(css|sc|jsx)-[0-9a-z]+$|_[0-9a-f]{5,}$", re.I)
_STABLE_ATTRS = ("id", "role", "data-testid", "name")


def _stable_classes(classes: Iterable[str]) -> str:
    return " ".join(sorted(c for c in classes if not _VOLATILE_CLASS.search(c)))


def structural_fingerprint(html: str) -> str:
    """
    sha1 over one token per element: ``tag:classes:stable-attrs``.

    Text content is ignored, so prices and product names changing between
    captures do not register as drift.
    """
    soup = BeautifulSoup(html, "lxml")
    tokens = []
    for el in soup.find_all(True):
        if el.name in ("script", "style", "noscript"):
            continue
        attrs = ",".join(a for a in _STABLE_ATTRS if el.has_attr(a))
        tokens.append(f"{el.name}:{_stable_classes(el.get('class', []))}:{attrs}")
    return hashlib.sha1("|".join(tokens).encode()).hexdigest()


@dataclass
class DriftReport:
    page_id: str
    changed: bool
    prev_fp: str
    curr_fp: str

    def to_dict(self):
        return {
            "page_id": self.page_id,
            "changed": self.changed,
            "prev_fp": self.prev_fp,
            "curr_fp": self.curr_fp,
        }


def drift_summary(page_id: str, prev_html: Optional[str], curr_html: str) -> DriftReport:
    """First capture of a page never counts as drift."""
    prev_fp = structural_fingerprint(prev_html) if prev_html else ""
    curr_fp = structural_fingerprint(curr_html)
    return DriftReport(page_id, bool(prev_fp and prev_fp != curr_fp), prev_fp, curr_fp)
