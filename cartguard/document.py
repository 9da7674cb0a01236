"""
Document access capability used by the resolver and extractor.

The resolver only needs "find elements matching expression X, honoring
kind K". ``SoupDocument`` provides that over a parsed HTML snapshot; a
live-browser adapter only has to implement the same coroutine methods.
"""

import re
from typing import Any, List, Optional, Protocol

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from cartguard.errors import InvalidSelectorError
from cartguard.models import StrategyKind


class DocumentContext(Protocol):
    url: Optional[str]

    async def query(self, expression: str, kind: StrategyKind) -> List[Any]:
        ...

    async def text(self, element: Any) -> str:
        ...

    async def attribute(self, element: Any, name: str) -> Optional[str]:
        ...

    def within(self, element: Any) -> "DocumentContext":
        ...


_WS = re.compile(r"\s+")

# a:has-text("Ver todos") style lookups, optionally narrowed to one tag
HAS_TEXT = re.compile(r"^(?P<tag>[\w-]*):has-text\((?P<quote>[\"']?)(?P<text>.*?)(?P=quote)\)$")


def normalize_text(value: str) -> str:
    return _WS.sub(" ", value).strip()


def _text_needle(expression: str) -> str:
    expr = expression.strip()
    if expr.startswith("text="):
        expr = expr[len("text="):]
    if len(expr) >= 2 and expr[0] == expr[-1] and expr[0] in "\"'":
        expr = expr[1:-1]
    return normalize_text(expr).lower()


class SoupDocument:
    """
    DocumentContext over a BeautifulSoup tree.

    ``root`` scopes every query; ``within(el)`` returns a context rooted at
    a sub-element, used for per-card lookups. A malformed CSS expression
    raises ``InvalidSelectorError`` instead of the parser's own exception.
    """

    def __init__(self, root, url: Optional[str] = None):
        self.root = root
        self.url = url

    @classmethod
    def from_html(cls, html: str, url: Optional[str] = None) -> "SoupDocument":
        return cls(BeautifulSoup(html, "lxml"), url=url)

    def within(self, element: Tag) -> "SoupDocument":
        return SoupDocument(element, url=self.url)

    async def query(self, expression: str, kind: StrategyKind) -> List[Tag]:
        kind = StrategyKind(kind)
        if kind is StrategyKind.TEXT:
            m = HAS_TEXT.match(expression.strip())
            if m:
                needle = normalize_text(m.group("text")).lower()
                return self._by_text(needle, tag=m.group("tag") or None, partial=True)
            return self._by_text(_text_needle(expression))
        if kind is StrategyKind.ID and not expression.startswith(("#", "[")):
            return self.root.find_all(id=expression)
        if kind is StrategyKind.ROLE and expression.startswith("role="):
            return self.root.find_all(attrs={"role": expression[len("role="):]})
        if kind is StrategyKind.ROLE and not re.search(r"[\[\].#\s>:]", expression):
            return self.root.find_all(attrs={"role": expression})
        try:
            return self.root.select(expression)
        except SelectorSyntaxError as e:
            raise InvalidSelectorError(
                f"malformed selector {expression!r}: {e}", selector=expression, cause=e
            ) from e

    async def text(self, element: Tag) -> str:
        return normalize_text(element.get_text(" "))

    async def attribute(self, element: Tag, name: str) -> Optional[str]:
        value = element.get(name)
        if isinstance(value, list):
            return " ".join(value)
        return value

    def _by_text(self, needle: str, tag: Optional[str] = None,
                 partial: bool = False) -> List[Tag]:
        """
        Innermost elements whose normalized text equals ``needle``.

        With ``partial`` the text only has to contain it; with ``tag`` only
        elements of that name are considered.
        """
        if not needle:
            return []

        def hit(el) -> bool:
            text = normalize_text(el.get_text(" ")).lower()
            return needle in text if partial else text == needle

        hits = []
        for el in self.root.find_all(tag or True):
            if el.name in ("script", "style") or not hit(el):
                continue
            # an ancestor of a hit repeats the same text; keep the innermost
            inner = el.find_all(tag) if tag else (c for c in el.children if isinstance(c, Tag))
            if any(hit(child) for child in inner):
                continue
            hits.append(el)
        return hits
