"""
Read selector definitions from disk into a SelectorRegistry.

Layout (one file per page version, plus a master index):

    <base>/registry.json
    <base>/pages/<page_id>/v<version>.json

The index maps each page id to its published versions and the active one.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from cartguard.document import HAS_TEXT
from cartguard.errors import ValidationError
from cartguard.models import PageSelectorSet, SelectorEntry, SelectorStrategy, StrategyKind
from cartguard.registry import SelectorRegistry

logger = logging.getLogger(__name__)

INDEX_FILE = "registry.json"

# Default stability per kind for bare-string fallbacks
DEFAULT_SCORES = {
    StrategyKind.ID: 90,
    StrategyKind.ATTRIBUTE: 85,
    StrategyKind.ROLE: 80,
    StrategyKind.CLASS: 60,
    StrategyKind.TEXT: 50,
    StrategyKind.STRUCTURAL: 30,
}

_ID_RE = re.compile(r"^#[\w-]+$")
_CLASS_RE = re.compile(r"^[a-z0-9]*\.[\w-]+$", re.I)


def infer_kind(expression: str) -> StrategyKind:
    """Guess the strategy kind of a bare selector string from its shape."""
    expr = expression.strip()
    if _ID_RE.match(expr):
        return StrategyKind.ID
    if expr.startswith("text=") or HAS_TEXT.match(expr):
        return StrategyKind.TEXT
    if expr.startswith("[role=") or expr.startswith("role="):
        return StrategyKind.ROLE
    if re.match(r"^[a-z]*\[[\w-]+([*^$|~]?=.*)?\]$", expr, re.I):
        return StrategyKind.ATTRIBUTE
    if _CLASS_RE.match(expr):
        return StrategyKind.CLASS
    return StrategyKind.STRUCTURAL


def _as_int(value: Any, field: str, where: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{where}: {field} must be an integer, got {value!r}",
                              field=field, value=value) from None


def _parse_kind(raw: Any, where: str) -> StrategyKind:
    try:
        return StrategyKind(raw)
    except ValueError:
        raise ValidationError(f"{where}: unknown strategy kind {raw!r}", field="kind", value=raw) from None


def _parse_strategy(raw: Union[str, Dict[str, Any]], default_score: Optional[int],
                    cap: Optional[int], where: str) -> SelectorStrategy:
    if isinstance(raw, str):
        kind = infer_kind(raw)
        score = default_score if default_score is not None else DEFAULT_SCORES[kind]
        if cap is not None:
            score = min(score, cap)
        return SelectorStrategy(raw, kind, _as_int(score, "score", where))

    if not isinstance(raw, dict) or "expression" not in raw:
        raise ValidationError(f"{where}: strategy needs an expression", field="expression", value=raw)

    expression = raw["expression"]
    kind = _parse_kind(raw["kind"], where) if "kind" in raw else infer_kind(expression)
    score = raw.get("score", raw.get("stabilityScore"))
    if score is None:
        score = DEFAULT_SCORES[kind] if cap is None else min(DEFAULT_SCORES[kind], cap)
    return SelectorStrategy(expression, kind, _as_int(score, "score", where))


def parse_entry(name: str, raw: Dict[str, Any], page_id: str = "") -> SelectorEntry:
    where = f"{page_id}.{name}" if page_id else name
    if "primary" not in raw:
        raise ValidationError(f"{where}: missing primary selector", field="primary")

    primary = _parse_strategy(raw["primary"], raw.get("score"), None, where)
    fallbacks: List[SelectorStrategy] = []
    cap = primary.stability_score
    for raw_fb in raw.get("fallbacks", []):
        fb = _parse_strategy(raw_fb, None, cap, where)
        fallbacks.append(fb)
        cap = fb.stability_score

    return SelectorEntry(
        name=raw.get("name", name),
        primary=primary,
        fallbacks=tuple(fallbacks),
        verified=bool(raw.get("verified", True)),
        description=raw.get("reason", raw.get("description", "")),
    )


def parse_page_definition(data: Dict[str, Any]) -> PageSelectorSet:
    """Build a PageSelectorSet from one page-version JSON document."""
    page_id = data.get("page") or data.get("pageId")
    if not page_id:
        raise ValidationError("selector definition without a page id", field="page")
    if "version" not in data:
        raise ValidationError(f"{page_id}: missing version", field="version")

    selectors = data.get("selectors") or {}
    if not isinstance(selectors, dict):
        raise ValidationError(f"{page_id}: selectors must be an object", field="selectors")

    entries = {}
    for name, raw in selectors.items():
        entry = parse_entry(name, raw, page_id)
        entries[entry.name] = entry

    return PageSelectorSet(
        page_id=page_id,
        version=_as_int(data["version"], "version", page_id),
        url_pattern=data.get("urlPattern", ""),
        entries=entries,
        notes=data.get("notes", ""),
        last_validated=data.get("lastValidated"),
    )


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"{path}: invalid JSON ({e})", cause=e) from e


def load_registry(base_dir: Path, registry: Optional[SelectorRegistry] = None) -> SelectorRegistry:
    """
    Load every page version listed in the master index.

    Versions are registered in ascending order; when the index's active
    version is not the newest, it is pinned.
    """
    base_dir = Path(base_dir)
    index_path = base_dir / INDEX_FILE
    if not index_path.exists():
        raise FileNotFoundError(f"selector index not found: {index_path}")

    registry = registry or SelectorRegistry()
    index = _read_json(index_path)

    for page_id, meta in sorted(index.get("pages", {}).items()):
        versions = sorted(_as_int(v, "versions", page_id) for v in meta.get("versions", []))
        for version in versions:
            path = base_dir / "pages" / page_id / f"v{version}.json"
            if not path.exists():
                raise FileNotFoundError(f"selector definition not found: {path}")
            page_set = parse_page_definition(_read_json(path))
            if page_set.page_id != page_id or page_set.version != version:
                raise ValidationError(
                    f"{path}: declares {page_set.page_id} v{page_set.version}",
                    field="page",
                )
            registry.register(page_set)

        active = meta.get("activeVersion")
        if active is not None:
            active = _as_int(active, "activeVersion", page_id)
        if active is not None and versions and active != versions[-1]:
            registry.pin(page_id, active)

    logger.info("selector registry loaded", extra={"step": "load", "pages": len(registry.list_pages())})
    return registry
