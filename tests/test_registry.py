"""
Tests for the selector registry and definition loader
"""

import json

import pytest

from cartguard.errors import ConflictError, NotFoundError, RegistryError, ValidationError
from cartguard.loader import (
    DEFAULT_SCORES,
    infer_kind,
    load_registry,
    parse_entry,
    parse_page_definition,
)
from cartguard.models import PageSelectorSet, StrategyKind
from cartguard.registry import SelectorRegistry
from tests.conftest import SELECTORS_DIR, entry, strategy


def page(version, page_id="cart", **entries):
    if not entries:
        entries = {"title": entry("title", strategy(".title"))}
    return PageSelectorSet(page_id, version, "carrinho", entries)


class TestVersioning:
    def test_next_version_is_accepted(self):
        reg = SelectorRegistry()
        reg.register(page(1))
        reg.register(page(2))

        assert reg.load_page("cart").version == 2
        assert reg.versions("cart") == [1, 2]

    def test_identical_reregister_is_noop(self):
        reg = SelectorRegistry()
        first = reg.register(page(1))
        again = reg.register(page(1))

        assert again is first
        assert reg.versions("cart") == [1]

    def test_different_content_same_version_conflicts(self):
        reg = SelectorRegistry()
        reg.register(page(1))

        with pytest.raises(ConflictError):
            reg.register(page(1, title=entry("title", strategy(".other"))))

    def test_changed_notes_same_version_conflicts(self):
        reg = SelectorRegistry()
        reg.register(page(1))
        edited = PageSelectorSet("cart", 1, "carrinho", dict(reg.load_page("cart").entries),
                                 notes="retuned after redesign", last_validated="2026-02-01")

        with pytest.raises(ConflictError):
            reg.register(edited)

    def test_skipped_version_conflicts(self):
        reg = SelectorRegistry()
        reg.register(page(1))

        with pytest.raises(ConflictError, match="v2"):
            reg.register(page(3))

    def test_first_version_must_be_one(self):
        with pytest.raises(ConflictError):
            SelectorRegistry().register(page(2))

    def test_published_sets_are_frozen(self):
        page_set = page(1)
        with pytest.raises(TypeError):
            page_set.entries["extra"] = entry("extra", strategy(".x"))


class TestEntryValidation:
    def test_unsorted_fallbacks_rejected(self):
        bad = entry("title", strategy(".a", score=80),
                    strategy(".b", score=40), strategy(".c", score=70))
        with pytest.raises(ConflictError, match="non-increasing"):
            SelectorRegistry().register(page(1, title=bad))

    def test_equal_fallback_scores_allowed(self):
        ok = entry("title", strategy(".a", score=80),
                   strategy(".b", score=50), strategy(".c", score=50))
        SelectorRegistry().register(page(1, title=ok))

    def test_score_out_of_range(self):
        bad = entry("title", strategy(".a", score=120))
        with pytest.raises(ConflictError, match="0-100"):
            SelectorRegistry().register(page(1, title=bad))

    def test_key_must_match_entry_name(self):
        with pytest.raises(ConflictError):
            SelectorRegistry().register(page(1, title=entry("name", strategy(".a"))))

    def test_conflicts_are_registry_errors(self):
        assert issubclass(ConflictError, RegistryError)
        assert ConflictError.code == "VALIDATION_ERROR"


class TestLookup:
    def test_unknown_page(self):
        with pytest.raises(NotFoundError):
            SelectorRegistry().load_page("checkout")

    def test_unknown_version(self):
        reg = SelectorRegistry()
        reg.register(page(1))
        with pytest.raises(NotFoundError):
            reg.load_page("cart", version=7)

    def test_unknown_entry(self):
        reg = SelectorRegistry()
        reg.register(page(1))
        with pytest.raises(NotFoundError, match="nope"):
            reg.get_entry("cart", "nope")

    def test_not_found_is_a_lookup_error(self):
        with pytest.raises(LookupError):
            SelectorRegistry().get_entry("cart", "title")

    def test_pin_overrides_highest(self):
        reg = SelectorRegistry()
        reg.register(page(1))
        reg.register(page(2))

        reg.pin("cart", 1)
        assert reg.load_page("cart").version == 1
        assert reg.load_page("cart", version=2).version == 2

        reg.unpin("cart")
        assert reg.load_page("cart").version == 2

    def test_pin_unknown_version(self):
        reg = SelectorRegistry()
        reg.register(page(1))
        with pytest.raises(NotFoundError):
            reg.pin("cart", 2)

    def test_match_url(self):
        reg = SelectorRegistry()
        reg.register(page(1))
        assert reg.match_url("https://www.auchan.pt/pt/carrinho-compras") == "cart"
        assert reg.match_url("https://www.auchan.pt/pt/checkout") is None


class TestLoader:
    @pytest.mark.parametrize("expression, kind", [
        ("#cart-total", StrategyKind.ID),
        ("[data-testid='cart-products']", StrategyKind.ATTRIBUTE),
        ("input[name*='quantity']", StrategyKind.ATTRIBUTE),
        ("[role=button]", StrategyKind.ROLE),
        (".auc-cart--price", StrategyKind.CLASS),
        ("a.auc-cart__product-title", StrategyKind.CLASS),
        ("text=Ver todos", StrategyKind.TEXT),
        ("a:has-text('Ver todos')", StrategyKind.TEXT),
        (".auc-cart__product-cards > div", StrategyKind.STRUCTURAL),
    ])
    def test_infer_kind(self, expression, kind):
        assert infer_kind(expression) == kind

    def test_bare_fallbacks_capped_by_previous_score(self):
        parsed = parse_entry("price", {
            "primary": ".auc-cart--price",
            "score": 40,
            "fallbacks": ["#price", ".auc-price"],
        })

        assert parsed.primary.stability_score == 40
        assert [f.stability_score for f in parsed.fallbacks] == [40, 40]
        assert parsed.fallbacks[0].kind == StrategyKind.ID

    def test_object_strategies_keep_explicit_scores(self):
        parsed = parse_entry("list", {
            "primary": {"expression": "[data-testid='x']", "kind": "attribute", "score": 90},
            "fallbacks": [{"expression": "Ver todos", "kind": "text", "score": 45}],
            "verified": False,
            "reason": "demo",
        })

        assert parsed.primary.kind == StrategyKind.ATTRIBUTE
        assert parsed.fallbacks[0].stability_score == 45
        assert parsed.verified is False
        assert parsed.description == "demo"

    def test_default_score_by_kind(self):
        parsed = parse_entry("title", {"primary": ".title"})
        assert parsed.primary.stability_score == DEFAULT_SCORES[StrategyKind.CLASS]

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            parse_entry("x", {"primary": {"expression": ".x", "kind": "xpath"}})

    def test_page_definition_requires_version(self):
        with pytest.raises(ValidationError, match="version"):
            parse_page_definition({"page": "cart", "selectors": {}})

    def test_non_integer_version_rejected(self):
        with pytest.raises(ValidationError) as info:
            parse_page_definition({"page": "cart", "version": "one", "selectors": {}})
        assert info.value.field == "version"
        assert info.value.value == "one"

    def test_non_integer_index_version_rejected(self, tmp_path):
        (tmp_path / "registry.json").write_text(json.dumps({"pages": {"cart": {"versions": ["v1"]}}}))

        with pytest.raises(ValidationError, match="versions"):
            load_registry(tmp_path)

    def test_shipped_definitions_load(self, registry):
        assert registry.list_pages() == {"order-detail", "cart", "order-history"}
        assert registry.versions("cart") == [1, 2]
        assert registry.load_page("cart").version == 2
        assert registry.match_url("https://www.auchan.pt/pt/detalhes-encomenda?orderID=1") == "order-detail"

    def test_active_version_is_pinned(self, tmp_path):
        base = tmp_path / "selectors"
        for version in (1, 2):
            path = base / "pages" / "cart" / f"v{version}.json"
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps({
                "page": "cart", "version": version, "urlPattern": "carrinho",
                "selectors": {"title": {"primary": f".title-v{version}"}},
            }))
        (base / "registry.json").write_text(json.dumps({
            "pages": {"cart": {"activeVersion": 1, "versions": [1, 2]}},
        }))

        reg = load_registry(base)
        assert reg.load_page("cart").version == 1
        assert reg.versions("cart") == [1, 2]

    def test_mismatched_file_rejected(self, tmp_path):
        path = tmp_path / "pages" / "cart" / "v1.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"page": "cart", "version": 2, "selectors": {}}))
        (tmp_path / "registry.json").write_text(json.dumps({"pages": {"cart": {"versions": [1]}}}))

        with pytest.raises(ValidationError):
            load_registry(tmp_path)

    def test_missing_index(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_registry(tmp_path)

    def test_shipped_dir_constant(self):
        assert (SELECTORS_DIR / "registry.json").exists()
