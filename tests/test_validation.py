"""
Tests for selector health checks and markup drift
"""

from cartguard.diffwatch import drift_summary, structural_fingerprint
from cartguard.document import SoupDocument
from cartguard.validation import DEGRADED, INVALID, VALID, validate_page
from tests.conftest import CART_HTML, CART_URL

PAGE_LEVEL = ["empty_cart", "product_list"]


class TestValidatePage:
    async def test_healthy_container(self, registry, cart_doc):
        report = await validate_page(registry.load_page("cart"), cart_doc, only=["product_list"])

        assert report.status == VALID
        assert report.summary == {"total": 1, VALID: 1, DEGRADED: 0, INVALID: 0}
        assert report.results[0].matched_using == "primary"

    async def test_fallback_is_degraded(self, registry):
        html = CART_HTML.replace('data-testid="cart-products" ', "")
        doc = SoupDocument.from_html(html, url=CART_URL)
        report = await validate_page(registry.load_page("cart"), doc, only=["product_list"])

        assert report.status == DEGRADED
        check = report.results[0]
        assert check.matched == ".auc-cart__product-list"
        assert check.matched_using == "fallback:0"

    async def test_missing_entry_is_invalid(self, registry, cart_doc):
        report = await validate_page(registry.load_page("cart"), cart_doc, only=PAGE_LEVEL)

        assert report.status == INVALID
        assert report.failed() == ["empty_cart"]

    async def test_repeated_entry_invalid_at_page_scope(self, registry, cart_doc):
        report = await validate_page(registry.load_page("cart"), cart_doc, only=["product_link"])

        # four product links on the page: every strategy is ambiguous
        assert report.status == INVALID

    async def test_report_shape(self, registry, cart_doc):
        report = await validate_page(registry.load_page("cart"), cart_doc, only=["product_list"])
        data = report.to_dict()

        assert data["page_id"] == "cart"
        assert data["version"] == 2
        assert data["results"] == [{
            "name": "product_list",
            "status": VALID,
            "matched": "[data-testid='cart-products']",
            "matched_using": "primary",
        }]


class TestDrift:
    def test_text_changes_are_not_drift(self):
        a = '<div class="auc-cart--price">1,00 €</div>'
        b = '<div class="auc-cart--price">2,49 €</div>'
        assert structural_fingerprint(a) == structural_fingerprint(b)

    def test_generated_classes_ignored(self):
        a = '<div class="price css-1x2y3z">1</div>'
        b = '<div class="price css-9q8w7e">1</div>'
        assert structural_fingerprint(a) == structural_fingerprint(b)

    def test_class_rename_is_drift(self):
        report = drift_summary("cart", '<div class="auc-price">1</div>', '<div class="auc-amount">1</div>')
        assert report.changed

    def test_first_capture_is_not_drift(self):
        report = drift_summary("cart", None, CART_HTML)
        assert not report.changed
        assert report.prev_fp == ""
        assert report.to_dict()["curr_fp"] == structural_fingerprint(CART_HTML)
