"""
Shared fixtures: selector builders, a scripted document double, and
captured storefront pages.
"""

import asyncio
from pathlib import Path

import pytest

from cartguard.document import SoupDocument
from cartguard.errors import InvalidSelectorError
from cartguard.loader import load_registry
from cartguard.models import SelectorEntry, SelectorStrategy, StrategyKind

SELECTORS_DIR = Path(__file__).resolve().parent.parent / "data" / "selectors"

ORDER_URL = "https://www.auchan.pt/pt/detalhes-encomenda?orderID=3f2a"
CART_URL = "https://www.auchan.pt/pt/carrinho-compras"
HISTORY_URL = "https://www.auchan.pt/pt/historico-encomendas"


def strategy(expression, kind=StrategyKind.CLASS, score=60):
    return SelectorStrategy(expression, StrategyKind(kind), score)


def entry(name, primary, *fallbacks, verified=True):
    return SelectorEntry(name, primary, tuple(fallbacks), verified)


class ScriptedDocument:
    """
    Document double answering each expression with a fixed element list.

    ``delays`` makes a query sleep before answering, to exercise the
    per-strategy wait. Expressions in ``malformed`` are rejected the way a
    real document rejects bad CSS. Every query is recorded in ``calls``.
    """

    def __init__(self, matches=None, delays=None, url=None, malformed=()):
        self.matches = matches or {}
        self.delays = delays or {}
        self.malformed = set(malformed)
        self.url = url
        self.calls = []

    async def query(self, expression, kind):
        self.calls.append(expression)
        if expression in self.malformed:
            raise InvalidSelectorError(f"malformed selector {expression!r}", selector=expression)
        if expression in self.delays:
            await asyncio.sleep(self.delays[expression])
        return list(self.matches.get(expression, []))

    async def text(self, element):
        return str(element)

    async def attribute(self, element, name):
        return None

    def within(self, element):
        return self


@pytest.fixture
def registry():
    return load_registry(SELECTORS_DIR)


ORDER_DETAIL_HTML = """
<html><body><main class="auc-order-detail">
  <header>
    <h1>Encomenda 002915480</h1>
    <div class="auc-orders__order-date"><span data-date="2026-01-10T09:12:00Z">10 jan</span></div>
    <div class="auc-orders__order-products">4 Produtos</div>
    <div class="auc-orders__order-price">15,25 €</div>
  </header>
  <section class="auc-order-delivery">
    <p class="auc-order-delivery__type">Entrega em casa</p>
    <p class="auc-order-delivery__address">Rua das Flores 12, 1200-195 Lisboa</p>
    <p class="auc-order-delivery__date">11 jan, 10:00 - 11:00</p>
  </section>
  <ul data-testid="order-products" class="auc-orders__products">
    <li class="auc-orders__product-card">
      <img src="/img/123456.jpg">
      <a class="auc-orders__product-name" href="/pt/alimentacao/lacticinios/leite-mimosa/p/123456">Leite Mimosa Meio Gordo 1L</a>
      <span class="auc-orders__product-quantity">x2</span>
      <span class="auc-orders__product-price">0,89 €</span>
    </li>
    <li class="auc-orders__product-card">
      <img src="/img/555.jpg">
      <a class="auc-orders__product-name" href="/pt/alimentacao/mercearia/arroz-agulha/p/555">Arroz Agulha 1Kg</a>
      <span class="auc-orders__product-quantity">x1</span>
      <span class="auc-orders__product-price">1,99 €</span>
    </li>
    <li class="auc-orders__product-card">
      <img src="/img/999.jpg">
      <a class="auc-orders__product-name" href="/pt/alimentacao/mercearia/azeite-gallo/p/999">Azeite Gallo 750ml</a>
      <span class="auc-orders__product-quantity">x1</span>
      <span class="auc-orders__product-price">7,49 €</span>
    </li>
    <li class="auc-orders__product-card">
      <span class="auc-orders__product-name">Produto sem ligação</span>
      <span class="auc-orders__product-quantity">x1</span>
      <span class="auc-orders__product-price">2,00 €</span>
    </li>
  </ul>
  <section class="auc-order-summary">
    <div class="auc-order-summary__products-total">11,26 €</div>
    <div class="auc-order-summary__delivery-fee">3,99 €</div>
    <div class="auc-order-summary__total">15,25 €</div>
  </section>
</main></body></html>
"""

CART_HTML = """
<html><body><main>
  <div data-testid="cart-products" class="auc-cart__product-list">
    <div class="auc-cart__product-cards">
      <div>
        <a class="auc-cart__product-title" href="/pt/alimentacao/lacticinios/leite-mimosa/p/123456">
          <div class="auc-cart__product-title">Leite Mimosa Meio Gordo 1L</div>
        </a>
        <img class="auc-cart__product-image" src="/img/123456.jpg">
        <input type="number" name="quantity-123456" value="3">
        <span class="auc-cart--price">2,67 €</span>
        <span class="auc-measures--price-per-unit">0,89 €/L</span>
        <button class="auc-cart__remove-product" data-pid="123456" data-uuid="u-1"></button>
      </div>
      <div>
        <a class="auc-cart__product-title" href="/pt/alimentacao/padaria/pao-forma/p/777">
          <div class="auc-cart__product-title">Pão de Forma</div>
        </a>
        <input type="number" name="quantity-777" value="1">
        <span class="auc-cart--price">3,50 €</span>
        <button class="auc-cart__remove-product" data-pid="777" data-uuid="u-2"></button>
      </div>
      <div>
        <a class="auc-cart__product-title" href="/pt/alimentacao/mercearia/arroz-agulha/p/555">
          <div class="auc-cart__product-title auc-unavailable-name">Arroz Agulha 1Kg</div>
        </a>
        <p class="auc-unavailable-text">Produto indisponível</p>
        <input type="number" name="quantity-555" value="1">
        <span class="auc-cart--price">1,99 €</span>
        <button class="auc-cart__remove-product" data-pid="555" data-uuid="u-3"></button>
      </div>
      <div>
        <a class="auc-cart__product-title" href="/pt/alimentacao/bebidas/agua/p/888">
          <div class="auc-cart__product-title">Água 1,5L</div>
        </a>
        <input type="number" name="quantity-888" value="6">
        <button class="auc-cart__remove-product" data-pid="888" data-uuid="u-4"></button>
      </div>
    </div>
  </div>
</main></body></html>
"""

EMPTY_CART_HTML = """
<html><body><main>
  <div class="auc-cart--empty">O seu carrinho está vazio</div>
</main></body></html>
"""

ORDER_HISTORY_HTML = """
<html><body><main>
  <div class="auc-orders">
    <div class="auc-orders__order-card">
      <div class="auc-orders__order-number"><span>Encomenda</span><span>002915480</span></div>
      <div class="auc-orders__order-date">
        <div class="auc-run--day" data-date="2026-01-10T00:00:00Z">10</div>
        <div class="auc-run--monthd">jan</div>
      </div>
      <div class="auc-orders__order-products">38 Produtos</div>
      <div class="auc-orders__order-price">162,51 €</div>
      <a href="/pt/detalhes-encomenda?orderID=3f2a">Ver detalhes</a>
    </div>
    <div class="auc-orders__order-card">
      <div class="auc-orders__order-number"><span>Encomenda</span><span>002931002</span></div>
      <div class="auc-orders__order-date">
        <div class="auc-run--day">5</div>
        <div class="auc-run--monthd">fev</div>
      </div>
      <span class="order-status">Em entrega</span>
      <div class="auc-orders__order-products">12 Produtos</div>
      <div class="auc-orders__order-price">1.234,56 €</div>
    </div>
    <div class="auc-orders__order-card">
      <div class="auc-orders__order-number"><span>Encomenda</span><span>002940117</span></div>
      <div class="auc-orders__order-products">3 Produtos</div>
    </div>
  </div>
</main></body></html>
"""


@pytest.fixture
def order_doc():
    return SoupDocument.from_html(ORDER_DETAIL_HTML, url=ORDER_URL)


@pytest.fixture
def cart_doc():
    return SoupDocument.from_html(CART_HTML, url=CART_URL)


@pytest.fixture
def history_doc():
    return SoupDocument.from_html(ORDER_HISTORY_HTML, url=HISTORY_URL)
