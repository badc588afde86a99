# -*- coding: utf-8 -*-
"""
core_orders.py — заказы, товары (CRUD) и мост «расчёт/заказ -> журнал списаний».

Мост двухфазный:
  propose_consumption(order) -> ConsumptionProposal | None   (что предложить пользователю)
  commit_consumption(proposal) -> ConsumptionEvent            (списание через MaterialLedger)
Подтверждение и предупреждения — через внедряемый Notifier, без прямых вызовов UI.
Заказ сохраняется всегда; нехватка материала не откатывает заказ, а только предупреждает.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from core_common import InsufficientStock, ValidationError, next_id, round_whole, to_decimal
from core_ledger import MaterialLedger, material_label
from core_models import Order, OrderStatus, Product

log = logging.getLogger(__name__)

AUTO_CONSUMPTION_REASON = "Printing"
PRODUCT_CATEGORY_CUSTOM = "Personalizado"


class Notifier:
    """Интерфейс уведомлений. По умолчанию ничего не подтверждает."""

    def confirm(self, message: str) -> bool:
        return False

    def warn(self, message: str) -> None:
        log.warning(message)


class CallbackNotifier(Notifier):
    def __init__(
        self,
        confirm: Optional[Callable[[str], bool]] = None,
        warn: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._confirm = confirm
        self._warn = warn

    def confirm(self, message: str) -> bool:
        return bool(self._confirm(message)) if self._confirm else False

    def warn(self, message: str) -> None:
        if self._warn:
            self._warn(message)
        else:
            super().warn(message)


@dataclass(frozen=True)
class OrderDraft:
    """Ввод для создания заказа (вместо чтения полей формы)."""
    customer: str
    description: str = ""
    material_id: Optional[int] = None
    weight_grams: Decimal = Decimal(0)
    price: Decimal = Decimal(0)
    status: str = OrderStatus.PENDING.value


@dataclass(frozen=True)
class ConsumptionProposal:
    order_id: int
    material_id: int
    quantity_grams: Decimal
    reason: str
    description: str
    message: str


@dataclass(frozen=True)
class OrderResult:
    order: Order
    proposal: Optional[ConsumptionProposal] = None
    consumption: Optional[object] = None
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "consumption": self.consumption.to_dict() if self.consumption is not None else None,
            "warning": self.warning,
        }


def _status_value(status) -> str:
    valid = {s.value for s in OrderStatus}
    value = status.value if isinstance(status, OrderStatus) else str(status)
    if value not in valid:
        raise ValidationError(["status"], f"unknown order status {value!r}")
    return value


class OrderManager:
    def __init__(self, store, ledger: MaterialLedger, notifier: Optional[Notifier] = None) -> None:
        self.store = store
        self.ledger = ledger
        self.notifier = notifier or Notifier()

    def create_order(self, draft: OrderDraft, notifier: Optional[Notifier] = None) -> OrderResult:
        if not (draft.customer or "").strip():
            raise ValidationError(["customer"])
        weight = to_decimal(draft.weight_grams, -1)
        price = to_decimal(draft.price, -1)
        bad = [name for name, v in (("weight_grams", weight), ("price", price)) if v < 0]
        if bad:
            raise ValidationError(bad, "invalid numeric fields")

        orders = self.store.orders()
        order = Order(
            id=next_id(o.to_dict() for o in orders),
            customer=draft.customer.strip(),
            description=draft.description,
            material_id=draft.material_id,
            weight_grams=weight,
            price=price,
            status=_status_value(draft.status),
            date=self.ledger.clock().date().isoformat(),
        )
        self.store.save_orders(orders + [order])
        log.debug("order #%s for %s saved (%s)", order.id, order.customer, order.status)

        proposal = self.propose_consumption(order)
        if proposal is None:
            return OrderResult(order)

        notifier = notifier or self.notifier
        if not notifier.confirm(proposal.message):
            return OrderResult(order, proposal)
        try:
            event = self.commit_consumption(proposal)
        except InsufficientStock as e:
            warning = (
                f"Not enough material ({e.available_kg} kg available, {e.requested_kg} kg required). "
                "The consumption must be recorded manually."
            )
            notifier.warn(warning)
            return OrderResult(order, proposal, warning=warning)
        return OrderResult(order, proposal, consumption=event)

    def propose_consumption(self, order: Order) -> Optional[ConsumptionProposal]:
        if order.status != OrderStatus.PRINTING.value or order.weight_grams <= 0:
            return None
        if order.material_id is None:
            return None
        material = self.store.find_material(order.material_id)
        if material is None:
            return None
        grams = order.weight_grams
        label = material_label(material)
        return ConsumptionProposal(
            order_id=order.id,
            material_id=material.id,
            quantity_grams=grams,
            reason=AUTO_CONSUMPTION_REASON,
            description=f"Automatic consumption for order of {order.customer}",
            message=f"Register automatic consumption of {grams:f}g of {label} for this order?",
        )

    def commit_consumption(self, proposal: ConsumptionProposal):
        # проверка остатка повторяется внутри record_consumption на свежих данных
        return self.ledger.record_consumption(
            proposal.material_id,
            proposal.quantity_grams,
            proposal.reason,
            description=proposal.description,
            order_id=proposal.order_id,
        )

    def update_order_status(self, order_id: int, status) -> Order:
        value = _status_value(status)
        orders = self.store.orders()
        for o in orders:
            if o.id == order_id:
                o.status = value
                self.store.save_orders(orders)
                return o
        raise ValidationError(["order_id"], f"order not found: {order_id}")

    def update_order(self, order_id: int, customer: Optional[str] = None, description: Optional[str] = None,
                     material_id: Optional[int] = None, weight_grams=None, price=None, status=None) -> Order:
        """Редактирование заказа. Авто-списание при редактировании не предлагается."""
        orders = self.store.orders()
        order = next((o for o in orders if o.id == order_id), None)
        if order is None:
            raise ValidationError(["order_id"], f"order not found: {order_id}")
        if customer is not None:
            if not customer.strip():
                raise ValidationError(["customer"])
            order.customer = customer.strip()
        if description is not None:
            order.description = description
        if material_id is not None:
            order.material_id = material_id
        bad = []
        for name, raw in (("weight_grams", weight_grams), ("price", price)):
            if raw is None:
                continue
            value = to_decimal(raw, -1)
            if value < 0:
                bad.append(name)
            else:
                setattr(order, name, value)
        if bad:
            raise ValidationError(bad, "invalid numeric fields")
        if status is not None:
            order.status = _status_value(status)
        self.store.save_orders(orders)
        return order

    def delete_order(self, order_id: int) -> None:
        """Записи журнала со ссылкой на заказ остаются, подпись заказа в них пропадает."""
        orders = self.store.orders()
        rest = [o for o in orders if o.id != order_id]
        if len(rest) == len(orders):
            raise ValidationError(["order_id"], f"order not found: {order_id}")
        self.store.save_orders(rest)

    def order_view(self, order: Order) -> dict:
        out = order.to_dict()
        material = self.store.find_material(order.material_id) if order.material_id is not None else None
        out["material"] = material_label(material) if order.material_id is not None else ""
        return out


# ---------- Продвижение последнего расчёта ----------
def _calc_description(bd) -> str:
    return f"Impresión 3D - {bd.weight_per_piece_grams * bd.piece_count:f}g - {bd.print_hours:f}h"


def order_draft_from_calculation(bd, customer: str) -> OrderDraft:
    return OrderDraft(
        customer=customer,
        description=_calc_description(bd),
        material_id=bd.material_id,
        weight_grams=bd.effective_weight_grams,
        price=round_whole(bd.final_price),
        status=OrderStatus.PENDING.value,
    )


def product_from_calculation(store, bd) -> Product:
    """Сохраняет расчёт как товар: «Pieza <материал>», цена округлена, stock=1."""
    products = store.products()
    product = Product(
        id=next_id(p.to_dict() for p in products),
        name=f"Pieza {bd.material_label}",
        description=_calc_description(bd),
        category=PRODUCT_CATEGORY_CUSTOM,
        price=round_whole(bd.final_price),
        stock=1,
    )
    store.save_products(products + [product])
    return product


# ---------- Товары ----------
def _product_numbers(price, stock) -> tuple[Decimal, int]:
    value = to_decimal(price, -1)
    count = to_decimal(stock, -1)
    bad = [name for name, v in (("price", value), ("stock", count)) if v < 0]
    if bad:
        raise ValidationError(bad, "invalid numeric fields")
    return value, int(count)


def add_product(store, name: str, price, stock=0, description: str = "", category: str = "") -> Product:
    if not (name or "").strip():
        raise ValidationError(["name"])
    value, count = _product_numbers(price, stock)
    products = store.products()
    product = Product(
        id=next_id(p.to_dict() for p in products),
        name=name.strip(),
        description=description,
        category=category,
        price=value,
        stock=count,
    )
    store.save_products(products + [product])
    return product


def update_product(store, product_id: int, name: Optional[str] = None, price=None, stock=None,
                   description: Optional[str] = None, category: Optional[str] = None) -> Product:
    products = store.products()
    product = next((p for p in products if p.id == product_id), None)
    if product is None:
        raise ValidationError(["product_id"], f"product not found: {product_id}")
    if name is not None:
        if not name.strip():
            raise ValidationError(["name"])
        product.name = name.strip()
    value, count = _product_numbers(
        product.price if price is None else price,
        product.stock if stock is None else stock,
    )
    product.price, product.stock = value, count
    if description is not None:
        product.description = description
    if category is not None:
        product.category = category
    store.save_products(products)
    return product


def delete_product(store, product_id: int) -> None:
    products = store.products()
    rest = [p for p in products if p.id != product_id]
    if len(rest) == len(products):
        raise ValidationError(["product_id"], f"product not found: {product_id}")
    store.save_products(rest)
