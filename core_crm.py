# -*- coding: utf-8 -*-
"""
core_crm.py — клиенты, поставщики с закупками и коммерческие предложения.

Статистика клиента (orders / total_spent / last_order) обновляется счетами: Books.create_invoice
вызывает record_customer_sale. Клиент ищется по имени без учёта регистра; счёт на неизвестного
клиента карточку не создаёт.

Предложение (quote) живёт отдельно от заказов: convert_quote превращает его в OrderDraft,
создаёт заказ через OrderManager и помечает предложение как «Convertida».
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from core_common import ValidationError, next_id, to_decimal
from core_models import (
    QUOTE_STATUS_CONVERTED,
    QUOTE_STATUS_DRAFT,
    Customer,
    InvoiceItem,
    OrderStatus,
    Purchase,
    Quote,
    Supplier,
    parse_timestamp,
)
from core_orders import OrderDraft

log = logging.getLogger(__name__)

DEFAULT_QUOTE_VALID_DAYS = 15


def record_customer_sale(store, customer: str, amount: Decimal, day: str) -> Optional[Customer]:
    customers = store.customers()
    key = customer.strip().casefold()
    target = next((c for c in customers if c.name.strip().casefold() == key), None)
    if target is None:
        return None
    target.orders += 1
    target.total_spent += amount
    target.last_order = day
    store.save_customers(customers)
    return target


@dataclass(frozen=True)
class CustomerStats:
    total: int
    active: int
    average_spent: Decimal

    def to_dict(self) -> dict:
        return {"total": self.total, "active": self.active, "average_spent": float(self.average_spent)}


class Crm:
    def __init__(self, store, clock) -> None:
        self.store = store
        self.clock = clock

    def _today(self) -> date:
        return self.clock().date()

    # ---------- Клиенты ----------
    def add_customer(self, name: str, email: str = "", phone: str = "") -> Customer:
        if not (name or "").strip():
            raise ValidationError(["name"])
        customers = self.store.customers()
        customer = Customer(
            id=next_id(c.to_dict() for c in customers),
            name=name.strip(),
            email=(email or "").strip(),
            phone=(phone or "").strip(),
            registered=self._today().isoformat(),
        )
        self.store.save_customers(customers + [customer])
        return customer

    def customer_stats(self) -> CustomerStats:
        customers = self.store.customers()
        spent = sum((c.total_spent for c in customers), Decimal(0))
        average = spent / len(customers) if customers else Decimal(0)
        return CustomerStats(len(customers), sum(1 for c in customers if c.active), average)

    # ---------- Поставщики ----------
    def add_supplier(self, name: str, contact: str = "", specialty: str = "") -> Supplier:
        if not (name or "").strip():
            raise ValidationError(["name"])
        suppliers = self.store.suppliers()
        supplier = Supplier(
            id=next_id(s.to_dict() for s in suppliers),
            name=name.strip(),
            contact=(contact or "").strip(),
            specialty=(specialty or "").strip(),
            registered=self._today().isoformat(),
        )
        self.store.save_suppliers(suppliers + [supplier])
        return supplier

    def record_purchase(self, supplier_id: int, description: str, quantity=1, cost=0,
                        day: Optional[str] = None) -> Purchase:
        value = to_decimal(cost, -1)
        qty = to_decimal(quantity, 0)
        bad = [name for name, ok in (("cost", value >= 0), ("quantity", qty >= 1)) if not ok]
        if bad:
            raise ValidationError(bad, "invalid purchase fields")
        if day is not None and parse_timestamp(day) is None:
            raise ValidationError(["date"], "date must be ISO formatted")
        suppliers = self.store.suppliers()
        supplier = next((s for s in suppliers if s.id == supplier_id), None)
        if supplier is None:
            raise ValidationError(["supplier_id"], f"supplier not found: {supplier_id}")

        purchases = self.store.purchases()
        purchase = Purchase(
            id=next_id(p.to_dict() for p in purchases),
            supplier_id=supplier_id,
            description=description,
            quantity=int(qty),
            cost=value,
            date=day or self._today().isoformat(),
        )
        self.store.save_purchases(purchases + [purchase])
        supplier.purchases += 1
        supplier.total_spent += value
        self.store.save_suppliers(suppliers)
        log.debug("purchase #%s from supplier #%s: %s", purchase.id, supplier_id, value)
        return purchase

    # ---------- Предложения ----------
    def create_quote(self, customer: str, items: Iterable[InvoiceItem], description: str = "",
                     valid_days: int = DEFAULT_QUOTE_VALID_DAYS) -> Quote:
        items = list(items)
        if not (customer or "").strip():
            raise ValidationError(["customer"])
        if not items:
            raise ValidationError(["items"], "quote needs at least one item")
        bad = [i.description or "?" for i in items if i.quantity < 1 or i.price < 0]
        if bad:
            raise ValidationError(bad, "invalid quote items")
        if valid_days < 0:
            raise ValidationError(["valid_days"], "validity must be >= 0 days")

        quotes = self.store.quotes()
        today = self._today()
        quote_id = next_id(q.to_dict() for q in quotes)
        quote = Quote(
            id=quote_id,
            number=f"COT-{quote_id:04d}",
            customer=customer.strip(),
            description=description,
            items=items,
            total=sum((i.amount for i in items), Decimal(0)),
            status=QUOTE_STATUS_DRAFT,
            date=today.isoformat(),
            valid_days=valid_days,
            expires=(today + timedelta(days=valid_days)).isoformat(),
        )
        self.store.save_quotes(quotes + [quote])
        return quote

    def quote_draft(self, quote_id: int) -> OrderDraft:
        """Предложение -> черновик заказа (Pending, цена = итог предложения)."""
        quote = next((q for q in self.store.quotes() if q.id == quote_id), None)
        if quote is None:
            raise ValidationError(["quote_id"], f"quote not found: {quote_id}")
        if quote.status == QUOTE_STATUS_CONVERTED:
            raise ValidationError(["quote_id"], f"quote {quote.number} is already converted")
        expires = parse_timestamp(quote.expires) if quote.expires else None
        if expires is not None and expires.date() < self._today():
            raise ValidationError(["quote_id"], f"quote {quote.number} expired on {quote.expires}")
        description = quote.description or ", ".join(f"{i.quantity} x {i.description}" for i in quote.items)
        return OrderDraft(
            customer=quote.customer,
            description=description,
            price=quote.total,
            status=OrderStatus.PENDING.value,
        )

    def convert_quote(self, quote_id: int, orders):
        result = orders.create_order(self.quote_draft(quote_id))
        quotes = self.store.quotes()
        for q in quotes:
            if q.id == quote_id:
                q.status = QUOTE_STATUS_CONVERTED
                q.order_id = result.order.id
        self.store.save_quotes(quotes)
        return result
